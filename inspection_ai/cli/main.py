"""Inspection AI CLI: inspection-ai command."""

from __future__ import annotations

import json
import sys
from typing import Any

import click

from inspection_ai.cli.client import InspectionClient


def _format_table(rows: list[dict], columns: list[str]) -> str:
    """Simple table formatter."""
    if not rows:
        return "No results."
    widths = {c: len(c) for c in columns}
    for row in rows:
        for c in columns:
            widths[c] = max(widths[c], len(str(row.get(c, ""))))

    header = "  ".join(c.upper().ljust(widths[c]) for c in columns)
    separator = "  ".join("-" * widths[c] for c in columns)
    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(str(row.get(c, "")).ljust(widths[c]) for c in columns))
    return "\n".join(lines)


@click.group()
@click.option("--api", default="http://localhost:8500", envvar="INSPECTION_AI_API", help="API base URL")
@click.option("--user", "user_id", default=None, envvar="INSPECTION_AI_USER", help="Acting user id")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table")
@click.option("--token", default=None, envvar="INSPECTION_AI_TOKEN", help="Auth token")
@click.pass_context
def cli(
    ctx: click.Context, api: str, user_id: str | None, output_format: str, token: str | None
) -> None:
    """Inspection AI CLI: templates, decisions, overrides and usage."""
    ctx.ensure_object(dict)
    ctx.obj = InspectionClient(base_url=api, user_id=user_id, auth_token=token)
    ctx.meta["output_format"] = output_format


def _output(ctx: click.Context, data: Any, columns: list[str] | None = None) -> None:
    fmt = ctx.meta.get("output_format", "table")
    if fmt == "table" and isinstance(data, list) and columns:
        click.echo(_format_table(data, columns))
    else:
        click.echo(json.dumps(data, indent=2, default=str))


# --- Analysis ---


@cli.command()
@click.argument("kind", type=click.Choice(["report", "image", "mission", "daily-summary"]))
@click.option("--file", "-f", "file_path", default=None, help="JSON payload (default: stdin)")
@click.pass_context
def analyze(ctx: click.Context, kind: str, file_path: str | None) -> None:
    """Run a governed analysis and print the decision envelope."""
    client: InspectionClient = ctx.obj
    if file_path:
        with open(file_path) as f:
            payload = json.load(f)
    else:
        payload = json.load(sys.stdin)
    result = client.analyze(kind, payload)
    data = result.get("data", {})
    click.echo(f"{data.get('status')}  confidence={data.get('confidence', {}).get('overall')}")
    _output(ctx, result)


# --- Templates ---


@cli.group()
def template() -> None:
    """Manage prompt templates."""


@template.command("list")
@click.pass_context
def template_list(ctx: click.Context) -> None:
    """List template names."""
    client: InspectionClient = ctx.obj
    names = client.list_templates()
    _output(ctx, [{"name": n} for n in names], ["name"])


@template.command("history")
@click.argument("name")
@click.pass_context
def template_history(ctx: click.Context, name: str) -> None:
    """Show all versions of a template."""
    client: InspectionClient = ctx.obj
    data = client.list_template_versions(name)
    _output(ctx, data, ["version", "isActive", "author", "createdAt"])


@template.command("show")
@click.argument("name")
@click.pass_context
def template_show(ctx: click.Context, name: str) -> None:
    """Print the active version's body."""
    client: InspectionClient = ctx.obj
    data = client.get_active_template(name)
    click.echo(f"# {data['name']} v{data['version']}")
    click.echo(data["body"])


@template.command("push")
@click.argument("name")
@click.option("--file", "-f", "file_path", required=True)
@click.option("--author", default="cli")
@click.option("--inactive", is_flag=True, help="Store without activating")
@click.pass_context
def template_push(ctx: click.Context, name: str, file_path: str, author: str, inactive: bool) -> None:
    """Create a new template version from a text file."""
    client: InspectionClient = ctx.obj
    with open(file_path) as f:
        body = f.read()
    result = client.create_template_version(
        name, {"body": body, "author": author, "activate": not inactive}
    )
    click.echo(f"Created {name} v{result['version']}")


@template.command("activate")
@click.argument("name")
@click.argument("version_num", type=int)
@click.pass_context
def template_activate(ctx: click.Context, name: str, version_num: int) -> None:
    """Activate an existing template version."""
    client: InspectionClient = ctx.obj
    client.activate_template(name, version_num)
    click.echo(f"Activated {name} v{version_num}")


# --- Decisions ---


@cli.group()
def decision() -> None:
    """Inspect the decision ledger."""


@decision.command("list")
@click.option("--endpoint", default=None)
@click.option("--user-id", default=None)
@click.option("--limit", default=50, type=int)
@click.pass_context
def decision_list(ctx: click.Context, endpoint: str | None, user_id: str | None, limit: int) -> None:
    """List recent decisions."""
    client: InspectionClient = ctx.obj
    params: dict[str, Any] = {"limit": limit}
    if endpoint:
        params["endpoint"] = endpoint
    if user_id:
        params["user_id"] = user_id
    data = client.query_decisions(**params)["data"]["decisions"]
    _output(
        ctx,
        data,
        ["request_id", "endpoint", "user_id", "confidence_score", "prompt_version", "created_at"],
    )


@decision.command("show")
@click.argument("request_id")
@click.pass_context
def decision_show(ctx: click.Context, request_id: str) -> None:
    """Show one decision."""
    client: InspectionClient = ctx.obj
    _output(ctx, client.get_decision(request_id)["data"])


@decision.command("override")
@click.argument("analysis_id")
@click.option("--by", "override_by", required=True)
@click.option("--reason", required=True)
@click.pass_context
def decision_override(ctx: click.Context, analysis_id: str, override_by: str, reason: str) -> None:
    """Record a human override on an analysis result."""
    client: InspectionClient = ctx.obj
    client.override(analysis_id, {"overrideBy": override_by, "reason": reason})
    click.echo(f"Override recorded on analysis '{analysis_id}'")


# --- Reporting ---


@cli.command()
@click.argument("report_id")
@click.pass_context
def history(ctx: click.Context, report_id: str) -> None:
    """Analysis history for a report."""
    client: InspectionClient = ctx.obj
    data = client.report_history(report_id)["data"]["history"]
    _output(ctx, data, ["id", "severity", "riskScore", "humanOverride", "createdAt"])


@cli.command()
@click.option("--start", "start_date", required=True)
@click.option("--end", "end_date", required=True)
@click.pass_context
def compliance(ctx: click.Context, start_date: str, end_date: str) -> None:
    """Compliance summary for a period."""
    client: InspectionClient = ctx.obj
    _output(ctx, client.compliance(start_date, end_date)["data"])


@cli.command()
@click.argument("user_id")
@click.option("--since", default=None)
@click.option("--until", default=None)
@click.pass_context
def usage(ctx: click.Context, user_id: str, since: str | None, until: str | None) -> None:
    """Usage metrics for a user."""
    client: InspectionClient = ctx.obj
    params = {k: v for k, v in {"since": since, "until": until}.items() if v}
    data = client.usage(user_id, **params)["data"]
    _output(
        ctx,
        data["metrics"],
        ["date", "endpoint", "request_count", "total_tokens", "total_processing_time_ms"],
    )


if __name__ == "__main__":
    cli()
