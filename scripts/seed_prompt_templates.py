#!/usr/bin/env python3
"""Seed the initial prompt templates for every decision category.

Usage:
    python scripts/seed_prompt_templates.py                                # local server
    python scripts/seed_prompt_templates.py --base-url http://localhost:8500
"""

from __future__ import annotations

import argparse
import sys

import httpx

_JSON_ONLY = "Respond with a single JSON object and nothing else."

TEMPLATES = [
    {
        "name": "inspection_analysis",
        "body": (
            "You are an expert drone inspection analyst for the {{industry}} industry.\n\n"
            "Client: {{client}}\n"
            "Images captured: {{image_count}}\n"
            "Report metadata: {{metadata}}\n\n"
            "Identify every defect or hazard visible in the inspection. For each finding give "
            "an id, type, severity (LOW, MEDIUM, HIGH or CRITICAL), description, location and "
            "your confidence between 0 and 1.\n"
            "Then give an overall severity, a riskScore from 0 to 100 consistent with that "
            "severity (LOW 0-25, MEDIUM 25-60, HIGH 60-85, CRITICAL 85-100) and a list of "
            "recommendations, each with priority (LOW, MEDIUM, HIGH or URGENT), action, "
            "rationale and an optional estimatedCost.\n\n"
            'Shape: {"findings": [...], "severity": "...", "riskScore": 0, '
            '"recommendations": [...]}\n' + _JSON_ONLY
        ),
    },
    {
        "name": "anomaly_detection",
        "body": (
            "You are reviewing a single drone image for a {{industry}} inspection.\n\n"
            "Image: {{image_url}}\n"
            "Context: {{context}}\n\n"
            "List each anomaly with type, severity (LOW, MEDIUM, HIGH or CRITICAL), "
            "confidence between 0 and 1, description and location ({\"x\": .., \"y\": ..}). "
            "Set overallRisk to the highest severity you found, or LOW when there are none.\n\n"
            'Shape: {"anomalies": [...], "overallRisk": "..."}\n' + _JSON_ONLY
        ),
    },
    {
        "name": "mission_readiness",
        "body": (
            "You are a flight operations safety officer validating a drone deployment.\n\n"
            "Assets: {{assets}}\n"
            "Personnel: {{personnel}}\n"
            "Weather: {{weather}}\n"
            "Regulations: {{regulations}}\n\n"
            "Decide whether the mission is ready to fly. Give a readiness score from 0 to 100 "
            "(70 or above means ready), riskFlags each with category, severity (LOW, MEDIUM, "
            "HIGH or CRITICAL), description and mitigation, and a list of recommendations.\n\n"
            'Shape: {"ready": true, "score": 0, "riskFlags": [...], "recommendations": [...]}\n'
            + _JSON_ONLY
        ),
    },
    {
        "name": "daily_operational_summary",
        "body": (
            "You are the operations lead writing the end-of-day summary for {{date}}.\n\n"
            "Mission data: {{mission_data}}\n"
            "Daily logs: {{daily_logs}}\n"
            "Total cost to date: ${{total_cost}}\n\n"
            "Summarise the work completed, the financial status with concrete figures, any "
            "budget or schedule overrun alerts, and recommendations for tomorrow. Add a short "
            "list of highlights.\n\n"
            'Shape: {"workCompleted": "...", "financialStatus": "...", "overrunAlerts": "...", '
            '"recommendations": "...", "highlights": [...]}\n' + _JSON_ONLY
        ),
    },
]


def seed_via_api(base_url: str, author: str) -> int:
    """Create version 1 of each template that has no active version yet."""
    failures = 0
    with httpx.Client(base_url=base_url, timeout=10.0) as client:
        for template in TEMPLATES:
            name = template["name"]
            if client.get(f"/api/v1/templates/{name}/active").status_code == 200:
                print(f"  Skipped (active version exists): {name}")
                continue

            resp = client.post(
                f"/api/v1/templates/{name}/versions",
                json={"body": template["body"], "author": author, "activate": True},
            )
            if resp.status_code == 201:
                print(f"  Created template: {name} v{resp.json()['version']}")
            else:
                failures += 1
                print(f"  FAILED {name}: {resp.status_code} {resp.text}", file=sys.stderr)
    return failures


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed prompt templates into Inspection AI")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8500",
        help="Inspection AI API base URL (default: http://localhost:8500)",
    )
    parser.add_argument("--author", default="seed")
    args = parser.parse_args()

    print(f"Seeding {len(TEMPLATES)} templates to {args.base_url} ...")
    failures = seed_via_api(args.base_url, args.author)
    print("Done.")
    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
