"""Prompt Registry: named, versioned prompt templates."""

from __future__ import annotations

from functools import lru_cache

import structlog

from inspection_ai.core.errors import ConfigurationError
from inspection_ai.db.client import SupabaseClient, get_supabase_client
from inspection_ai.db.models import PromptTemplateRow

logger = structlog.get_logger()

TABLE = "ai_prompt_templates"


class PromptTemplateRegistry:
    """Reads and versions prompt templates.

    Versions are never edited in place: a change is a new row, and activation
    only flips ``is_active`` flags.
    """

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def get_active_template(self, name: str) -> PromptTemplateRow:
        """Return the most recently created active version of ``name``.

        Raises ConfigurationError when no active version exists.
        """
        rows = self.db.select(
            TABLE,
            filters={"name": name, "is_active": True},
            order_by="created_at",
            ascending=False,
            limit=1,
        )
        if not rows:
            raise ConfigurationError(f"No active prompt template named '{name}'")
        return PromptTemplateRow(**rows[0])

    def get_template(self, name: str, version: int) -> PromptTemplateRow:
        """Return an exact version, active or not."""
        rows = self.db.select(TABLE, filters={"name": name, "version": version}, limit=1)
        if not rows:
            raise ConfigurationError(f"Prompt template '{name}' version {version} not found")
        return PromptTemplateRow(**rows[0])

    def list_versions(self, name: str) -> list[PromptTemplateRow]:
        """List all versions of a template, newest first."""
        rows = self.db.select(TABLE, filters={"name": name}, order_by="version", ascending=False)
        return [PromptTemplateRow(**row) for row in rows]

    def list_names(self) -> list[str]:
        """Distinct template names, sorted."""
        return sorted({row["name"] for row in self.db.select(TABLE)})

    def create_version(
        self,
        name: str,
        body: str,
        activate: bool = True,
        author: str = "system",
    ) -> PromptTemplateRow:
        """Insert the next version of ``name``, optionally making it the active one."""
        latest = self.db.select(TABLE, filters={"name": name}, order_by="version", ascending=False, limit=1)
        next_version = 1 if not latest else latest[0]["version"] + 1

        if activate and latest:
            self.db.update_where(TABLE, {"name": name}, {"is_active": False})

        row = self.db.insert(
            TABLE,
            {
                "name": name,
                "version": next_version,
                "body": body,
                "is_active": activate,
                "author": author,
            },
        )
        logger.info("template.created", name=name, version=next_version, active=activate)
        return PromptTemplateRow(**row)

    def activate_version(self, name: str, version: int) -> PromptTemplateRow:
        """Make an existing version the active one (e.g. to roll back)."""
        target = self.get_template(name, version)
        self.db.update_where(TABLE, {"name": name}, {"is_active": False})
        row = self.db.update(TABLE, str(target.id), {"is_active": True})
        logger.info("template.activated", name=name, version=version)
        return PromptTemplateRow(**row)


@lru_cache
def get_registry() -> PromptTemplateRegistry:
    """Get cached registry instance."""
    return PromptTemplateRegistry(get_supabase_client())
