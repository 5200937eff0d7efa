"""Template rendering: literal ``{{key}}`` substitution."""

from __future__ import annotations

import re
from typing import Any

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def render(body: str, variables: dict[str, Any]) -> str:
    """Replace ``{{key}}`` placeholders with ``str(value)``.

    Placeholders with no matching variable are left as-is.
    """
    text = body
    for key, value in variables.items():
        text = text.replace(f"{{{{{key}}}}}", str(value))
    return text


def find_unresolved(text: str) -> list[str]:
    """Names of placeholders still present in ``text``, first occurrence order."""
    return list(dict.fromkeys(PLACEHOLDER.findall(text)))
