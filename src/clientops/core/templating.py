"""Strict ``{{name}}`` template rendering.

Rendering is a pure function from a named-variable mapping to a string.
Placeholders without a value raise TemplateError instead of being left in
the output.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from src.clientops.core.errors import TemplateError

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def placeholders(template: str) -> list[str]:
    """Return placeholder names in order of first appearance."""
    seen: list[str] = []
    for match in _PLACEHOLDER.finditer(template):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def render(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute every placeholder in ``template``.

    ``None`` counts as missing. Extra variables are ignored.

    Raises:
        TemplateError: If any placeholder has no value.
    """
    missing = [
        name for name in placeholders(template)
        if variables.get(name) is None
    ]
    if missing:
        raise TemplateError(missing)

    return _PLACEHOLDER.sub(lambda m: str(variables[m.group(1)]), template)
