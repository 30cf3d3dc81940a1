"""Variable interpolation for node configuration strings.

Supports ``{{ name }}`` placeholders only. The name is looked up verbatim in
the flat execution context; there are no dotted paths, filters or
expressions. Missing names render as ``undefined``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

TEMPLATE_RE = re.compile(r"\{\{([^}]+)\}\}")

MISSING = "undefined"


def to_display_string(value: Any) -> str:
    """Stringify a context value the way the editor displays it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def interpolate(
    template: Any,
    context: Dict[str, Any],
    diagnostics: Optional[List[str]] = None,
    formatter: Callable[[Any], str] = to_display_string,
) -> Any:
    """Substitute ``{{ name }}`` placeholders in ``template``.

    Non-string templates are returned unchanged. Each missing name is logged
    and, when ``diagnostics`` is given, recorded there as well.
    """
    if not isinstance(template, str) or "{{" not in template:
        return template

    def repl(match: re.Match) -> str:
        name = match.group(1).strip()
        if name in context:
            return formatter(context[name])
        message = f"Variable '{name}' not found in context"
        logger.warning(message)
        if diagnostics is not None:
            diagnostics.append(message)
        return MISSING

    return TEMPLATE_RE.sub(repl, template)


def interpolate_structure(
    data: Any,
    context: Dict[str, Any],
    diagnostics: Optional[List[str]] = None,
) -> Any:
    if isinstance(data, str):
        return interpolate(data, context, diagnostics)
    if isinstance(data, dict):
        return {k: interpolate_structure(v, context, diagnostics) for k, v in data.items()}
    if isinstance(data, list):
        return [interpolate_structure(v, context, diagnostics) for v in data]
    return data


__all__ = ["TEMPLATE_RE", "MISSING", "interpolate", "interpolate_structure", "to_display_string"]
