"""Template expansion shared by output naming and breakpoint messages.

Placeholders use the ``{{name}}`` notation. Names that are not present in the
context are left untouched, so a partially populated context still renders.
"""

import re
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")


def expand(template: str, context: Mapping[str, Any] | None) -> str:
    """Replace every ``{{name}}`` in the template with ``str(context[name])``.

    Args:
        template: Text containing placeholders.
        context: Values to substitute.

    Returns:
        The expanded text. Unresolved placeholders are kept literally.
    """
    if not template or not context:
        return template

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in context:
            return str(context[name])
        return match.group(0)

    return _PLACEHOLDER.sub(_substitute, template)


def has_placeholders(template: str | None) -> bool:
    """Check whether a string contains any ``{{name}}`` placeholder."""
    return bool(template) and _PLACEHOLDER.search(template) is not None


def placeholders(template: str) -> list[str]:
    """List placeholder names in order of appearance."""
    return _PLACEHOLDER.findall(template or "")


def escape_newlines(text: str | None) -> str | None:
    """Render newlines as a literal backslash-n so a value fits on one line."""
    return text.replace("\n", "\\n") if text is not None else None
