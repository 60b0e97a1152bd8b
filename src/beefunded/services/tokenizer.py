"""Tiny ``{placeholder}`` templating used for notification texts."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

_PLACEHOLDER_RE = re.compile(r"{(\w+)}")


def format_template(
    template: str,
    args: Mapping[str, object] | Sequence[object],
) -> str:
    """Replace ``{name}`` or ``{0}`` placeholders in ``template``.

    Named placeholders are looked up in a mapping, numeric ones index into a
    sequence. Missing or ``None`` values render as an empty string.

    Examples:
        >>> format_template("Hello {name}", {"name": "Alice"})
        'Hello Alice'
        >>> format_template("{0} has {1} new messages", ["Alice", 5])
        'Alice has 5 new messages'
    """

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value: object = None
        if isinstance(args, Mapping):
            value = args.get(key)
        elif key.isdigit() and int(key) < len(args):
            value = args[int(key)]
        return "" if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_replace, template)
