"""CSS selector string helpers."""

from __future__ import annotations

import re

_IDENT_SAFE = re.compile(r"[A-Za-z0-9_\-\u00a0-\uffff]")


def _hex_escape(char: str) -> str:
    return f"\\{ord(char):x} "


def escape_identifier(value: str) -> str:
    """Escape ``value`` for use as a CSS identifier (``#id``, ``.class``).

    Mirrors ``CSS.escape``: a leading digit (or a digit after a leading
    hyphen) and control characters become hex escapes, any other character
    outside the identifier alphabet is backslash-escaped.
    """
    if value == "-":
        return "\\-"
    escaped = []
    for position, char in enumerate(value):
        if char == "\x00":
            escaped.append("\ufffd")
        elif "\x01" <= char <= "\x1f" or char == "\x7f":
            escaped.append(_hex_escape(char))
        elif "0" <= char <= "9" and (
            position == 0 or (position == 1 and value[0] == "-")
        ):
            escaped.append(_hex_escape(char))
        elif _IDENT_SAFE.match(char):
            escaped.append(char)
        else:
            escaped.append("\\" + char)
    return "".join(escaped)


def quote_attribute_value(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def attribute_selector(name: str, value: str | None = None) -> str:
    if value is None:
        return f"[{name}]"
    return f"[{name}={quote_attribute_value(value)}]"


__all__ = ["escape_identifier", "quote_attribute_value", "attribute_selector"]
