"""Value and identifier quoting for SQL assembled outside the adapter."""

from __future__ import annotations

import math
from typing import Callable

from sqlglot import exp

DIALECT = "mysql"


class QuoteHandler:
    """Quote literals via the live connection and identifiers via sqlglot."""

    def __init__(self, escape: Callable[[str], str]) -> None:
        self._escape = escape

    def value(self, value: object) -> str:
        """Render a value as a SQL literal."""

        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"Cannot quote non-finite number {value!r}")
        if isinstance(value, (int, float)):
            return repr(value)
        if isinstance(value, (list, tuple, set, frozenset)):
            return ", ".join(self.value(item) for item in value)
        return self._escape(str(value))

    def into(self, text: str, value: object) -> str:
        """Substitute every `?` placeholder in text with the quoted value."""

        return text.replace("?", self.value(value))

    def identifier(self, name: str) -> str:
        """Quote a (possibly dotted) identifier; `*` stays bare."""

        parts = []
        for part in name.split("."):
            if part == "*":
                parts.append(part)
            else:
                parts.append(exp.to_identifier(part, quoted=True).sql(dialect=DIALECT))
        return ".".join(parts)


__all__ = ["QuoteHandler"]
