"""Immutable query fragments.

every compiler builds a QueryParts out of tuples and renders it exactly once.
nothing appends to a shared string, so a column prefix can't end up applied in
one clause and forgotten in another.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any


class ParameterList:
    """Positional parameter accumulator.

    `$n` placeholders for the analytics engine, `?` for the crm engine. with
    `?` the caller has to add values in the order they appear in the text;
    `$n` placeholders can be referenced more than once.
    """

    def __init__(self, style: str = "dollar") -> None:
        if style not in ("dollar", "qmark"):
            raise ValueError(f"Unknown parameter style: {style}")
        self.style = style
        self._values: list[Any] = []

    def add(self, value: Any) -> str:
        self._values.append(value)
        if self.style == "qmark":
            return "?"
        return f"${len(self._values)}"

    def extend(self, values: list[Any]) -> list[str]:
        return [self.add(v) for v in values]

    @property
    def values(self) -> tuple[Any, ...]:
        return tuple(self._values)

    def __len__(self) -> int:
        return len(self._values)


@dataclass(frozen=True)
class QueryParts:
    """One SELECT statement, clause by clause."""

    select: tuple[str, ...]
    from_: str
    joins: tuple[str, ...] = ()
    where: tuple[str, ...] = ()
    group_by: tuple[str, ...] = ()
    having: tuple[str, ...] = ()
    order_by: tuple[str, ...] = ()
    limit: int | None = None
    ctes: tuple[tuple[str, "QueryParts"], ...] = ()
    distinct: bool = False

    def render(self, indent: str = "") -> str:
        lines: list[str] = []
        if self.ctes:
            rendered = [
                f"{name} AS (\n{parts.render(indent + '  ')}\n{indent})"
                for name, parts in self.ctes
            ]
            lines.append(f"{indent}WITH " + f",\n{indent}".join(rendered))

        keyword = "SELECT DISTINCT" if self.distinct else "SELECT"
        lines.append(f"{indent}{keyword}")
        lines.append(",\n".join(f"{indent}  {expr}" for expr in self.select))
        lines.append(f"{indent}FROM {self.from_}")
        lines.extend(f"{indent}{join}" for join in self.joins)

        if self.where:
            lines.append(f"{indent}WHERE " + f"\n{indent}  AND ".join(self.where))
        if self.group_by:
            lines.append(f"{indent}GROUP BY " + ", ".join(self.group_by))
        if self.having:
            lines.append(f"{indent}HAVING " + " AND ".join(self.having))
        if self.order_by:
            lines.append(f"{indent}ORDER BY " + ", ".join(self.order_by))
        if self.limit is not None:
            lines.append(f"{indent}LIMIT {int(self.limit)}")
        return "\n".join(lines)


def date_literal(value: date) -> str:
    """Render a validated date as a sql literal.

    the range boundaries are the only inlined values besides LIMIT. they're
    formatted from real date objects, never from caller-supplied text.
    """
    if not isinstance(value, date):
        raise TypeError(f"Expected a date, got {type(value).__name__}")
    return f"DATE '{value.isoformat()}'"


def date_range_condition(column: str, start: date, end: date) -> str:
    """Half-open range covering every timestamp on the inclusive [start, end] days."""
    return (
        f"{column} >= {date_literal(start)} "
        f"AND {column} < {date_literal(end + timedelta(days=1))}"
    )
