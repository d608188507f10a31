"""Query builder over the decoded data set.

Builders are immutable: every call returns a new builder, so a partially
built query can be reused as the base of several others. Filters are AND-ed,
there is a single sort slot and a single limit slot (the last one set wins).
``execute()`` applies filter -> sort -> truncate over a materialized snapshot
of the live entries; there is no index, every query is a full scan.
"""

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from functools import cmp_to_key
from typing import Any

Items = list[tuple[str, Any]]
Source = Callable[[], Awaitable[dict[str, Any]]]


class Operator(Enum):
    """Query operators."""

    # Comparison
    EQ = "="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="

    # String
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    MATCHES = "matches"  # regex

    # Collection
    IN = "in"
    NOT_IN = "not_in"


_MISSING = object()


def get_field(value: Any, field: str) -> Any:
    """Resolve a dotted field path against mappings and attributes."""
    current = value
    for part in field.split("."):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        else:
            current = getattr(current, part, _MISSING)
        if current is _MISSING:
            return None
    return current


@dataclass(frozen=True)
class Condition:
    """A single field condition."""

    field: str
    operator: Operator
    value: Any

    def __call__(self, item: Any) -> bool:
        return self.matches(item)

    def matches(self, item: Any) -> bool:
        """Check if a decoded value matches this condition."""
        field_value = get_field(item, self.field)

        if field_value is None:
            if self.operator == Operator.EQ:
                return self.value is None
            if self.operator == Operator.NE:
                return self.value is not None
            return False

        try:
            if self.operator == Operator.EQ:
                return field_value == self.value
            elif self.operator == Operator.NE:
                return field_value != self.value
            elif self.operator == Operator.GT:
                return field_value > self.value
            elif self.operator == Operator.GTE:
                return field_value >= self.value
            elif self.operator == Operator.LT:
                return field_value < self.value
            elif self.operator == Operator.LTE:
                return field_value <= self.value
            elif self.operator == Operator.CONTAINS:
                if isinstance(field_value, str):
                    return str(self.value).lower() in field_value.lower()
                return self.value in field_value
            elif self.operator == Operator.STARTS_WITH:
                return str(field_value).lower().startswith(str(self.value).lower())
            elif self.operator == Operator.ENDS_WITH:
                return str(field_value).lower().endswith(str(self.value).lower())
            elif self.operator == Operator.IN:
                return field_value in self.value
            elif self.operator == Operator.NOT_IN:
                return field_value not in self.value
            elif self.operator == Operator.MATCHES:
                return bool(re.search(self.value, str(field_value)))
        except TypeError:
            # Incomparable types simply don't match
            return False

        return False


@dataclass(frozen=True)
class QueryBuilder:
    """Fluent, immutable query over a storage instance."""

    source: Source
    filters: tuple[Callable[[Any], bool], ...] = ()
    sorter: Callable[[Items], Items] | None = None
    max_results: int | None = None

    def filter(self, predicate: Callable[[Any], bool]) -> "QueryBuilder":
        """Keep entries whose value satisfies the predicate."""
        return replace(self, filters=(*self.filters, predicate))

    def where(self, field: str, operator: str | Operator, value: Any) -> "QueryBuilder":
        """Add a field condition."""
        if isinstance(operator, str):
            operator = Operator(operator)
        return self.filter(Condition(field, operator, value))

    def sort(
        self, key: Callable[[Any], Any] | None = None, reverse: bool = False
    ) -> "QueryBuilder":
        """Sort by a key function over values, or by storage key when omitted."""

        def sorter(items: Items) -> Items:
            if key is None:
                return sorted(items, key=lambda item: item[0], reverse=reverse)
            return sorted(items, key=lambda item: key(item[1]), reverse=reverse)

        return replace(self, sorter=sorter)

    def sort_items(self, compare: Callable[[tuple[str, Any], tuple[str, Any]], int]) -> "QueryBuilder":
        """Sort with a two-argument comparator over ``(key, value)`` pairs."""
        return replace(self, sorter=lambda items: sorted(items, key=cmp_to_key(compare)))

    def order_by(self, field: str, ascending: bool = True) -> "QueryBuilder":
        """Sort by a field of the value; entries missing the field go last."""

        def sorter(items: Items) -> Items:
            present = [item for item in items if get_field(item[1], field) is not None]
            absent = [item for item in items if get_field(item[1], field) is None]
            present.sort(key=lambda item: get_field(item[1], field), reverse=not ascending)
            return present + absent

        return replace(self, sorter=sorter)

    def limit(self, n: int) -> "QueryBuilder":
        """Keep at most n entries."""
        if n < 0:
            raise ValueError("limit must be non-negative")
        return replace(self, max_results=n)

    take = limit

    async def execute(self) -> dict[str, Any]:
        """Run the query: filter, then sort, then truncate."""
        data = await self.source()
        items = [
            (key, value)
            for key, value in data.items()
            if all(predicate(value) for predicate in self.filters)
        ]
        if self.sorter is not None:
            items = self.sorter(items)
        if self.max_results is not None:
            items = items[: self.max_results]
        return dict(items)

    async def count(self) -> int:
        return len(await self.execute())

    async def first(self) -> tuple[str, Any] | None:
        """The first matching ``(key, value)`` pair, if any."""
        return next(iter((await self.execute()).items()), None)

    async def keys(self) -> list[str]:
        return list(await self.execute())
