"""Composable ledger query — a list of optional constraints.

The core never writes query-language syntax. It builds a ``Query`` value and
each ledger backend translates it: the in-memory arena evaluates it directly,
the SQLite backend renders parameterized SQL.

Builder methods skip ``None`` values, so optional request filters chain
without branching::

    query = (
        Query()
        .is_in("creator_user_id", props.creator_user_id)   # None → no constraint
        .at_least("creation_time", props.min_creation_time)
        .recent("creator_user_id", props.only_recent)
    )

Evaluation order (both backends):
  1. recent_by — keep only the newest record (greatest id / insertion order)
     per distinct value of that field, across the WHOLE ledger kind;
  2. constraints — all must hold;
  3. ordering by insertion order, then offset / limit.

Applying recency before the constraints is what makes "current username"
mean "a current UserData row whose username matches", rather than "the newest
row that ever had this username".
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional


class Op(str, Enum):
    EQ = "eq"
    IN = "in"
    GE = "ge"
    LE = "le"
    PRESENT = "present"
    """Field is (True) or is not (False) set, i.e. IS NOT NULL / IS NULL."""


@dataclass(frozen=True)
class Constraint:
    field: str
    op: Op
    value: Any

    def matches(self, record: Any) -> bool:
        actual = getattr(record, self.field)
        if self.op is Op.EQ:
            return actual == self.value
        if self.op is Op.IN:
            return actual in self.value
        if self.op is Op.GE:
            return actual >= self.value
        if self.op is Op.LE:
            return actual <= self.value
        if self.op is Op.PRESENT:
            return (actual is not None) == self.value
        raise ValueError(f"unsupported op: {self.op}")


@dataclass(frozen=True)
class Query:
    """Immutable query description. Every builder returns a new Query."""

    constraints: tuple[Constraint, ...] = ()
    recent_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None
    offset: int = 0

    def _with(self, field_name: str, op: Op, value: Any) -> "Query":
        return dataclasses.replace(
            self, constraints=self.constraints + (Constraint(field_name, op, value),)
        )

    def eq(self, field_name: str, value: Any) -> "Query":
        return self if value is None else self._with(field_name, Op.EQ, value)

    def is_in(self, field_name: str, values: Optional[Iterable[Any]]) -> "Query":
        if values is None:
            return self
        return self._with(field_name, Op.IN, tuple(values))

    def at_least(self, field_name: str, value: Any) -> "Query":
        return self if value is None else self._with(field_name, Op.GE, value)

    def at_most(self, field_name: str, value: Any) -> "Query":
        return self if value is None else self._with(field_name, Op.LE, value)

    def present(self, field_name: str, is_set: Optional[bool]) -> "Query":
        return self if is_set is None else self._with(field_name, Op.PRESENT, is_set)

    def recent(self, field_name: str, enabled: bool = True) -> "Query":
        return dataclasses.replace(self, recent_by=field_name) if enabled else self

    def newest_first(self) -> "Query":
        return dataclasses.replace(self, descending=True)

    def page(self, limit: Optional[int], offset: Optional[int] = None) -> "Query":
        return dataclasses.replace(self, limit=limit, offset=offset or 0)

    def fields(self) -> set[str]:
        """Every record field this query touches (for backend validation)."""
        names = {c.field for c in self.constraints}
        if self.recent_by is not None:
            names.add(self.recent_by)
        return names


def check_fields(record_type: type, query: Query) -> None:
    """Raise ValueError if the query names a field the record kind lacks."""
    known = {f.name for f in dataclasses.fields(record_type)}
    unknown = query.fields() - known
    if unknown:
        raise ValueError(
            f"{record_type.__name__} has no field(s): {', '.join(sorted(unknown))}"
        )


__all__ = ["Constraint", "Op", "Query", "check_fields"]
