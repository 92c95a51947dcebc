"""Aggregation pipeline stages over plain-dict records.

A pipeline is a sequence of stage objects. Each stage takes a list of records
and returns a new list; input records are never mutated. Stages:

- Unwind: one row per element of a list field
- Group: bucket rows by a key and fold accumulators over each bucket
- Sort: stable multi-key sort (missing/None sorts lowest)
- Lookup: left-outer one-to-many join against another collection
- Match: keep rows that satisfy a filter
- Project: reshape rows (field references and list accumulators)
- Limit: keep the first n rows

Dotted paths follow document-database conventions: "location.address" walks
into nested dicts, "reviews.1" indexes into a list, and "reviews.rating"
maps over a list of dicts.

Because pipelines are plain data, the same stage list runs against an
in-memory fixture in tests and against rows loaded by the repository.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
import re
from typing import Any, Protocol, Union

ASC = 1
DESC = -1

Record = dict[str, Any]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class PipelineError(RuntimeError):
    pass


# ============================================================
# Path access
# ============================================================


def get_path(record: Any, path: str) -> Any:
    """Resolve a dotted path, returning MISSING when any step is absent."""
    current = record
    for part in path.split("."):
        current = _step(current, part)
        if current is MISSING:
            return MISSING
    return current


def _step(value: Any, part: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(part, MISSING)
    if isinstance(value, list):
        if part.isdigit():
            index = int(part)
            return value[index] if index < len(value) else MISSING
        mapped = [_step(item, part) for item in value]
        return [item for item in mapped if item is not MISSING]
    return MISSING


# ============================================================
# Filters
# ============================================================


@dataclass(frozen=True)
class Ne:
    """Matches when the value differs (or is missing)."""

    value: Any


@dataclass(frozen=True)
class Exists:
    """Matches on presence (flag=True) or absence (flag=False) of a path."""

    flag: bool = True


def matches(record: Record, conditions: Mapping[str, Any]) -> bool:
    """Evaluate a filter against one record.

    Condition values may be a literal (equality), a compiled regex
    (search against a string value), Ne or Exists.
    """
    for path, condition in conditions.items():
        value = get_path(record, path)
        if isinstance(condition, Exists):
            if (value is not MISSING) != condition.flag:
                return False
        elif isinstance(condition, Ne):
            if value is not MISSING and value == condition.value:
                return False
        elif isinstance(condition, re.Pattern):
            if not isinstance(value, str) or condition.search(value) is None:
                return False
        elif value is MISSING or value != condition:
            return False
    return True


# ============================================================
# Accumulators
# ============================================================


def _numbers(values: Sequence[Any]) -> list[float]:
    return [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]


@dataclass(frozen=True)
class Count:
    """Number of rows (in Group) or list length (in Project)."""

    path: str | None = None

    def reduce(self, values: Sequence[Any]) -> int:
        return len(values)


@dataclass(frozen=True)
class Sum:
    path: str

    def reduce(self, values: Sequence[Any]) -> float:
        return sum(_numbers(values))


@dataclass(frozen=True)
class Avg:
    """Arithmetic mean of the numeric values; None when there are none."""

    path: str

    def reduce(self, values: Sequence[Any]) -> float | None:
        numbers = _numbers(values)
        if not numbers:
            return None
        return sum(numbers) / len(numbers)


Accumulator = Union[Count, Sum, Avg]


def _collect(rows: Sequence[Record], path: str | None) -> list[Any]:
    if path is None:
        return list(rows)
    values = (get_path(row, path) for row in rows)
    return [v for v in values if v is not MISSING]


# ============================================================
# Stages
# ============================================================


@dataclass
class PipelineContext:
    """Foreign collections available to Lookup stages, keyed by name."""

    collections: Mapping[str, Sequence[Record]] = field(default_factory=dict)


class Stage(Protocol):
    def apply(self, rows: list[Record], context: PipelineContext) -> list[Record]: ...


@dataclass(frozen=True)
class Unwind:
    """Expand a top-level list field into one row per element.

    Rows whose field is missing, None or an empty list are dropped.
    """

    path: str

    def apply(self, rows: list[Record], context: PipelineContext) -> list[Record]:
        result: list[Record] = []
        for row in rows:
            value = row.get(self.path)
            if value is None:
                continue
            if not isinstance(value, list):
                result.append(dict(row))
                continue
            for item in value:
                result.append({**row, self.path: item})
        return result


@dataclass(frozen=True)
class Group:
    """Bucket rows by the value at `by`; buckets keep first-seen order."""

    by: str
    key_as: str = "_id"
    accumulators: Mapping[str, Accumulator] = field(default_factory=dict)

    def apply(self, rows: list[Record], context: PipelineContext) -> list[Record]:
        buckets: dict[Any, list[Record]] = {}
        for row in rows:
            key = get_path(row, self.by)
            buckets.setdefault(None if key is MISSING else key, []).append(row)

        result: list[Record] = []
        for key, members in buckets.items():
            out: Record = {self.key_as: key}
            for name, acc in self.accumulators.items():
                out[name] = acc.reduce(_collect(members, acc.path))
            result.append(out)
        return result


def _sort_key(value: Any) -> tuple[int, Any]:
    if value is MISSING or value is None:
        return (0, 0)
    return (1, value)


@dataclass(frozen=True)
class Sort:
    """Stable sort on (path, ASC|DESC) pairs, first pair most significant."""

    keys: tuple[tuple[str, int], ...]

    def apply(self, rows: list[Record], context: PipelineContext) -> list[Record]:
        result = list(rows)
        for path, direction in reversed(self.keys):
            result.sort(
                key=lambda row, p=path: _sort_key(get_path(row, p)),
                reverse=direction == DESC,
            )
        return result


@dataclass(frozen=True)
class Lookup:
    """Left-outer join: attach foreign records whose foreign_field equals local_field."""

    from_collection: str
    local_field: str
    foreign_field: str
    as_field: str

    def apply(self, rows: list[Record], context: PipelineContext) -> list[Record]:
        if self.from_collection not in context.collections:
            raise PipelineError(f"Collection {self.from_collection!r} not available for lookup")

        index: dict[Any, list[Record]] = {}
        for doc in context.collections[self.from_collection]:
            key = get_path(doc, self.foreign_field)
            index.setdefault(None if key is MISSING else key, []).append(doc)

        result: list[Record] = []
        for row in rows:
            local = get_path(row, self.local_field)
            joined = index.get(None if local is MISSING else local, [])
            result.append({**row, self.as_field: list(joined)})
        return result


@dataclass(frozen=True)
class Match:
    conditions: Mapping[str, Any]

    def apply(self, rows: list[Record], context: PipelineContext) -> list[Record]:
        return [row for row in rows if matches(row, self.conditions)]


@dataclass(frozen=True)
class FieldRef:
    path: str


@dataclass(frozen=True)
class Project:
    """Reshape rows.

    Values are FieldRef (or a bare path string) or an accumulator evaluated
    over the list found at its path. Missing field references are omitted.
    """

    fields: Mapping[str, Union[str, FieldRef, Accumulator]]

    def apply(self, rows: list[Record], context: PipelineContext) -> list[Record]:
        result: list[Record] = []
        for row in rows:
            out: Record = {}
            for name, expr in self.fields.items():
                if isinstance(expr, str):
                    expr = FieldRef(expr)
                if isinstance(expr, FieldRef):
                    value = get_path(row, expr.path)
                    if value is not MISSING:
                        out[name] = value
                    continue
                value = row if expr.path is None else get_path(row, expr.path)
                if value is MISSING:
                    values: list[Any] = []
                elif isinstance(value, list):
                    values = value
                else:
                    values = [value]
                out[name] = expr.reduce(values)
            result.append(out)
        return result


@dataclass(frozen=True)
class Limit:
    n: int

    def apply(self, rows: list[Record], context: PipelineContext) -> list[Record]:
        return rows[: max(self.n, 0)]


def required_collections(stages: Sequence[Stage]) -> set[str]:
    """Names of foreign collections the pipeline joins against."""
    return {stage.from_collection for stage in stages if isinstance(stage, Lookup)}


def run_pipeline(
    records: Sequence[Record],
    stages: Sequence[Stage],
    collections: Mapping[str, Sequence[Record]] | None = None,
) -> list[Record]:
    """Run stages in order over records. Pure: inputs are left untouched."""
    context = PipelineContext(collections=collections or {})
    rows = list(records)
    for stage in stages:
        rows = stage.apply(rows, context)
    return rows
