"""In-memory operational store that enforces the document-store query rules."""

from __future__ import annotations

import operator
from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import uuid4

from hybrid_engine.exceptions import StoreQueryError
from hybrid_engine.models.domain import OrderBy, StoreFilter

RANGE_OPS = {">=": operator.ge, "<=": operator.le, ">": operator.gt, "<": operator.lt}
MAX_IN_VALUES = 10


def _comparable(value):
    # Naive datetimes are treated as UTC so records and filters compare.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _matches(record: dict, flt: StoreFilter) -> bool:
    value = _comparable(record.get(flt.field))
    if flt.op == "==":
        return value == _comparable(flt.value)
    if flt.op == "in":
        return value in flt.value
    if value is None:
        return False
    return RANGE_OPS[flt.op](value, _comparable(flt.value))


def validate_filters(filters: list[StoreFilter]) -> None:
    range_fields = set()
    for flt in filters:
        if flt.op in RANGE_OPS:
            range_fields.add(flt.field)
        elif flt.op == "in":
            if len(flt.value) > MAX_IN_VALUES:
                raise StoreQueryError(
                    f"'in' filter on {flt.field} has {len(flt.value)} values (max {MAX_IN_VALUES})"
                )
        elif flt.op != "==":
            raise StoreQueryError(f"Unsupported filter operator: {flt.op}")
    if len(range_fields) > 1:
        raise StoreQueryError(
            f"Range filters on more than one field: {', '.join(sorted(range_fields))}"
        )


class InMemoryOperationalStore:
    def __init__(self, collections: dict[str, Iterable[dict]] | None = None) -> None:
        self._collections: dict[str, list[dict]] = {}
        for name, records in (collections or {}).items():
            for record in records:
                self.add(name, record)
        self.query_count = 0

    def add(self, collection: str, record: dict) -> dict:
        stored = {"id": record.get("id") or uuid4().hex[:12], **record}
        self._collections.setdefault(collection, []).append(stored)
        return stored

    async def query(
        self,
        collection: str,
        filters: list[StoreFilter],
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        validate_filters(filters)
        self.query_count += 1
        records = [
            dict(r)
            for r in self._collections.get(collection, [])
            if all(_matches(r, f) for f in filters)
        ]
        if order_by is not None:
            present = [r for r in records if r.get(order_by.field) is not None]
            missing = [r for r in records if r.get(order_by.field) is None]
            present.sort(
                key=lambda r: _comparable(r[order_by.field]), reverse=order_by.descending
            )
            records = present + missing
        if limit is not None:
            records = records[:limit]
        return records
