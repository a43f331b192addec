"""
In-memory test double for the async Firestore client.

Implements the subset of google.cloud.firestore.AsyncClient used by the
services: collection/document references, get/set/update/delete,
where(filter=FieldFilter(...)), order_by, offset, limit, stream/get and
write batches.

Usage:
    db = FakeFirestore()
    db.seed("branches", "b1", {"name": "Makati"})
    registry = CalendarRegistry(calendar_client=mock_client, db=db, cache=CalendarIdCache())
"""

import copy
import uuid
from typing import Any

_OPERATORS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "not-in": lambda a, b: a not in b,
    "array_contains": lambda a, b: isinstance(a, list) and b in a,
}

_MISSING = object()

# Calendar ID returned by the mocked insert_calendar in tests/conftest.py
NEW_CALENDAR_ID = "new-branch-cal@group.calendar.google.com"


class FakeWriteError(Exception):
    """Raised by writes to a collection marked with FakeFirestore.fail_writes()."""


class FakeSnapshot:
    def __init__(self, reference: "FakeDocumentReference", data: dict[str, Any] | None):
        self.reference = reference
        self.id = reference.id
        self._data = copy.deepcopy(data)

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._data)

    def get(self, field: str) -> Any:
        return (self._data or {}).get(field)


class FakeDocumentReference:
    def __init__(self, db: "FakeFirestore", collection: str, doc_id: str):
        self._db = db
        self.collection_name = collection
        self.id = doc_id

    @property
    def path(self) -> str:
        return f"{self.collection_name}/{self.id}"

    def _store(self) -> dict[str, dict[str, Any]]:
        return self._db.data.setdefault(self.collection_name, {})

    async def get(self) -> FakeSnapshot:
        self._db.check_read(self.collection_name)
        return FakeSnapshot(self, self._store().get(self.id))

    async def set(self, data: dict[str, Any], merge: bool = False) -> None:
        self._apply_set(data, merge)

    async def update(self, data: dict[str, Any]) -> None:
        self._apply_update(data)

    async def delete(self) -> None:
        self._apply_delete()

    def _apply_set(self, data: dict[str, Any], merge: bool = False) -> None:
        self._db.check_write(self.collection_name)
        store = self._store()
        if merge and self.id in store:
            store[self.id].update(copy.deepcopy(data))
        else:
            store[self.id] = copy.deepcopy(data)

    def _apply_update(self, data: dict[str, Any]) -> None:
        self._db.check_write(self.collection_name)
        store = self._store()
        if self.id not in store:
            raise KeyError(f"No document to update: {self.path}")
        store[self.id].update(copy.deepcopy(data))

    def _apply_delete(self) -> None:
        self._db.check_write(self.collection_name)
        self._store().pop(self.id, None)


class FakeQuery:
    def __init__(
        self,
        db: "FakeFirestore",
        collection: str,
        filters: tuple = (),
        orders: tuple = (),
        offset_value: int = 0,
        limit_value: int | None = None,
    ):
        self._db = db
        self._collection = collection
        self._filters = filters
        self._orders = orders
        self._offset = offset_value
        self._limit = limit_value

    def _copy(self, **changes: Any) -> "FakeQuery":
        params = {
            "filters": self._filters,
            "orders": self._orders,
            "offset_value": self._offset,
            "limit_value": self._limit,
        }
        params.update(changes)
        return FakeQuery(self._db, self._collection, **params)

    def where(self, field_path: str | None = None, op_string: str | None = None, value: Any = None, *, filter=None):
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        return self._copy(filters=self._filters + ((field_path, op_string, value),))

    def order_by(self, field_path: str, direction: str = "ASCENDING") -> "FakeQuery":
        return self._copy(orders=self._orders + ((field_path, direction),))

    def offset(self, num: int) -> "FakeQuery":
        return self._copy(offset_value=num)

    def limit(self, count: int) -> "FakeQuery":
        return self._copy(limit_value=count)

    def _matches(self, data: dict[str, Any]) -> bool:
        for field_path, op_string, value in self._filters:
            actual = data.get(field_path, _MISSING)
            if actual is _MISSING:
                return False
            if not _OPERATORS[op_string](actual, value):
                return False
        return True

    def _results(self) -> list[FakeSnapshot]:
        self._db.check_read(self._collection)
        store = self._db.data.get(self._collection, {})
        snapshots = [
            FakeSnapshot(FakeDocumentReference(self._db, self._collection, doc_id), data)
            for doc_id, data in store.items()
            if self._matches(data)
        ]
        for field_path, direction in reversed(self._orders):
            snapshots.sort(
                key=lambda s: (s.get(field_path) is None, s.get(field_path) or ""),
                reverse=direction == "DESCENDING",
            )
        snapshots = snapshots[self._offset:]
        if self._limit is not None:
            snapshots = snapshots[: self._limit]
        return snapshots

    async def stream(self):
        for snapshot in self._results():
            yield snapshot

    async def get(self) -> list[FakeSnapshot]:
        return self._results()


class FakeCollectionReference(FakeQuery):
    def __init__(self, db: "FakeFirestore", name: str):
        super().__init__(db, name)
        self.id = name

    def document(self, document_id: str | None = None) -> FakeDocumentReference:
        return FakeDocumentReference(self._db, self._collection, document_id or uuid.uuid4().hex)


class FakeWriteBatch:
    def __init__(self, db: "FakeFirestore"):
        self._db = db
        self._ops: list[tuple[str, FakeDocumentReference, dict[str, Any] | None]] = []

    def set(self, reference: FakeDocumentReference, data: dict[str, Any], merge: bool = False) -> None:
        self._ops.append(("set", reference, data))

    def update(self, reference: FakeDocumentReference, data: dict[str, Any]) -> None:
        self._ops.append(("update", reference, data))

    def delete(self, reference: FakeDocumentReference) -> None:
        self._ops.append(("delete", reference, None))

    async def commit(self) -> list:
        self._db.batch_commits += 1
        for op, reference, _ in self._ops:
            self._db.check_write(reference.collection_name)
            if op == "update" and reference.id not in self._db.data.get(reference.collection_name, {}):
                raise KeyError(f"No document to update: {reference.path}")
        for op, reference, data in self._ops:
            if op == "set":
                reference._apply_set(data)
            elif op == "update":
                reference._apply_update(data)
            else:
                reference._apply_delete()
        return []


class FakeFirestore:
    """Dict-backed stand-in for firestore AsyncClient."""

    def __init__(self):
        self.data: dict[str, dict[str, dict[str, Any]]] = {}
        self.batch_commits = 0
        self._failing_writes: set[str] = set()
        self._failing_reads: set[str] = set()

    def collection(self, name: str) -> FakeCollectionReference:
        return FakeCollectionReference(self, name)

    def batch(self) -> FakeWriteBatch:
        return FakeWriteBatch(self)

    # Test helpers

    def seed(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.data.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def docs(self, collection: str) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self.data.get(collection, {}))

    def doc(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return copy.deepcopy(self.data.get(collection, {}).get(doc_id))

    def fail_writes(self, collection: str) -> None:
        self._failing_writes.add(collection)

    def fail_reads(self, collection: str) -> None:
        self._failing_reads.add(collection)

    def check_write(self, collection: str) -> None:
        if collection in self._failing_writes:
            raise FakeWriteError(f"Write to {collection} failed")

    def check_read(self, collection: str) -> None:
        if collection in self._failing_reads:
            raise FakeWriteError(f"Read from {collection} failed")
