import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel

from .models import (
    AttendanceRecord,
    CoinTransaction,
    Gift,
    RedemptionRequest,
    RegistrationRequest,
    Student,
    Teacher,
)

logger = logging.getLogger(__name__)


DEFAULT_GIFTS = [
    {
        "id": UUID("10000000-0000-0000-0000-000000000001"),
        "name": "Premium Notebook", "cost": 100, "icon": "📓",
        "description": "High quality A5 notebook for your daily notes.",
    },
    {
        "id": UUID("10000000-0000-0000-0000-000000000002"),
        "name": "Gel Pen Set", "cost": 200, "icon": "🖊️",
        "description": "Set of 5 colorful smooth-writing gel pens.",
    },
    {
        "id": UUID("10000000-0000-0000-0000-000000000003"),
        "name": "Water Bottle", "cost": 300, "icon": "💧",
        "description": "Durable and eco-friendly sports water bottle.",
    },
    {
        "id": UUID("10000000-0000-0000-0000-000000000004"),
        "name": "School Cap", "cost": 400, "icon": "🧢",
        "description": "Embroidered cap with school logo.",
    },
    {
        "id": UUID("10000000-0000-0000-0000-000000000005"),
        "name": "Sports Gear", "cost": 500, "icon": "⚽",
        "description": "Football or Basketball (subject to availability).",
    },
]


_MISSING = object()


class InMemoryStorage:
    """
    Collections keyed by entity id, each value a plain dict of model fields.

    Writes go through ``put`` inside ``transaction()``. Reads that scan a
    whole collection use ``rows``, which copies it under the write lock.
    """

    COLLECTIONS: dict[str, type[BaseModel]] = {
        "students": Student,
        "teachers": Teacher,
        "gifts": Gift,
        "transactions": CoinTransaction,
        "redemption_requests": RedemptionRequest,
        "registration_requests": RegistrationRequest,
        "attendance": AttendanceRecord,
    }

    def __init__(self, seed_gifts: bool = True):
        self._write_lock = threading.RLock()
        self._undo: Optional[list[tuple[dict, UUID, Any]]] = None
        self.students: dict[UUID, dict] = {}
        self.teachers: dict[UUID, dict] = {}
        self.gifts: dict[UUID, dict] = {}
        self.transactions: dict[UUID, dict] = {}
        self.redemption_requests: dict[UUID, dict] = {}
        self.registration_requests: dict[UUID, dict] = {}
        self.attendance: dict[UUID, dict] = {}
        if seed_gifts:
            self._seed_data()

    def _seed_data(self):
        for gift in DEFAULT_GIFTS:
            self.gifts[gift["id"]] = Gift(**gift).model_dump()

    @contextmanager
    def transaction(self):
        """
        Hold the write lock for a batch of ``put`` calls and commit once.

        If anything inside the block or the commit raises, every touched
        entry is restored to its previous value before the error propagates.
        """
        with self._write_lock:
            if self._undo is not None:
                # nested: the outer transaction commits
                yield self
                return

            self._undo = undo = []
            try:
                yield self
                self.commit()
            except Exception:
                for collection, key, previous in reversed(undo):
                    if previous is _MISSING:
                        collection.pop(key, None)
                    else:
                        collection[key] = previous
                if undo:
                    logger.warning("Rolled back %d write(s) after a failed operation", len(undo))
                raise
            finally:
                self._undo = None

    def put(self, name: str, key: UUID, data: dict) -> None:
        if self._undo is None:
            raise RuntimeError("storage.put() called outside of a transaction")
        collection = getattr(self, name)
        self._undo.append((collection, key, collection.get(key, _MISSING)))
        collection[key] = data

    def rows(self, name: str) -> list[dict]:
        with self._write_lock:
            return list(getattr(self, name).values())

    def commit(self) -> None:
        """Called once at the end of every successful transaction."""

    def snapshot(self) -> dict[str, list[dict]]:
        with self._write_lock:
            return {
                name: [
                    model(**data).model_dump(mode="json")
                    for data in getattr(self, name).values()
                ]
                for name, model in self.COLLECTIONS.items()
            }

    def restore(self, snapshot: dict[str, list[dict]]) -> None:
        with self._write_lock:
            for name, model in self.COLLECTIONS.items():
                collection: dict[UUID, dict] = {}
                for raw in snapshot.get(name, []):
                    data = model.model_validate(raw).model_dump()
                    collection[data["id"]] = data
                setattr(self, name, collection)


class JsonFileStorage(InMemoryStorage):
    """Keeps the whole snapshot in one JSON file, rewritten on each commit."""

    def __init__(self, path: Union[str, Path], seed_gifts: bool = True):
        self.path = Path(path)
        super().__init__(seed_gifts=False)
        if self.path.exists():
            with self.path.open(encoding="utf-8") as fh:
                self.restore(json.load(fh))
            logger.info("Loaded EduTrack data from %s", self.path)
        elif seed_gifts:
            self._seed_data()

    def commit(self) -> None:
        # snapshot and replace under one lock so an older file never lands last
        with self._write_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".edutrack-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(self.snapshot(), fh, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self.path)
            except Exception:
                os.unlink(tmp_name)
                raise
