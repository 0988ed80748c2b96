"""
Bank Correspondence Hub - State Stores

Durable key-value persistence for the engine's three logical collections:
users, work_items and reminders. The engine loads every collection at startup
and re-saves a collection after each mutation to it.

The StateStore abstraction keeps the hub independent of storage technology:
- MongoStateStore: MongoDB via motor (production)
- JsonFileStateStore: single JSON document on disk (local runs)
- InMemoryStateStore: deep copies in process memory (tests)
"""

import asyncio
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Any, List, Optional

from pymongo import ReplaceOne

logger = logging.getLogger(__name__)

USERS = "users"
WORK_ITEMS = "work_items"
REMINDERS = "reminders"
COLLECTIONS = (USERS, WORK_ITEMS, REMINDERS)


def _check_collection(collection: str):
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection '{collection}'. Valid: {list(COLLECTIONS)}")


class StateStore(ABC):
    """
    Abstract base class for engine persistence.

    Records are plain dicts produced by the domain records' to_dict(); every
    record carries a unique "id".
    """

    @abstractmethod
    async def load(self, collection: str) -> List[Dict[str, Any]]:
        """Return every record of the collection, in saved order."""
        pass

    @abstractmethod
    async def save(self, collection: str, records: List[Dict[str, Any]]) -> None:
        """Replace the collection's contents with the given records."""
        pass

    async def initialize(self) -> None:
        """Prepare the backend (indexes, files). Optional."""
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    def get_store_name(self) -> str:
        pass


class InMemoryStateStore(StateStore):
    """
    In-memory store for testing.

    Records are deep-copied on the way in and out so callers can never alias
    engine state.
    """

    def __init__(self, initial: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._data: Dict[str, List[Dict[str, Any]]] = {c: [] for c in COLLECTIONS}
        self.save_counts: Dict[str, int] = {c: 0 for c in COLLECTIONS}
        for collection, records in (initial or {}).items():
            _check_collection(collection)
            self._data[collection] = copy.deepcopy(records)

    async def load(self, collection: str) -> List[Dict[str, Any]]:
        _check_collection(collection)
        return copy.deepcopy(self._data[collection])

    async def save(self, collection: str, records: List[Dict[str, Any]]) -> None:
        _check_collection(collection)
        self._data[collection] = copy.deepcopy(records)
        self.save_counts[collection] += 1

    def get_store_name(self) -> str:
        return "memory"


class JsonFileStateStore(StateStore):
    """
    JSON file store with the following structure:
    {
        "users": [...],
        "work_items": [...],
        "reminders": [...]
    }

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a crash never leaves a half-written state file. File
    I/O runs in a worker thread to keep the event loop free.
    """

    def __init__(self, file_path: str):
        self._file_path = Path(file_path)
        self._data: Optional[Dict[str, List[Dict[str, Any]]]] = None

    def _read(self) -> Dict[str, List[Dict[str, Any]]]:
        if self._data is not None:
            return self._data
        data = {c: [] for c in COLLECTIONS}
        if self._file_path.exists():
            with open(self._file_path, 'r', encoding='utf-8') as f:
                stored = json.load(f)
            for collection in COLLECTIONS:
                data[collection] = stored.get(collection, [])
        self._data = data
        return self._data

    def _write(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        directory = self._file_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".hub_state_", suffix=".json", dir=str(directory))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self._file_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    async def initialize(self) -> None:
        await asyncio.to_thread(self._read)

    async def load(self, collection: str) -> List[Dict[str, Any]]:
        _check_collection(collection)
        data = await asyncio.to_thread(self._read)
        return copy.deepcopy(data[collection])

    async def save(self, collection: str, records: List[Dict[str, Any]]) -> None:
        _check_collection(collection)
        data = dict(await asyncio.to_thread(self._read))
        data[collection] = copy.deepcopy(records)
        # The cached copy only changes once the file write has succeeded
        await asyncio.to_thread(self._write, data)
        self._data = data

    def get_store_name(self) -> str:
        return f"json:{self._file_path}"


class MongoStateStore(StateStore):
    """
    MongoDB store (motor).

    Each collection is a MongoDB collection keyed by "id". A save upserts every
    record and removes records whose id is no longer present. Saved order is
    kept in a "_position" field.
    """

    def __init__(self, db, collection_prefix: str = "hub_"):
        self.db = db
        self._prefix = collection_prefix

    def _collection(self, collection: str):
        _check_collection(collection)
        return self.db[f"{self._prefix}{collection}"]

    async def initialize(self) -> None:
        for collection in COLLECTIONS:
            await self._collection(collection).create_index("id", unique=True)
            await self._collection(collection).create_index("_position")
        logger.info("Mongo state store indexes created")

    async def load(self, collection: str) -> List[Dict[str, Any]]:
        cursor = self._collection(collection).find({}, {"_id": 0}).sort("_position", 1)
        records = await cursor.to_list(None)
        for record in records:
            record.pop("_position", None)
        return records

    async def save(self, collection: str, records: List[Dict[str, Any]]) -> None:
        target = self._collection(collection)
        ids = [r["id"] for r in records]
        operations = []
        for position, record in enumerate(records):
            document = dict(record)
            document["_position"] = position
            operations.append(ReplaceOne({"id": record["id"]}, document, upsert=True))
        if operations:
            await target.bulk_write(operations, ordered=False)
        await target.delete_many({"id": {"$nin": ids}})
        logger.debug("Saved %d %s records to MongoDB", len(records), collection)

    def get_store_name(self) -> str:
        return "mongo"
