"""
infrastructure.py

Storage-backed implementation of all repository interfaces and the Unit of
Work.

Two storage media are provided:

    InMemoryStorage  – a plain dict; state lasts as long as the process.
    JsonFileStorage  – every key lives in one JSON document on disk, which
                       is rewritten on each write (the local-storage
                       analogue for a single user).

Each collection is stored under its own fixed key as a whole-collection
JSON serialisation, overwritten on every mutation.  Values are wrapped in a
versioned envelope:

    {"version": 1, "data": [ {...}, {...} ]}

Record keys are camelCase on the wire (fileName, dueDate, ...) so that data
written by the browser build of the portal loads unchanged.  Values written
before versioning existed (a bare JSON array or object) are read as
version 0 and migrated forward.

To swap in another medium, implement AbstractStorage from application.py
and hand it to StorageUnitOfWork.  Nothing in service.py, application.py,
or api.py needs to change.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, Union

from pydantic import TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel, to_snake

from application import (
    FILES_KEY,
    INVOICES_KEY,
    PROFILE_KEY,
    PROVIDERS_KEY,
    REPORTS_KEY,
    SESSION_EMAIL_KEY,
    SESSION_USER_TYPE_KEY,
    AbstractCollectionRepository,
    AbstractProfileRepository,
    AbstractSessionRepository,
    AbstractStorage,
    AbstractUnitOfWork,
    DashboardStore,
    seed_invoices,
    seed_reports,
    seed_service_providers,
)
from model import (
    Invoice,
    Report,
    ServiceProvider,
    Session,
    UploadedFile,
    UserProfile,
    UserType,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Storage media
# ---------------------------------------------------------------------------

class InMemoryStorage(AbstractStorage):
    """A plain dict with the key-value storage interface."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key):      return self._items.get(key)
    def set_item(self, key, value): self._items[key] = value
    def remove_item(self, key):   self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class JsonFileStorage(AbstractStorage):
    """
    Key-value storage persisted as a single JSON object on disk.

    The file is read once at construction.  Every write replaces the file
    atomically (temp file + rename), so a crash mid-write leaves the
    previous contents intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._items: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring storage file %s: top level is not an object", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._items, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._write()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._write()


# ---------------------------------------------------------------------------
# Versioned JSON codec
# ---------------------------------------------------------------------------

def _convert_keys(value: Any, convert: Callable[[str], str]) -> Any:
    if isinstance(value, dict):
        return {convert(k): _convert_keys(v, convert) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert_keys(v, convert) for v in value]
    return value


def _migrate_v0_to_v1(data: Any) -> Any:
    # Unversioned browser data has the v1 record shape; fields it lacks
    # pick up the record defaults when validated.
    return data


MIGRATIONS: Dict[int, Callable[[Any], Any]] = {
    0: _migrate_v0_to_v1,
}

_adapters: Dict[type, TypeAdapter] = {}


def _adapter(record_type: type) -> TypeAdapter:
    if record_type not in _adapters:
        _adapters[record_type] = TypeAdapter(record_type)
    return _adapters[record_type]


def encode_record(record: Any) -> Dict[str, Any]:
    plain = _adapter(type(record)).dump_python(record, mode="json")
    return _convert_keys(plain, to_camel)


def decode_record(raw: Dict[str, Any], record_type: type) -> Any:
    """Validate one wire record.  Raises pydantic.ValidationError."""
    return _adapter(record_type).validate_python(_convert_keys(raw, to_snake))


def wrap(data: Any) -> str:
    return json.dumps({"version": SCHEMA_VERSION, "data": data}, ensure_ascii=False)


def unwrap(raw: str) -> Any:
    """
    Parse a stored value and migrate its payload to SCHEMA_VERSION.

    Raises ValueError (json.JSONDecodeError included) when the value cannot
    be read or comes from a newer schema.
    """
    payload = json.loads(raw)
    if isinstance(payload, dict) and set(payload) == {"version", "data"}:
        version, data = payload["version"], payload["data"]
    else:
        version, data = 0, payload
    if not isinstance(version, int) or version > SCHEMA_VERSION:
        raise ValueError(f"Unsupported schema version {version!r}.")
    while version < SCHEMA_VERSION:
        data = MIGRATIONS[version](data)
        version += 1
    return data


def encode_collection(records: List[Any]) -> str:
    return wrap([encode_record(r) for r in records])


def decode_collection(raw: str, record_type: type, key: str = "") -> List[Any]:
    """
    Decode a stored collection.  Records that fail validation are dropped
    with a warning; the rest are returned in stored order.
    """
    data = unwrap(raw)
    if not isinstance(data, list):
        raise ValueError(f"Expected a list, got {type(data).__name__}.")
    records = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            logger.warning("Dropping non-object entry %d under %r", index, key)
            continue
        try:
            records.append(decode_record(item, record_type))
        except ValidationError as exc:
            logger.warning(
                "Dropping invalid %s entry %d under %r: %s",
                record_type.__name__, index, key, exc.errors()[0].get("msg"),
            )
    return records


# ---------------------------------------------------------------------------
# Repository implementations
# ---------------------------------------------------------------------------

class StorageCollectionRepository(AbstractCollectionRepository):
    """
    An ordered in-memory collection mirrored to one storage key.

    Starts from `seed`; if the key holds a readable value, that value fully
    replaces the seed.
    """

    def __init__(
        self,
        storage: AbstractStorage,
        key: str,
        record_type: Type,
        seed: Optional[List[Any]] = None,
    ):
        self._storage = storage
        self._key = key
        self._items: List[Any] = list(seed or [])
        raw = storage.get_item(key)
        if raw is not None:
            try:
                self._items = decode_collection(raw, record_type, key)
            except ValueError as exc:
                logger.warning("Keeping defaults for %r, stored value unusable: %s", key, exc)

    def _persist(self) -> None:
        self._storage.set_item(self._key, encode_collection(self._items))

    def list_all(self):
        return list(self._items)

    def get(self, record_id):
        return next((r for r in self._items if r.id == record_id), None)

    def add_first(self, record):
        self._items.insert(0, record)
        self._persist()

    def add_last(self, record):
        self._items.append(record)
        self._persist()

    def replace(self, record):
        for index, current in enumerate(self._items):
            if current.id == record.id:
                self._items[index] = record
                self._persist()
                return True
        return False

    def remove_where(self, predicate):
        removed = [r for r in self._items if predicate(r)]
        self._items = [r for r in self._items if not predicate(r)]
        self._persist()
        return removed


class StorageProfileRepository(AbstractProfileRepository):
    """At most one profile, written only when present."""

    def __init__(self, storage: AbstractStorage, key: str = PROFILE_KEY):
        self._storage = storage
        self._key = key
        self._profile: Optional[UserProfile] = None
        raw = storage.get_item(key)
        if raw is not None:
            try:
                data = unwrap(raw)
                if data is not None:
                    self._profile = decode_record(data, UserProfile)
            except (ValueError, ValidationError) as exc:
                logger.warning("Ignoring stored profile under %r: %s", key, exc)

    def get(self):
        return self._profile

    def save(self, profile):
        self._profile = profile
        self._storage.set_item(self._key, wrap(encode_record(profile)))


class StorageSessionRepository(AbstractSessionRepository):
    """
    The ambient identity keys.  Stored as bare strings, outside the
    versioned envelope, because other parts of the portal read them raw.
    """

    def __init__(self, storage: AbstractStorage):
        self._storage = storage

    def get_email(self):
        return self._storage.get_item(SESSION_EMAIL_KEY) or None

    def get(self):
        email = self.get_email()
        user_type = self._storage.get_item(SESSION_USER_TYPE_KEY)
        if not email or not user_type:
            return None
        try:
            return Session(email=email, user_type=UserType(user_type))
        except ValueError:
            logger.warning("Unknown stored user type %r", user_type)
            return None

    def save(self, session):
        self._storage.set_item(SESSION_USER_TYPE_KEY, session.user_type.value)
        self._storage.set_item(SESSION_EMAIL_KEY, session.email)

    def clear(self):
        self._storage.remove_item(SESSION_USER_TYPE_KEY)
        self._storage.remove_item(SESSION_EMAIL_KEY)


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class StorageUnitOfWork(AbstractUnitOfWork):
    """
    Wraps all storage-backed repositories.  commit() and rollback() are
    no-ops because every repository mutation is written through at once;
    there is no transaction to manage.
    """

    def __init__(self, storage: AbstractStorage):
        self.storage   = storage
        self.reports   = StorageCollectionRepository(storage, REPORTS_KEY, Report, seed_reports())
        self.invoices  = StorageCollectionRepository(storage, INVOICES_KEY, Invoice, seed_invoices())
        self.providers = StorageCollectionRepository(
            storage, PROVIDERS_KEY, ServiceProvider, seed_service_providers()
        )
        self.files     = StorageCollectionRepository(storage, FILES_KEY, UploadedFile)
        self.profile   = StorageProfileRepository(storage)
        self.session   = StorageSessionRepository(storage)

    def commit(self)   -> None: pass   # writes already happened
    def rollback(self) -> None: pass   # nothing buffered to discard


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_storage(storage_path: Optional[Union[str, Path]]) -> AbstractStorage:
    if storage_path:
        logger.info("Using JSON file storage at %s", storage_path)
        return JsonFileStorage(storage_path)
    logger.info("Using in-memory storage; data will not survive a restart")
    return InMemoryStorage()


def build_store(
    storage_path: Optional[Union[str, Path]] = None,
    default_timezone: Optional[str] = None,
) -> DashboardStore:
    """Construct the per-session store over the configured storage medium."""
    uow = StorageUnitOfWork(build_storage(storage_path))
    return DashboardStore(uow, default_timezone=default_timezone)
