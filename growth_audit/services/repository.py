"""
Persistence layer — one Repository interface, two interchangeable backends.

  - SqlRepository  → SQLAlchemy models (SQLite locally, Postgres in production)
  - FileRepository → single JSON document on local disk

The backend is chosen by STORE_BACKEND. Records go in and come out as plain
dicts (the model's to_dict() shape) so pipeline code never sees a session.
If no backend is usable, get_repository() raises NotConfiguredError.
"""
import copy
import json
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import DateTime
from sqlalchemy.exc import SQLAlchemyError

from growth_audit import database
from growth_audit.config import STORE_BACKEND, FILE_STORE_PATH
from growth_audit.database import Base, serialise_value
from growth_audit.errors import NotConfiguredError, NotFoundError
from growth_audit.models.lead import Lead
from growth_audit.models.audit_run import AuditRun
from growth_audit.models.simulator_run import SimulatorRun
from growth_audit.models.generated_message import GeneratedMessage
from growth_audit.models.automation_task import AutomationTask
from growth_audit.models.event import Event

logger = logging.getLogger('services.repository')


MODELS = {
    'lead': Lead,
    'audit_run': AuditRun,
    'simulator_run': SimulatorRun,
    'generated_message': GeneratedMessage,
    'automation_task': AutomationTask,
    'event': Event,
}

KINDS = tuple(MODELS)


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _model_for(kind):
    try:
        return MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown record kind: {kind}") from None


def _columns(kind):
    return {column.key: column for column in _model_for(kind).__table__.columns}


def _check_fields(kind, fields):
    unknown = set(fields) - set(_columns(kind))
    if unknown:
        raise ValueError(f"Unknown {kind} fields: {sorted(unknown)}")


def _order_field(kind):
    """Most-recent ordering uses updated_at where the record has one."""
    return 'updated_at' if 'updated_at' in _columns(kind) else 'created_at'


class Repository(ABC):
    """Create/find/update by opaque identifier, plus most-recent-N queries."""

    @abstractmethod
    def create(self, kind: str, fields: dict) -> dict:
        """Insert a record; id and timestamps are filled in when absent."""

    @abstractmethod
    def get(self, kind: str, record_id: str) -> Optional[dict]:
        """Return one record by id, or None."""

    @abstractmethod
    def update(self, kind: str, record_id: str, fields: dict) -> dict:
        """Apply fields to an existing record. Raises NotFoundError."""

    @abstractmethod
    def recent(self, kind: str, lead_id: Optional[str] = None, limit: int = 10,
               **filters) -> List[dict]:
        """Most recent records first, ordered by update (or creation) time."""

    def find_one(self, kind: str, **filters) -> Optional[dict]:
        """Most recent record matching all equality filters."""
        found = self.recent(kind, limit=1, **filters)
        return found[0] if found else None

    def require(self, kind: str, record_id: str) -> dict:
        record = self.get(kind, record_id)
        if record is None:
            raise NotFoundError(kind, record_id)
        return record


# ── SQLAlchemy backend ────────────────────────────────────────────────────────

class SqlRepository(Repository):
    """Session per call; commit on success, rollback and re-raise on failure."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _session(self):
        if self._session_factory is not None:
            return self._session_factory()
        return database.get_session()

    @staticmethod
    def _coerce(kind, fields):
        columns = _columns(kind)
        values = {}
        for key, value in fields.items():
            if isinstance(columns[key].type, DateTime) and isinstance(value, str):
                value = datetime.fromisoformat(value.replace('Z', '+00:00'))
            values[key] = value
        return values

    def create(self, kind, fields):
        _check_fields(kind, fields)
        model = _model_for(kind)
        values = self._coerce(kind, fields)
        values.setdefault('id', new_id())
        now = utcnow()
        for stamp in ('created_at', 'updated_at'):
            if stamp in _columns(kind):
                values.setdefault(stamp, now)

        session = self._session()
        try:
            record = model(**values)
            session.add(record)
            session.commit()
            return record.to_dict()
        except SQLAlchemyError:
            session.rollback()
            logger.error("Failed to create %s", kind, exc_info=True)
            raise
        finally:
            session.close()

    def get(self, kind, record_id):
        session = self._session()
        try:
            record = session.get(_model_for(kind), record_id)
            return record.to_dict() if record is not None else None
        finally:
            session.close()

    def update(self, kind, record_id, fields):
        _check_fields(kind, fields)
        values = self._coerce(kind, fields)
        if 'updated_at' in _columns(kind):
            values.setdefault('updated_at', utcnow())

        session = self._session()
        try:
            record = session.get(_model_for(kind), record_id)
            if record is None:
                raise NotFoundError(kind, record_id)
            for key, value in values.items():
                setattr(record, key, value)
            session.commit()
            return record.to_dict()
        except SQLAlchemyError:
            session.rollback()
            logger.error("Failed to update %s %s", kind, record_id, exc_info=True)
            raise
        finally:
            session.close()

    def recent(self, kind, lead_id=None, limit=10, **filters):
        model = _model_for(kind)
        if lead_id is not None:
            filters['lead_id'] = lead_id
        _check_fields(kind, filters)

        session = self._session()
        try:
            rows = (
                session.query(model)
                .filter_by(**filters)
                .order_by(getattr(model, _order_field(kind)).desc())
                .limit(limit)
                .all()
            )
            return [row.to_dict() for row in rows]
        finally:
            session.close()


# ── Local JSON file backend ───────────────────────────────────────────────────

class FileRepository(Repository):
    """
    Whole store kept in one JSON document: {kind: [record, ...]}.

    Every write rewrites the file through a temp file + os.replace, under a
    process-local lock.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, list]:
        if not os.path.exists(self.path):
            return {kind: [] for kind in KINDS}
        with open(self.path, 'r') as f:
            data = json.load(f)
        for kind in KINDS:
            data.setdefault(kind, [])
        return data

    def _save(self, data):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f'{self.path}.tmp'
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    @staticmethod
    def _serialise(fields):
        return {key: serialise_value(value) for key, value in fields.items()}

    def create(self, kind, fields):
        _check_fields(kind, fields)
        now = serialise_value(utcnow())
        record = {key: None for key in _columns(kind)}
        for key, column in _columns(kind).items():
            default = column.default
            if default is None:
                continue
            if default.is_callable:
                record[key] = default.arg(None)
            elif default.is_scalar:
                record[key] = copy.deepcopy(default.arg)
        record.update(self._serialise(fields))
        record['id'] = record.get('id') or new_id()
        for stamp in ('created_at', 'updated_at'):
            if stamp in record and not record[stamp]:
                record[stamp] = now

        with self._lock:
            data = self._load()
            data[kind].append(record)
            self._save(data)
        return copy.deepcopy(record)

    def get(self, kind, record_id):
        _model_for(kind)
        with self._lock:
            for record in self._load()[kind]:
                if record.get('id') == record_id:
                    return record
        return None

    def update(self, kind, record_id, fields):
        _check_fields(kind, fields)
        values = self._serialise(fields)
        if 'updated_at' in _columns(kind):
            values.setdefault('updated_at', serialise_value(utcnow()))

        with self._lock:
            data = self._load()
            for record in data[kind]:
                if record.get('id') == record_id:
                    record.update(values)
                    self._save(data)
                    return copy.deepcopy(record)
        raise NotFoundError(kind, record_id)

    def recent(self, kind, lead_id=None, limit=10, **filters):
        if lead_id is not None:
            filters['lead_id'] = lead_id
        _check_fields(kind, filters)
        order_field = _order_field(kind)

        with self._lock:
            records = self._load()[kind]
        matching = [
            record for record in records
            if all(record.get(key) == value for key, value in filters.items())
        ]
        # Later inserts win ties on equal timestamps
        matching = list(reversed(matching))
        matching.sort(key=lambda r: r.get(order_field) or '', reverse=True)
        return matching[:limit]


# ── Backend selection ─────────────────────────────────────────────────────────

_repository = None


def build_repository(backend: str = None) -> Repository:
    """Build the configured backend. Raises NotConfiguredError if unusable."""
    backend = (backend or STORE_BACKEND).lower()

    if backend == 'file':
        logger.info("Using file store at %s", FILE_STORE_PATH)
        return FileRepository(FILE_STORE_PATH)

    if backend == 'sql':
        try:
            engine = database.get_engine()
            if engine.url.get_backend_name() == 'sqlite':
                # Local dev convenience; Postgres schema is managed by Alembic
                Base.metadata.create_all(engine)
            with engine.connect():
                pass
        except SQLAlchemyError as e:
            logger.error("Database unavailable: %s", e)
            raise NotConfiguredError('Database is not configured.') from e
        return SqlRepository()

    logger.warning("STORE_BACKEND=%s — persistence disabled", backend)
    raise NotConfiguredError()


def get_repository() -> Repository:
    """Return the process-wide repository, building it on first use."""
    global _repository
    if _repository is None:
        _repository = build_repository()
    return _repository


def set_repository(repository: Optional[Repository]):
    """Swap the process-wide repository (None resets to lazy build)."""
    global _repository
    _repository = repository
