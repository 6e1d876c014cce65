"""Entity store interface and its SQLModel implementation.

The pipeline only talks to the store through ``list``, ``update`` and
``bulk_update``. Every failure surfaces as a ``StoreError`` whose kind
drives the caller's retry policy.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError, OperationalError, StatementError
from sqlmodel import Session, select

from strategy_sync.models.strategy import Strategy
from strategy_sync.models.sync_log import SyncLog
from strategy_sync.models.trade import Trade
from strategy_sync.services.errors import ErrorKind, StoreError
from strategy_sync.utils.constants import STRATEGY_ENTITY, TRADE_ENTITY

logger = logging.getLogger(__name__)


@dataclass
class BulkUpdateResult:
    succeeded: list[int] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)  # {"id": ..., "error": ...}


class EntityStore(ABC):
    """Remote (or local) persisted store of trades and strategies."""

    @abstractmethod
    async def list(
        self,
        entity: str,
        filter: dict[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list:
        """Fetch records. ``sort`` is a field name, ``-`` prefixed for descending."""

    @abstractmethod
    async def update(self, entity: str, record_id: int, patch: dict[str, Any]):
        """Write ``patch`` to a single record and return the updated record."""

    @abstractmethod
    async def bulk_update(
        self, entity: str, record_ids: list[int], patch: dict[str, Any]
    ) -> BulkUpdateResult:
        """Apply the same patch to several records."""


class SQLEntityStore(EntityStore):
    """EntityStore backed by the SQLModel tables."""

    MODELS = {
        TRADE_ENTITY: Trade,
        STRATEGY_ENTITY: Strategy,
        "SyncLog": SyncLog,
    }

    def __init__(self, bind=None):
        if bind is None:
            from strategy_sync.database import engine as bind
        self.engine = bind

    def _model(self, entity: str):
        model = self.MODELS.get(entity)
        if model is None:
            raise StoreError(ErrorKind.REJECTED, f"Unknown entity type: {entity}")
        return model

    @staticmethod
    def _column(model, name: str):
        if name not in model.model_fields:
            raise StoreError(ErrorKind.REJECTED, f"{model.__name__} has no field '{name}'")
        return getattr(model, name)

    def _apply_patch(self, model, record, patch: dict[str, Any]):
        for key, value in patch.items():
            if key == "id" or key not in model.model_fields:
                raise StoreError(ErrorKind.REJECTED, f"Cannot update {model.__name__}.{key}")
            setattr(record, key, value)
        if "updated_at" in model.model_fields:
            record.updated_at = datetime.now(timezone.utc)

    async def list(self, entity, filter=None, sort=None, limit=None):
        model = self._model(entity)
        stmt = select(model)
        for key, value in (filter or {}).items():
            stmt = stmt.where(self._column(model, key) == value)
        if sort:
            column = self._column(model, sort.lstrip("-"))
            stmt = stmt.order_by(column.desc() if sort.startswith("-") else column)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            with Session(self.engine) as session:
                return list(session.exec(stmt).all())
        except OperationalError as e:
            raise StoreError(ErrorKind.NETWORK, f"network error listing {entity}: {e}") from e

    async def update(self, entity, record_id, patch):
        model = self._model(entity)
        try:
            with Session(self.engine) as session:
                record = session.get(model, record_id)
                if record is None:
                    raise StoreError(ErrorKind.REJECTED, f"{entity} {record_id} not found")
                self._apply_patch(model, record, patch)
                session.add(record)
                session.commit()
                session.refresh(record)
                return record
        except OperationalError as e:
            raise StoreError(ErrorKind.NETWORK, f"network error updating {entity}: {e}") from e
        except (IntegrityError, StatementError) as e:
            raise StoreError(ErrorKind.REJECTED, f"{entity} {record_id} rejected: {e}") from e

    async def bulk_update(self, entity, record_ids, patch):
        model = self._model(entity)
        result = BulkUpdateResult()
        try:
            with Session(self.engine) as session:
                for record_id in record_ids:
                    record = session.get(model, record_id)
                    if record is None:
                        result.failed.append({"id": record_id, "error": "not found"})
                        continue
                    self._apply_patch(model, record, patch)
                    session.add(record)
                    result.succeeded.append(record_id)
                session.commit()
        except OperationalError as e:
            raise StoreError(ErrorKind.NETWORK, f"network error in bulk update: {e}") from e
        except (IntegrityError, StatementError) as e:
            raise StoreError(ErrorKind.REJECTED, f"bulk update rejected: {e}") from e

        if result.failed:
            logger.warning(
                f"Bulk update of {entity}: {len(result.succeeded)} succeeded, "
                f"{len(result.failed)} failed"
            )
        return result
