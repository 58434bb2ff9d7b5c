import logging
from contextlib import contextmanager
from typing import Iterable, Optional, Tuple

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from parcel_api.database import get_db
from parcel_api.errors import AdapterError, DuplicateRecordError, ValidationError
from parcel_api.models import COLLECTIONS

logger = logging.getLogger(__name__)

ASCENDING = 1
DESCENDING = -1


class RecordStore:
    """Collection-style access (find / insert / update / delete by filter) over the SQL tables.

    Each write commits on its own unless it runs inside ``atomic()``, in which case
    the writes are flushed and committed together when the block exits.
    """

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    def _model(self, collection: str):
        model = COLLECTIONS.get(collection)
        if model is None:
            raise ValidationError(f"Unknown collection '{collection}'")
        return model

    def _column(self, model, field: str):
        if model.__table__.columns.get(field) is None:
            raise ValidationError(f"Unknown field '{field}' for {model.__tablename__}")
        return getattr(model, field)

    def _where(self, model, filter: Optional[dict]):
        return [self._column(model, field) == value for field, value in (filter or {}).items()]

    def _select(self, model, filter: Optional[dict]):
        # always reflect the stored row, not a stale identity-map copy
        return select(model).where(*self._where(model, filter)).execution_options(populate_existing=True)

    def _write(self):
        if self._depth:
            self.db.flush()
        else:
            self.db.commit()

    @contextmanager
    def _guard(self, action: str, collection: str):
        try:
            yield
        except IntegrityError as exc:
            if not self._depth:
                self.db.rollback()
            if "unique" in str(exc.orig).lower() or "duplicate" in str(exc.orig).lower():
                raise DuplicateRecordError(f"{collection}: record already exists") from exc
            raise ValidationError(f"{collection}: missing or invalid required field") from exc
        except SQLAlchemyError as exc:
            if not self._depth:
                self.db.rollback()
            logger.exception("record store %s on %s failed", action, collection)
            raise AdapterError(f"Record store {action} on {collection} failed") from exc

    @contextmanager
    def atomic(self):
        """Group writes into a single transaction; rolls everything back on error."""
        self._depth += 1
        try:
            yield self
            if self._depth == 1:
                with self._guard("commit", "transaction"):
                    self.db.commit()
        except Exception:
            if self._depth == 1:
                self.db.rollback()
            raise
        finally:
            self._depth -= 1

    def find(
        self,
        collection: str,
        filter: Optional[dict] = None,
        sort: Optional[Iterable[Tuple[str, int]]] = None,
    ) -> list:
        model = self._model(collection)
        stmt = self._select(model, filter)
        for field, direction in sort or []:
            column = self._column(model, field)
            stmt = stmt.order_by(column.asc() if direction == ASCENDING else column.desc())

        with self._guard("find", collection):
            return [row.to_dict() for row in self.db.scalars(stmt).all()]

    def find_one(self, collection: str, filter: dict) -> Optional[dict]:
        model = self._model(collection)
        stmt = self._select(model, filter).limit(1)

        with self._guard("find_one", collection):
            row = self.db.scalars(stmt).first()
            return row.to_dict() if row is not None else None

    def insert_one(self, collection: str, record: dict) -> str:
        model = self._model(collection)
        for field in record:
            self._column(model, field)

        with self._guard("insert_one", collection):
            row = model(**record)
            self.db.add(row)
            self._write()
            return row.id

    def update_one(self, collection: str, filter: dict, patch: dict) -> int:
        model = self._model(collection)
        for field in patch:
            self._column(model, field)
        stmt = self._select(model, filter).limit(1)

        with self._guard("update_one", collection):
            row = self.db.scalars(stmt).first()
            if row is None:
                return 0
            for field, value in patch.items():
                setattr(row, field, value)
            self._write()
            return 1

    def delete_one(self, collection: str, filter: dict) -> int:
        model = self._model(collection)
        stmt = self._select(model, filter).limit(1)

        with self._guard("delete_one", collection):
            row = self.db.scalars(stmt).first()
            if row is None:
                return 0
            self.db.delete(row)
            self._write()
            return 1


def get_store(db: Session = Depends(get_db)) -> RecordStore:
    return RecordStore(db)
