"""
Record Store

The segmentation core talks to prospects only through ``RecordStore``:
``find``, ``count`` and ``bulk_set_field``. ``ProspectRecordStore`` is the
SQLAlchemy implementation; it translates compiled predicates into SQL and
turns driver errors into ``StoreFailure``.
"""

import logging
from typing import Any, Iterable, Optional, Protocol, Sequence

from sqlalchemy import and_, cast, false, func, literal, or_, select, true, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.prospect import Prospect
from app.services.segments.errors import StoreFailure
from app.services.segments.predicates import (
    CompareOp,
    Comparison,
    Conjunction,
    Disjunction,
    MatchNothing,
    Predicate,
)
from app.services.segments.rules import FIELD_DEFINITIONS
from app.services.segments.scope import Scope

logger = logging.getLogger(__name__)

# Columns a predicate may reference: scope, identity, assignment and rule fields
QUERYABLE_COLUMNS = frozenset(
    {"id", "owner_id", "organization_id", "segment_id"}
    | {field_def.column for field_def in FIELD_DEFINITIONS.values()}
)

# The only column the reconciler may write
ASSIGNABLE_FIELDS = frozenset({"segment_id"})


class RecordStore(Protocol):
    async def find(self, predicate: Predicate, fields: Sequence[str] = ("id",)) -> list[dict[str, Any]]:
        ...

    async def count(self, predicate: Predicate) -> int:
        ...

    async def bulk_set_field(
        self,
        ids: Iterable[Any],
        field: str,
        value: Any,
        within: Optional[Predicate] = None,
    ) -> int:
        ...


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _column(model: type, name: str):
    if name not in QUERYABLE_COLUMNS or not hasattr(model, name):
        raise ValueError(f"Column '{name}' cannot be queried on {model.__name__}")
    return getattr(model, name)


def _has_item(column, value: Any, dialect_name: str):
    if dialect_name == "postgresql":
        return cast(column, JSONB).contains([value])
    # SQLite (tests, local dev): scan the JSON array
    elements = func.json_each(column).table_valued("value")
    return select(literal(1)).select_from(elements).where(elements.c.value == value).exists()


def to_sql(predicate: Predicate, model: type = Prospect, dialect_name: str = "postgresql"):
    """Translate a compiled predicate into a SQLAlchemy boolean expression."""
    if isinstance(predicate, MatchNothing):
        return false()

    if isinstance(predicate, Conjunction):
        if not predicate.items:
            return true()
        return and_(*(to_sql(item, model, dialect_name) for item in predicate.items))

    if isinstance(predicate, Disjunction):
        if not predicate.items:
            return false()
        return or_(*(to_sql(item, model, dialect_name) for item in predicate.items))

    if not isinstance(predicate, Comparison):
        raise TypeError(f"Not a predicate: {predicate!r}")

    column = _column(model, predicate.column)
    op = predicate.op
    value = predicate.value

    if op == CompareOp.EQ:
        return column == value
    if op == CompareOp.NE:
        return column != value
    if op == CompareOp.GE:
        return column >= value
    if op == CompareOp.LE:
        return column <= value
    if op == CompareOp.IN:
        return column.in_(list(value))
    if op == CompareOp.TEXT_CONTAINS:
        return column.ilike(f"%{_escape_like(value)}%", escape="\\")
    if op == CompareOp.HAS_ITEM:
        return _has_item(column, value, dialect_name)
    if op == CompareOp.IS_NULL:
        return column.is_(None)
    if op == CompareOp.IS_NOT_NULL:
        return column.isnot(None)

    raise ValueError(f"Unsupported comparison operator: {op}")


def scope_clause(model: type, scope: Scope):
    """Tenant filter for any model carrying ``owner_id``/``organization_id``."""
    if scope.tenant_id is not None:
        return model.organization_id == scope.tenant_id
    return model.owner_id == scope.actor_id


class ProspectRecordStore:
    """
    Prospect table access for segment reconciliation.

    Every ``bulk_set_field`` call is committed on its own, so consecutive
    calls are durably ordered: a later failure never rolls back an earlier one.
    """

    def __init__(self, db: AsyncSession, chunk_size: Optional[int] = None):
        self.db = db
        self.chunk_size = chunk_size or settings.SEGMENT_BULK_CHUNK_SIZE

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    def _where(self, predicate: Predicate):
        return to_sql(predicate, Prospect, self.dialect_name)

    async def find(self, predicate: Predicate, fields: Sequence[str] = ("id",)) -> list[dict[str, Any]]:
        columns = [_column(Prospect, name) for name in fields]
        query = select(*columns).where(self._where(predicate)).order_by(Prospect.id)
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Prospect query failed: {type(e).__name__}")
            raise StoreFailure("Prospect query failed") from e
        return [dict(row._mapping) for row in result.all()]

    async def count(self, predicate: Predicate) -> int:
        query = select(func.count()).select_from(Prospect).where(self._where(predicate))
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Prospect count failed: {type(e).__name__}")
            raise StoreFailure("Prospect count failed") from e
        return result.scalar() or 0

    async def bulk_set_field(
        self,
        ids: Iterable[Any],
        field: str,
        value: Any,
        within: Optional[Predicate] = None,
    ) -> int:
        """
        Set ``field`` to ``value`` on the given prospects.

        ``within`` restricts the update further (the caller's scope), so ids
        that left the scope since they were read are not touched.
        """
        if field not in ASSIGNABLE_FIELDS:
            raise ValueError(f"Field '{field}' cannot be bulk-assigned")

        id_list = sorted(set(ids))
        if not id_list:
            return 0

        column = getattr(Prospect, field)
        affected = 0
        try:
            for start in range(0, len(id_list), self.chunk_size):
                chunk = id_list[start:start + self.chunk_size]
                condition = Prospect.id.in_(chunk)
                if within is not None:
                    condition = and_(condition, self._where(within))
                statement = (
                    update(Prospect)
                    .where(condition)
                    .values({column: value})
                    .execution_options(synchronize_session=False)
                )
                result = await self.db.execute(statement)
                affected += result.rowcount or 0
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Prospect bulk update failed: {type(e).__name__}", extra={"field": field})
            raise StoreFailure("Prospect bulk update failed") from e

        return affected
