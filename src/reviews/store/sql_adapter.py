"""SQLAlchemy Core review store (SQLite or PostgreSQL).

Tables:
    reviews            one row per review id, superseded in place on re-ingestion
    review_audit_logs  append-only, one row per successful approval transition

Each approval transition runs in one ``engine.begin()`` block: the
conditional ``UPDATE ... WHERE approved = :required`` and the audit insert
commit together. SQLite connections open their transactions with
``BEGIN IMMEDIATE`` so concurrent writers queue on the busy timeout instead
of failing on a lock upgrade.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Connection,
    Engine,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    case,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from reviews.errors import StoreError
from reviews.review.querying import ReviewFilterOptions, SortField, SortOrder
from reviews.review.review import AuditLogEntry, NormalizedReview
from reviews.store.port import (
    TREND_MONTHS,
    MonthlyTrend,
    ReviewStats,
    ReviewStore,
    ReviewStoreTransaction,
    check_mutable,
    merge_response_provenance,
    rating_bucket,
)

logger = structlog.get_logger(__name__)

metadata = MetaData()

reviews_table = Table(
    "reviews",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("listing_id", Integer, nullable=False, index=True),
    Column("guest_name", String(255), nullable=False),
    Column("comment", Text, nullable=False, default=""),
    Column("rating", Float, nullable=False),
    Column("categories", JSON, nullable=False),
    Column("created_at", String(24), nullable=False, index=True),
    Column("updated_at", String(24), nullable=False),
    Column("check_in_date", String(24)),
    Column("check_out_date", String(24)),
    Column("review_type", String(32), nullable=False),
    Column("channel", String(32), nullable=False),
    Column("approved", Boolean, nullable=False, default=False, index=True),
    Column("response", Text),
    Column("response_date", String(24)),
    Column("guest_id", JSON),
    Column("reservation_id", JSON),
    Column("language", String(2)),
    Column("source", String(64)),
    Column("raw_json", JSON, nullable=False),
)

audit_table = Table(
    "review_audit_logs",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(32), nullable=False, unique=True),
    Column("review_id", Integer, nullable=False, index=True),
    Column("action", String(16), nullable=False),
    Column("previous_value", JSON, nullable=False),
    Column("new_value", JSON, nullable=False),
    Column("user_id", String(255)),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("timestamp", String(24), nullable=False, index=True),
    Column("meta", JSON, nullable=False),
)

_SORT_COLUMNS = {
    SortField.CREATED_AT: reviews_table.c.created_at,
    SortField.UPDATED_AT: reviews_table.c.updated_at,
    SortField.RATING: reviews_table.c.rating,
    SortField.GUEST_NAME: func.lower(reviews_table.c.guest_name),
}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def create_store_engine(database_url: str, timeout_seconds: float = 5.0, echo: bool = False) -> Engine:
    """Build an engine whose driver-level timeouts honour ``timeout_seconds``."""
    if database_url.startswith("sqlite"):
        in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
        if not in_memory and database_url.startswith("sqlite:///"):
            Path(database_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
            poolclass=StaticPool if in_memory else None,
            echo=echo,
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={"options": f"-c statement_timeout={int(timeout_seconds * 1000)}"},
        echo=echo,
    )


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------
def _review_to_row(review: NormalizedReview) -> dict[str, Any]:
    return {
        "id": review.id,
        "listing_id": review.listing_id,
        "guest_name": review.guest_name,
        "comment": review.comment,
        "rating": review.rating,
        "categories": review.categories,
        "created_at": review.created_at,
        "updated_at": review.updated_at,
        "check_in_date": review.check_in_date,
        "check_out_date": review.check_out_date,
        "review_type": review.review_type.value,
        "channel": review.channel.value,
        "approved": review.approved,
        "response": review.response,
        "response_date": review.response_date,
        "guest_id": review.guest_id,
        "reservation_id": review.reservation_id,
        "language": review.language,
        "source": review.source,
        "raw_json": review.raw_json,
    }


def _row_to_review(row: Any) -> NormalizedReview:
    return NormalizedReview.model_validate(dict(row._mapping))


def _audit_to_row(entry: AuditLogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "review_id": entry.review_id,
        "action": entry.action.value,
        "previous_value": entry.previous_value,
        "new_value": entry.new_value,
        "user_id": entry.actor.user_id,
        "ip_address": entry.actor.ip_address,
        "user_agent": entry.actor.user_agent,
        "timestamp": entry.timestamp,
        "meta": entry.metadata,
    }


def _row_to_audit(row: Any) -> AuditLogEntry:
    data = row._mapping
    return AuditLogEntry(
        id=data["id"],
        review_id=data["review_id"],
        action=data["action"],
        previous_value=data["previous_value"],
        new_value=data["new_value"],
        actor={
            "user_id": data["user_id"],
            "ip_address": data["ip_address"],
            "user_agent": data["user_agent"],
        },
        timestamp=data["timestamp"],
        metadata=data["meta"],
    )


def _conditions(filters: ReviewFilterOptions | None) -> list[Any]:
    if filters is None:
        return []
    t = reviews_table.c
    conditions: list[Any] = []
    if filters.listing_id is not None:
        conditions.append(t.listing_id == filters.listing_id)
    if filters.date_from is not None:
        conditions.append(t.created_at >= filters.date_from)
    if filters.date_to is not None:
        conditions.append(t.created_at <= filters.date_to)
    if filters.channel is not None:
        conditions.append(t.channel == filters.channel.value)
    if filters.approved is not None:
        conditions.append(t.approved == filters.approved)
    if filters.review_type is not None:
        conditions.append(t.review_type == filters.review_type.value)
    if filters.min_rating is not None:
        conditions.append(t.rating >= filters.min_rating)
    if filters.max_rating is not None:
        conditions.append(t.rating <= filters.max_rating)
    if filters.has_response is True:
        conditions.append(and_(t.response.is_not(None), t.response != ""))
    elif filters.has_response is False:
        conditions.append(or_(t.response.is_(None), t.response == ""))
    if filters.guest_name:
        conditions.append(t.guest_name.ilike(f"%{filters.guest_name}%"))
    if filters.search:
        needle = f"%{filters.search}%"
        conditions.append(or_(t.guest_name.ilike(needle), t.comment.ilike(needle)))
    return conditions


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------
class _SqlTransaction(ReviewStoreTransaction):
    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def get(self, review_id: int) -> NormalizedReview | None:
        row = self._conn.execute(select(reviews_table).where(reviews_table.c.id == review_id)).first()
        return _row_to_review(row) if row is not None else None

    def conditional_update(self, review_id: int, required_current_approved: bool, new_fields: dict[str, Any]) -> int:
        check_mutable(new_fields)
        result = self._conn.execute(
            reviews_table.update()
            .where(reviews_table.c.id == review_id)
            .where(reviews_table.c.approved == required_current_approved)
            .values(**new_fields)
        )
        if result.rowcount != 1 or new_fields.get("response") is None:
            return result.rowcount

        # The row is write-locked by the update above until commit
        raw_json = self._conn.execute(
            select(reviews_table.c.raw_json).where(reviews_table.c.id == review_id)
        ).scalar_one()
        self._conn.execute(
            reviews_table.update()
            .where(reviews_table.c.id == review_id)
            .values(raw_json=merge_response_provenance(raw_json, new_fields))
        )
        return 1

    def append_audit(self, entry: AuditLogEntry) -> None:
        self._conn.execute(audit_table.insert().values(**_audit_to_row(entry)))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
class SqlReviewStore(ReviewStore):
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str, timeout_seconds: float = 5.0) -> SqlReviewStore:
        store = cls(create_store_engine(database_url, timeout_seconds))
        store.create_tables()
        return store

    def create_tables(self) -> None:
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to create review tables: {exc}") from exc

    def drop_tables(self) -> None:
        metadata.drop_all(self.engine)

    @contextmanager
    def _writing(self) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error("Review store transaction failed", error=str(exc))
            raise StoreError(f"Review store transaction failed: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator[ReviewStoreTransaction]:
        with self._writing() as conn:
            yield _SqlTransaction(conn)

    @contextmanager
    def _reading(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise StoreError(f"Review store read failed: {exc}") from exc

    def get(self, review_id: int) -> NormalizedReview | None:
        with self._reading() as conn:
            row = conn.execute(select(reviews_table).where(reviews_table.c.id == review_id)).first()
        return _row_to_review(row) if row is not None else None

    def add(self, reviews: Iterable[NormalizedReview]) -> int:
        rows = [_review_to_row(review) for review in reviews]
        if not rows:
            return 0

        with self._writing() as conn:
            existing = set(
                conn.execute(
                    select(reviews_table.c.id).where(reviews_table.c.id.in_([row["id"] for row in rows]))
                ).scalars()
            )
            superseded = 0
            for row in rows:
                if row["id"] in existing:
                    superseded += 1
                    superseding = {
                        key: value
                        for key, value in row.items()
                        if key not in ("id", "approved", "response", "response_date")
                    }
                    conn.execute(reviews_table.update().where(reviews_table.c.id == row["id"]).values(**superseding))
                else:
                    conn.execute(reviews_table.insert().values(**row))
                    # a later row with the same id in this batch supersedes this one
                    existing.add(row["id"])

        logger.info("Reviews stored", count=len(rows), superseded=superseded)
        return len(rows)

    def query(
        self,
        filters: ReviewFilterOptions | None = None,
        sort_field: SortField = SortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[NormalizedReview], int]:
        conditions = _conditions(filters)
        column = _SORT_COLUMNS[sort_field]
        ordering = column.desc() if sort_order is SortOrder.DESC else column.asc()

        statement = (
            select(reviews_table)
            .where(*conditions)
            .order_by(ordering, reviews_table.c.id.asc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        count_statement = select(func.count()).select_from(reviews_table).where(*conditions)

        with self._reading() as conn:
            rows = conn.execute(statement).all()
            total = conn.execute(count_statement).scalar_one()
        return [_row_to_review(row) for row in rows], total

    def stats(self, filters: ReviewFilterOptions | None = None, trends_since: str | None = None) -> ReviewStats:
        t = reviews_table.c
        conditions = _conditions(filters)
        summary = select(
            func.count(),
            func.sum(case((t.approved, 1), else_=0)),
            func.avg(t.rating),
        ).where(*conditions)
        by_rating = select(t.rating, func.count()).where(*conditions).group_by(t.rating).order_by(t.rating)
        by_channel = select(t.channel, func.count()).where(*conditions).group_by(t.channel).order_by(t.channel)

        month = func.substr(t.created_at, 1, 7).label("month")
        trend_conditions = conditions + ([t.created_at >= trends_since] if trends_since is not None else [])
        by_month = (
            select(month, func.count(), func.avg(t.rating))
            .where(*trend_conditions)
            .group_by(month)
            .order_by(month.desc())
            .limit(TREND_MONTHS)
        )

        with self._reading() as conn:
            total, approved, average = conn.execute(summary).one()
            ratings = conn.execute(by_rating).all()
            channels = conn.execute(by_channel).all()
            months = conn.execute(by_month).all()

        approved = int(approved or 0)
        return ReviewStats(
            total=total,
            approved=approved,
            pending=total - approved,
            average_rating=float(average or 0.0),
            rating_distribution={rating_bucket(rating): count for rating, count in ratings},
            channel_distribution={channel: count for channel, count in channels},
            monthly_trends=[
                MonthlyTrend(month=name, count=count, average_rating=float(avg or 0.0))
                for name, count, avg in months
            ],
        )

    def audit_history(self, review_id: int) -> list[AuditLogEntry]:
        statement = (
            select(audit_table)
            .where(audit_table.c.review_id == review_id)
            .order_by(audit_table.c.seq.desc())
        )
        with self._reading() as conn:
            return [_row_to_audit(row) for row in conn.execute(statement)]
