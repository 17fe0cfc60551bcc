"""SQLAlchemy task queue models and the async task store."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from dorfbot.models.tasks import BuildTask, TaskStatus, TrainingTask

TaskKind = Literal["build", "training"]


class Base(DeclarativeBase):
    pass


class BuildTaskRecord(Base):
    __tablename__ = "build_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    village_id: Mapped[str] = mapped_column(String(50), default="main")
    building_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    building_slot: Mapped[int | None] = mapped_column(Integer, nullable=True)
    building_name: Mapped[str] = mapped_column(String(100), default="")
    target_level: Mapped[int] = mapped_column(Integer, default=1)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_reason: Mapped[str] = mapped_column(String(60), default="")


class TrainingTaskRecord(Base):
    __tablename__ = "training_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    village_id: Mapped[str] = mapped_column(String(50), default="main")
    building_type: Mapped[str] = mapped_column(String(30), default="barracks")
    building_slot: Mapped[int | None] = mapped_column(Integer, nullable=True)
    troop_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    troop_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=-1)
    repeat_forever: Mapped[bool] = mapped_column(Boolean, default=False)
    repeat_interval: Mapped[int] = mapped_column(Integer, default=0)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.PENDING.value)
    trained_total: Mapped[int] = mapped_column(Integer, default=0)
    last_trained_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_reason: Mapped[str] = mapped_column(String(60), default="")


class ActionLogRecord(Base):
    __tablename__ = "action_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    village_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    action: Mapped[str] = mapped_column(String(50))
    detail: Mapped[str] = mapped_column(Text, default="")
    success: Mapped[bool] = mapped_column(Boolean, default=True)


_RECORDS: dict[str, type[BuildTaskRecord] | type[TrainingTaskRecord]] = {
    "build": BuildTaskRecord,
    "training": TrainingTaskRecord,
}
_MODELS: dict[str, type[BuildTask] | type[TrainingTask]] = {
    "build": BuildTask,
    "training": TrainingTask,
}


class Database:
    """Async database wrapper."""

    def __init__(self, db_path: Path | None = None) -> None:
        if db_path is None:
            # Single shared connection keeps the in-memory database alive
            self.engine = create_async_engine(
                "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
            )
        else:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def init(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def get_session(self) -> AsyncSession:
        return self.session_factory()

    async def close(self) -> None:
        await self.engine.dispose()


class TaskStore:
    """Pending work queue: each call is one independent single-row transaction."""

    def __init__(self, db: Database) -> None:
        self.db = db

    @staticmethod
    def _to_model(kind: TaskKind, record: Any) -> BuildTask | TrainingTask:
        model = _MODELS[kind]
        data = {name: getattr(record, name) for name in model.model_fields}
        if data.get("created_at") is None:
            data.pop("created_at")
        return model(**data)

    async def fetch_pending(
        self,
        kind: TaskKind,
        filters: dict[str, Any] | None = None,
        order_by: list[tuple[str, bool]] | None = None,
        limit: int = 10,
    ) -> list[Any]:
        """Pending tasks matching equality filters.

        order_by is a list of (column, descending); default priority desc,
        created_at asc, id asc.
        """
        record = _RECORDS[kind]
        stmt = select(record).where(record.status == TaskStatus.PENDING.value)
        for column, value in (filters or {}).items():
            stmt = stmt.where(getattr(record, column) == value)
        ordering = order_by or [("priority", True), ("created_at", False), ("id", False)]
        for column, descending in ordering:
            col = getattr(record, column)
            stmt = stmt.order_by(col.desc() if descending else col.asc())
        stmt = stmt.limit(limit)
        async with self.db.get_session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [self._to_model(kind, row) for row in rows]

    async def update_status(self, kind: TaskKind, task_id: int, **fields: Any) -> None:
        """Update columns of one task; status values may be TaskStatus members."""
        record = _RECORDS[kind]
        async with self.db.get_session() as session:
            row = await session.get(record, task_id)
            if row is None:
                return
            for name, value in fields.items():
                if isinstance(value, TaskStatus):
                    value = value.value
                setattr(row, name, value)
            if fields.get("status") == TaskStatus.COMPLETED and "completed_at" not in fields:
                row.completed_at = datetime.now()
            await session.commit()

    async def add_build_task(self, task: BuildTask) -> int:
        data = task.model_dump(exclude={"id", "status", "completed_at"})
        async with self.db.get_session() as session:
            row = BuildTaskRecord(**data)
            session.add(row)
            await session.commit()
            return row.id

    async def add_training_task(self, task: TrainingTask) -> int:
        data = task.model_dump(exclude={"id", "status", "completed_at", "trained_total", "last_trained_at"})
        async with self.db.get_session() as session:
            row = TrainingTaskRecord(**data)
            session.add(row)
            await session.commit()
            return row.id

    async def list_tasks(self, kind: TaskKind, status: str | None = None) -> list[Any]:
        record = _RECORDS[kind]
        stmt = select(record).order_by(record.priority.desc(), record.id.asc())
        if status:
            stmt = stmt.where(record.status == status)
        async with self.db.get_session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [self._to_model(kind, row) for row in rows]

    async def clear_pending(self, kind: TaskKind) -> int:
        """Mark every pending task of a kind as skipped; returns the count."""
        pending = await self.fetch_pending(kind, limit=10_000)
        for task in pending:
            await self.update_status(kind, task.id, status=TaskStatus.SKIPPED)
        return len(pending)

    async def log_action(self, action: str, detail: str = "", success: bool = True, village_id: str | None = None) -> None:
        async with self.db.get_session() as session:
            session.add(ActionLogRecord(
                action=action, detail=detail, success=success, village_id=village_id,
            ))
            await session.commit()

    async def recent_actions(self, limit: int = 50) -> list[dict[str, Any]]:
        stmt = select(ActionLogRecord).order_by(ActionLogRecord.id.desc()).limit(limit)
        async with self.db.get_session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [
                {
                    "timestamp": row.timestamp.isoformat() if row.timestamp else None,
                    "village_id": row.village_id,
                    "action": row.action,
                    "detail": row.detail,
                    "success": row.success,
                }
                for row in rows
            ]
