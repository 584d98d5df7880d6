# Модели БД (SQLAlchemy) для машин и алармов обслуживания

from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean, DateTime, Enum, Float, Integer, String, Text,
    func, ForeignKey, Index
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.types import TypeDecorator, CHAR
from sqlalchemy.orm import Mapped, mapped_column, relationship, declarative_base

# Компиляция JSONB для SQLite (тестовый режим) -> JSON (текст)
@compiles(JSONB, 'sqlite')
def compile_jsonb_sqlite(type_, compiler, **kw):  # pragma: no cover - инфраструктурный слой
    return 'JSON'

# Универсальный UUID тип для Postgres/SQLite: хранит UUID как native UUID в PG и как текст (36) в SQLite.
class UniversalUUID(TypeDecorator):  # pragma: no cover - инфраструктурный слой
    impl = CHAR(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, UUID):
            return value if dialect.name == 'postgresql' else str(value)
        if isinstance(value, str):
            try:
                u = UUID(value)
            except ValueError as e:  # pragma: no cover
                raise TypeError(f"Invalid UUID string '{value}': {e}") from e
            return u if dialect.name == 'postgresql' else str(u)
        raise TypeError(f"Unsupported UUID value type: {type(value)}")

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError as e:  # pragma: no cover
            raise TypeError(f"Invalid UUID value from DB '{value}': {e}") from e

# Базовый класс для всех моделей
Base = declarative_base()

from enum import Enum as PyEnum


class MachineStatus(PyEnum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class TimestampMixin:  # Временные метки
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class Machine(Base, TimestampMixin):  # Машины (CRUD вне движка, здесь только чтение)
    __tablename__ = "machines"

    id: Mapped[UUID] = mapped_column(UniversalUUID(), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[MachineStatus] = mapped_column(
        Enum(MachineStatus, values_callable=lambda c: [e.value for e in c], name="machine_status", native_enum=False),
        nullable=False,
        default=MachineStatus.ACTIVE
    )
    # Расписание использования: часов в день + рабочие дни ['MON', 'TUE', ...]
    daily_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    operating_days: Mapped[Optional[list]] = mapped_column(JSONB, default=list)

    # Связи
    alarms: Mapped[List["MaintenanceAlarm"]] = relationship(
        "MaintenanceAlarm", back_populates="machine", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('idx_machines_status', 'status'),
    )


class MaintenanceAlarm(Base, TimestampMixin):  # Алармы обслуживания
    __tablename__ = "maintenance_alarms"

    id: Mapped[UUID] = mapped_column(UniversalUUID(), primary_key=True, default=uuid4)
    machine_id: Mapped[UUID] = mapped_column(
        UniversalUUID(),
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    related_parts: Mapped[Optional[list]] = mapped_column(JSONB, default=list)

    interval_hours: Mapped[float] = mapped_column(Float, nullable=False)
    accumulated_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # None – берётся значение по умолчанию из настроек (MAINTENANCE_RESET_ON_TRIGGER)
    reset_on_trigger: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Учёт накопления и срабатываний (пишет только движок)
    last_accumulation_checkpoint: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_triggered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_triggered_hours: Mapped[Optional[float]] = mapped_column(Float)
    times_triggered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Связи
    machine = relationship("Machine", back_populates="alarms")

    __table_args__ = (
        Index('idx_maintenance_alarms_machine', 'machine_id'),
        Index('idx_maintenance_alarms_active', 'machine_id', 'is_active'),
    )


class MachineEvent(Base):  # События машины (аудит срабатываний)
    __tablename__ = "machine_events"

    id: Mapped[UUID] = mapped_column(UniversalUUID(), primary_key=True, default=uuid4)
    machine_id: Mapped[UUID] = mapped_column(
        UniversalUUID(),
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False
    )
    alarm_id: Mapped[UUID] = mapped_column(UniversalUUID(), nullable=False)
    trigger_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    triggered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accumulated_hours: Mapped[float] = mapped_column(Float, nullable=False)
    created_by: Mapped[str] = mapped_column(String(50), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index('idx_machine_events_machine_time', 'machine_id', 'triggered_at'),
        # Одно событие на одно срабатывание аларма (повтор после сбоя не дублирует)
        Index('uq_machine_events_alarm_trigger', 'alarm_id', 'trigger_number', unique=True),
    )


class Notification(Base):  # Уведомления владельцу машины
    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(UniversalUUID(), primary_key=True, default=uuid4)
    machine_id: Mapped[UUID] = mapped_column(
        UniversalUUID(),
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False
    )
    alarm_id: Mapped[Optional[UUID]] = mapped_column(UniversalUUID())
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False, default="maintenance_due")
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index('idx_notifications_machine_unread', 'machine_id', 'is_read'),
    )


__all__ = [
    'Base', 'UniversalUUID', 'TimestampMixin', 'MachineStatus',
    'Machine', 'MaintenanceAlarm', 'MachineEvent', 'Notification',
]
