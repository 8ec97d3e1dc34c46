"""
SQLAlchemy-backed store.

Plain calls each run in their own short transaction. Inside
``reservation_lock`` every call shares one session, bound through a
ContextVar, and the whole block commits or rolls back together.

An in-memory SQLite database lives on one shared connection, so on such
a store every transaction runs under a process-wide lock, one at a time.
Use a file or server database when throughput under concurrent callers
matters.
"""

import logging
import threading
from contextlib import contextmanager, nullcontext
from contextvars import ContextVar
from datetime import date, datetime, timezone
from typing import Any, ContextManager, Iterator, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from spa_scheduler.errors import DuplicateBookingCodeError, NotFoundError, StoreError
from spa_scheduler.schemas.booking_schema import BlockedTimeSlot, Booking, BookingStatus
from spa_scheduler.schemas.catalog_schema import AdditionalService, Service, Technician
from spa_scheduler.store.base import SchedulerStore
from spa_scheduler.store.database import Base, create_db_engine, create_session_factory
from spa_scheduler.store.models import (
    AdditionalServiceRow,
    BlockedSlotRow,
    BookingRow,
    ServiceRow,
    TechnicianRow,
)
from spa_scheduler.utils import utcnow

logger = logging.getLogger(__name__)


def _to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Store timestamps as naive UTC; SQLite drops offsets."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _technician(row: TechnicianRow) -> Technician:
    return Technician(
        id=row.id,
        name=row.name,
        birth_year=row.birth_year,
        avatar=row.avatar,
        notes=row.notes,
        specialties=list(row.specialties or []),
        experience=row.experience,
        rating=row.rating,
        is_active=row.is_active,
        created_at=_from_db_time(row.created_at),
    )


def _service(row: ServiceRow) -> Service:
    return Service(
        id=row.id,
        name=row.name,
        description=row.description,
        prices={int(k): v for k, v in (row.prices or {}).items()},
        is_active=row.is_active,
    )


def _additional_service(row: AdditionalServiceRow) -> AdditionalService:
    return AdditionalService(id=row.id, name=row.name, price=row.price, is_active=row.is_active)


def _booking(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        booking_code=row.booking_code,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        customer_notes=row.customer_notes,
        technician_id=row.technician_id,
        technician_name=row.technician_name,
        service_id=row.service_id,
        service_name=row.service_name,
        service_price=row.service_price,
        duration=row.duration,
        additional_services=row.additional_services or [],
        booking_date=row.booking_date,
        start_time=row.start_time,
        end_time=row.end_time,
        total_amount=row.total_amount,
        deposit_amount=row.deposit_amount,
        is_paid=row.is_paid,
        status=BookingStatus(row.status),
        payment_method=row.payment_method,
        qr_payload=row.qr_payload,
        created_at=_from_db_time(row.created_at),
        updated_at=_from_db_time(row.updated_at),
    )


def _blocked_slot(row: BlockedSlotRow) -> BlockedTimeSlot:
    return BlockedTimeSlot(
        id=row.id,
        technician_id=row.technician_id,
        block_date=row.block_date,
        start_time=row.start_time,
        end_time=row.end_time,
        reason=row.reason,
        created_at=_from_db_time(row.created_at),
    )


class SqlStore(SchedulerStore):
    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        self._engine = engine or create_db_engine(url)
        self._session_factory = create_session_factory(self._engine)
        self._active: ContextVar[Optional[Session]] = ContextVar(
            f"sql_store_session_{id(self)}", default=None
        )
        # In-memory SQLite is a single shared connection, so transactions take turns
        self._connection_lock: ContextManager[Any] = (
            threading.RLock() if isinstance(self._engine.pool, StaticPool) else nullcontext()
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    def drop_schema(self) -> None:
        Base.metadata.drop_all(self._engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        active = self._active.get()
        if active is not None:
            yield active
            return
        with self._connection_lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StoreError(f"Database operation failed: {exc}") from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    @contextmanager
    def reservation_lock(self, technician_id: Optional[int], day: date) -> Iterator[None]:
        if self._active.get() is not None:
            yield
            return
        with self._connection_lock:
            session = self._session_factory()
            token = self._active.set(session)
            try:
                if technician_id is not None:
                    # FOR UPDATE is a no-op on SQLite, where BEGIN IMMEDIATE does the locking
                    session.execute(
                        select(TechnicianRow.id)
                        .where(TechnicianRow.id == technician_id)
                        .with_for_update()
                    )
                yield
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StoreError(f"Reservation transaction failed: {exc}") from exc
            except Exception:
                session.rollback()
                raise
            finally:
                self._active.reset(token)
                session.close()

    # ------------------------------------------------------------------ #
    # Technicians
    # ------------------------------------------------------------------ #

    def insert_technician(self, technician: Technician) -> Technician:
        with self._session() as session:
            row = TechnicianRow(
                name=technician.name,
                birth_year=technician.birth_year,
                avatar=technician.avatar,
                notes=technician.notes,
                specialties=list(technician.specialties),
                experience=technician.experience,
                rating=technician.rating,
                is_active=technician.is_active,
                created_at=_to_db_time(technician.created_at or utcnow()),
            )
            session.add(row)
            session.flush()
            return _technician(row)

    def update_technician(self, technician: Technician) -> Technician:
        with self._session() as session:
            row = session.get(TechnicianRow, technician.id)
            if row is None:
                raise NotFoundError("Technician", technician.id)
            row.name = technician.name
            row.birth_year = technician.birth_year
            row.avatar = technician.avatar
            row.notes = technician.notes
            row.specialties = list(technician.specialties)
            row.experience = technician.experience
            row.rating = technician.rating
            row.is_active = technician.is_active
            session.flush()
            return _technician(row)

    def get_technician(self, technician_id: int) -> Optional[Technician]:
        with self._session() as session:
            row = session.get(TechnicianRow, technician_id)
            return _technician(row) if row is not None else None

    def list_technicians(self) -> list[Technician]:
        with self._session() as session:
            rows = session.scalars(
                select(TechnicianRow).order_by(TechnicianRow.name, TechnicianRow.id)
            )
            return [_technician(r) for r in rows]

    def list_active_technicians(self) -> list[Technician]:
        with self._session() as session:
            rows = session.scalars(
                select(TechnicianRow)
                .where(TechnicianRow.is_active.is_(True))
                .order_by(TechnicianRow.name, TechnicianRow.id)
            )
            return [_technician(r) for r in rows]

    # ------------------------------------------------------------------ #
    # Services
    # ------------------------------------------------------------------ #

    def insert_service(self, service: Service) -> Service:
        with self._session() as session:
            row = ServiceRow(
                name=service.name,
                description=service.description,
                prices={str(k): v for k, v in service.prices.items()},
                is_active=service.is_active,
            )
            session.add(row)
            session.flush()
            return _service(row)

    def update_service(self, service: Service) -> Service:
        with self._session() as session:
            row = session.get(ServiceRow, service.id)
            if row is None:
                raise NotFoundError("Service", service.id)
            row.name = service.name
            row.description = service.description
            row.prices = {str(k): v for k, v in service.prices.items()}
            row.is_active = service.is_active
            session.flush()
            return _service(row)

    def get_service(self, service_id: int) -> Optional[Service]:
        with self._session() as session:
            row = session.get(ServiceRow, service_id)
            return _service(row) if row is not None else None

    def list_services(self) -> list[Service]:
        with self._session() as session:
            rows = session.scalars(select(ServiceRow).order_by(ServiceRow.name))
            return [_service(r) for r in rows]

    def insert_additional_service(self, service: AdditionalService) -> AdditionalService:
        with self._session() as session:
            row = AdditionalServiceRow(
                name=service.name, price=service.price, is_active=service.is_active
            )
            session.add(row)
            session.flush()
            return _additional_service(row)

    def update_additional_service(self, service: AdditionalService) -> AdditionalService:
        with self._session() as session:
            row = session.get(AdditionalServiceRow, service.id)
            if row is None:
                raise NotFoundError("AdditionalService", service.id)
            row.name = service.name
            row.price = service.price
            row.is_active = service.is_active
            session.flush()
            return _additional_service(row)

    def get_additional_service(self, service_id: int) -> Optional[AdditionalService]:
        with self._session() as session:
            row = session.get(AdditionalServiceRow, service_id)
            return _additional_service(row) if row is not None else None

    def list_additional_services(self) -> list[AdditionalService]:
        with self._session() as session:
            rows = session.scalars(
                select(AdditionalServiceRow).order_by(AdditionalServiceRow.name)
            )
            return [_additional_service(r) for r in rows]

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def insert_booking(self, booking: Booking) -> Booking:
        with self._session() as session:
            row = BookingRow(
                booking_code=booking.booking_code,
                customer_name=booking.customer_name,
                customer_phone=booking.customer_phone,
                customer_notes=booking.customer_notes,
                technician_id=booking.technician_id,
                technician_name=booking.technician_name,
                service_id=booking.service_id,
                service_name=booking.service_name,
                service_price=booking.service_price,
                additional_services=[line.model_dump() for line in booking.additional_services],
                duration=booking.duration,
                booking_date=booking.booking_date,
                start_time=booking.start_time,
                end_time=booking.end_time,
                total_amount=booking.total_amount,
                deposit_amount=booking.deposit_amount,
                is_paid=booking.is_paid,
                status=booking.status.value,
                payment_method=booking.payment_method,
                qr_payload=booking.qr_payload,
                created_at=_to_db_time(booking.created_at),
                updated_at=_to_db_time(booking.updated_at),
            )
            try:
                # Savepoint so a code collision leaves the outer reservation usable
                with session.begin_nested():
                    session.add(row)
                    session.flush()
            except IntegrityError as exc:
                if "booking_code" in str(exc.orig):
                    raise DuplicateBookingCodeError(
                        f"Booking code {booking.booking_code} already exists"
                    ) from exc
                raise
            return _booking(row)

    def update_booking_status(
        self, booking_id: int, status: BookingStatus, fields: Optional[dict[str, Any]] = None
    ) -> Booking:
        with self._session() as session:
            row = session.get(BookingRow, booking_id)
            if row is None:
                raise NotFoundError("Booking", booking_id)
            changes = dict(fields or {})
            changes.setdefault("updated_at", utcnow())
            for key, value in changes.items():
                if not hasattr(BookingRow, key):
                    raise ValueError(f"Unknown booking field: {key}")
                if isinstance(value, datetime):
                    value = _to_db_time(value)
                setattr(row, key, value)
            row.status = BookingStatus(status).value
            session.flush()
            return _booking(row)

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with self._session() as session:
            row = session.get(BookingRow, booking_id)
            return _booking(row) if row is not None else None

    def get_booking_by_code(self, code: str) -> Optional[Booking]:
        with self._session() as session:
            row = session.scalars(
                select(BookingRow).where(BookingRow.booking_code == code)
            ).first()
            return _booking(row) if row is not None else None

    def _query_bookings(self, *criteria) -> list[Booking]:
        with self._session() as session:
            rows = session.scalars(
                select(BookingRow)
                .where(*criteria)
                .order_by(BookingRow.booking_date, BookingRow.start_time, BookingRow.id)
            )
            return [_booking(r) for r in rows]

    def list_bookings(self, day: Optional[date] = None) -> list[Booking]:
        if day is None:
            return self._query_bookings()
        return self._query_bookings(BookingRow.booking_date == day)

    def list_bookings_for_date(self, day: date) -> list[Booking]:
        return self._query_bookings(
            BookingRow.booking_date == day,
            BookingRow.status != BookingStatus.CANCELLED.value,
        )

    def list_bookings_for_technician(self, technician_id: int, day: date) -> list[Booking]:
        return self._query_bookings(
            BookingRow.technician_id == technician_id,
            BookingRow.booking_date == day,
            BookingRow.status != BookingStatus.CANCELLED.value,
        )

    def list_pending_bookings_created_before(self, cutoff: datetime) -> list[Booking]:
        return self._query_bookings(
            BookingRow.status == BookingStatus.PENDING.value,
            BookingRow.created_at <= _to_db_time(cutoff),
        )

    # ------------------------------------------------------------------ #
    # Blocked time slots
    # ------------------------------------------------------------------ #

    def insert_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        with self._session() as session:
            row = BlockedSlotRow(
                technician_id=slot.technician_id,
                block_date=slot.block_date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                reason=slot.reason,
                created_at=_to_db_time(slot.created_at or utcnow()),
            )
            session.add(row)
            session.flush()
            return _blocked_slot(row)

    def get_blocked_slot(self, slot_id: int) -> Optional[BlockedTimeSlot]:
        with self._session() as session:
            row = session.get(BlockedSlotRow, slot_id)
            return _blocked_slot(row) if row is not None else None

    def delete_blocked_slot(self, slot_id: int) -> Optional[BlockedTimeSlot]:
        with self._session() as session:
            row = session.get(BlockedSlotRow, slot_id)
            if row is None:
                return None
            deleted = _blocked_slot(row)
            session.delete(row)
            session.flush()
            return deleted

    def list_blocked_slots(
        self, day: Optional[date] = None, technician_id: Optional[int] = None
    ) -> list[BlockedTimeSlot]:
        query = select(BlockedSlotRow)
        if day is not None:
            query = query.where(BlockedSlotRow.block_date == day)
        if technician_id is not None:
            query = query.where(BlockedSlotRow.technician_id == technician_id)
        query = query.order_by(
            BlockedSlotRow.block_date, BlockedSlotRow.start_time, BlockedSlotRow.id
        )
        with self._session() as session:
            return [_blocked_slot(r) for r in session.scalars(query)]
