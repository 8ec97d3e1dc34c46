"""
Relational schema for the SQL store.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from spa_scheduler.store.database import Base


class TechnicianRow(Base):
    """Technicians are deactivated, never deleted, so bookings keep their reference."""

    __tablename__ = "technicians"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    birth_year = Column(Integer, nullable=True)
    avatar = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    specialties = Column(JSON, nullable=False, default=list)
    experience = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=True)


class ServiceRow(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # {"60": 300000, "90": 450000}; JSON object keys are strings
    prices = Column(JSON, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class AdditionalServiceRow(Base):
    __tablename__ = "additional_services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class BookingRow(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_code = Column(String(32), unique=True, nullable=False, index=True)

    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(32), nullable=False)
    customer_notes = Column(Text, nullable=True)

    # Snapshots keep history readable after catalog edits
    technician_id = Column(Integer, ForeignKey("technicians.id"), nullable=True)
    technician_name = Column(String(255), nullable=False, default="")
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    service_name = Column(String(255), nullable=False, default="")
    service_price = Column(Integer, nullable=False, default=0)
    additional_services = Column(JSON, nullable=False, default=list)

    duration = Column(Integer, nullable=False)
    booking_date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)

    total_amount = Column(Integer, nullable=False)
    deposit_amount = Column(Integer, nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)

    # pending -> confirmed | cancelled
    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_method = Column(String(50), nullable=True)
    qr_payload = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_bookings_technician_date", "technician_id", "booking_date"),)


class BlockedSlotRow(Base):
    __tablename__ = "blocked_time_slots"

    id = Column(Integer, primary_key=True, index=True)
    technician_id = Column(Integer, ForeignKey("technicians.id"), nullable=False)
    block_date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_blocked_technician_date", "technician_id", "block_date"),)
