import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import relationship
from courtside.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    court_id = Column(Uuid, ForeignKey("courts.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True) # null for special bookings without a reference user
    booking_number = Column(String(20), unique=True, nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), default="pending_payment", index=True) # pending_payment, paid, cancelled
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    payment_ref = Column(String(100), nullable=True)
    payment_gateway = Column(String(30), nullable=True)
    processed_by = Column(Uuid, ForeignKey("users.id"), nullable=True) # operator who took a cash payment
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Special bookings (tournaments, classes, events)
    is_special = Column(Boolean, default=False)
    title = Column(String(150), nullable=True)
    description = Column(Text, nullable=True)
    event_type = Column(String(30), nullable=True)
    recurrence_tag = Column(Uuid, nullable=True, index=True)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    court = relationship("Court", back_populates="bookings")
    claims = relationship("SlotClaim", back_populates="booking", cascade="all, delete-orphan")

class SlotClaim(Base):
    """One row per hour a live booking holds; the unique key is the double-booking guard."""
    __tablename__ = "slot_claims"
    __table_args__ = (UniqueConstraint("court_id", "slot_start", name="uq_slot_claims_court_slot"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    court_id = Column(Uuid, ForeignKey("courts.id"), nullable=False)
    slot_start = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True) # copied from a pending booking

    booking = relationship("Booking", back_populates="claims")
