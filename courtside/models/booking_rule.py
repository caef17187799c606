import uuid
from sqlalchemy import Column, Boolean, DateTime, Integer, ForeignKey, Uuid, func
from courtside.db.session import Base
from courtside.models.court import sport_type_enum

class BookingRule(Base):
    __tablename__ = "booking_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sport_type = Column(sport_type_enum, unique=True, nullable=False)
    min_advance_notice_minutes = Column(Integer, nullable=False, default=120)
    max_days_ahead = Column(Integer, nullable=False, default=7)
    max_active_bookings_per_user = Column(Integer, nullable=False, default=4)
    allow_consecutive_bookings = Column(Boolean, nullable=False, default=True)
    min_gap_minutes = Column(Integer, nullable=False, default=0)
    allow_cancellation = Column(Boolean, nullable=False, default=True)
    min_cancellation_minutes = Column(Integer, nullable=False, default=0)
    allow_rescheduling = Column(Boolean, nullable=False, default=True)
    min_rescheduling_minutes = Column(Integer, nullable=False, default=0)
    updated_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
