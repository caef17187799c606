import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from courtside.db.session import Base

class MaintenanceWindow(Base):
    __tablename__ = "maintenance_windows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    court_id = Column(Uuid, ForeignKey("courts.id"), nullable=True, index=True) # null with all_courts
    all_courts = Column(Boolean, default=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    reason = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    is_emergency = Column(Boolean, default=False)
    expected_reopening = Column(DateTime(timezone=True), nullable=True)
    reopened_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    affected_bookings = relationship("AffectedBooking", back_populates="maintenance", cascade="all, delete-orphan")

class AffectedBooking(Base):
    __tablename__ = "affected_bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid, ForeignKey("bookings.id"), nullable=False, index=True)
    maintenance_id = Column(Uuid, ForeignKey("maintenance_windows.id"), nullable=False, index=True)
    can_reschedule = Column(Boolean, default=True)
    rescheduled = Column(Boolean, default=False)
    rescheduled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    maintenance = relationship("MaintenanceWindow", back_populates="affected_bookings")
    booking = relationship("Booking")
