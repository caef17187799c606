import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Uuid, func
from courtside.db.session import Base

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(150), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(30), nullable=False) # booking_paid, booking_cancelled, booking_transferred, court_closed
    reference_id = Column(Uuid, nullable=True)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
