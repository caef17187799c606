import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Enum, Time, Uuid, func
from sqlalchemy.orm import relationship
from courtside.db.session import Base
from courtside.scheduling.types import SportType

sport_type_enum = Enum(SportType, name="sport_type")

class Court(Base):
    __tablename__ = "courts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    sport_type = Column(sport_type_enum, nullable=False, index=True)
    # Null hours fall back to the sport type's settings, then the facility defaults
    operating_hours_start = Column(Time, nullable=True)
    operating_hours_end = Column(Time, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bookings = relationship("Booking", back_populates="court")

class CourtTypeSettings(Base):
    __tablename__ = "court_type_settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sport_type = Column(sport_type_enum, unique=True, nullable=False)
    operating_hours_start = Column(Time, nullable=True)
    operating_hours_end = Column(Time, nullable=True)
    operating_days = Column(String(20), nullable=True) # "0,1,2,3,4,5,6", Monday=0
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
