from sqlalchemy import Column, DateTime, String

from energy_monitor.core.timeutils import utcnow

from . import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(255), primary_key=True)  # user id supplied by the auth gateway
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
