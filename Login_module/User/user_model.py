from sqlalchemy import Column, Integer, String, DateTime, Boolean
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    mobile = Column(String(20), unique=True, nullable=True, index=True)
    role = Column(String(20), nullable=False, default="USER")  # USER or ADMIN
    is_guest = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, default=True)
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=now_ist)
