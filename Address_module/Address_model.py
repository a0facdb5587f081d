from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    full_name = Column(String(150), nullable=False)
    phone = Column(String(20), nullable=True)
    address_line = Column(String(255), nullable=False)
    landmark = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False, index=True)  # Pincode - drives tax jurisdiction
    country = Column(String(100), nullable=False, default="India")

    created_at = Column(DateTime(timezone=True), default=now_ist)
    updated_at = Column(DateTime(timezone=True), default=now_ist, onupdate=now_ist)

    def as_snapshot(self) -> str:
        """Single-line address stored on orders; later edits do not change placed orders."""
        parts = [
            self.full_name,
            self.phone,
            self.address_line,
            self.landmark,
            self.city,
            self.state,
            self.postal_code,
            self.country,
        ]
        return ", ".join(str(p).strip() for p in parts if p and str(p).strip())


class Pincode(Base):
    """
    Serviceable pincodes. A pincode that is missing or inactive here
    cannot be delivered to, and therefore cannot be priced.
    """
    __tablename__ = "pincodes"

    id = Column(Integer, primary_key=True, index=True)
    zipcode = Column(String(10), unique=True, nullable=False, index=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    estimated_delivery_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
