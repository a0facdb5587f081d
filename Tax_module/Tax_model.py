"""
Merchant tax and shipping configuration.
Read-only to the pricing code; maintained by operators.
"""
from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class CompanySettings(Base):
    """Singleton row: the merchant's home state and pricing mode."""
    __tablename__ = "company_settings"

    id = Column(Integer, primary_key=True, index=True)
    company_name = Column(String(200), nullable=True)
    state = Column(String(100), nullable=False)  # Home state - decides intra vs inter-state
    is_tax_inclusive = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), default=now_ist, onupdate=now_ist)


class TaxRate(Base):
    """
    Named tax component, e.g. CGST 9, SGST 9 (intra-state) and IGST 18 (inter-state).
    """
    __tablename__ = "tax_rates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, index=True)
    percentage = Column(Numeric(5, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)


class ShippingRate(Base):
    __tablename__ = "shipping_rates"

    id = Column(Integer, primary_key=True, index=True)
    state = Column(String(100), nullable=False, index=True)
    intra_state_rate = Column(Numeric(12, 2), nullable=False, default=0)
    inter_state_rate = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
