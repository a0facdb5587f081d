"""Initial database schema

Revision ID: 001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

Tags: schema, initial
"""
from typing import Sequence, Union
import logging

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

logger = logging.getLogger(__name__)


def _import_models():
    import sys
    from pathlib import Path
    BASE_DIR = Path(__file__).resolve().parent.parent.parent
    if str(BASE_DIR) not in sys.path:
        sys.path.insert(0, str(BASE_DIR))

    from database import Base
    # Registers every table with Base.metadata
    from Login_module.User.user_model import User
    from Address_module.Address_model import Address, Pincode
    from Product_module.Product_model import Product, Variant
    from Tax_module.Tax_model import CompanySettings, TaxRate, ShippingRate
    from Cart_module.Cart_model import Cart, CartItem
    from Cart_module.Coupon_model import CouponCode, CouponRedemption
    from Orders_module.Order_model import Order, OrderItem, OrderStatusHistory, Payment
    from Notification_module.Notification_model import Notification, UserDeviceToken
    from Abandoned_module.Abandoned_model import AbandonedCartSetting, AbandonedCartItem
    return Base


def upgrade() -> None:
    """
    Create every table that does not exist yet.
    """
    from sqlalchemy import inspect

    Base = _import_models()
    connection = op.get_bind()
    existing_tables_before = set(inspect(connection).get_table_names())

    Base.metadata.create_all(bind=connection, checkfirst=True)

    existing_tables_after = set(inspect(connection).get_table_names())
    created_tables = existing_tables_after - existing_tables_before
    if created_tables:
        logger.info(f"Created {len(created_tables)} base tables: {', '.join(sorted(created_tables))}")
    else:
        logger.info(f"All base tables already exist ({len(existing_tables_before)} tables found).")


def downgrade() -> None:
    """Drop every table created by upgrade."""
    Base = _import_models()
    Base.metadata.drop_all(bind=op.get_bind(), checkfirst=True)
