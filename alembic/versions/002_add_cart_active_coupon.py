"""add active_coupon_id to carts table

Revision ID: 002_add_cart_active_coupon
Revises: 001_initial
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "002_add_cart_active_coupon"
down_revision = "001_initial"
branch_labels = None
depends_on = None


def upgrade():
    # Fresh databases already get the column from 001's create_all
    connection = op.get_bind()
    inspector = sa.inspect(connection)
    cart_columns = {col['name'] for col in inspector.get_columns('carts')}

    if 'active_coupon_id' not in cart_columns:
        op.add_column('carts', sa.Column('active_coupon_id', sa.Integer(), nullable=True))


def downgrade():
    op.drop_column('carts', 'active_coupon_id')
