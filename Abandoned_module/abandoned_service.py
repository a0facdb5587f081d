"""
Abandoned-cart discount: compares the live cart with the snapshot frozen
when the cart was flagged abandoned. Only unchanged lines keep the discount.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from exceptions import NotFoundError
from Cart_module.Cart_model import Cart
from Tax_module.money_utils import D, ZERO, round_money, percent_of
from .Abandoned_model import AbandonedCartItem

logger = logging.getLogger(__name__)

PARTIAL_MESSAGE = "Partial discount applied. Some items do not qualify."
FULL_MESSAGE = "Discount applied successfully."
NONE_MESSAGE = "No items in the cart qualify for the abandoned-cart discount."


@dataclass
class AbandonedDiscount:
    cart_id: int
    total_discount: Decimal = ZERO
    discounted_items: List[dict] = field(default_factory=list)
    unmatched_items: List[dict] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.discounted_items:
            return NONE_MESSAGE
        if self.unmatched_items:
            return PARTIAL_MESSAGE
        return FULL_MESSAGE

    def as_dict(self) -> dict:
        return {
            "cart_id": self.cart_id,
            "total_discount": self.total_discount,
            "discounted_items": self.discounted_items,
            "unmatched_items": self.unmatched_items,
        }


def get_user_cart(db: Session, cart_id: int, user_id: int) -> Cart:
    cart = db.query(Cart).filter(Cart.id == cart_id, Cart.user_id == user_id).first()
    if not cart:
        raise NotFoundError("Cart not found")
    return cart


def has_snapshot(db: Session, cart_id: int) -> bool:
    return db.query(AbandonedCartItem.id).filter(AbandonedCartItem.cart_id == cart_id).first() is not None


def snapshot_cart_items(db: Session, cart: Cart, discount_percent) -> List[AbandonedCartItem]:
    """Freeze the cart's current lines with the tier discount. Does not commit."""
    rows = [
        AbandonedCartItem(
            cart_id=cart.id,
            user_id=cart.user_id,
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=item.quantity,
            discount=D(discount_percent),
        )
        for item in cart.items
    ]
    db.add_all(rows)
    db.flush()
    logger.info(f"Snapshotted {len(rows)} item(s) of abandoned cart {cart.id}")
    return rows


def compute_abandoned_discount(db: Session, cart: Cart) -> AbandonedDiscount:
    """
    A line is discounted when product, variant and quantity all equal a
    snapshot line; each snapshot line matches at most one cart line.
    """
    snapshot = db.query(AbandonedCartItem).filter(
        AbandonedCartItem.cart_id == cart.id
    ).order_by(AbandonedCartItem.id.asc()).all()

    result = AbandonedDiscount(cart_id=cart.id)
    used_snapshot_ids = set()

    for item in cart.items:
        match = next(
            (
                s for s in snapshot
                if s.id not in used_snapshot_ids
                and s.product_id == item.product_id
                and s.variant_id == item.variant_id
                and s.quantity == item.quantity
            ),
            None,
        )
        price = item.unit_price
        if match is None or price is None:
            result.unmatched_items.append({
                "name": item.display_name,
                "quantity": item.quantity,
            })
            continue

        used_snapshot_ids.add(match.id)
        price = round_money(price)
        discount_amount = percent_of(price * item.quantity, match.discount)
        result.discounted_items.append({
            "name": item.display_name,
            "quantity": item.quantity,
            "price": price,
            "discount_percent": D(match.discount),
            "discount_amount": discount_amount,
        })
        result.total_discount += discount_amount

    result.total_discount = round_money(result.total_discount)
    return result


def apply_abandoned_discount(db: Session, cart: Cart) -> AbandonedDiscount:
    """Compute the discount and cache it on the cart. Needs a reminder snapshot."""
    if not has_snapshot(db, cart.id):
        raise NotFoundError("No abandoned cart items found")
    result = compute_abandoned_discount(db, cart)
    cart.discounted_abandoned_total = result.total_discount
    db.commit()
    logger.info(f"Abandoned discount {result.total_discount} applied to cart {cart.id}")
    return result
