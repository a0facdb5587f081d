from decimal import Decimal

import pytest

from exceptions import NotFoundError
from Abandoned_module.Abandoned_model import AbandonedCartItem
from Abandoned_module.abandoned_service import (
    FULL_MESSAGE,
    NONE_MESSAGE,
    PARTIAL_MESSAGE,
    apply_abandoned_discount,
    compute_abandoned_discount,
    get_user_cart,
    has_snapshot,
    snapshot_cart_items,
)
from tests.factories import make_cart, make_product, make_user, make_variant


@pytest.fixture
def abandoned_cart(db):
    user = make_user(db)
    panel = make_product(db, name="Thyroid Panel", price="400.00")
    base = make_product(db, name="Gut Health", price="900.00")
    premium = make_variant(db, base, name="Premium", price="1200.00")
    cart = make_cart(db, user, [(panel, 2), (premium, 1)])
    snapshot_cart_items(db, cart, Decimal("10"))
    db.commit()
    return user, cart


def test_snapshot_freezes_every_line(db, abandoned_cart):
    user, cart = abandoned_cart
    rows = db.query(AbandonedCartItem).filter(AbandonedCartItem.cart_id == cart.id).all()

    assert has_snapshot(db, cart.id)
    assert len(rows) == 2
    assert {(r.product_id is None, r.variant_id is None, r.quantity) for r in rows} == {(False, True, 2), (True, False, 1)}
    assert all(r.user_id == user.id and r.discount == Decimal("10") for r in rows)


def test_unchanged_cart_gets_full_discount(db, abandoned_cart):
    _, cart = abandoned_cart

    result = compute_abandoned_discount(db, cart)

    assert result.unmatched_items == []
    assert [i["name"] for i in result.discounted_items] == ["Thyroid Panel", "Gut Health (Premium)"]
    # 10% of 800 + 10% of 1200
    assert result.total_discount == Decimal("200.00")
    assert result.message == FULL_MESSAGE


def test_changed_quantity_is_reported_unmatched(db, abandoned_cart):
    _, cart = abandoned_cart
    panel_line = next(i for i in cart.items if i.product_id is not None)
    panel_line.quantity = 3
    db.commit()

    result = compute_abandoned_discount(db, cart)

    assert result.unmatched_items == [{"name": "Thyroid Panel", "quantity": 3}]
    assert [i["name"] for i in result.discounted_items] == ["Gut Health (Premium)"]
    assert result.total_discount == Decimal("120.00")
    assert result.message == PARTIAL_MESSAGE


def test_cart_without_snapshot_has_no_discount(db):
    user = make_user(db)
    cart = make_cart(db, user, [(make_product(db), 1)])

    result = compute_abandoned_discount(db, cart)

    assert result.total_discount == Decimal("0")
    assert len(result.unmatched_items) == 1
    assert result.message == NONE_MESSAGE


def test_apply_discount_caches_total_on_cart(db, abandoned_cart):
    _, cart = abandoned_cart

    apply_abandoned_discount(db, cart)

    db.refresh(cart)
    assert cart.discounted_abandoned_total == Decimal("200.00")


def test_apply_discount_without_snapshot_is_rejected(db):
    cart = make_cart(db, make_user(db), [(make_product(db), 1)])

    with pytest.raises(NotFoundError, match="No abandoned cart items found"):
        apply_abandoned_discount(db, cart)

    db.refresh(cart)
    assert cart.discounted_abandoned_total is None


def test_get_user_cart_hides_other_users_carts(db, abandoned_cart):
    _, cart = abandoned_cart
    with pytest.raises(NotFoundError):
        get_user_cart(db, cart.id, make_user(db).id)
