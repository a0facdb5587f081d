from datetime import date, datetime
from decimal import Decimal

import pytest

from config import settings
from exceptions import ConfigurationError, ConflictError, ExternalServiceError, NotFoundError, ValidationError
from Cart_module.Coupon_model import CouponCode, CouponRedemption
from Cart_module.coupon_service import redeem_coupon
from Abandoned_module.abandoned_service import snapshot_cart_items
from Notification_module import Notification_crud
from Notification_module.Notification_model import Notification
from Login_module.Utils.datetime_utils import IST
from Orders_module import Order_crud
from Orders_module.Order_crud import (
    confirm_payment,
    create_order,
    list_orders_for_admin,
    list_user_orders,
    update_order_status,
)
from Orders_module.Order_model import Order, OrderStatus, OrderStatusHistory, Payment, PaymentStatus
from Orders_module.Order_schema import CatalogRef
from Tax_module.Tax_model import CompanySettings
from tests.factories import (
    make_address,
    make_cart,
    make_coupon,
    make_pincode,
    make_product,
    make_tax_config,
    make_user,
    make_variant,
)


@pytest.fixture
def checkout(db):
    """A Maharashtra merchant and a customer shipping to Karnataka."""
    make_tax_config(db, home_state="Maharashtra")
    make_pincode(db, "560001", "Karnataka")
    make_pincode(db, "400001", "Maharashtra", city="Mumbai")
    user = make_user(db, name="Meera")
    product = make_product(db, name="Vitamin Panel", price="500.00")
    return {
        "user": user,
        "product": product,
        "address": make_address(db, user, "560001", "Karnataka"),
        "local_address": make_address(db, user, "400001", "Maharashtra", city="Mumbai"),
    }


@pytest.fixture
def emails(monkeypatch):
    sent = []

    def fake_send(to_email, name, order_number, final_amount):
        sent.append((to_email, order_number, final_amount))
        return True

    monkeypatch.setattr(Order_crud, "send_order_confirmation_email", fake_send)
    return sent


def _items(product, quantity=2):
    return [{"product_id": product.id, "quantity": quantity}]


def _counts(db):
    return db.query(Order).count(), db.query(Payment).count()


def test_catalog_ref_is_exactly_one_of_product_or_variant():
    assert CatalogRef.from_ids(4, None).product_id == 4
    assert CatalogRef.from_ids(None, 9).variant_id == 9
    with pytest.raises(ValueError):
        CatalogRef.from_ids(4, 9)
    with pytest.raises(ValueError):
        CatalogRef.from_ids(None, None)


def test_inter_state_order_is_priced_and_persisted(db, checkout, emails):
    user = checkout["user"]

    order = create_order(db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "COD")

    assert order.status == OrderStatus.PENDING
    assert order.tax_type.value == "IGST"
    assert order.applied_tax_rate == Decimal("18")
    assert order.subtotal == Decimal("1000.00")
    assert order.tax_amount == Decimal("180.00")
    assert order.total_before_discount == Decimal("1180.00")
    assert order.discount_amount == Decimal("0")
    assert order.final_amount == Decimal("1180.00")
    assert order.is_tax_inclusive is False
    assert order.billing_address == order.shipping_address
    assert "560001" in order.shipping_address

    assert order.payment.status == PaymentStatus.PENDING
    assert order.payment.amount == Decimal("1180.00")
    assert [(i.product_id, i.quantity, i.price) for i in order.items] == [(checkout["product"].id, 2, Decimal("500.00"))]
    assert [h.status for h in order.status_history] == [OrderStatus.PENDING]

    assert emails == [(user.email, order.order_number, order.final_amount)]
    assert db.query(Notification).filter(Notification.user_id == user.id, Notification.type == "ORDER").count() == 1


def test_intra_state_inclusive_order(db, checkout, emails):
    db.query(CompanySettings).update({CompanySettings.is_tax_inclusive: True})
    db.commit()

    order = create_order(
        db, checkout["user"].id, _items(checkout["product"]), checkout["local_address"].id, "1180", "COD"
    )

    assert order.tax_type.value == "CGST+SGST"
    assert order.is_tax_inclusive is True
    assert order.subtotal == Decimal("1000.00")
    assert order.tax_amount == Decimal("180.00")
    assert order.total_before_discount == Decimal("1180.00")


def test_order_with_variant_line(db, checkout, emails):
    variant = make_variant(db, checkout["product"], name="Plus", price="820.00")

    order = create_order(
        db, checkout["user"].id, [{"variant_id": variant.id, "quantity": 1}], checkout["address"].id, "820", "COD"
    )

    assert order.items[0].variant_id == variant.id
    assert order.items[0].product_id is None
    assert order.items[0].price == Decimal("820.00")


@pytest.mark.parametrize("items,subtotal,error", [
    ([{"product_id": 1, "variant_id": 1, "quantity": 1}], "100", ValidationError),
    ([{"quantity": 1}], "100", ValidationError),
    ([{"product_id": 1, "quantity": 0}], "100", ValidationError),
    ([], "100", ValidationError),
    ([{"product_id": 9999, "quantity": 1}], "100", NotFoundError),
    (None, "abc", ValidationError),
    (None, "-10", ValidationError),
])
def test_rejected_checkout_writes_nothing(db, checkout, emails, items, subtotal, error):
    if items is None:
        items = _items(checkout["product"])

    with pytest.raises(error):
        create_order(db, checkout["user"].id, items, checkout["address"].id, subtotal, "COD")

    assert _counts(db) == (0, 0)
    assert emails == []


def test_unknown_or_foreign_address_is_rejected(db, checkout, emails):
    stranger = make_user(db)
    foreign = make_address(db, stranger)
    for address_id in (424242, foreign.id):
        with pytest.raises(NotFoundError, match="Address not found"):
            create_order(db, checkout["user"].id, _items(checkout["product"]), address_id, "1000", "COD")
    assert _counts(db) == (0, 0)


def test_unserviceable_pincode_is_rejected(db, checkout, emails):
    address = make_address(db, checkout["user"], "999999", "Nowhere")
    with pytest.raises(NotFoundError, match="Pincode not serviceable"):
        create_order(db, checkout["user"].id, _items(checkout["product"]), address.id, "1000", "COD")
    assert _counts(db) == (0, 0)


def test_unknown_payment_method_is_rejected(db, checkout, emails):
    with pytest.raises(ValidationError):
        create_order(db, checkout["user"].id, _items(checkout["product"]), checkout["address"].id, "1000", "CHEQUE")
    assert _counts(db) == (0, 0)


def test_missing_tax_rates_are_a_configuration_error(db, emails):
    make_tax_config(db, igst=None)
    make_pincode(db, "560001", "Karnataka")
    user = make_user(db)
    address = make_address(db, user)
    product = make_product(db)

    with pytest.raises(ConfigurationError):
        create_order(db, user.id, _items(product), address.id, "1000", "COD")
    assert _counts(db) == (0, 0)


def test_redeemed_coupon_is_applied_and_settled(db, checkout, emails):
    user = checkout["user"]
    cart = make_cart(db, user, [(checkout["product"], 2)])
    coupon = make_coupon(db, code="WELCOME10", discount="10", show_on_homepage=True)
    redeem_coupon(db, user.id, "WELCOME10", cart.id)

    order = create_order(
        db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "COD",
        discount_code="welcome10", cart_id=cart.id,
    )

    assert order.discount_code == "WELCOME10"
    assert order.total_before_discount == Decimal("1180.00")
    assert order.discount_amount == Decimal("118.00")
    assert order.final_amount == Decimal("1062.00")
    assert order.cart_id == cart.id

    db.refresh(coupon)
    assert coupon.redeem_count == 1
    assert coupon.show_on_homepage is False
    assert db.query(CouponRedemption).one().order_id == order.id


def test_settled_coupon_cannot_discount_a_second_order(db, checkout, emails):
    user = checkout["user"]
    cart = make_cart(db, user, [(checkout["product"], 2)])
    make_coupon(db, code="ONCE")
    redeem_coupon(db, user.id, "ONCE", cart.id)
    create_order(
        db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "COD",
        discount_code="ONCE", cart_id=cart.id,
    )

    with pytest.raises(ConflictError):
        create_order(
            db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "COD",
            discount_code="ONCE", cart_id=cart.id,
        )
    assert _counts(db) == (1, 1)
    assert db.query(CouponCode).filter(CouponCode.code == "ONCE").one().redeem_count == 1


def test_coupon_must_be_redeemed_on_the_cart_first(db, checkout, emails):
    user = checkout["user"]
    cart = make_cart(db, user)
    make_coupon(db, code="NOTYET")

    with pytest.raises(ValidationError, match="not been redeemed"):
        create_order(
            db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "COD",
            discount_code="NOTYET", cart_id=cart.id,
        )
    with pytest.raises(ValidationError):
        create_order(
            db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "COD",
            discount_code="NOTYET",
        )
    assert _counts(db) == (0, 0)


def test_huge_discount_clamps_final_amount(db, checkout, emails):
    user = checkout["user"]
    cart = make_cart(db, user)
    make_coupon(db, code="FREE", discount="100")
    redeem_coupon(db, user.id, "FREE", cart.id)

    order = create_order(
        db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "RAZORPAY",
        discount_code="FREE", cart_id=cart.id,
        payment_gateway=lambda amount, receipt: pytest.fail("a free order needs no gateway order"),
    )

    assert order.final_amount == Decimal("0.00")
    assert order.payment.gateway_order_id is None


def test_reminder_coupon_discounts_only_matching_lines(db, checkout, emails):
    user = checkout["user"]
    other = make_product(db, name="Iron Panel", price="300.00")
    cart = make_cart(db, user, [(checkout["product"], 2), (other, 1)])
    snapshot_cart_items(db, cart, Decimal("20"))
    db.commit()
    line = next(i for i in cart.items if i.product_id == other.id)
    line.quantity = 2
    db.commit()
    make_coupon(db, code=f"ABND-{cart.id}", name=settings.ABANDONED_COUPON_NAME, discount="20", user_id=user.id)
    redeem_coupon(db, user.id, f"ABND-{cart.id}", cart.id)

    order = create_order(
        db, user.id, [{"product_id": checkout["product"].id, "quantity": 2}, {"product_id": other.id, "quantity": 2}],
        checkout["address"].id, "1600", "COD", discount_code=f"ABND-{cart.id}", cart_id=cart.id,
    )

    # 20% of the unchanged 2 x 500 line only
    assert order.discount_amount == Decimal("200.00")


def test_gateway_order_is_recorded_for_online_payment(db, checkout, emails):
    calls = []

    def gateway(amount, receipt):
        calls.append((amount, receipt))
        return {"id": "order_RZP123"}

    order = create_order(
        db, checkout["user"].id, _items(checkout["product"]), checkout["address"].id, "1000", "razorpay",
        payment_gateway=gateway,
    )

    assert calls == [(Decimal("1180.00"), order.order_number)]
    assert order.payment.gateway_order_id == "order_RZP123"


def test_gateway_failure_writes_nothing(db, checkout, emails):
    def gateway(amount, receipt):
        raise ExternalServiceError("Failed to create Razorpay order: timeout")

    with pytest.raises(ExternalServiceError):
        create_order(
            db, checkout["user"].id, _items(checkout["product"]), checkout["address"].id, "1000", "RAZORPAY",
            payment_gateway=gateway,
        )
    assert _counts(db) == (0, 0)


def test_failing_collaborators_do_not_undo_the_order(db, checkout, monkeypatch):
    def email_down(*args, **kwargs):
        raise ExternalServiceError("Email delivery failed: timeout")

    def notifications_down(*args, **kwargs):
        raise RuntimeError("notifications table locked")

    monkeypatch.setattr(Order_crud, "send_order_confirmation_email", email_down)
    monkeypatch.setattr(Notification_crud, "create_notification", notifications_down)

    order = create_order(db, checkout["user"].id, _items(checkout["product"]), checkout["address"].id, "1000", "COD")

    assert order.id is not None
    assert _counts(db) == (1, 1)
    assert db.query(Notification).count() == 0


def test_payment_confirmation_is_idempotent(db, checkout, emails):
    order = create_order(
        db, checkout["user"].id, _items(checkout["product"]), checkout["address"].id, "1000", "RAZORPAY",
        payment_gateway=lambda amount, receipt: {"id": "order_ABC"},
    )

    first = confirm_payment(db, "order_ABC", transaction_id="pay_1")
    second = confirm_payment(db, "order_ABC", transaction_id="pay_2")

    assert first.status == second.status == OrderStatus.CONFIRMED
    db.refresh(order.payment)
    assert order.payment.status == PaymentStatus.SUCCESS
    assert order.payment.transaction_id == "pay_1"
    confirmations = db.query(OrderStatusHistory).filter(
        OrderStatusHistory.order_id == order.id,
        OrderStatusHistory.status == OrderStatus.CONFIRMED
    ).count()
    assert confirmations == 1


def test_confirming_unknown_gateway_order_is_not_found(db):
    with pytest.raises(NotFoundError):
        confirm_payment(db, "order_missing")


def test_admin_status_update_records_history_and_notifies(db, checkout, emails):
    order = create_order(db, checkout["user"].id, _items(checkout["product"]), checkout["address"].id, "1000", "COD")

    updated = update_order_status(db, order.id, "shipped", changed_by="admin-1", notes="Dispatched")

    assert updated.status == OrderStatus.SHIPPED
    last = updated.status_history[-1]
    assert (last.previous_status, last.status, last.changed_by, last.notes) == (
        OrderStatus.PENDING, OrderStatus.SHIPPED, "admin-1", "Dispatched"
    )
    messages = [n.message for n in db.query(Notification).filter(Notification.user_id == order.user_id).all()]
    assert f"Your order #{order.order_number} status has been updated to SHIPPED." in messages

    with pytest.raises(ValidationError):
        update_order_status(db, order.id, "LOST", changed_by="admin-1")


def test_list_user_orders_paginates(db, checkout, emails):
    user = checkout["user"]
    for _ in range(3):
        create_order(db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "COD")

    page, total = list_user_orders(db, user.id, page=1, page_size=2)
    assert total == 3
    assert len(page) == 2
    assert list_user_orders(db, make_user(db).id)[1] == 0


def test_order_total_beyond_column_range_writes_nothing(db, checkout, emails):
    # 18% IGST pushes the largest storable subtotal past the column range
    with pytest.raises(ValidationError, match="Order total cannot exceed"):
        create_order(
            db, checkout["user"].id, _items(checkout["product"]), checkout["address"].id, "9999999999.99", "COD"
        )
    assert _counts(db) == (0, 0)


def test_deactivated_coupon_cannot_discount_an_order(db, checkout, emails):
    user = checkout["user"]
    cart = make_cart(db, user, [(checkout["product"], 2)])
    coupon = make_coupon(db, code="PAUSED")
    redeem_coupon(db, user.id, "PAUSED", cart.id)
    coupon.is_active = False
    db.commit()

    with pytest.raises(ValidationError, match="no longer active"):
        create_order(
            db, user.id, _items(checkout["product"]), checkout["address"].id, "1000", "COD",
            discount_code="PAUSED", cart_id=cart.id,
        )

    assert _counts(db) == (0, 0)
    db.refresh(coupon)
    assert coupon.redeem_count == 0
    assert db.query(CouponRedemption).one().order_id is None


@pytest.fixture
def admin_orders(db, checkout, emails):
    """Four orders placed on 1, 2, 3 and 4 March; the last by another customer."""
    other = make_user(db, name="Ravi")
    other_address = make_address(db, other, "560001", "Karnataka")
    placed = []
    for _ in range(3):
        placed.append(create_order(db, checkout["user"].id, _items(checkout["product"]), checkout["address"].id, "1000", "COD"))
    placed.append(create_order(db, other.id, _items(checkout["product"]), other_address.id, "1000", "COD"))
    for day, order in enumerate(placed, start=1):
        order.created_at = datetime(2026, 3, day, 23, 30, tzinfo=IST)
    update_order_status(db, placed[1].id, "SHIPPED", changed_by="admin-1")
    db.commit()
    return {"orders": placed, "customer": checkout["user"], "other": other}


def test_admin_list_filters_by_customer_and_status(db, admin_orders):
    customer = admin_orders["customer"]

    orders, total = list_orders_for_admin(db, customer_id=customer.id)
    assert total == 3
    assert {o.user_id for o in orders} == {customer.id}

    shipped, total = list_orders_for_admin(db, status="shipped")
    assert total == 1
    assert shipped[0].id == admin_orders["orders"][1].id

    with pytest.raises(ValidationError):
        list_orders_for_admin(db, status="LOST")


def test_admin_list_date_range_includes_both_end_days(db, admin_orders):
    placed = admin_orders["orders"]

    orders, total = list_orders_for_admin(db, start_date=date(2026, 3, 2), end_date=date(2026, 3, 3))

    assert total == 2
    assert [o.id for o in orders] == [placed[2].id, placed[1].id]
    assert list_orders_for_admin(db, start_date=date(2026, 3, 4))[1] == 1
    assert list_orders_for_admin(db, end_date=date(2026, 2, 28))[1] == 0


def test_admin_list_ordering_and_pagination(db, admin_orders):
    placed = admin_orders["orders"]

    newest_first, total = list_orders_for_admin(db, page=1, page_size=3)
    assert total == 4
    assert [o.id for o in newest_first] == [placed[3].id, placed[2].id, placed[1].id]

    oldest_first, _ = list_orders_for_admin(db, ordering="ASC", page=2, page_size=3)
    assert [o.id for o in oldest_first] == [placed[3].id]


def test_admin_list_rejects_bad_ordering_and_inverted_range(db, admin_orders):
    with pytest.raises(ValidationError, match="ordering"):
        list_orders_for_admin(db, ordering="random")
    with pytest.raises(ValidationError, match="start_date"):
        list_orders_for_admin(db, start_date=date(2026, 3, 4), end_date=date(2026, 3, 1))
