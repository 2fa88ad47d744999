from datetime import datetime
from decimal import Decimal

import pytest

from storefront.core.errors import InvalidStatus, InvalidTransition, NotFound, ValidationFailed
from storefront.db.models import Order
from storefront.schemas import FrozenLine, ProductUpdate
from storefront.store.order_store import OrderStore
from tests.conftest import CUSTOMER_ID, OTHER_CUSTOMER_ID


@pytest.fixture()
def place(orders, seeded):
    def _place(user_id=CUSTOMER_ID, widget=2, gizmo=1):
        lines = []
        if widget:
            lines.append(FrozenLine(product_id=seeded["widget"], quantity=widget, unit_price_cents=1000))
        if gizmo:
            lines.append(FrozenLine(product_id=seeded["gizmo"], quantity=gizmo, unit_price_cents=550))
        return orders.create(user_id, lines, "1 Main St", "card")
    return _place


class TestCreate:
    def test_total_is_sum_of_frozen_lines(self, place):
        order = place()
        assert order.total_cents == 2550
        assert order.total_amount == Decimal("25.50")
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.item_count == 2
        assert [i.product_name for i in order.items] == ["Widget", "Gizmo"]

    def test_accepts_plain_dict_lines(self, orders, seeded):
        order = orders.create(
            CUSTOMER_ID, [{"product_id": seeded["widget"], "quantity": 1, "unit_price_cents": 990}], "addr", "cash"
        )
        assert order.total_cents == 990

    def test_price_change_does_not_touch_existing_orders(self, place, orders, catalog, seeded):
        order = place()
        catalog.update_product(seeded["widget"], ProductUpdate(price_cents=5000))
        again = orders.get(order.id)
        assert again.total_cents == 2550
        assert again.items[0].unit_price == Decimal("10.00")


class TestQueries:
    def test_find_by_id_missing(self, orders, seeded):
        assert orders.find_by_id(9999) is None
        with pytest.raises(NotFound):
            orders.get(9999)

    def test_is_owner(self, place, orders):
        order = place()
        assert orders.is_owner(order.id, CUSTOMER_ID)
        assert not orders.is_owner(order.id, OTHER_CUSTOMER_ID)

    def test_find_by_user_pages_newest_first(self, place, orders):
        first = place()
        second = place(widget=1, gizmo=0)
        place(user_id=OTHER_CUSTOMER_ID)

        page = orders.find_by_user(CUSTOMER_ID)
        assert [o.id for o in page.orders] == [second.id, first.id]
        assert page.pagination.total == 2

    def test_find_all_filters(self, place, orders):
        place()
        cancelled = place(user_id=OTHER_CUSTOMER_ID)
        orders.cancel(cancelled.id)

        assert orders.find_all().pagination.total == 2
        assert [o.id for o in orders.find_all(status="cancelled").orders] == [cancelled.id]
        assert orders.find_all(user_id=OTHER_CUSTOMER_ID).pagination.total == 1
        assert orders.find_all(payment_status="paid").pagination.total == 0

    def test_get_recent(self, place, orders):
        for _ in range(3):
            place()
        assert len(orders.get_recent(limit=2)) == 2


class TestStatus:
    def test_update_status(self, place, orders, producer):
        order = place()
        updated = orders.update_status(order.id, "shipped", notes="Tracking 42")
        assert updated.status == "shipped"
        assert updated.notes == "Tracking 42"
        assert producer.types()[-1] == "order.status_changed"

    def test_unknown_status(self, place, orders):
        order = place()
        with pytest.raises(InvalidStatus):
            orders.update_status(order.id, "lost")

    def test_status_update_is_permissive_by_default(self, place, orders):
        order = place()
        orders.update_status(order.id, "delivered")
        assert orders.update_status(order.id, "pending").status == "pending"

    def test_strict_transitions(self, db, producer, place):
        strict = OrderStore(db, producer, strict_transitions=True)
        order = place()
        strict.update_status(order.id, "delivered")
        with pytest.raises(InvalidTransition):
            strict.update_status(order.id, "pending")

    def test_update_missing_order(self, orders, seeded):
        with pytest.raises(NotFound):
            orders.update_status(9999, "shipped")

    def test_payment_status(self, place, orders):
        order = place()
        updated = orders.update_payment_status(order.id, "paid")
        assert updated.payment_status == "paid"
        assert updated.status == "pending"
        with pytest.raises(InvalidStatus):
            orders.update_payment_status(order.id, "maybe")


class TestCancel:
    def test_cancel_pending_order(self, place, orders, producer):
        order = place()
        cancelled = orders.cancel(order.id, "changed my mind")
        assert cancelled.status == "cancelled"
        assert cancelled.notes == "Cancelled: changed my mind"
        assert cancelled.payment_status == "pending"
        assert producer.types()[-1] == "order.cancelled"

    def test_cancel_without_reason(self, place, orders):
        assert orders.cancel(place().id).notes == "Order cancelled"

    @pytest.mark.parametrize("status", ["delivered", "cancelled"])
    def test_terminal_orders_cannot_be_cancelled(self, place, orders, status):
        order = place()
        orders.update_status(order.id, status)
        with pytest.raises(InvalidTransition):
            orders.cancel(order.id)

    def test_shipped_order_can_be_cancelled(self, place, orders):
        order = place()
        orders.update_status(order.id, "shipped")
        assert orders.cancel(order.id).status == "cancelled"


class TestBulk:
    def test_bulk_update_status(self, place, orders):
        a, b = place(), place()
        result = orders.bulk_update_status([a.id, b.id, 9999], "confirmed")
        assert result.total == 3
        assert result.updated == 2
        assert result.errors == ["9999: Order not found"]
        assert orders.get(a.id).status == "confirmed"

    def test_bulk_update_requires_ids(self, orders, seeded):
        with pytest.raises(ValidationFailed):
            orders.bulk_update_status([], "confirmed")

    def test_bulk_cancel_skips_terminal_orders(self, place, orders):
        a, b, c = place(), place(), place()
        orders.update_status(b.id, "delivered")
        result = orders.bulk_cancel([a.id, b.id, c.id], "stock recall")
        assert result.updated == 2
        assert result.skipped == 1
        assert result.errors == ["1 orders could not be cancelled"]
        assert orders.get(a.id).notes == "Cancelled in bulk: stock recall"
        assert orders.get(b.id).status == "delivered"


class TestReporting:
    def test_stats_count_revenue_from_paid_orders_only(self, place, orders):
        paid = place()
        orders.update_payment_status(paid.id, "paid")
        place()
        cancelled = place(widget=1, gizmo=0)
        orders.cancel(cancelled.id)

        stats = orders.get_stats()
        assert stats.total_orders == 3
        assert stats.total_revenue == Decimal("25.50")
        assert stats.average_order_value == Decimal("25.50")
        assert stats.pending_orders == 2
        assert stats.cancelled_orders == 1
        assert stats.completed_orders == 0

    def test_stats_for_user(self, place, orders):
        place()
        place(user_id=OTHER_CUSTOMER_ID)
        assert orders.get_stats(user_id=OTHER_CUSTOMER_ID).total_orders == 1

    def test_monthly_revenue(self, db, place, orders):
        march, april = place(), place(widget=1, gizmo=0)
        for order, month in ((march, 3), (april, 4)):
            orders.update_payment_status(order.id, "paid")
            with db.session() as s:
                s.get(Order, order.id).created_at = datetime(2025, month, 15, 12, 0)

        revenue = orders.get_monthly_revenue(2025)
        assert [(r.month, r.revenue, r.order_count) for r in revenue] == [
            (3, Decimal("25.50"), 1),
            (4, Decimal("10.00"), 1),
        ]
        assert orders.get_monthly_revenue(2024) == []


class TestDelete:
    def test_delete(self, place, orders):
        order = place()
        assert orders.delete(order.id) is True
        assert orders.find_by_id(order.id) is None
        assert orders.delete(order.id) is False
