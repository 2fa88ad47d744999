"""Cart to order conversion.

Checkout runs strictly in this order: load the cart, validate it, freeze
prices, create the order, optionally take the ordered units off stock, and
clear the cart. Validation is the only point where stock is read for the
decision; nothing here locks products between two concurrent checkouts.

With ``atomic`` enabled (the default) order creation, stock decrement and
cart clearing share one database transaction and fail together. Without
it the order commits first; if clearing the cart then fails the order is
kept, a :class:`PendingCartClear` marker is written, and
:meth:`CheckoutCoordinator.sweep_pending_clears` finishes the job later.
"""

from typing import List, Optional

import structlog
from sqlalchemy import select

from storefront.core.config import settings
from storefront.core.errors import CartInvalid, EmptyCart, InsufficientStock, StorageError
from storefront.db.models import OrderItem, PendingCartClear
from storefront.db.session import Database
from storefront.schemas import FrozenLine, OrderRecord
from storefront.store.cart_store import CartStore
from storefront.store.catalog_store import CatalogStore
from storefront.store.order_store import OrderStore

logger = structlog.get_logger(__name__)

class CheckoutCoordinator:
    def __init__(self, db: Database, carts: CartStore, orders: OrderStore, catalog: CatalogStore,
                 atomic: Optional[bool] = None, decrement_stock: Optional[bool] = None):
        self.db = db
        self.carts = carts
        self.orders = orders
        self.catalog = catalog
        self.atomic = settings.CHECKOUT_ATOMIC if atomic is None else atomic
        self.decrement_stock = settings.DECREMENT_STOCK_ON_ORDER if decrement_stock is None else decrement_stock

    def checkout(self, user_id: int, shipping_address: str, payment_method: str,
                 notes: Optional[str] = None) -> OrderRecord:
        log = logger.bind(user_id=user_id, atomic=self.atomic, decrement_stock=self.decrement_stock)

        view = self.carts.get_by_user(user_id)
        if not view.items:
            log.info("Checkout rejected", reason="empty cart")
            raise EmptyCart()

        validation = self.carts.validate(user_id)
        if not validation.valid:
            log.info("Checkout rejected", reason="invalid cart", errors=validation.errors)
            raise CartInvalid('Cart is invalid', errors=validation.errors)

        lines = [
            FrozenLine(product_id=i.product_id, quantity=i.quantity, unit_price_cents=i.price_cents)
            for i in validation.cart.items
        ]
        total = sum(l.quantity * l.unit_price_cents for l in lines)
        if total != view.summary.subtotal_cents:
            log.warning("Checkout rejected", reason="cart changed", expected=view.summary.subtotal_cents, total=total)
            raise CartInvalid('Cart changed during checkout', errors=['Cart changed during checkout, please review it'])

        if self.atomic:
            order = self._commit_atomic(user_id, lines, shipping_address, payment_method, notes)
        else:
            order = self._commit_staged(user_id, lines, shipping_address, payment_method, notes)

        log.info("Checkout completed", order_id=order.id, total_cents=order.total_cents)
        self.orders.emit(
            "order.created",
            order,
            items=[l.model_dump() for l in lines],
        )
        return order

    def _create_order(self, session, user_id, lines, shipping_address, payment_method, notes) -> OrderRecord:
        order = self.orders.create(user_id, lines, shipping_address, payment_method, notes, session=session)
        if self.decrement_stock:
            for l in lines:
                try:
                    self.catalog.decrement_stock(session, l.product_id, l.quantity)
                except InsufficientStock as exc:
                    raise CartInvalid(
                        'Cart is invalid',
                        errors=[f'Requested quantity for product {l.product_id} exceeds stock ({exc.available} available)'],
                    ) from exc
        return order

    def _commit_atomic(self, user_id, lines, shipping_address, payment_method, notes) -> OrderRecord:
        with self.db.transaction() as s:
            order = self._create_order(s, user_id, lines, shipping_address, payment_method, notes)
            self.carts.clear(user_id, session=s)
        return order

    def _commit_staged(self, user_id, lines, shipping_address, payment_method, notes) -> OrderRecord:
        with self.db.transaction() as s:
            order = self._create_order(s, user_id, lines, shipping_address, payment_method, notes)
        try:
            self.carts.clear(user_id)
        except StorageError as exc:
            self._mark_pending_clear(order, exc)
        return order

    def _mark_pending_clear(self, order: OrderRecord, exc: Exception):
        reason = str(exc.__cause__ or exc)
        logger.warning("Cart clear failed after order commit", order_id=order.id, user_id=order.user_id, error=reason)
        try:
            with self.db.session() as s:
                s.add(PendingCartClear(order_id=order.id, user_id=order.user_id, attempts=1, last_error=reason))
        except StorageError:
            logger.exception("Pending cart clear could not be recorded", order_id=order.id, user_id=order.user_id)

    def pending_clears(self) -> List[int]:
        """Order ids whose cart still has to be cleared."""
        with self.db.session() as s:
            return list(s.scalars(select(PendingCartClear.order_id).order_by(PendingCartClear.id)))

    def sweep_pending_clears(self) -> int:
        """Retry clearing carts left behind by staged checkouts; returns how many were cleared."""
        with self.db.session() as s:
            markers = [(m.id, m.order_id, m.user_id) for m in s.scalars(select(PendingCartClear))]
        cleared = 0
        for marker_id, order_id, user_id in markers:
            try:
                with self.db.transaction() as s:
                    product_ids = s.scalars(select(OrderItem.product_id).where(OrderItem.order_id == order_id)).all()
                    removed = self.carts.remove_items(user_id, product_ids, session=s)
                    marker = s.get(PendingCartClear, marker_id)
                    if marker is not None:
                        s.delete(marker)
            except StorageError as exc:
                self._bump_attempts(marker_id, str(exc.__cause__ or exc))
                continue
            cleared += 1
            logger.info("Pending cart clear completed", order_id=order_id, user_id=user_id, removed=removed)
        return cleared

    def _bump_attempts(self, marker_id: int, reason: str):
        logger.warning("Pending cart clear retry failed", marker_id=marker_id, error=reason)
        with self.db.session() as s:
            marker = s.get(PendingCartClear, marker_id)
            if marker is not None:
                marker.attempts += 1
                marker.last_error = reason
