"""Orders and their lifecycle.

An order is written once, together with its lines, from a price-frozen line
set. Afterwards only ``status``, ``payment_status`` and ``notes`` change.

Status changes are admin driven and permissive: any status may be set from
any other through :meth:`OrderStore.update_status`. Only cancellation is
guarded, and refuses orders that are already delivered or cancelled. When
``STRICT_ORDER_TRANSITIONS`` is enabled, :data:`ALLOWED_TRANSITIONS` is
checked as well.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Union

import structlog
from sqlalchemy import case, extract, func, select
from sqlalchemy.orm import Session, selectinload

from storefront.core.config import settings
from storefront.core.errors import InvalidStatus, InvalidTransition, NotFound, ValidationFailed
from storefront.db.models import Order, OrderItem, OrderStatus, PaymentStatus, utcnow
from storefront.db.session import Database
from storefront.kafka.producer import EventProducer
from storefront.schemas import (
    CENT, BulkItemResult, BulkResult, FrozenLine, MonthlyRevenue, OrderLineRecord, OrderPage, OrderRecord,
    OrderStats, Pagination, to_amount,
)

logger = structlog.get_logger(__name__)

ORDER_STATUSES = [s.value for s in OrderStatus]
PAYMENT_STATUSES = [s.value for s in PaymentStatus]
TERMINAL_STATUSES = {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}

ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    'pending': {'confirmed', 'processing', 'shipped', 'delivered', 'cancelled'},
    'confirmed': {'processing', 'shipped', 'delivered', 'cancelled'},
    'processing': {'shipped', 'delivered', 'cancelled'},
    'shipped': {'delivered', 'cancelled'},
    'delivered': set(),
    'cancelled': set(),
}

def line_record(item: OrderItem) -> OrderLineRecord:
    return OrderLineRecord(
        id=item.id,
        order_id=item.order_id,
        product_id=item.product_id,
        product_name=item.product.name if item.product is not None else None,
        quantity=item.quantity,
        unit_price_cents=item.unit_price_cents,
        unit_price=to_amount(item.unit_price_cents),
        line_total=to_amount(item.unit_price_cents * item.quantity),
    )

def order_record(order: Order, with_items: bool = True) -> OrderRecord:
    items = [line_record(i) for i in order.items] if with_items else []
    return OrderRecord(
        id=order.id,
        user_id=order.user_id,
        user_name=order.user.name if order.user is not None else None,
        user_email=order.user.email if order.user is not None else None,
        total_cents=order.total_cents,
        total_amount=to_amount(order.total_cents),
        status=order.status,
        payment_status=order.payment_status,
        shipping_address=order.shipping_address or '',
        payment_method=order.payment_method or '',
        notes=order.notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
        item_count=len(order.items),
        items=items,
    )

def _average_amount(avg_cents) -> Decimal:
    if avg_cents is None:
        return Decimal('0.00')
    return (Decimal(str(avg_cents)) / 100).quantize(CENT)

class OrderStore:
    def __init__(self, db: Database, producer: Optional[EventProducer] = None, strict_transitions: Optional[bool] = None):
        self.db = db
        self.producer = producer or EventProducer()
        self.strict_transitions = settings.STRICT_ORDER_TRANSITIONS if strict_transitions is None else strict_transitions

    # --- events ---

    def emit(self, event_type: str, order: OrderRecord, **extra):
        value = {
            "type": event_type,
            "order_id": order.id,
            "user_id": order.user_id,
            "status": order.status,
            "payment_status": order.payment_status,
            "amount_cents": order.total_cents,
            **extra,
        }
        self.producer.send(settings.ORDER_EVENTS_TOPIC, key=str(order.id), value=value)

    # --- creation ---

    def create(self, user_id: int, lines: Iterable[Union[FrozenLine, dict]], shipping_address: str,
               payment_method: str, notes: Optional[str] = None, session: Optional[Session] = None) -> OrderRecord:
        """Persist an order and its lines from an already validated, price-frozen line set."""
        frozen = [l if isinstance(l, FrozenLine) else FrozenLine(**l) for l in lines]
        total = sum(l.quantity * l.unit_price_cents for l in frozen)
        with self.db.session(session) as s:
            now = utcnow()
            order = Order(
                user_id=user_id,
                total_cents=total,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                shipping_address=shipping_address,
                payment_method=payment_method,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            order.items = [
                OrderItem(product_id=l.product_id, quantity=l.quantity, unit_price_cents=l.unit_price_cents)
                for l in frozen
            ]
            s.add(order)
            s.flush()
            record = order_record(order)
        if session is None:
            # joined writes are logged by the caller once its transaction commits
            logger.info("Order created", order_id=record.id, user_id=user_id, total_cents=total, lines=len(frozen))
        return record

    # --- queries ---

    def _load(self, s: Session, order_id: int) -> Optional[Order]:
        return s.scalar(
            select(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.product), selectinload(Order.user))
            .where(Order.id == order_id)
        )

    def find_by_id(self, order_id: int) -> Optional[OrderRecord]:
        with self.db.session() as s:
            order = self._load(s, order_id)
            return order_record(order) if order else None

    def get(self, order_id: int) -> OrderRecord:
        order = self.find_by_id(order_id)
        if order is None:
            raise NotFound('Order not found')
        return order

    def is_owner(self, order_id: int, user_id: int) -> bool:
        with self.db.session() as s:
            return s.scalar(select(Order.user_id).where(Order.id == order_id)) == user_id

    def _page(self, conditions, page: int, limit: int) -> OrderPage:
        stmt = (
            select(Order)
            .options(selectinload(Order.items), selectinload(Order.user))
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        with self.db.session() as s:
            total = s.scalar(select(func.count(Order.id)).where(*conditions)) or 0
            orders = [order_record(o, with_items=False) for o in s.execute(stmt).scalars().all()]
        return OrderPage(orders=orders, pagination=Pagination.of(page, limit, total))

    def find_by_user(self, user_id: int, page: int = 1, limit: int = 10, status: Optional[str] = None) -> OrderPage:
        conditions = [Order.user_id == user_id]
        if status:
            conditions.append(Order.status == status)
        return self._page(conditions, page, limit)

    def find_all(self, page: int = 1, limit: int = 20, status: Optional[str] = None,
                 user_id: Optional[int] = None, payment_status: Optional[str] = None) -> OrderPage:
        conditions = []
        if status:
            conditions.append(Order.status == status)
        if user_id is not None:
            conditions.append(Order.user_id == user_id)
        if payment_status:
            conditions.append(Order.payment_status == payment_status)
        return self._page(conditions, page, limit)

    def get_recent(self, limit: int = 10) -> List[OrderRecord]:
        return self.find_all(page=1, limit=limit).orders

    def get_stats(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                  user_id: Optional[int] = None) -> OrderStats:
        conditions = []
        if start_date:
            conditions.append(Order.created_at >= datetime.combine(start_date, time.min))
        if end_date:
            conditions.append(Order.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
        if user_id is not None:
            conditions.append(Order.user_id == user_id)
        paid = Order.payment_status == PaymentStatus.PAID.value

        def count_where(cond):
            return func.coalesce(func.sum(case((cond, 1), else_=0)), 0)

        stmt = select(
            func.count(Order.id),
            func.coalesce(func.sum(case((paid, Order.total_cents), else_=0)), 0),
            count_where(Order.status == OrderStatus.PENDING.value),
            count_where(Order.status == OrderStatus.DELIVERED.value),
            count_where(Order.status == OrderStatus.CANCELLED.value),
            func.avg(case((paid, Order.total_cents))),
        ).where(*conditions)
        with self.db.session() as s:
            total, revenue, pending, completed, cancelled, avg_cents = s.execute(stmt).one()
        return OrderStats(
            total_orders=total or 0,
            total_revenue=to_amount(revenue),
            pending_orders=pending,
            completed_orders=completed,
            cancelled_orders=cancelled,
            average_order_value=_average_amount(avg_cents),
        )

    def get_monthly_revenue(self, year: Optional[int] = None) -> List[MonthlyRevenue]:
        year = year or utcnow().year
        month = extract('month', Order.created_at)
        stmt = (
            select(month, func.coalesce(func.sum(Order.total_cents), 0), func.count(Order.id))
            .where(extract('year', Order.created_at) == year, Order.payment_status == PaymentStatus.PAID.value)
            .group_by(month)
            .order_by(month)
        )
        with self.db.session() as s:
            return [
                MonthlyRevenue(month=int(m), revenue=to_amount(cents), order_count=n)
                for m, cents, n in s.execute(stmt).all()
            ]

    # --- lifecycle ---

    def _check_transition(self, current: str, target: str):
        if self.strict_transitions and current != target and target not in ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidTransition(f'Cannot change order status from {current} to {target}')

    def _set_status(self, order: Order, status: str, notes: Optional[str]):
        order.status = status
        if notes:
            order.notes = notes
        order.updated_at = utcnow()

    def update_status(self, order_id: int, status: str, notes: Optional[str] = None) -> OrderRecord:
        if status not in ORDER_STATUSES:
            raise InvalidStatus(f'Invalid status: {status}')
        with self.db.session() as s:
            order = self._load(s, order_id)
            if not order:
                raise NotFound('Order not found')
            previous = order.status
            self._check_transition(previous, status)
            self._set_status(order, status, notes)
            s.flush()
            record = order_record(order)
        logger.info("Order status updated", order_id=order_id, previous=previous, status=status)
        self.emit("order.status_changed", record, previous_status=previous)
        return record

    def cancel(self, order_id: int, reason: Optional[str] = None) -> OrderRecord:
        with self.db.session() as s:
            order = self._load(s, order_id)
            if not order:
                raise NotFound('Order not found')
            if order.status in TERMINAL_STATUSES:
                raise InvalidTransition(f'Order cannot be cancelled in status {order.status}')
            previous = order.status
            self._set_status(order, OrderStatus.CANCELLED.value, f'Cancelled: {reason}' if reason else 'Order cancelled')
            s.flush()
            record = order_record(order)
        logger.info("Order cancelled", order_id=order_id, previous=previous, reason=reason)
        self.emit("order.cancelled", record, previous_status=previous, reason=reason)
        return record

    def update_payment_status(self, order_id: int, payment_status: str) -> OrderRecord:
        if payment_status not in PAYMENT_STATUSES:
            raise InvalidStatus(f'Invalid payment status: {payment_status}')
        with self.db.session() as s:
            order = self._load(s, order_id)
            if not order:
                raise NotFound('Order not found')
            order.payment_status = payment_status
            order.updated_at = utcnow()
            s.flush()
            record = order_record(order)
        logger.info("Order payment status updated", order_id=order_id, payment_status=payment_status)
        self.emit("order.payment_status_changed", record)
        return record

    def delete(self, order_id: int) -> bool:
        with self.db.session() as s:
            order = s.get(Order, order_id)
            if not order:
                return False
            s.delete(order)
        logger.info("Order deleted", order_id=order_id)
        return True

    # --- bulk ---

    def bulk_update_status(self, order_ids: List[int], status: str, notes: Optional[str] = None) -> BulkResult:
        if status not in ORDER_STATUSES:
            raise InvalidStatus(f'Invalid status: {status}')
        if not order_ids:
            raise ValidationFailed('Invalid order ids')
        results = []
        with self.db.session() as s:
            for order_id in order_ids:
                order = s.get(Order, order_id)
                if not order:
                    results.append(BulkItemResult(id=order_id, success=False, error='Order not found'))
                    continue
                try:
                    self._check_transition(order.status, status)
                except InvalidTransition as exc:
                    results.append(BulkItemResult(id=order_id, success=False, error=exc.message))
                    continue
                self._set_status(order, status, notes)
                results.append(BulkItemResult(id=order_id, success=True))
        updated = sum(1 for r in results if r.success)
        logger.info("Bulk status update", status=status, updated=updated, total=len(order_ids))
        return BulkResult(
            total=len(order_ids),
            updated=updated,
            results=results,
            errors=[f'{r.id}: {r.error}' for r in results if not r.success],
        )

    def bulk_cancel(self, order_ids: List[int], reason: Optional[str] = None) -> BulkResult:
        if not order_ids:
            raise ValidationFailed('Invalid order ids')
        notes = f'Cancelled in bulk: {reason}' if reason else 'Order cancelled in bulk'
        results, skipped = [], 0
        with self.db.session() as s:
            for order_id in order_ids:
                order = s.get(Order, order_id)
                if not order:
                    results.append(BulkItemResult(id=order_id, success=False, error='Order not found'))
                elif order.status in TERMINAL_STATUSES:
                    skipped += 1
                    results.append(BulkItemResult(id=order_id, success=False, error=f'Skipped: order is {order.status}'))
                else:
                    self._set_status(order, OrderStatus.CANCELLED.value, notes)
                    results.append(BulkItemResult(id=order_id, success=True))
        cancelled = sum(1 for r in results if r.success)
        errors = []
        if cancelled < len(order_ids):
            errors.append(f'{len(order_ids) - cancelled} orders could not be cancelled')
        logger.info("Bulk cancel", cancelled=cancelled, skipped=skipped, total=len(order_ids))
        return BulkResult(total=len(order_ids), updated=cancelled, skipped=skipped, results=results, errors=errors)
