"""Per-user shopping carts kept in the relational store.

A cart line records purchase intent only. Stock is checked whenever a line
is added or changed, but nothing is reserved; checkout re-validates every
line against the stock it reads at that moment.
"""

from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import delete, distinct, func, select
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.errors import InsufficientStock, NotFound, Unavailable, ValidationFailed
from storefront.db.models import CartItem, Category, Product, ProductStatus, User, utcnow
from storefront.db.session import Database
from storefront.schemas import (
    CartLineRecord, CartStats, CartSummary, CartValidation, CartView, Pagination, PopularItem,
    UserCartPage, UserCartSummary, to_amount,
)

logger = structlog.get_logger(__name__)

AVAILABLE = ProductStatus.AVAILABLE.value

def line_record(item: CartItem, product: Product, category_name: Optional[str] = None) -> CartLineRecord:
    total_cents = product.price_cents * item.quantity
    return CartLineRecord(
        id=item.id,
        user_id=item.user_id,
        product_id=item.product_id,
        quantity=item.quantity,
        created_at=item.created_at,
        product_name=product.name,
        price_cents=product.price_cents,
        price=to_amount(product.price_cents),
        stock=product.stock,
        product_status=product.status,
        category_name=category_name,
        item_total_cents=total_cents,
        item_total=to_amount(total_cents),
    )

def summarize(lines) -> CartSummary:
    subtotal = sum(line.item_total_cents for line in lines)
    return CartSummary(
        item_count=sum(line.quantity for line in lines),
        subtotal_cents=subtotal,
        subtotal=to_amount(subtotal),
        total=to_amount(subtotal),
    )

class CartStore:
    def __init__(self, db: Database):
        self.db = db

    def _lines_stmt(self, user_id: int):
        return (
            select(CartItem, Product, Category.name)
            .join(Product, CartItem.product_id == Product.id)
            .outerjoin(Category, Product.category_id == Category.id)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        )

    def _purchasable(self, s: Session, product_id: int) -> Product:
        product = s.get(Product, product_id)
        if not product:
            raise NotFound('Product not found')
        if product.status != AVAILABLE:
            raise Unavailable()
        return product

    def _line(self, s: Session, user_id: int, product_id: int) -> Optional[CartItem]:
        return s.scalar(select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id))

    def add_item(self, user_id: int, product_id: int, quantity: int = 1) -> CartLineRecord:
        if quantity < 1:
            raise ValidationFailed('Quantity must be at least 1')
        with self.db.session() as s:
            product = self._purchasable(s, product_id)
            item = self._line(s, user_id, product_id)
            new_quantity = (item.quantity if item else 0) + quantity
            if new_quantity > product.stock:
                raise InsufficientStock(product.stock)
            if item:
                item.quantity = new_quantity
            else:
                item = CartItem(user_id=user_id, product_id=product_id, quantity=new_quantity)
                s.add(item)
            s.flush()
            return line_record(item, product)

    def update_quantity(self, user_id: int, product_id: int, quantity: int) -> Optional[CartLineRecord]:
        """Set a line's quantity; zero or less removes the line and returns None."""
        if quantity <= 0:
            self.remove_item(user_id, product_id)
            return None
        with self.db.session() as s:
            item = self._line(s, user_id, product_id)
            if not item:
                raise NotFound('Item not in cart')
            product = self._purchasable(s, product_id)
            if quantity > product.stock:
                raise InsufficientStock(product.stock)
            item.quantity = quantity
            s.flush()
            return line_record(item, product)

    def remove_item(self, user_id: int, product_id: int) -> bool:
        with self.db.session() as s:
            result = s.execute(delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id))
            return result.rowcount > 0

    def remove_items(self, user_id: int, product_ids, session: Optional[Session] = None) -> int:
        with self.db.session(session) as s:
            result = s.execute(
                delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id.in_(list(product_ids)))
            )
            return result.rowcount

    def get_item(self, user_id: int, product_id: int) -> Optional[CartLineRecord]:
        with self.db.session() as s:
            row = s.execute(self._lines_stmt(user_id).where(CartItem.product_id == product_id)).first()
            return line_record(*row) if row else None

    def is_in_cart(self, user_id: int, product_id: int) -> bool:
        with self.db.session() as s:
            return self._line(s, user_id, product_id) is not None

    def get_by_user(self, user_id: int, session: Optional[Session] = None) -> CartView:
        with self.db.session(session) as s:
            rows = s.execute(self._lines_stmt(user_id).where(Product.status == AVAILABLE)).all()
            items = [line_record(*row) for row in rows]
            return CartView(items=items, summary=summarize(items))

    def validate(self, user_id: int, session: Optional[Session] = None) -> CartValidation:
        with self.db.session(session) as s:
            rows = s.execute(self._lines_stmt(user_id)).all()
            if not rows:
                return CartValidation(valid=False, errors=['Cart is empty'], cart=CartView())
            errors = []
            for item, product, _ in rows:
                if product.status != AVAILABLE:
                    errors.append(f'Product "{product.name}" is no longer available')
                elif item.quantity > product.stock:
                    errors.append(
                        f'Requested quantity for "{product.name}" exceeds stock ({product.stock} available)'
                    )
            cart = self.get_by_user(user_id, session=s)
            return CartValidation(valid=not errors, errors=errors, cart=cart)

    def clear(self, user_id: int, session: Optional[Session] = None) -> int:
        with self.db.session(session) as s:
            result = s.execute(delete(CartItem).where(CartItem.user_id == user_id))
            return result.rowcount

    # --- admin ---

    def get_stats(self, abandoned_days: Optional[int] = None) -> CartStats:
        days = settings.ABANDONED_CART_DAYS if abandoned_days is None else abandoned_days
        cutoff = utcnow() - timedelta(days=days)
        with self.db.session() as s:
            total_carts = s.scalar(select(func.count(distinct(CartItem.user_id)))) or 0
            total_items = s.scalar(select(func.coalesce(func.sum(CartItem.quantity), 0))) or 0
            per_cart = select(func.count(CartItem.id).label('n')).group_by(CartItem.user_id).subquery()
            average = s.scalar(select(func.coalesce(func.avg(per_cart.c.n), 0))) or 0
            abandoned = s.scalar(
                select(func.count(distinct(CartItem.user_id))).where(CartItem.created_at < cutoff)
            ) or 0
        return CartStats(
            total_carts=total_carts,
            total_items=total_items,
            average_items_per_cart=float(average),
            abandoned_carts=abandoned,
        )

    def get_popular_items(self, limit: int = 10):
        times_added = func.count(CartItem.id).label('times_added')
        total_quantity = func.sum(CartItem.quantity).label('total_quantity')
        stmt = (
            select(Product.id, Product.name, Product.price_cents, times_added, total_quantity)
            .select_from(CartItem)
            .join(Product, CartItem.product_id == Product.id)
            .where(Product.status == AVAILABLE)
            .group_by(Product.id, Product.name, Product.price_cents)
            .order_by(times_added.desc(), total_quantity.desc())
            .limit(limit)
        )
        with self.db.session() as s:
            return [
                PopularItem(product_id=pid, name=name, price=to_amount(cents), times_added=n, total_quantity=q)
                for pid, name, cents, n, q in s.execute(stmt).all()
            ]

    def cleanup_old_items(self, days_old: int = 30) -> int:
        cutoff = utcnow() - timedelta(days=days_old)
        with self.db.session() as s:
            removed = s.execute(delete(CartItem).where(CartItem.created_at < cutoff)).rowcount
        logger.info("Old cart items removed", removed=removed, days_old=days_old)
        return removed

    def get_all_carts(self, page: int = 1, limit: int = 20) -> UserCartPage:
        value = func.coalesce(func.sum(Product.price_cents * CartItem.quantity), 0)
        last_updated = func.max(CartItem.created_at).label('last_updated')
        stmt = (
            select(User.id, User.name, User.email, func.count(CartItem.id), value, last_updated)
            .join(CartItem, CartItem.user_id == User.id)
            .join(Product, CartItem.product_id == Product.id)
            .where(Product.status == AVAILABLE)
            .group_by(User.id, User.name, User.email)
            .order_by(last_updated.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        with self.db.session() as s:
            total = s.scalar(select(func.count(distinct(CartItem.user_id)))) or 0
            carts = [
                UserCartSummary(user_id=uid, user_name=name or '', email=email, item_count=count,
                                total_value=to_amount(cents), last_updated=updated)
                for uid, name, email, count, cents, updated in s.execute(stmt).all()
            ]
        return UserCartPage(carts=carts, pagination=Pagination.of(page, limit, total))
