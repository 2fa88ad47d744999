from typing import List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from storefront.core.errors import Conflict, InsufficientStock, NotFound, ValidationFailed
from storefront.db.models import Category, Product, ProductStatus
from storefront.db.session import Database
from storefront.schemas import (
    CategoryRecord, Pagination, ProductCreate, ProductPage, ProductRecord, ProductUpdate, to_amount,
)

PRODUCT_STATUSES = {s.value for s in ProductStatus}
REQUIRED_FIELDS = ('name', 'price_cents', 'stock', 'status')

def product_record(row: Product) -> ProductRecord:
    return ProductRecord(
        id=row.id,
        name=row.name,
        description=row.description or '',
        price_cents=row.price_cents,
        price=to_amount(row.price_cents),
        stock=row.stock,
        status=row.status,
        category_id=row.category_id,
        category_name=row.category.name if row.category is not None else None,
        seller_id=row.seller_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

def _check_status(status: Optional[str]):
    if status is not None and status not in PRODUCT_STATUSES:
        raise ValidationFailed(f'Invalid product status: {status}')

class CatalogStore:
    def __init__(self, db: Database):
        self.db = db

    def get_product(self, product_id: int, session: Optional[Session] = None) -> ProductRecord:
        with self.db.session(session) as s:
            row = s.get(Product, product_id)
            if not row:
                raise NotFound('Product not found')
            return product_record(row)

    def list_products(self, page: int = 1, limit: int = 12, category_id: Optional[int] = None,
                      search: Optional[str] = None, status: Optional[str] = ProductStatus.AVAILABLE.value) -> ProductPage:
        stmt = select(Product)
        if status:
            stmt = stmt.where(Product.status == status)
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)
        if search:
            like = f"%{search.lower()}%"
            stmt = stmt.where(or_(func.lower(Product.name).like(like), func.lower(Product.description).like(like)))
        with self.db.session() as s:
            total = s.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            rows = s.execute(
                stmt.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * limit).limit(limit)
            ).scalars().all()
            return ProductPage(products=[product_record(r) for r in rows], pagination=Pagination.of(page, limit, total))

    def create_product(self, payload: ProductCreate, seller_id: Optional[int] = None) -> ProductRecord:
        _check_status(payload.status)
        with self.db.session() as s:
            if payload.category_id is not None and not s.get(Category, payload.category_id):
                raise NotFound('Category not found')
            obj = Product(**payload.model_dump(), seller_id=seller_id)
            s.add(obj); s.flush(); s.refresh(obj)
            return product_record(obj)

    def update_product(self, product_id: int, payload: ProductUpdate) -> ProductRecord:
        changes = payload.model_dump(exclude_unset=True)
        for field in REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationFailed(f'{field} cannot be null')
        if 'description' in changes and changes['description'] is None:
            changes['description'] = ''
        _check_status(changes.get('status'))
        if changes.get('stock') is not None and changes['stock'] < 0:
            raise ValidationFailed('Stock cannot be negative')
        with self.db.session() as s:
            obj = s.get(Product, product_id)
            if not obj:
                raise NotFound('Product not found')
            if changes.get('category_id') is not None and not s.get(Category, changes['category_id']):
                raise NotFound('Category not found')
            for k, v in changes.items(): setattr(obj, k, v)
            s.flush(); s.refresh(obj)
            return product_record(obj)

    def decrement_stock(self, session: Session, product_id: int, qty: int) -> None:
        """Take ``qty`` units off a product's stock, never going below zero."""
        result = session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= qty)
            .values(stock=Product.stock - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = session.scalar(select(Product.stock).where(Product.id == product_id))
            if available is None:
                raise NotFound('Product not found')
            raise InsufficientStock(available)

    # --- categories ---

    def list_categories(self) -> List[CategoryRecord]:
        with self.db.session() as s:
            rows = s.execute(select(Category).order_by(Category.name)).scalars().all()
            return [CategoryRecord.model_validate(r) for r in rows]

    def create_category(self, name: str, description: str = '') -> CategoryRecord:
        with self.db.session() as s:
            if s.scalar(select(Category).where(Category.name == name)):
                raise Conflict('Category already exists')
            obj = Category(name=name, description=description or '')
            s.add(obj); s.flush()
            return CategoryRecord.model_validate(obj)
