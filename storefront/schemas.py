from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

CENT = Decimal('0.01')

def to_amount(cents: int) -> Decimal:
    return (Decimal(int(cents or 0)) / 100).quantize(CENT)

# --- catalog ---

class CategoryBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = ''
class CategoryCreate(CategoryBase): pass
class CategoryRecord(CategoryBase):
    id: int
    class Config: from_attributes = True

class ProductBase(BaseModel):
    name: str = Field(min_length=1, max_length=240)
    description: Optional[str] = ''
    price_cents: int = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    status: str = 'available'
    category_id: Optional[int] = None
class ProductCreate(ProductBase): pass
class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price_cents: Optional[int] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    status: Optional[str] = None
    category_id: Optional[int] = None
class ProductRecord(ProductBase):
    id: int
    price: Decimal
    seller_id: Optional[int] = None
    category_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def available(self) -> bool:
        return self.status == 'available'

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> 'Pagination':
        return cls(page=page, limit=limit, total=total, pages=-(-total // limit) if limit else 0)

class ProductPage(BaseModel):
    products: List[ProductRecord] = []
    pagination: Pagination

# --- cart ---

class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)

class CartItemUpdate(BaseModel):
    quantity: int

class CartLineRecord(BaseModel):
    id: int
    user_id: int
    product_id: int
    quantity: int
    created_at: Optional[datetime] = None
    product_name: str
    price_cents: int
    price: Decimal
    stock: int
    product_status: str
    category_name: Optional[str] = None
    item_total_cents: int
    item_total: Decimal

class CartSummary(BaseModel):
    item_count: int = 0
    subtotal_cents: int = 0
    subtotal: Decimal = Decimal('0.00')
    total: Decimal = Decimal('0.00')

class CartView(BaseModel):
    items: List[CartLineRecord] = []
    summary: CartSummary = Field(default_factory=CartSummary)

class CartValidation(BaseModel):
    valid: bool
    errors: List[str] = []
    cart: Optional[CartView] = None

class CartCheck(BaseModel):
    item_count: int
    total: Decimal
    valid: bool
    issues: List[str] = []

class CartStats(BaseModel):
    total_carts: int
    total_items: int
    average_items_per_cart: float
    abandoned_carts: int

class PopularItem(BaseModel):
    product_id: int
    name: str
    price: Decimal
    times_added: int
    total_quantity: int

class UserCartSummary(BaseModel):
    user_id: int
    user_name: str
    email: str
    item_count: int
    total_value: Decimal
    last_updated: Optional[datetime] = None

class UserCartPage(BaseModel):
    carts: List[UserCartSummary] = []
    pagination: Pagination

# --- orders ---

class FrozenLine(BaseModel):
    """A cart line with its price captured for an order."""
    product_id: int
    quantity: int = Field(ge=1)
    unit_price_cents: int = Field(ge=0)

class CheckoutPayload(BaseModel):
    shipping_address: str = Field(min_length=1)
    payment_method: str = Field(min_length=1, max_length=64)
    notes: Optional[str] = None

class StatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None

class PaymentStatusUpdate(BaseModel):
    payment_status: str

class CancelPayload(BaseModel):
    reason: Optional[str] = None

class BulkStatusUpdate(BaseModel):
    order_ids: List[int]
    status: str
    notes: Optional[str] = None

class BulkCancel(BaseModel):
    order_ids: List[int]
    reason: Optional[str] = None

class OrderLineRecord(BaseModel):
    id: int
    order_id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    unit_price_cents: int
    unit_price: Decimal
    line_total: Decimal

class OrderRecord(BaseModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    total_cents: int
    total_amount: Decimal
    status: str
    payment_status: str
    shipping_address: str
    payment_method: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    item_count: int = 0
    items: List[OrderLineRecord] = []

class OrderPage(BaseModel):
    orders: List[OrderRecord] = []
    pagination: Pagination

class OrderStats(BaseModel):
    total_orders: int = 0
    total_revenue: Decimal = Decimal('0.00')
    pending_orders: int = 0
    completed_orders: int = 0
    cancelled_orders: int = 0
    average_order_value: Decimal = Decimal('0.00')

class MonthlyRevenue(BaseModel):
    month: int
    revenue: Decimal
    order_count: int

class BulkItemResult(BaseModel):
    id: int
    success: bool
    error: Optional[str] = None

class BulkResult(BaseModel):
    total: int
    updated: int
    skipped: int = 0
    results: List[BulkItemResult] = []
    errors: List[str] = []
