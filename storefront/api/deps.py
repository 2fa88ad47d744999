from functools import lru_cache

from fastapi import Depends

from storefront.core.auth import Identity
from storefront.core.errors import Forbidden
from storefront.db.session import Database, get_database
from storefront.kafka.producer import EventProducer
from storefront.schemas import OrderRecord
from storefront.services.checkout import CheckoutCoordinator
from storefront.store.cart_store import CartStore
from storefront.store.catalog_store import CatalogStore
from storefront.store.order_store import OrderStore

def get_db() -> Database:
    return get_database()

@lru_cache
def get_producer() -> EventProducer:
    return EventProducer()

def get_catalog(db: Database = Depends(get_db)) -> CatalogStore:
    return CatalogStore(db)

def get_carts(db: Database = Depends(get_db)) -> CartStore:
    return CartStore(db)

def get_orders(db: Database = Depends(get_db), producer: EventProducer = Depends(get_producer)) -> OrderStore:
    return OrderStore(db, producer)

def get_checkout(
    db: Database = Depends(get_db),
    carts: CartStore = Depends(get_carts),
    orders: OrderStore = Depends(get_orders),
    catalog: CatalogStore = Depends(get_catalog),
) -> CheckoutCoordinator:
    return CheckoutCoordinator(db, carts, orders, catalog)

def ensure_can_access(order: OrderRecord, identity: Identity):
    if not identity.is_admin and order.user_id != identity.id:
        raise Forbidden()
