from fastapi import APIRouter, Depends, Query
from typing import Optional
from storefront.api.deps import get_catalog
from storefront.core.auth import Identity, require_admin
from storefront.schemas import ProductCreate, ProductUpdate
from storefront.store.catalog_store import CatalogStore

router = APIRouter()

@router.get('')
def list_products(page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100), q: Optional[str] = None,
                  category_id: Optional[int] = None, status: Optional[str] = 'available',
                  catalog: CatalogStore = Depends(get_catalog)):
    return {'success': True, 'data': catalog.list_products(page, limit, category_id, q, status)}

@router.get('/{product_id}')
def get_product(product_id: int, catalog: CatalogStore = Depends(get_catalog)):
    return {'success': True, 'data': catalog.get_product(product_id)}

@router.post('', status_code=201)
def create_product(payload: ProductCreate, identity: Identity = Depends(require_admin),
                   catalog: CatalogStore = Depends(get_catalog)):
    return {'success': True, 'message': 'Product created', 'data': catalog.create_product(payload, seller_id=identity.id)}

@router.patch('/{product_id}')
def update_product(product_id: int, payload: ProductUpdate, _: Identity = Depends(require_admin),
                   catalog: CatalogStore = Depends(get_catalog)):
    return {'success': True, 'message': 'Product updated', 'data': catalog.update_product(product_id, payload)}
