from fastapi import APIRouter, Depends
from storefront.api.deps import get_catalog
from storefront.core.auth import Identity, require_admin
from storefront.schemas import CategoryCreate
from storefront.store.catalog_store import CatalogStore

router = APIRouter()

@router.get('')
def list_categories(catalog: CatalogStore = Depends(get_catalog)):
    return {'success': True, 'data': catalog.list_categories()}

@router.post('', status_code=201)
def create_category(payload: CategoryCreate, _: Identity = Depends(require_admin),
                    catalog: CatalogStore = Depends(get_catalog)):
    return {'success': True, 'message': 'Category created', 'data': catalog.create_category(payload.name, payload.description)}
