from fastapi import APIRouter, Depends, Query, Response

from storefront.api.deps import get_carts
from storefront.core.auth import Identity, get_current_identity, require_admin
from storefront.core.errors import NotFound
from storefront.schemas import CartCheck, CartItemAdd, CartItemUpdate
from storefront.store.cart_store import CartStore

router = APIRouter()

@router.get("")
def get_cart(identity: Identity = Depends(get_current_identity), carts: CartStore = Depends(get_carts)):
    return {"success": True, "data": carts.get_by_user(identity.id)}

@router.get("/summary")
def get_summary(identity: Identity = Depends(get_current_identity), carts: CartStore = Depends(get_carts)):
    cart = carts.get_by_user(identity.id)
    validation = carts.validate(identity.id)
    summary = CartCheck(item_count=cart.summary.item_count, total=cart.summary.total,
                        valid=validation.valid, issues=validation.errors)
    return {"success": True, "data": summary}

@router.get("/validate")
def validate(identity: Identity = Depends(get_current_identity), carts: CartStore = Depends(get_carts)):
    return {"success": True, "data": carts.validate(identity.id)}

@router.post("/items", status_code=201)
def add_item(payload: CartItemAdd, response: Response, identity: Identity = Depends(get_current_identity),
             carts: CartStore = Depends(get_carts)):
    existed = carts.is_in_cart(identity.id, payload.product_id)
    item = carts.add_item(identity.id, payload.product_id, payload.quantity)
    if existed:
        response.status_code = 200
        return {"success": True, "message": "Cart quantity updated", "data": item}
    return {"success": True, "message": "Item added to cart", "data": item}

@router.put("/items/{product_id}")
def update_item(product_id: int, payload: CartItemUpdate, identity: Identity = Depends(get_current_identity),
                carts: CartStore = Depends(get_carts)):
    item = carts.update_quantity(identity.id, product_id, payload.quantity)
    if item is None:
        return {"success": True, "message": "Item removed from cart", "data": None}
    return {"success": True, "message": "Quantity updated", "data": item}

@router.delete("/items/{product_id}")
def remove_item(product_id: int, identity: Identity = Depends(get_current_identity),
                carts: CartStore = Depends(get_carts)):
    if not carts.remove_item(identity.id, product_id):
        raise NotFound('Item not in cart')
    return {"success": True, "message": "Item removed from cart"}

@router.get("/items/{product_id}/check")
def check_product(product_id: int, identity: Identity = Depends(get_current_identity),
                  carts: CartStore = Depends(get_carts)):
    item = carts.get_item(identity.id, product_id)
    return {"success": True, "data": {"in_cart": item is not None, "item": item}}

@router.delete("")
def clear(identity: Identity = Depends(get_current_identity), carts: CartStore = Depends(get_carts)):
    removed = carts.clear(identity.id)
    return {"success": True, "message": "Cart cleared", "data": {"items_removed": removed}}

# --- admin ---

@router.get("/admin/stats")
def stats(_: Identity = Depends(require_admin), carts: CartStore = Depends(get_carts)):
    return {"success": True, "data": carts.get_stats()}

@router.get("/admin/popular")
def popular(limit: int = Query(10, ge=1, le=100), _: Identity = Depends(require_admin), carts: CartStore = Depends(get_carts)):
    return {"success": True, "data": carts.get_popular_items(limit)}

@router.get("/admin/carts")
def all_carts(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), _: Identity = Depends(require_admin),
              carts: CartStore = Depends(get_carts)):
    return {"success": True, "data": carts.get_all_carts(page, limit)}

@router.delete("/admin/cleanup")
def cleanup(days: int = Query(30, ge=0), _: Identity = Depends(require_admin), carts: CartStore = Depends(get_carts)):
    removed = carts.cleanup_old_items(days)
    return {"success": True, "message": f"{removed} old cart items removed", "data": {"items_removed": removed}}

@router.get("/admin/users/{user_id}")
def user_cart(user_id: int, _: Identity = Depends(require_admin), carts: CartStore = Depends(get_carts)):
    return {"success": True, "data": carts.get_by_user(user_id)}

@router.delete("/admin/users/{user_id}")
def clear_user_cart(user_id: int, _: Identity = Depends(require_admin), carts: CartStore = Depends(get_carts)):
    removed = carts.clear(user_id)
    return {"success": True, "message": f"Cart of user {user_id} cleared", "data": {"items_removed": removed}}
