from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import ensure_can_access, get_checkout, get_orders
from storefront.core.auth import Identity, get_current_identity, require_admin
from storefront.core.errors import NotFound
from storefront.schemas import (
    BulkCancel, BulkStatusUpdate, CancelPayload, CheckoutPayload, PaymentStatusUpdate, StatusUpdate,
)
from storefront.services.checkout import CheckoutCoordinator
from storefront.store.order_store import OrderStore

router = APIRouter()

@router.post("", status_code=201)
def checkout(payload: CheckoutPayload, identity: Identity = Depends(get_current_identity),
             coordinator: CheckoutCoordinator = Depends(get_checkout)):
    order = coordinator.checkout(identity.id, payload.shipping_address, payload.payment_method, payload.notes)
    return {"success": True, "message": "Order created", "data": order}

@router.get("/my")
def my_orders(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), status: Optional[str] = None,
              identity: Identity = Depends(get_current_identity), orders: OrderStore = Depends(get_orders)):
    return {"success": True, "data": orders.find_by_user(identity.id, page, limit, status)}

# --- admin listings ---

@router.get("")
def all_orders(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), status: Optional[str] = None,
               user_id: Optional[int] = None, payment_status: Optional[str] = None,
               _: Identity = Depends(require_admin), orders: OrderStore = Depends(get_orders)):
    return {"success": True, "data": orders.find_all(page, limit, status, user_id, payment_status)}

@router.get("/stats")
def stats(start_date: Optional[date] = None, end_date: Optional[date] = None, user_id: Optional[int] = None,
          _: Identity = Depends(require_admin), orders: OrderStore = Depends(get_orders)):
    return {"success": True, "data": orders.get_stats(start_date, end_date, user_id)}

@router.get("/recent")
def recent(limit: int = Query(10, ge=1, le=100), _: Identity = Depends(require_admin),
           orders: OrderStore = Depends(get_orders)):
    return {"success": True, "data": orders.get_recent(limit)}

@router.get("/revenue/{year}")
def monthly_revenue(year: int, _: Identity = Depends(require_admin), orders: OrderStore = Depends(get_orders)):
    return {"success": True, "data": orders.get_monthly_revenue(year)}

@router.patch("/bulk/status")
def bulk_status(payload: BulkStatusUpdate, _: Identity = Depends(require_admin),
                orders: OrderStore = Depends(get_orders)):
    result = orders.bulk_update_status(payload.order_ids, payload.status, payload.notes)
    return {"success": True, "message": f"{result.updated} of {result.total} orders updated", "data": result}

@router.patch("/bulk/cancel")
def bulk_cancel(payload: BulkCancel, _: Identity = Depends(require_admin), orders: OrderStore = Depends(get_orders)):
    result = orders.bulk_cancel(payload.order_ids, payload.reason)
    return {"success": True, "message": f"{result.updated} of {result.total} orders cancelled", "data": result}

@router.post("/pending-clears/sweep")
def sweep_pending_clears(_: Identity = Depends(require_admin),
                         coordinator: CheckoutCoordinator = Depends(get_checkout)):
    cleared = coordinator.sweep_pending_clears()
    return {"success": True, "data": {"cleared": cleared, "pending": coordinator.pending_clears()}}

# --- single order ---

@router.get("/{order_id}")
def get_order(order_id: int, identity: Identity = Depends(get_current_identity),
              orders: OrderStore = Depends(get_orders)):
    order = orders.get(order_id)
    ensure_can_access(order, identity)
    return {"success": True, "data": order}

@router.patch("/{order_id}/cancel")
def cancel_order(order_id: int, payload: Optional[CancelPayload] = None,
                 identity: Identity = Depends(get_current_identity), orders: OrderStore = Depends(get_orders)):
    ensure_can_access(orders.get(order_id), identity)
    order = orders.cancel(order_id, payload.reason if payload else None)
    return {"success": True, "message": "Order cancelled", "data": order}

@router.patch("/{order_id}/status")
def update_status(order_id: int, payload: StatusUpdate, _: Identity = Depends(require_admin),
                  orders: OrderStore = Depends(get_orders)):
    order = orders.update_status(order_id, payload.status, payload.notes)
    return {"success": True, "message": "Order status updated", "data": order}

@router.patch("/{order_id}/payment-status")
def update_payment_status(order_id: int, payload: PaymentStatusUpdate, _: Identity = Depends(require_admin),
                          orders: OrderStore = Depends(get_orders)):
    order = orders.update_payment_status(order_id, payload.payment_status)
    return {"success": True, "message": "Payment status updated", "data": order}

@router.delete("/{order_id}")
def delete_order(order_id: int, _: Identity = Depends(require_admin), orders: OrderStore = Depends(get_orders)):
    if not orders.delete(order_id):
        raise NotFound('Order not found')
    return {"success": True, "message": "Order deleted"}
