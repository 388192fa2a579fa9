from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from shop.dependencies import ensure_order_access, get_current_user, require_admin
from shop.models import User, get_db
from shop.schemas.orders import OrderCreateRequest, OrderResponse, OrderStatusUpdateRequest
from shop.services import order_service

router = APIRouter()


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
)
def create_order(
    body: OrderCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """
    Create a PENDING order from the cart items.
    Prices are frozen on the order; stock is only taken once payment succeeds.
    """
    return order_service.create_order(
        db,
        user_id=current_user.id,
        items=[(item.product_id, item.quantity) for item in body.items],
    )


@router.get(
    "/me",
    response_model=list[OrderResponse],
    summary="List my orders",
)
def my_orders(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Returns the list of orders for the current user, newest first."""
    return order_service.list_user_orders(db, current_user.id)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
def get_order(
    order_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    order = order_service.get_order(db, order_id)
    ensure_order_access(order, current_user)
    return order


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status (admin)",
)
def update_order_status(
    order_id: int,
    body: OrderStatusUpdateRequest,
    _admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Allowed: PENDING -> PAID/CANCELED, PAID -> PENDING/CANCELED. CANCELED is final."""
    return order_service.update_order_status(db, order_id, body.status)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel pending order",
)
def cancel_order(
    order_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    order = order_service.get_order(db, order_id)
    ensure_order_access(order, current_user)
    return order_service.cancel_order(db, order_id)
