from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from shop.models import Product, get_db
from shop.schemas.products import ProductResponse

router = APIRouter()


@router.get(
    "",
    response_model=list[ProductResponse],
    summary="List products",
)
def list_products(
    db: Annotated[Session, Depends(get_db)],
):
    """Returns all active products with their current price and stock."""
    return db.query(Product).filter(Product.is_active.is_(True)).order_by(Product.id).all()


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product by ID",
)
def get_product(
    product_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    product = db.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product
