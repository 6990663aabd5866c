"""
api/routes/product.py -- Product endpoints.

Routes:
  POST   /products        -- create (public); categoryId must exist
  GET    /products        -- filtered, sorted, paginated listing
  GET    /products/{id}   -- one product with its category
  PUT    /products/{id}   -- update (Admin or SuperAdmin)
  DELETE /products/{id}   -- delete (Admin)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import MessageResponse, ProductCreate, ProductResponse, ProductUpdate
from auth.dependencies import require_roles
from auth.models import Identity
from auth.roles import ADMIN_ONLY, ADMIN_OR_SUPER
from catalog.models import Product
from catalog.store import CatalogStore

router = APIRouter(prefix="/products")


def _catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


@router.post("", response_model=ProductResponse, status_code=201)
def create_product(request: Request, body: ProductCreate) -> ProductResponse:
    product = Product(name=body.name, price=body.price, category_id=body.category_id)
    return ProductResponse.from_domain(_catalog(request).create_product(product))


@router.get("", response_model=list[ProductResponse])
def list_products(
    request: Request,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    min_price: Optional[Decimal] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", ge=0),
    search: Optional[str] = None,
    sort_by: str = Query("name", alias="sortBy", pattern="^(name|price|createdAt)$"),
    sort_order: str = Query("asc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> list[ProductResponse]:
    """Price bounds are inclusive; search matches the product name case-insensitively."""
    products = _catalog(request).list_products(
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        search=search,
        sort_by=sort_by,
        descending=sort_order == "desc",
        offset=(page - 1) * limit,
        limit=limit,
    )
    return [ProductResponse.from_domain(p) for p in products]


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(request: Request, product_id: int) -> ProductResponse:
    return ProductResponse.from_domain(_catalog(request).get_product(product_id))


@router.put("/{product_id}", response_model=ProductResponse)
def update_product(
    request: Request,
    product_id: int,
    body: ProductUpdate,
    identity: Identity = Depends(require_roles(*ADMIN_OR_SUPER)),
) -> ProductResponse:
    updated = _catalog(request).update_product(product_id, **body.model_dump(exclude_none=True))
    return ProductResponse.from_domain(updated)


@router.delete("/{product_id}", response_model=MessageResponse)
def delete_product(
    request: Request,
    product_id: int,
    identity: Identity = Depends(require_roles(*ADMIN_ONLY)),
) -> MessageResponse:
    _catalog(request).delete_product(product_id)
    return MessageResponse(message="Product deleted.")
