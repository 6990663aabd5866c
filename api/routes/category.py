"""
api/routes/category.py -- Product category endpoints.

Routes:
  POST   /category        -- create (public)
  GET    /category        -- list, ordered by name, optional name search
  GET    /category/{id}   -- one category
  PATCH  /category/{id}   -- rename (Admin or SuperAdmin)
  DELETE /category/{id}   -- delete (Admin); 409 while products reference it
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import CategoryCreate, CategoryResponse, MessageResponse
from auth.dependencies import require_roles
from auth.models import Identity
from auth.roles import ADMIN_ONLY, ADMIN_OR_SUPER
from catalog.store import CatalogStore

router = APIRouter(prefix="/category")


def _catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


@router.post("", response_model=CategoryResponse, status_code=201)
def create_category(request: Request, body: CategoryCreate) -> CategoryResponse:
    return CategoryResponse.from_domain(_catalog(request).create_category(body.name))


@router.get("", response_model=list[CategoryResponse])
def list_categories(
    request: Request,
    search: Optional[str] = None,
    sort_order: str = Query("asc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> list[CategoryResponse]:
    categories = _catalog(request).list_categories(
        search=search,
        descending=sort_order == "desc",
        offset=(page - 1) * limit,
        limit=limit,
    )
    return [CategoryResponse.from_domain(c) for c in categories]


@router.get("/{category_id}", response_model=CategoryResponse)
def get_category(request: Request, category_id: int) -> CategoryResponse:
    return CategoryResponse.from_domain(_catalog(request).get_category(category_id))


@router.patch("/{category_id}", response_model=CategoryResponse)
def rename_category(
    request: Request,
    category_id: int,
    body: CategoryCreate,
    identity: Identity = Depends(require_roles(*ADMIN_OR_SUPER)),
) -> CategoryResponse:
    return CategoryResponse.from_domain(_catalog(request).rename_category(category_id, body.name))


@router.delete("/{category_id}", response_model=MessageResponse)
def delete_category(
    request: Request,
    category_id: int,
    identity: Identity = Depends(require_roles(*ADMIN_ONLY)),
) -> MessageResponse:
    _catalog(request).delete_category(category_id)
    return MessageResponse(message="Category deleted.")
