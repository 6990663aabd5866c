"""
catalog/store.py -- SQLAlchemy Core persistence layer for categories and products.

Pattern: Repository + Data Mapper, same as auth/store.py. CatalogStore is
the repository; the _row_to_* functions are the mappers.

Catalog reads and writes are pass-through: the only rules enforced here are
referential ones (a product's category must exist, a category with products
cannot be deleted). Authorization happens at the route boundary.

Security: all queries use bound parameters. Sort columns come from a fixed
mapping.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, func, select
from sqlalchemy.engine import Engine

from catalog.models import Category, Product
from core.db import make_engine
from core.db import now_iso as _now_iso
from core.errors import ConflictError, NotFoundError, ValidationError

metadata = MetaData()

_categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("price_cents", Integer, nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)

_PRODUCT_SORT = {
    "name": _products.c.name,
    "price": _products.c.price_cents,
    "createdAt": _products.c.created_at,
}

_CENT = Decimal("0.01")


def _to_cents(price: Decimal) -> int:
    return int((Decimal(price).quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def _from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(_CENT)


class CatalogStore:
    """Repository for Category and Product entities.

    Usage:
        store = CatalogStore("sqlite:///storekeep.db")
        cat_id = store.create_category("Books")
        store.create_product(Product(name="Dune", price=Decimal("9.99"), category_id=cat_id))
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, name: str) -> Category:
        with self.engine.connect() as conn:
            result = conn.execute(_categories.insert().values(name=name, created_at=_now_iso()))
            conn.commit()
        return self.get_category(result.inserted_primary_key[0])

    def get_category(self, category_id: int) -> Category:
        with self.engine.connect() as conn:
            row = conn.execute(_categories.select().where(_categories.c.id == category_id)).fetchone()
        if row is None:
            raise NotFoundError("Category not found!")
        return _row_to_category(row)

    def list_categories(
        self,
        *,
        search: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: int = 10,
    ) -> list[Category]:
        """Categories ordered by name; search is a case-insensitive substring match."""
        query = _categories.select()
        if search:
            query = query.where(_categories.c.name.icontains(search, autoescape=True))
        order = _categories.c.name.desc() if descending else _categories.c.name.asc()
        query = query.order_by(order, _categories.c.id).offset(offset).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_category(r) for r in rows]

    def rename_category(self, category_id: int, name: str) -> Category:
        with self.engine.connect() as conn:
            result = conn.execute(_categories.update().where(_categories.c.id == category_id).values(name=name))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Category not found!")
        return self.get_category(category_id)

    def delete_category(self, category_id: int) -> None:
        """Delete a category. Refuses while products still reference it."""
        self.get_category(category_id)
        with self.engine.connect() as conn:
            in_use = conn.execute(
                select(func.count()).select_from(_products).where(_products.c.category_id == category_id)
            ).scalar()
            if in_use:
                raise ConflictError("Category still has products.", status_code=409)
            conn.execute(_categories.delete().where(_categories.c.id == category_id))
            conn.commit()

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def _ensure_category(self, category_id: int) -> None:
        try:
            self.get_category(category_id)
        except NotFoundError as exc:
            raise ValidationError("Category does not exist!") from exc

    def create_product(self, product: Product) -> Product:
        self._ensure_category(product.category_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                _products.insert().values(
                    name=product.name,
                    price_cents=_to_cents(product.price),
                    category_id=product.category_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return self.get_product(result.inserted_primary_key[0])

    def get_product(self, product_id: int) -> Product:
        query = _product_join().where(_products.c.id == product_id)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            raise NotFoundError("Product not found!")
        return _row_to_product(row)

    def list_products(
        self,
        *,
        category_id: Optional[int] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        search: Optional[str] = None,
        sort_by: str = "name",
        descending: bool = False,
        offset: int = 0,
        limit: int = 10,
    ) -> list[Product]:
        query = _product_join()
        if category_id is not None:
            query = query.where(_products.c.category_id == category_id)
        if min_price is not None:
            query = query.where(_products.c.price_cents >= _to_cents(min_price))
        if max_price is not None:
            query = query.where(_products.c.price_cents <= _to_cents(max_price))
        if search:
            query = query.where(_products.c.name.icontains(search, autoescape=True))
        column = _PRODUCT_SORT.get(sort_by, _products.c.name)
        query = query.order_by(column.desc() if descending else column.asc(), _products.c.id)
        query = query.offset(offset).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_product(r) for r in rows]

    def update_product(self, product_id: int, **fields: Any) -> Product:
        """Update name, price and/or category_id on an existing product."""
        self.get_product(product_id)
        values: dict[str, Any] = {}
        if fields.get("name") is not None:
            values["name"] = fields["name"]
        if fields.get("price") is not None:
            values["price_cents"] = _to_cents(fields["price"])
        if fields.get("category_id") is not None:
            self._ensure_category(fields["category_id"])
            values["category_id"] = fields["category_id"]
        if values:
            with self.engine.connect() as conn:
                conn.execute(_products.update().where(_products.c.id == product_id).values(**values))
                conn.commit()
        return self.get_product(product_id)

    def delete_product(self, product_id: int) -> None:
        with self.engine.connect() as conn:
            result = conn.execute(_products.delete().where(_products.c.id == product_id))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Product not found!")

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Queries and row mappers
# ---------------------------------------------------------------------------


def _product_join():
    return select(
        _products,
        _categories.c.name.label("category_name"),
        _categories.c.created_at.label("category_created_at"),
    ).select_from(_products.join(_categories, _products.c.category_id == _categories.c.id))


def _row_to_category(row) -> Category:
    return Category(id=row.id, name=row.name, created_at=row.created_at)


def _row_to_product(row) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        price=_from_cents(row.price_cents),
        category_id=row.category_id,
        created_at=row.created_at,
        category=Category(id=row.category_id, name=row.category_name, created_at=row.category_created_at),
    )
