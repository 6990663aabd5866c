"""
catalog/models.py -- Domain dataclasses for the product catalog.

Pure data containers. Prices are Decimal with two places in the domain and
integer cents in the database, so no float rounding reaches storage.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class Category:
    name: str
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Product:
    """A priced item belonging to exactly one category.

    category is populated by reads that join the category row; it is None on
    objects built for insertion.
    """

    name: str
    price: Decimal
    category_id: int
    id: Optional[int] = None
    created_at: str = ""
    category: Optional[Category] = None
