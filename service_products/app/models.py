"""
Product data models for Products Service.
"""

import math
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class Product:
    """A product record as held by the store.

    ``product_id`` is ``None`` only for a product that has not been created
    yet; the store assigns it and it never changes afterwards.
    """
    product_id: Optional[int]
    name: str
    description: str
    price: float

    def __post_init__(self):
        if math.isnan(self.price) or self.price < 0:
            raise ValueError(f"price must be non-negative, got {self.price!r}")


class ProductPayload(BaseModel):
    """Wire format of a product, shared by the cache snapshot and the HTTP body."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    product_id: int = Field(..., alias="ID", gt=0, description="Product ID")
    name: str = Field(..., alias="Name", description="Product name")
    description: str = Field(..., alias="Description", description="Product description")
    price: float = Field(..., alias="Price", ge=0, allow_inf_nan=False, description="Unit price")

    @classmethod
    def from_product(cls, product: Product) -> "ProductPayload":
        return cls(
            product_id=product.product_id,
            name=product.name,
            description=product.description,
            price=product.price,
        )

    def to_product(self) -> Product:
        return Product(
            product_id=self.product_id,
            name=self.name,
            description=self.description,
            price=self.price,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
