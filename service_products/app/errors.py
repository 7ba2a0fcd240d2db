"""
Error kinds raised by product lookups and product persistence.
"""

from typing import Any, Dict, Optional

from shared.errors import AccessLayerException, ValidationError


class InvalidProductIdError(ValidationError):
    """The path identifier is not a positive decimal integer."""

    public_message = "Invalid product ID"

    def __init__(self, raw_id: str):
        super().__init__(
            f"Invalid product id {raw_id!r}",
            {"raw_id": raw_id},
            code="INVALID_PRODUCT_ID",
        )


class ProductNotFoundError(AccessLayerException):
    """No product with the requested id exists in the store."""

    status_code = 404
    public_message = "Product not found"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(
            "PRODUCT_NOT_FOUND",
            f"Product {product_id} not found",
            {"product_id": product_id},
        )


class ProductLookupError(AccessLayerException):
    """Base for internal failures; callers only ever see the public message."""

    status_code = 500
    public_message = "Failed to retrieve product"
    code = "PRODUCT_LOOKUP_ERROR"

    def __init__(
        self,
        message: str,
        *,
        product_id: Optional[int] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.product_id = product_id
        self.operation = operation
        context = dict(details or {})
        if product_id is not None:
            context["product_id"] = product_id
        if operation is not None:
            context["operation"] = operation
        super().__init__(self.code, message, context)


class StoreUnavailableError(ProductLookupError):
    code = "STORE_UNAVAILABLE"


class CacheUnavailableError(ProductLookupError):
    code = "CACHE_UNAVAILABLE"


class CacheCorruptionError(ProductLookupError):
    code = "CACHE_CORRUPTION"


class SerializationFailureError(ProductLookupError):
    code = "SERIALIZATION_FAILURE"
