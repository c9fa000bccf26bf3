# =============================================================================
# fulltech_core/services/__init__.py
# Service Layer for the FULLTECH storefront
# =============================================================================
"""
Service layer between the offline infrastructure and the UI.

Usage Example:
-------------
    from fulltech_core.services import ProductCatalogService

    catalog = ProductCatalogService(cache_manager, sync)
    catalog.load_from_cache()
    if catalog.refresh():
        print(f"{len(catalog.products)} products")
"""

from .base_service import BaseService, ServiceResult
from .product_service import ProductCatalogService

__all__ = [
    "BaseService",
    "ServiceResult",
    "ProductCatalogService",
]
