"""
                        Services Module

Business logic behind the HTTP routes.

Services:
    - orders: order lifecycle, payment records and admin reporting
    - restaurants: read-only restaurant catalog
    - paging: offset pagination shared by the list endpoints
"""

from food_ordering.services.orders import (
    OrderLifecycleManager,
    generate_order_number,
)
from food_ordering.services.restaurants import RestaurantCatalog

__all__ = ["OrderLifecycleManager", "RestaurantCatalog", "generate_order_number"]
