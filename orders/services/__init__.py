"""
Order Services - Order lifecycle, shipping and packing costs

Usage:
    from orders.services import OrderService

    result = OrderService.place_order([{"variant_id": 1, "quantity": 2}], "inside", Decimal("60"))
    OrderService.update_status(result["order"]["id"], "confirmed")
    OrderService.update_status(result["order"]["id"], "shipped")
"""

from .shipping_service import (
    ShippingCalculation,
    calculate_shipping_cost,
    calculate_order_shipping,
    calculate_actual_shipping_cost,
)
from .packing_service import calculate_packing_from_variants
from .order_service import (
    ALLOWED_TRANSITIONS,
    OrderService,
    OrderCostService,
    OrderStatusHandler,
    process_inventory_and_costs,
    revert_inventory_and_costs,
)

__all__ = [
    "ShippingCalculation",
    "calculate_shipping_cost",
    "calculate_order_shipping",
    "calculate_actual_shipping_cost",
    "calculate_packing_from_variants",
    "ALLOWED_TRANSITIONS",
    "OrderService",
    "OrderCostService",
    "OrderStatusHandler",
    "process_inventory_and_costs",
    "revert_inventory_and_costs",
]
