"""
Stock Services - FIFO batches for product variants, boxes and packing materials

Usage:
    from stock.services import add_inventory_batch, deduct_inventory_fifo

    # Receive stock
    add_inventory_batch(variant_id=1, quantity=10, purchase_price=Decimal("100.00"))

    # Ship it, then put it back
    result = deduct_inventory_fifo(1, 7)
    revert_inventory_fifo(result["allocations"], 1)
"""

from stock.services.allocation import (
    BatchAllocation,
    MaterialAllocation,
    MaterialShortfall,
    FifoResult,
    DetailedAllocation,
    AggregateFallback,
    PackingUsage,
    parse_box_usage,
    parse_material_usage,
)
from .batch_service import DiscreteFifoService, InventoryBatchService
from .packing_service import BoxInventoryService, PackingMaterialService


# Function-style entry points, all returning result dicts
add_inventory_batch = InventoryBatchService.add_inventory_batch
deduct_inventory_fifo = InventoryBatchService.deduct_fifo
revert_inventory_fifo = InventoryBatchService.revert_fifo

add_box_batch = BoxInventoryService.add_box_batch
deduct_box_inventory_fifo = BoxInventoryService.deduct_fifo
revert_box_inventory_fifo = BoxInventoryService.revert_fifo

add_material_batch = PackingMaterialService.add_material_batch
deduct_material_inventory_fifo = PackingMaterialService.deduct_fifo
revert_material_inventory_fifo = PackingMaterialService.revert_fifo


__all__ = [
    # Allocation values
    "BatchAllocation",
    "MaterialAllocation",
    "MaterialShortfall",
    "FifoResult",
    "DetailedAllocation",
    "AggregateFallback",
    "PackingUsage",
    "parse_box_usage",
    "parse_material_usage",

    # Services
    "DiscreteFifoService",
    "InventoryBatchService",
    "BoxInventoryService",
    "PackingMaterialService",

    # Functions
    "add_inventory_batch",
    "deduct_inventory_fifo",
    "revert_inventory_fifo",
    "add_box_batch",
    "deduct_box_inventory_fifo",
    "revert_box_inventory_fifo",
    "add_material_batch",
    "deduct_material_inventory_fifo",
    "revert_material_inventory_fifo",
]
