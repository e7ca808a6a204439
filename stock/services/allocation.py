"""
Allocation value types shared by the FIFO allocators and the order orchestrator.

Allocations are stored as JSON on order items and packing records, so every
type here converts to and from plain dicts with money as 2-place strings.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple, Union

from storefront.base_service import money_str, round_money, to_decimal


@dataclass(frozen=True)
class BatchAllocation:
    """Units taken from one discrete batch (product variant or box)."""

    batch_id: int
    quantity: int
    cost_per_unit: Decimal

    @property
    def cost(self) -> Decimal:
        return self.cost_per_unit * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "quantity": self.quantity,
            "cost_per_unit": money_str(self.cost_per_unit),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchAllocation":
        return cls(
            batch_id=int(data["batch_id"]),
            quantity=int(data["quantity"]),
            cost_per_unit=to_decimal(data.get("cost_per_unit")),
        )


@dataclass(frozen=True)
class MaterialAllocation:
    """Money taken from one packing material batch."""

    batch_id: int
    amount: Decimal

    @property
    def cost(self) -> Decimal:
        return self.amount

    def to_dict(self) -> Dict[str, Any]:
        return {"batch_id": self.batch_id, "amount": money_str(self.amount)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaterialAllocation":
        return cls(batch_id=int(data["batch_id"]), amount=to_decimal(data.get("amount")))


@dataclass(frozen=True)
class MaterialShortfall:
    """Soft failure: a material balance could not cover the requested amount."""

    material_id: int
    available: Decimal
    needed: Decimal

    code = "MATERIAL_SHORTFALL"

    @property
    def missing(self) -> Decimal:
        return self.needed - self.available

    @property
    def message(self) -> str:
        return (
            f"Insufficient material inventory for material {self.material_id}. "
            f"Available: {money_str(self.available)}, Needed: {money_str(self.needed)}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "material_id": self.material_id,
            "available": money_str(self.available),
            "needed": money_str(self.needed),
            "missing": money_str(self.missing),
        }


@dataclass
class FifoResult:
    allocations: List[Union[BatchAllocation, MaterialAllocation]] = field(default_factory=list)
    total_cost: Decimal = Decimal("0.00")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allocations": [a.to_dict() for a in self.allocations],
            "total_cost": money_str(self.total_cost),
        }


def walk_fifo(batches: Iterable[Any],
              needed: Decimal,
              available: Callable[[Any], Decimal]) -> Tuple[List[Tuple[Any, Decimal]], Decimal]:
    """
    Take from `batches` oldest-first until `needed` is covered.

    `batches` must already be in FIFO order. Returns the (batch, taken) pairs
    and whatever is still uncovered. Nothing is written here.
    """
    takes = []
    still_needed = needed

    for batch in batches:
        if still_needed <= 0:
            break

        taken = min(available(batch), still_needed)
        if taken <= 0:
            continue

        takes.append((batch, taken))
        still_needed -= taken

    return takes, still_needed


def total_cost(allocations: Sequence[Union[BatchAllocation, MaterialAllocation]]) -> Decimal:
    return round_money(sum((a.cost for a in allocations), Decimal("0")))


# ==================== STORED PACKING USAGE ====================

@dataclass(frozen=True)
class DetailedAllocation:
    """A packing usage recorded with the exact batches it consumed."""

    resource_id: int
    quantity: Decimal
    allocations: Tuple[Union[BatchAllocation, MaterialAllocation], ...]


@dataclass(frozen=True)
class AggregateFallback:
    """A packing usage from before batch tracking: only the total is known."""

    resource_id: int
    quantity: Decimal


PackingUsage = Union[DetailedAllocation, AggregateFallback]


def parse_box_usage(entry: Dict[str, Any]) -> PackingUsage:
    box_type_id = int(entry["box_type_id"])
    quantity = int(entry.get("quantity") or 0)
    raw = entry.get("batch_allocations") or []

    if raw:
        return DetailedAllocation(
            resource_id=box_type_id,
            quantity=quantity,
            allocations=tuple(BatchAllocation.from_dict(a) for a in raw),
        )
    return AggregateFallback(resource_id=box_type_id, quantity=quantity)


def parse_material_usage(entry: Dict[str, Any]) -> PackingUsage:
    material_id = int(entry["material_id"])
    raw = entry.get("batch_allocations") or []

    if raw:
        allocations = tuple(MaterialAllocation.from_dict(a) for a in raw)
        return DetailedAllocation(
            resource_id=material_id,
            quantity=sum((a.amount for a in allocations), Decimal("0")),
            allocations=allocations,
        )
    return AggregateFallback(resource_id=material_id, quantity=to_decimal(entry.get("cost_used")))
