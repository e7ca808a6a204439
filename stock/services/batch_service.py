"""
Inventory Batch Service - FIFO batches for product variants

DiscreteFifoService holds the allocate/revert walk shared by every resource
counted in whole units (product variants here, boxes in packing_service).
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Union

from django.db import transaction
from django.db.models import F, Sum

from catalog.models import ProductVariant
from finance.services.finance_service import FinanceService
from stock.models import InventoryBatch
from stock.services.allocation import BatchAllocation, FifoResult, total_cost, walk_fifo
from storefront.base_service import (
    BaseService, BatchNotFoundError, BusinessRuleError, InsufficientInventoryError,
    NotFoundError, ServiceError, ValidationError, generate_batch_number, money_str,
    retry_on_conflict, round_money, service_error_response, success_response, to_decimal,
)

logger = logging.getLogger(__name__)


class DiscreteFifoService(BaseService):
    """
    FIFO allocation over whole-unit batches.

    Subclasses name the batch model, the resource model, the FK from batch to
    resource and the resource's cached stock counter.
    """

    model = None
    resource_model = None
    resource_field = None
    counter_field = None
    batch_prefix = "BATCH"

    # ==================== HOOKS ====================

    @classmethod
    def _record_movement(cls, resource, transaction_type: str, quantity: int,
                         stock_before: int, order_id: int = None, notes: str = "") -> None:
        """Audit row for a counter movement; resources without an audit trail skip it."""

    @classmethod
    def _book_purchase(cls, batch, amount: Decimal, is_opening_stock: bool) -> None:
        raise NotImplementedError

    # ==================== LOCKING ====================

    @classmethod
    def _lock_resource(cls, resource_id: int):
        try:
            return cls.resource_model.objects.select_for_update().get(pk=resource_id)
        except cls.resource_model.DoesNotExist:
            raise NotFoundError(cls.resource_model.__name__, resource_id)

    @classmethod
    def _lock_available_batches(cls, resource_id: int) -> List[Any]:
        return list(
            cls.model.objects.select_for_update()
            .filter(**{f"{cls.resource_field}_id": resource_id, "remaining_quantity__gt": 0})
            .order_by("purchase_date", "id")
        )

    @classmethod
    def _adjust_counter(cls, resource_id: int, delta: int) -> None:
        cls.resource_model.objects.filter(pk=resource_id).update(
            **{cls.counter_field: F(cls.counter_field) + delta}
        )

    @staticmethod
    def _validate_quantity(quantity: Any) -> int:
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number", "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", "quantity")
        return quantity

    # ==================== ADD ====================

    @classmethod
    def create_batch(cls,
                     resource_id: int,
                     quantity: int,
                     purchase_price: Decimal,
                     batch_number: str = None,
                     notes: str = None,
                     purchase_date: datetime = None,
                     is_opening_stock: bool = False):
        """Raising variant of add: must run inside transaction.atomic()."""
        quantity = cls._validate_quantity(quantity)
        price = to_decimal(purchase_price, None)
        if price is None or not price.is_finite():
            raise ValidationError("Purchase price must be a number", "purchase_price")
        purchase_price = round_money(price)
        if purchase_price < 0:
            raise ValidationError("Purchase price cannot be negative", "purchase_price")

        resource = cls._lock_resource(resource_id)
        stock_before = getattr(resource, cls.counter_field)

        fields = {
            cls.resource_field: resource,
            "batch_number": batch_number or generate_batch_number(cls.batch_prefix, resource_id),
            "purchase_price": purchase_price,
            "quantity": quantity,
            "remaining_quantity": quantity,
            "notes": notes or "",
        }
        if purchase_date:
            fields["purchase_date"] = purchase_date

        batch = cls.model.objects.create(**fields)
        cls._adjust_counter(resource_id, quantity)
        cls._record_movement(resource, "purchase", quantity, stock_before,
                             notes=f"Batch {batch.batch_number}")
        cls._book_purchase(batch, purchase_price * quantity, is_opening_stock)

        logger.info(f"Added {cls.model.__name__} {batch.batch_number}: {quantity} @ {purchase_price}")
        return batch

    # ==================== ALLOCATE ====================

    @classmethod
    def consume(cls, resource_id: int, quantity: int,
                order_id: int = None, notes: str = "") -> FifoResult:
        """
        Take `quantity` units oldest batch first. Fails with
        InsufficientInventoryError before touching anything if the batches
        cannot cover it.
        """
        quantity = cls._validate_quantity(quantity)

        with transaction.atomic():
            resource = cls._lock_resource(resource_id)
            batches = cls._lock_available_batches(resource_id)

            available = sum(b.remaining_quantity for b in batches)
            if available < quantity:
                raise InsufficientInventoryError(str(resource), available, quantity)

            takes, _ = walk_fifo(batches, quantity, lambda b: b.remaining_quantity)

            allocations = []
            for batch, taken in takes:
                batch.remaining_quantity -= taken
                batch.save(update_fields=["remaining_quantity", "updated_at"])
                allocations.append(BatchAllocation(batch.id, taken, batch.purchase_price))

            stock_before = getattr(resource, cls.counter_field)
            cls._adjust_counter(resource_id, -quantity)
            cls._record_movement(resource, "order_use", -quantity, stock_before, order_id, notes)

        return FifoResult(allocations=allocations, total_cost=total_cost(allocations))

    # ==================== REVERT ====================

    @classmethod
    def restore(cls,
                allocations: Iterable[Union[BatchAllocation, Dict[str, Any]]],
                resource_id: int,
                order_id: int = None,
                notes: str = "") -> FifoResult:
        """Credit each allocation back to the exact batch it came from."""
        allocations = [
            a if isinstance(a, BatchAllocation) else BatchAllocation.from_dict(a)
            for a in allocations
        ]

        with transaction.atomic():
            resource = cls._lock_resource(resource_id)

            restored = 0
            for allocation in sorted(allocations, key=lambda a: a.batch_id):
                batch = cls.model.objects.select_for_update().filter(
                    pk=allocation.batch_id, **{f"{cls.resource_field}_id": resource_id}
                ).first()
                if batch is None:
                    logger.error(
                        f"{cls.model.__name__} {allocation.batch_id} referenced by an "
                        f"allocation for {cls.resource_model.__name__} {resource_id} does not exist"
                    )
                    raise BatchNotFoundError(cls.model.__name__, allocation.batch_id)

                if batch.remaining_quantity + allocation.quantity > batch.quantity:
                    raise BusinessRuleError(
                        f"Reverting {allocation.quantity} to batch {batch.batch_number} "
                        f"would exceed its original quantity {batch.quantity}",
                        "batch_overflow",
                    )

                batch.remaining_quantity += allocation.quantity
                batch.save(update_fields=["remaining_quantity", "updated_at"])
                restored += allocation.quantity

            if restored:
                stock_before = getattr(resource, cls.counter_field)
                cls._adjust_counter(resource_id, restored)
                cls._record_movement(resource, "revert", restored, stock_before, order_id, notes)

        return FifoResult(allocations=allocations, total_cost=total_cost(allocations))

    @classmethod
    def credit_counter(cls, resource_id: int, quantity: int,
                       order_id: int = None, notes: str = "") -> None:
        """Return units with no batch detail straight to the cached counter."""
        quantity = cls._validate_quantity(quantity)
        with transaction.atomic():
            resource = cls._lock_resource(resource_id)
            stock_before = getattr(resource, cls.counter_field)
            cls._adjust_counter(resource_id, quantity)
            cls._record_movement(resource, "revert", quantity, stock_before, order_id, notes)

        logger.warning(
            f"Credited {quantity} to {cls.resource_model.__name__} {resource_id} "
            f"without batch detail"
        )

    # ==================== RESULT-DICT ENTRY POINTS ====================

    @classmethod
    @retry_on_conflict
    def add_batch(cls, resource_id: int, quantity: int, purchase_price: Decimal,
                  batch_number: str = None, notes: str = None,
                  purchase_date: datetime = None, is_opening_stock: bool = False) -> Dict[str, Any]:
        try:
            with transaction.atomic():
                batch = cls.create_batch(
                    resource_id, quantity, purchase_price, batch_number,
                    notes, purchase_date, is_opening_stock,
                )
        except ServiceError as e:
            return service_error_response(e)

        return success_response({"batch": cls.serialize(batch)}, "Batch added")

    @classmethod
    @retry_on_conflict
    def deduct_fifo(cls, resource_id: int, quantity: int,
                    order_id: int = None, notes: str = "") -> Dict[str, Any]:
        try:
            result = cls.consume(resource_id, quantity, order_id, notes)
        except ServiceError as e:
            return service_error_response(e)

        return success_response(
            result.to_dict(), f"Deducted from {len(result.allocations)} batch(es)"
        )

    @classmethod
    @retry_on_conflict
    def revert_fifo(cls, allocations: Iterable[Any], resource_id: int,
                    order_id: int = None, notes: str = "") -> Dict[str, Any]:
        try:
            result = cls.restore(allocations, resource_id, order_id, notes)
        except ServiceError as e:
            return service_error_response(e)

        return success_response(
            {
                "restored_quantity": sum(a.quantity for a in result.allocations),
                "restored_value": money_str(result.total_cost),
            },
            f"Reverted to {len(result.allocations)} batch(es)",
        )


class InventoryBatchService(DiscreteFifoService):
    """Product variant stock"""

    model = InventoryBatch
    resource_model = ProductVariant
    resource_field = "variant"
    counter_field = "inventory_quantity"
    batch_prefix = "BATCH"

    @classmethod
    def serialize(cls, batch: InventoryBatch) -> Dict[str, Any]:
        return {
            "id": batch.id,
            "uuid": str(batch.uuid),
            "batch_number": batch.batch_number,
            "variant_id": batch.variant_id,
            "purchase_date": batch.purchase_date.isoformat(),
            "purchase_price": money_str(batch.purchase_price),
            "quantity": batch.quantity,
            "remaining_quantity": batch.remaining_quantity,
            "remaining_value": money_str(batch.purchase_price * batch.remaining_quantity),
            "notes": batch.notes,
        }

    @classmethod
    def _book_purchase(cls, batch: InventoryBatch, amount: Decimal, is_opening_stock: bool) -> None:
        FinanceService.record_inventory_purchase(
            amount,
            f"Inventory batch {batch.batch_number} for {batch.variant}",
            batch_id=batch.id,
            is_opening_stock=is_opening_stock,
        )

    @classmethod
    def add_inventory_batch(cls,
                            variant_id: int,
                            quantity: int,
                            purchase_price: Decimal,
                            batch_number: str = None,
                            notes: str = None,
                            purchase_date: datetime = None,
                            is_opening_stock: bool = False) -> Dict[str, Any]:
        return cls.add_batch(
            variant_id, quantity, purchase_price, batch_number,
            notes, purchase_date, is_opening_stock,
        )

    @classmethod
    def get_inventory_batches(cls, variant_id: int, has_stock_only: bool = False) -> Dict[str, Any]:
        queryset = cls.model.objects.filter(variant_id=variant_id)
        if has_stock_only:
            queryset = queryset.filter(remaining_quantity__gt=0)

        batches = queryset.order_by("purchase_date", "id")
        return success_response({"batches": [cls.serialize(b) for b in batches]})

    @classmethod
    def get_available_inventory(cls, variant_id: int) -> Dict[str, Any]:
        totals = cls.model.objects.filter(
            variant_id=variant_id, remaining_quantity__gt=0
        ).aggregate(total=Sum("remaining_quantity"))

        variant: Optional[ProductVariant] = ProductVariant.objects.filter(pk=variant_id).first()
        if variant is None:
            return service_error_response(NotFoundError("ProductVariant", variant_id))

        return success_response({
            "variant_id": variant_id,
            "available_quantity": totals["total"] or 0,
            "cached_quantity": variant.inventory_quantity,
        })
