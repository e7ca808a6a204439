"""
Packing Stock Service - Boxes (whole units) and packing materials (money)

Boxes share the strict FIFO walk with product variants. Materials are
tracked as money spent, and a shortfall is tolerated: whatever the batches
hold is taken and the gap is reported as a MaterialShortfall.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from django.db import transaction
from django.db.models import F

from catalog.models import BoxType, PackingMaterial
from finance.services.finance_service import FinanceService
from stock.models import BoxInventoryBatch, BoxTransaction, PackingMaterialBatch, PackingMaterialTransaction
from stock.services.allocation import (
    FifoResult, MaterialAllocation, MaterialShortfall, total_cost, walk_fifo,
)
from stock.services.batch_service import DiscreteFifoService
from storefront.base_service import (
    BaseService, BatchNotFoundError, BusinessRuleError, NotFoundError, ServiceError,
    ValidationError, generate_batch_number, money_str, retry_on_conflict, round_money,
    service_error_response, success_response, to_decimal,
)

logger = logging.getLogger(__name__)


class BoxInventoryService(DiscreteFifoService):
    model = BoxInventoryBatch
    resource_model = BoxType
    resource_field = "box_type"
    counter_field = "current_stock"
    batch_prefix = "BOX"

    @classmethod
    def serialize(cls, batch: BoxInventoryBatch) -> Dict[str, Any]:
        return {
            "id": batch.id,
            "uuid": str(batch.uuid),
            "batch_number": batch.batch_number,
            "box_type_id": batch.box_type_id,
            "purchase_date": batch.purchase_date.isoformat(),
            "purchase_price": money_str(batch.purchase_price),
            "quantity": batch.quantity,
            "remaining_quantity": batch.remaining_quantity,
            "notes": batch.notes,
        }

    @classmethod
    def _record_movement(cls, resource: BoxType, transaction_type: str, quantity: int,
                         stock_before: int, order_id: int = None, notes: str = "") -> None:
        BoxTransaction.objects.create(
            box_type=resource,
            transaction_type=transaction_type,
            quantity=quantity,
            stock_before=stock_before,
            stock_after=stock_before + quantity,
            order_id=order_id,
            notes=notes or "",
        )

    @classmethod
    def _book_purchase(cls, batch: BoxInventoryBatch, amount: Decimal, is_opening_stock: bool) -> None:
        FinanceService.record_inventory_purchase(
            amount,
            f"Box batch {batch.batch_number} ({batch.box_type.name})",
            box_batch_id=batch.id,
            is_opening_stock=is_opening_stock,
        )

    @classmethod
    def get_box_batches(cls, box_type_id: int) -> Dict[str, Any]:
        batches = cls.model.objects.filter(box_type_id=box_type_id).order_by("purchase_date", "id")
        return success_response({"batches": [cls.serialize(b) for b in batches]})

    @classmethod
    def add_box_batch(cls,
                      box_type_id: int,
                      quantity: int,
                      purchase_price: Decimal,
                      batch_number: str = None,
                      notes: str = None,
                      purchase_date: datetime = None,
                      is_opening_stock: bool = False) -> Dict[str, Any]:
        return cls.add_batch(
            box_type_id, quantity, purchase_price, batch_number,
            notes, purchase_date, is_opening_stock,
        )


class PackingMaterialService(BaseService):
    model = PackingMaterialBatch
    batch_prefix = "MAT"

    @classmethod
    def serialize(cls, batch: PackingMaterialBatch) -> Dict[str, Any]:
        return {
            "id": batch.id,
            "uuid": str(batch.uuid),
            "batch_number": batch.batch_number,
            "material_id": batch.material_id,
            "purchase_date": batch.purchase_date.isoformat(),
            "purchase_amount": money_str(batch.purchase_amount),
            "remaining_amount": money_str(batch.remaining_amount),
            "notes": batch.notes,
        }

    @staticmethod
    def _validate_amount(amount: Any) -> Decimal:
        amount = round_money(to_decimal(amount, None))
        if amount <= 0:
            raise ValidationError("Amount must be positive", "amount")
        return amount

    @classmethod
    def _lock_material(cls, material_id: int) -> PackingMaterial:
        try:
            return PackingMaterial.objects.select_for_update().get(pk=material_id)
        except PackingMaterial.DoesNotExist:
            raise NotFoundError("PackingMaterial", material_id)

    @classmethod
    def _adjust_balance(cls, material: PackingMaterial, delta: Decimal, transaction_type: str,
                        order_id: int = None, notes: str = "") -> None:
        balance_before = round_money(material.current_balance)
        PackingMaterial.objects.filter(pk=material.pk).update(
            current_balance=F("current_balance") + delta
        )
        PackingMaterialTransaction.objects.create(
            material=material,
            transaction_type=transaction_type,
            amount=delta,
            balance_before=balance_before,
            balance_after=round_money(balance_before + delta),
            order_id=order_id,
            notes=notes or "",
        )

    # ==================== ADD ====================

    @classmethod
    def create_batch(cls,
                     material_id: int,
                     amount: Decimal,
                     batch_number: str = None,
                     notes: str = None,
                     purchase_date: datetime = None,
                     is_opening_stock: bool = False) -> PackingMaterialBatch:
        amount = cls._validate_amount(amount)
        material = cls._lock_material(material_id)

        fields = {
            "material": material,
            "batch_number": batch_number or generate_batch_number(cls.batch_prefix, material_id),
            "purchase_amount": amount,
            "remaining_amount": amount,
            "notes": notes or "",
        }
        if purchase_date:
            fields["purchase_date"] = purchase_date

        batch = cls.model.objects.create(**fields)
        cls._adjust_balance(material, amount, "purchase", notes=f"Batch {batch.batch_number}")

        FinanceService.record_inventory_purchase(
            amount,
            f"Packing material batch {batch.batch_number} ({material.name})",
            material_batch_id=batch.id,
            is_opening_stock=is_opening_stock,
        )

        logger.info(f"Added material batch {batch.batch_number}: {amount}")
        return batch

    # ==================== ALLOCATE ====================

    @classmethod
    def consume(cls, material_id: int, amount: Decimal,
                order_id: int = None, notes: str = "") -> Tuple[FifoResult, Optional[MaterialShortfall]]:
        """
        Take up to `amount` oldest batch first. The cached balance drops by
        what was actually taken; any gap comes back as a MaterialShortfall.
        """
        needed = cls._validate_amount(amount)

        with transaction.atomic():
            material = cls._lock_material(material_id)
            batches = list(
                cls.model.objects.select_for_update()
                .filter(material_id=material_id, remaining_amount__gt=0)
                .order_by("purchase_date", "id")
            )
            available = round_money(sum((b.remaining_amount for b in batches), Decimal("0")))

            takes, _ = walk_fifo(batches, needed, lambda b: b.remaining_amount)

            allocations = []
            for batch, taken in takes:
                batch.remaining_amount -= taken
                batch.save(update_fields=["remaining_amount", "updated_at"])
                allocations.append(MaterialAllocation(batch.id, taken))

            taken_total = total_cost(allocations)
            if taken_total:
                cls._adjust_balance(material, -taken_total, "order_use", order_id, notes)

        shortfall = None
        if available < needed:
            shortfall = MaterialShortfall(material_id, available, needed)
            logger.warning(shortfall.message)

        return FifoResult(allocations=allocations, total_cost=taken_total), shortfall

    # ==================== REVERT ====================

    @classmethod
    def restore(cls,
                allocations: Iterable[Union[MaterialAllocation, Dict[str, Any]]],
                material_id: int,
                order_id: int = None,
                notes: str = "") -> FifoResult:
        allocations = [
            a if isinstance(a, MaterialAllocation) else MaterialAllocation.from_dict(a)
            for a in allocations
        ]

        with transaction.atomic():
            material = cls._lock_material(material_id)

            for allocation in sorted(allocations, key=lambda a: a.batch_id):
                batch = cls.model.objects.select_for_update().filter(
                    pk=allocation.batch_id, material_id=material_id
                ).first()
                if batch is None:
                    logger.error(
                        f"PackingMaterialBatch {allocation.batch_id} referenced by an "
                        f"allocation for material {material_id} does not exist"
                    )
                    raise BatchNotFoundError("PackingMaterialBatch", allocation.batch_id)

                if batch.remaining_amount + allocation.amount > batch.purchase_amount:
                    raise BusinessRuleError(
                        f"Reverting {money_str(allocation.amount)} to batch {batch.batch_number} "
                        f"would exceed its purchase amount {money_str(batch.purchase_amount)}",
                        "batch_overflow",
                    )

                batch.remaining_amount += allocation.amount
                batch.save(update_fields=["remaining_amount", "updated_at"])

            restored = total_cost(allocations)
            if restored:
                cls._adjust_balance(material, restored, "revert", order_id, notes)

        return FifoResult(allocations=allocations, total_cost=restored)

    @classmethod
    def credit_counter(cls, material_id: int, amount: Decimal,
                       order_id: int = None, notes: str = "") -> None:
        """Return an amount with no batch detail straight to the cached balance."""
        amount = cls._validate_amount(amount)
        with transaction.atomic():
            material = cls._lock_material(material_id)
            cls._adjust_balance(material, amount, "revert", order_id, notes)

        logger.warning(f"Credited {money_str(amount)} to material {material_id} without batch detail")

    # ==================== RESULT-DICT ENTRY POINTS ====================

    @classmethod
    @retry_on_conflict
    def add_material_batch(cls,
                           material_id: int,
                           amount: Decimal,
                           batch_number: str = None,
                           notes: str = None,
                           purchase_date: datetime = None,
                           is_opening_stock: bool = False) -> Dict[str, Any]:
        try:
            with transaction.atomic():
                batch = cls.create_batch(
                    material_id, amount, batch_number, notes, purchase_date, is_opening_stock
                )
        except ServiceError as e:
            return service_error_response(e)

        return success_response({"batch": cls.serialize(batch)}, "Material batch added")

    @classmethod
    @retry_on_conflict
    def deduct_fifo(cls, material_id: int, amount: Decimal,
                    order_id: int = None, notes: str = "") -> Dict[str, Any]:
        try:
            result, shortfall = cls.consume(material_id, amount, order_id, notes)
        except ServiceError as e:
            return service_error_response(e)

        data = result.to_dict()
        data["shortfall"] = shortfall.to_dict() if shortfall else None
        message = shortfall.message if shortfall else f"Deducted from {len(result.allocations)} batch(es)"
        return success_response(data, message)

    @classmethod
    @retry_on_conflict
    def revert_fifo(cls, allocations: Iterable[Any], material_id: int,
                    order_id: int = None, notes: str = "") -> Dict[str, Any]:
        try:
            result = cls.restore(allocations, material_id, order_id, notes)
        except ServiceError as e:
            return service_error_response(e)

        return success_response(
            {"restored_amount": money_str(result.total_cost)},
            f"Reverted to {len(result.allocations)} batch(es)",
        )

    @classmethod
    def get_material_batches(cls, material_id: int) -> Dict[str, Any]:
        batches = cls.model.objects.filter(material_id=material_id).order_by("purchase_date", "id")
        return success_response({"batches": [cls.serialize(b) for b in batches]})

