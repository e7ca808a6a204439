"""
Order Service - Order lifecycle with inventory and cost processing

Stock, packing and ledger effects happen exactly once, when an order ships,
and are undone from the recorded allocations when it comes back.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from catalog.models import Product, ProductVariant
from finance.services.finance_service import FinanceService
from orders.models import Order, OrderItem, OrderPackingDetails
from orders.services.packing_service import calculate_packing_from_variants
from orders.services.shipping_service import calculate_actual_shipping_cost
from stock.models import InventoryBatch
from stock.services.allocation import (
    AggregateFallback, BatchAllocation, parse_box_usage, parse_material_usage,
)
from stock.services.batch_service import InventoryBatchService
from stock.services.packing_service import BoxInventoryService, PackingMaterialService
from storefront.base_service import (
    BaseService, BatchNotFoundError, BusinessRuleError, InsufficientInventoryError,
    NotFoundError, ServiceError, ValidationError, generate_batch_number, money_str,
    retry_on_conflict, round_money, service_error_response, success_response, to_decimal,
)

logger = logging.getLogger(__name__)

Status = Order.Status

ALLOWED_TRANSITIONS = {
    "order_placed": {"confirmed", "canceled"},
    "confirmed": {"shipped", "canceled"},
    "shipped": {"delivered", "returned", "canceled"},
    "delivered": {"returned"},
    "returned": set(),
    "canceled": set(),
}


def _cod_rate() -> Decimal:
    return to_decimal(getattr(settings, "ORDER_COD_RATE", Decimal("0.01")))


def _book_cashflow() -> bool:
    return getattr(settings, "FINANCE_BOOK_ORDER_CASHFLOW", True)


def _lock_order(order_id: int) -> Order:
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except Order.DoesNotExist:
        raise NotFoundError("Order", order_id)


class OrderCostService:
    """Ship-time deductions and cost figures, and their reversal on return."""

    @staticmethod
    def calculate_order_profit(total_amount: Decimal,
                               purchase_cost: Decimal,
                               packing_charges: Decimal,
                               shipping_cost: Decimal,
                               cod_cost: Decimal) -> Decimal:
        return round_money(
            to_decimal(total_amount) - to_decimal(purchase_cost) - to_decimal(packing_charges)
            - to_decimal(shipping_cost) - to_decimal(cod_cost)
        )

    @staticmethod
    def calculate_return_loss(purchase_cost: Decimal,
                              packing_charges: Decimal,
                              shipping_cost: Decimal,
                              cod_cost: Decimal) -> Decimal:
        """A returned order earns nothing and still carries every cost."""
        return -round_money(
            to_decimal(purchase_cost) + to_decimal(packing_charges)
            + to_decimal(shipping_cost) + to_decimal(cod_cost)
        )

    # ==================== SHIP ====================

    @classmethod
    def apply_shipment(cls, order: Order) -> Dict[str, Any]:
        """
        Deduct product, box and material stock, fix the order's cost fields
        and book the ledger. `order` must be locked by the caller's atomic block.
        """
        items = list(order.items.select_related("product", "variant"))

        if cls.is_shipped(order, items):
            raise BusinessRuleError(
                f"Order {order.order_number} already has inventory allocations",
                "already_shipped",
            )

        # Products
        purchase_cost = Decimal("0")
        for item in items:
            if not item.variant_id:
                continue

            try:
                result = InventoryBatchService.consume(
                    item.variant_id, item.quantity, order_id=order.id,
                    notes=f"Order {order.order_number}",
                )
            except InsufficientInventoryError as e:
                raise InsufficientInventoryError(item.product_name, e.available, e.needed)

            item.purchase_cost = result.total_cost
            item.batch_allocations = [a.to_dict() for a in result.allocations]
            item.save(update_fields=["purchase_cost", "batch_allocations"])
            purchase_cost += result.total_cost

        packing_cost, warnings = cls._deduct_packing(order, items)

        # Costs
        shipping = calculate_actual_shipping_cost(
            [{"variant_id": item.variant_id, "quantity": item.quantity} for item in items],
            order.delivery_type,
        )
        actual_shipping_cost = shipping.actual_shipping_cost
        if shipping.total_weight_grams <= 0:
            actual_shipping_cost = round_money(order.shipping_cost)

        cod_cost = round_money(to_decimal(order.total_amount) * _cod_rate())
        purchase_cost = round_money(purchase_cost)

        order.total_purchase_cost = purchase_cost
        order.total_packing_charges = packing_cost
        order.actual_shipping_cost = actual_shipping_cost
        order.cod_cost = cod_cost
        order.total_profit = cls.calculate_order_profit(
            order.total_amount, purchase_cost, packing_cost, actual_shipping_cost, cod_cost
        )
        order.save(update_fields=[
            "total_purchase_cost", "total_packing_charges", "actual_shipping_cost",
            "cod_cost", "total_profit", "updated_at",
        ])

        # Ledger
        inventory_cost = round_money(purchase_cost + packing_cost)
        if inventory_cost > 0:
            FinanceService.record_inventory_usage(order.id, inventory_cost)

        if _book_cashflow():
            if order.total_amount > 0:
                FinanceService.record_order_revenue(order.id, order.total_amount)
            order_expense = round_money(actual_shipping_cost + cod_cost)
            if order_expense > 0:
                FinanceService.record_order_expense(
                    order.id, order_expense,
                    f"Shipping and COD for order #{order.id}",
                )

        logger.info(
            f"Order {order.order_number} shipped: purchase={money_str(purchase_cost)} "
            f"packing={money_str(packing_cost)} profit={money_str(order.total_profit)}"
        )

        return cls.cost_summary(order, warnings)

    @staticmethod
    def is_shipped(order: Order, items: List[OrderItem] = None) -> bool:
        """Cost fields are fixed, or some item already carries batch allocations."""
        if order.total_purchase_cost is not None:
            return True
        if items is None:
            items = order.items.all()
        return any(item.batch_allocations for item in items)

    @staticmethod
    def cost_summary(order: Order, warnings: List[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "total_purchase_cost": money_str(order.total_purchase_cost),
            "total_packing_charges": money_str(order.total_packing_charges),
            "actual_shipping_cost": money_str(order.actual_shipping_cost),
            "cod_cost": money_str(order.cod_cost),
            "total_profit": money_str(order.total_profit),
            "warnings": warnings or [],
        }

    @classmethod
    def _deduct_packing(cls, order: Order, items: List[OrderItem]):
        packing = OrderPackingDetails.objects.select_for_update().filter(order=order).first()

        if packing is None or not (packing.boxes_used or packing.materials_used):
            derived = calculate_packing_from_variants(
                {"variant_id": item.variant_id, "quantity": item.quantity} for item in items
            )
            if packing is None:
                packing = OrderPackingDetails(order=order)
            packing.boxes_used = derived["boxes_used"]
            packing.materials_used = derived["materials_used"]

        if packing.is_inventory_deducted:
            return round_money(packing.total_packing_cost), []

        notes = f"Order {order.order_number}"
        packing_cost = Decimal("0")
        warnings = []

        boxes_used = []
        for entry in packing.boxes_used:
            quantity = int(entry.get("quantity") or 0)
            if quantity <= 0:
                boxes_used.append(entry)
                continue

            result = BoxInventoryService.consume(entry["box_type_id"], quantity, order.id, notes)
            boxes_used.append({
                **entry,
                "batch_allocations": [a.to_dict() for a in result.allocations],
                "total_cost": money_str(result.total_cost),
            })
            packing_cost += result.total_cost

        materials_used = []
        for entry in packing.materials_used:
            requested = to_decimal(entry.get("cost_used"))
            if requested <= 0:
                materials_used.append(entry)
                continue

            result, shortfall = PackingMaterialService.consume(
                entry["material_id"], requested, order.id, notes
            )
            if shortfall:
                warnings.append(shortfall.to_dict())

            materials_used.append({
                **entry,
                "cost_requested": money_str(requested),
                "cost_used": money_str(result.total_cost),
                "batch_allocations": [a.to_dict() for a in result.allocations],
            })
            packing_cost += result.total_cost

        packing.boxes_used = boxes_used
        packing.materials_used = materials_used
        packing.total_packing_cost = round_money(packing_cost)
        packing.is_inventory_deducted = True
        packing.save()

        return packing.total_packing_cost, warnings

    # ==================== RETURN ====================

    @classmethod
    def apply_return(cls, order: Order) -> Dict[str, Any]:
        """
        Credit recorded allocations back and turn the order's profit into its
        loss. Runs once per order, and only after the order has shipped.
        """
        if not cls.is_shipped(order):
            raise BusinessRuleError(
                f"Order {order.order_number} has not shipped", "not_shipped"
            )
        if order.returned_at is not None:
            raise BusinessRuleError(
                f"Order {order.order_number} was already returned", "already_returned"
            )

        notes = f"Return of order {order.order_number}"
        returned_value = Decimal("0")

        for item in order.items.all():
            if not item.batch_allocations or item.is_inventory_reverted:
                continue

            result = InventoryBatchService.restore(
                item.batch_allocations, cls._item_variant_id(item), order.id, notes
            )
            returned_value += result.total_cost

            item.is_inventory_reverted = True
            item.save(update_fields=["is_inventory_reverted"])

        packing = OrderPackingDetails.objects.select_for_update().filter(order=order).first()
        if packing is not None and packing.is_inventory_deducted:
            for entry in packing.boxes_used:
                usage = parse_box_usage(entry)
                if isinstance(usage, AggregateFallback):
                    if usage.quantity > 0:
                        BoxInventoryService.credit_counter(usage.resource_id, usage.quantity, order.id, notes)
                else:
                    returned_value += BoxInventoryService.restore(
                        usage.allocations, usage.resource_id, order.id, notes
                    ).total_cost

            for entry in packing.materials_used:
                usage = parse_material_usage(entry)
                if isinstance(usage, AggregateFallback):
                    if usage.quantity > 0:
                        PackingMaterialService.credit_counter(usage.resource_id, usage.quantity, order.id, notes)
                else:
                    returned_value += PackingMaterialService.restore(
                        usage.allocations, usage.resource_id, order.id, notes
                    ).total_cost

            packing.is_inventory_deducted = False
            packing.save(update_fields=["is_inventory_deducted", "updated_at"])

        order.total_profit = cls.calculate_return_loss(
            order.total_purchase_cost, order.total_packing_charges,
            order.actual_shipping_cost, order.cod_cost,
        )
        order.returned_at = timezone.now()
        order.save(update_fields=["total_profit", "returned_at", "updated_at"])

        returned_value = round_money(returned_value)
        if returned_value > 0:
            FinanceService.record_inventory_return(order.id, returned_value)

        if _book_cashflow() and order.total_amount > 0:
            FinanceService.record_order_expense(
                order.id, order.total_amount,
                f"Refund for returned order #{order.id}", category="refund",
            )

        logger.info(
            f"Order {order.order_number} returned: restored={money_str(returned_value)} "
            f"loss={money_str(order.total_profit)}"
        )

        return {
            "returned_inventory_value": money_str(returned_value),
            "total_profit": money_str(order.total_profit),
        }

    @staticmethod
    def _item_variant_id(item: OrderItem) -> int:
        """The variant the allocations belong to, even if the item lost its variant link."""
        if item.variant_id:
            return item.variant_id

        first = BatchAllocation.from_dict(item.batch_allocations[0])
        variant_id = InventoryBatch.objects.filter(pk=first.batch_id).values_list(
            "variant_id", flat=True
        ).first()
        if variant_id is None:
            raise BatchNotFoundError("InventoryBatch", first.batch_id)
        return variant_id

    # ==================== RESULT-DICT ENTRY POINTS ====================

    @classmethod
    @retry_on_conflict
    def process_inventory_and_costs(cls, order_id: int) -> Dict[str, Any]:
        try:
            with transaction.atomic():
                costs = cls.apply_shipment(_lock_order(order_id))
        except ServiceError as e:
            logger.warning(f"Inventory processing failed for order {order_id}: {e.message}")
            return service_error_response(e)

        return success_response(costs, "Inventory and costs processed")

    @classmethod
    @retry_on_conflict
    def revert_inventory_and_costs(cls, order_id: int) -> Dict[str, Any]:
        try:
            with transaction.atomic():
                result = cls.apply_return(_lock_order(order_id))
        except ServiceError as e:
            logger.error(f"Inventory revert failed for order {order_id}: {e.message}")
            return service_error_response(e)

        return success_response(result, "Inventory and costs reverted")


class OrderStatusHandler:
    """
    Runs the effects tied to a status change. Called from
    OrderService.update_status inside its transaction.
    """

    @classmethod
    def on_status_change(cls, order: Order, old_status: str, new_status: str) -> Dict[str, Any]:
        actions = []

        # Effects already applied through the function entry points are not repeated
        if new_status == Status.SHIPPED:
            if OrderCostService.is_shipped(order):
                actions.append({
                    "action": "ship", "already_processed": True,
                    "result": OrderCostService.cost_summary(order),
                })
            else:
                actions.append({"action": "ship", "result": OrderCostService.apply_shipment(order)})

        elif new_status == Status.RETURNED:
            if order.returned_at is not None:
                actions.append({
                    "action": "return", "already_processed": True,
                    "result": {"total_profit": money_str(order.total_profit)},
                })
            else:
                actions.append({"action": "return", "result": OrderCostService.apply_return(order)})

        # Canceling after shipment keeps the stock out: the parcel is with the courier.
        return {"actions": actions}


class OrderService(BaseService):
    model = Order

    @classmethod
    def serialize(cls, order: Order, include_items: bool = True) -> Dict[str, Any]:
        data = {
            "id": order.id,
            "uuid": str(order.uuid),
            "order_number": order.order_number,
            "status": order.status,
            "status_display": order.get_status_display(),
            "delivery_type": order.delivery_type,
            "total_amount": money_str(order.total_amount),
            "shipping_cost": money_str(order.shipping_cost),
            "actual_shipping_cost": cls._optional_money(order.actual_shipping_cost),
            "total_purchase_cost": cls._optional_money(order.total_purchase_cost),
            "total_packing_charges": cls._optional_money(order.total_packing_charges),
            "cod_cost": cls._optional_money(order.cod_cost),
            "total_profit": cls._optional_money(order.total_profit),
            "returned_at": order.returned_at.isoformat() if order.returned_at else None,
            "created_at": order.created_at.isoformat(),
        }

        if include_items:
            data["items"] = [
                {
                    "id": item.id,
                    "product_id": item.product_id,
                    "variant_id": item.variant_id,
                    "product_name": item.product_name,
                    "product_price": money_str(item.product_price),
                    "quantity": item.quantity,
                    "item_total": money_str(item.item_total),
                    "purchase_cost": cls._optional_money(item.purchase_cost),
                    "batch_allocations": item.batch_allocations or [],
                    "is_inventory_reverted": item.is_inventory_reverted,
                }
                for item in order.items.all()
            ]

        return data

    @staticmethod
    def _optional_money(value: Optional[Decimal]) -> Optional[str]:
        return money_str(value) if value is not None else None

    @classmethod
    def get_order(cls, order_id: int) -> Dict[str, Any]:
        try:
            order = cls.get_or_404(order_id)
        except ServiceError as e:
            return service_error_response(e)
        return success_response({"order": cls.serialize(order)})

    @classmethod
    @transaction.atomic
    def _create_order(cls, items: List[Dict[str, Any]], delivery_type: str,
                      shipping_cost: Decimal, order_number: str = None) -> Order:
        if not items:
            raise ValidationError("Order must have at least one item", "items")
        if delivery_type not in Order.DeliveryType.values:
            raise ValidationError(f"Unknown delivery type: {delivery_type}", "delivery_type")

        shipping_cost = round_money(shipping_cost)
        if shipping_cost < 0:
            raise ValidationError("Shipping cost cannot be negative", "shipping_cost")

        lines = []
        for entry in items:
            quantity = int(entry.get("quantity") or 0)
            if quantity <= 0:
                raise ValidationError("Item quantity must be positive", "quantity")

            variant = None
            if entry.get("variant_id"):
                variant = ProductVariant.objects.select_related("product").filter(
                    pk=entry["variant_id"]
                ).first()
                if variant is None:
                    raise NotFoundError("ProductVariant", entry["variant_id"])
                product = variant.product
                price = variant.effective_price
                name = f"{product.name} - {variant.title}"
            else:
                product = Product.objects.filter(pk=entry.get("product_id")).first()
                if product is None:
                    raise NotFoundError("Product", entry.get("product_id"))
                price = product.price
                name = product.name

            price = round_money(price)
            lines.append((product, variant, name, price, quantity, round_money(price * quantity)))

        items_total = sum((line[5] for line in lines), Decimal("0"))
        order = Order.objects.create(
            order_number=order_number or generate_batch_number("ORD"),
            delivery_type=delivery_type,
            shipping_cost=shipping_cost,
            total_amount=round_money(items_total + shipping_cost),
        )

        OrderItem.objects.bulk_create([
            OrderItem(
                order=order, product=product, variant=variant, product_name=name,
                product_price=price, quantity=quantity, item_total=item_total,
            )
            for product, variant, name, price, quantity, item_total in lines
        ])
        return order

    @classmethod
    def place_order(cls,
                    items: List[Dict[str, Any]],
                    delivery_type: str = Order.DeliveryType.INSIDE,
                    shipping_cost: Decimal = Decimal("0"),
                    order_number: str = None) -> Dict[str, Any]:
        """
        Create an order from [{"variant_id" or "product_id", "quantity"}].
        No stock is touched until the order ships.
        """
        try:
            order = cls._create_order(items, delivery_type, shipping_cost, order_number)
        except ServiceError as e:
            return service_error_response(e)

        logger.info(f"Order {order.order_number} placed: {money_str(order.total_amount)}")
        return success_response({"order": cls.serialize(order)}, "Order placed")

    @staticmethod
    def validate_transition(old_status: str, new_status: str) -> None:
        if new_status not in Status.values:
            raise ValidationError(f"Unknown status: {new_status}", "status")
        if str(new_status) not in ALLOWED_TRANSITIONS.get(str(old_status), set()):
            raise ValidationError(
                f"Cannot change order status from {old_status} to {new_status}", "status"
            )

    @classmethod
    @retry_on_conflict
    def update_status(cls, order_id: int, new_status: str) -> Dict[str, Any]:
        """Change status; ship/return effects commit or roll back with it."""
        try:
            with transaction.atomic():
                order = _lock_order(order_id)
                old_status = order.status
                cls.validate_transition(old_status, new_status)

                result = OrderStatusHandler.on_status_change(order, old_status, new_status)

                order.status = new_status
                order.save(update_fields=["status", "updated_at"])
        except ServiceError as e:
            return service_error_response(e)

        logger.info(f"Order {order.order_number}: {old_status} -> {new_status}")
        return success_response(
            {"order": cls.serialize(order), **result},
            f"Order status changed to {new_status}",
        )


# Function-style entry points
process_inventory_and_costs = OrderCostService.process_inventory_and_costs
revert_inventory_and_costs = OrderCostService.revert_inventory_and_costs
