"""
Finance Service - Cash/asset ledger for the storefront

Every write goes through create_transaction(), which stamps the row with the
cash and asset balances that result from it. Buying stock converts cash into
assets (net worth unchanged); selling, shipping and using stock change it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from django.db import transaction
from django.db.models import Case, Count, DecimalField, ExpressionWrapper, F, Q, Sum, Value, When

from catalog.models import BoxType, PackingMaterial, ProductVariant
from finance.models import FinancialTransaction
from finance.services.ledger_balance import LedgerBalance
from stock.models import BoxInventoryBatch, InventoryBatch, PackingMaterialBatch
from storefront.base_service import (
    BaseService, UnknownTransactionTypeError, money_str, retry_on_conflict,
    round_money, success_response,
)

logger = logging.getLogger(__name__)

TransactionType = FinancialTransaction.TransactionType

MONEY_FIELD = DecimalField(max_digits=18, decimal_places=2)
ZERO = Decimal("0.00")


@dataclass
class TransactionFilters:
    """Criteria for listing ledger rows; turned into a single query by FinanceService."""

    transaction_type: Optional[str] = None
    category: Optional[str] = None
    order_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: Optional[int] = None
    offset: int = 0

    def to_q(self) -> Q:
        conditions = Q()
        if self.transaction_type:
            conditions &= Q(transaction_type=self.transaction_type)
        if self.category:
            conditions &= Q(category=self.category)
        if self.order_id:
            conditions &= Q(order_id=self.order_id)
        if self.date_from:
            conditions &= Q(created_at__gte=self.date_from)
        if self.date_to:
            conditions &= Q(created_at__lte=self.date_to)
        return conditions


class FinanceService(BaseService):
    model = FinancialTransaction

    # type -> (cash sign, asset sign) applied to the absolute amount
    TRANSACTION_RULES = {
        TransactionType.CASH_IN: (1, 0),
        TransactionType.EXPENSE: (-1, 0),
        TransactionType.ORDER_EXPENSE: (-1, 0),
        TransactionType.INVENTORY_PURCHASE: (-1, 1),
        TransactionType.INVENTORY_SYNC: (0, 1),
        TransactionType.ORDER_REVENUE: (1, 0),
        TransactionType.INVENTORY_USAGE: (0, -1),
    }

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, txn: FinancialTransaction) -> Dict[str, Any]:
        return {
            "id": txn.id,
            "uuid": str(txn.uuid),
            "type": txn.transaction_type,
            "type_display": txn.get_transaction_type_display(),
            "category": txn.category,
            "amount": money_str(txn.amount),
            "cash_balance_after": money_str(txn.cash_balance_after),
            "asset_balance_after": money_str(txn.asset_balance_after),
            "balance_after": money_str(txn.balance_after),
            "description": txn.description,
            "order_id": txn.order_id,
            "inventory_batch_id": txn.inventory_batch_id,
            "box_batch_id": txn.box_batch_id,
            "material_batch_id": txn.material_batch_id,
            "created_by": txn.created_by,
            "created_at": txn.created_at.isoformat(),
        }

    # ==================== BALANCES ====================

    @classmethod
    def _latest(cls) -> Optional[FinancialTransaction]:
        return cls.model.objects.order_by("-created_at", "-id").first()

    @classmethod
    def get_current_balance(cls) -> Decimal:
        return LedgerBalance.read()

    @classmethod
    def get_current_asset_balance(cls) -> Decimal:
        latest = cls._latest()
        return latest.asset_balance_after if latest else ZERO

    @classmethod
    def apply_rule(cls, transaction_type: str, amount: Decimal) -> Tuple[Decimal, Decimal]:
        """Cash and asset deltas for `amount` of `transaction_type`."""
        rule = cls.TRANSACTION_RULES.get(transaction_type)
        if rule is None:
            raise UnknownTransactionTypeError(f"Unknown transaction type: {transaction_type}")

        amount = abs(round_money(amount))
        cash_sign, asset_sign = rule
        return amount * cash_sign, amount * asset_sign

    # ==================== CREATE ====================

    @classmethod
    @retry_on_conflict
    def create_transaction(cls,
                           transaction_type: str,
                           amount: Decimal,
                           description: str = "",
                           category: str = "",
                           order_id: int = None,
                           inventory_batch_id: int = None,
                           box_batch_id: int = None,
                           material_batch_id: int = None,
                           created_by: str = "") -> FinancialTransaction:
        cash_change, asset_change = cls.apply_rule(transaction_type, amount)

        with transaction.atomic():
            cash_row = LedgerBalance.lock()
            latest = cls._latest()

            current_cash = latest.cash_balance_after if latest else ZERO
            current_asset = latest.asset_balance_after if latest else ZERO

            new_cash = round_money(current_cash + cash_change)
            new_asset = round_money(current_asset + asset_change)

            if cash_change:
                display_amount = cash_change
            elif asset_change:
                display_amount = asset_change
            else:
                display_amount = ZERO

            txn = cls.model.objects.create(
                transaction_type=transaction_type,
                category=category or "",
                amount=round_money(display_amount),
                cash_balance_after=new_cash,
                asset_balance_after=new_asset,
                balance_after=round_money(new_cash + new_asset),
                description=description or "",
                order_id=order_id,
                inventory_batch_id=inventory_batch_id,
                box_batch_id=box_batch_id,
                material_batch_id=material_batch_id,
                created_by=created_by or "",
            )

            LedgerBalance.write(cash_row, new_cash)

        logger.debug(
            f"Ledger {transaction_type} {money_str(display_amount)}: "
            f"cash={money_str(new_cash)} asset={money_str(new_asset)}"
        )
        return txn

    # ==================== RECORDERS ====================

    @classmethod
    def record_cash_in(cls, amount: Decimal, description: str, created_by: str = "") -> FinancialTransaction:
        return cls.create_transaction(
            TransactionType.CASH_IN, amount, description,
            category="cash", created_by=created_by,
        )

    @classmethod
    def record_expense(cls,
                       amount: Decimal,
                       description: str,
                       category: str = "general",
                       created_by: str = "") -> FinancialTransaction:
        return cls.create_transaction(
            TransactionType.EXPENSE, amount, description,
            category=category, created_by=created_by,
        )

    @classmethod
    def record_order_revenue(cls, order_id: int, amount: Decimal, created_by: str = "") -> FinancialTransaction:
        return cls.create_transaction(
            TransactionType.ORDER_REVENUE, amount, f"Revenue from order #{order_id}",
            category="sales", order_id=order_id, created_by=created_by,
        )

    @classmethod
    def record_order_expense(cls,
                             order_id: int,
                             amount: Decimal,
                             description: str,
                             category: str = "order_costs",
                             created_by: str = "") -> FinancialTransaction:
        return cls.create_transaction(
            TransactionType.ORDER_EXPENSE, amount, description,
            category=category, order_id=order_id, created_by=created_by,
        )

    @classmethod
    def record_inventory_usage(cls, order_id: int, inventory_cost: Decimal, created_by: str = "") -> FinancialTransaction:
        return cls.create_transaction(
            TransactionType.INVENTORY_USAGE, inventory_cost,
            f"Inventory cost for shipped order #{order_id}",
            category="inventory_usage", order_id=order_id, created_by=created_by,
        )

    @classmethod
    def record_inventory_return(cls, order_id: int, inventory_value: Decimal, created_by: str = "") -> FinancialTransaction:
        """Stock credited back to its batches after a return is an asset again."""
        return cls.create_transaction(
            TransactionType.INVENTORY_SYNC, inventory_value,
            f"Inventory returned from order #{order_id}",
            category="inventory_return", order_id=order_id, created_by=created_by,
        )

    @classmethod
    def record_inventory_purchase(cls,
                                  amount: Decimal,
                                  description: str,
                                  batch_id: int = None,
                                  box_batch_id: int = None,
                                  material_batch_id: int = None,
                                  is_opening_stock: bool = False,
                                  created_by: str = "") -> FinancialTransaction:
        """
        Book stock entering the store. Opening stock (already owned, not paid
        for now) only raises assets; a purchase converts cash into assets.
        """
        transaction_type = (
            TransactionType.INVENTORY_SYNC if is_opening_stock else TransactionType.INVENTORY_PURCHASE
        )
        return cls.create_transaction(
            transaction_type, amount, description,
            category="inventory",
            inventory_batch_id=batch_id,
            box_batch_id=box_batch_id,
            material_batch_id=material_batch_id,
            created_by=created_by,
        )

    # ==================== QUERIES ====================

    @classmethod
    def _query(cls, filters: TransactionFilters) -> Tuple[List[FinancialTransaction], int]:
        queryset = cls.model.objects.filter(filters.to_q()).order_by("-created_at", "-id")
        total = queryset.count()

        start = max(0, filters.offset or 0)
        end = start + filters.limit if filters.limit else None
        return list(queryset[start:end]), total

    @classmethod
    def get_transactions(cls, filters: TransactionFilters = None) -> Dict[str, Any]:
        transactions, total = cls._query(filters or TransactionFilters())

        return success_response({
            "transactions": [cls.serialize(t) for t in transactions],
            "total": total,
        })

    @classmethod
    def compute_asset_values(cls) -> Dict[str, Decimal]:
        """Inventory value recomputed from live batches, independent of the ledger."""
        unit_value = ExpressionWrapper(
            F("remaining_quantity") * F("purchase_price"), output_field=MONEY_FIELD
        )

        product_value = InventoryBatch.objects.filter(
            remaining_quantity__gt=0
        ).aggregate(total=Sum(unit_value))["total"]

        box_value = BoxInventoryBatch.objects.filter(
            remaining_quantity__gt=0
        ).aggregate(total=Sum(unit_value))["total"]

        material_value = PackingMaterialBatch.objects.filter(
            remaining_amount__gt=0
        ).aggregate(total=Sum("remaining_amount"))["total"]

        product_value = round_money(product_value)
        box_value = round_money(box_value)
        material_value = round_money(material_value)

        return {
            "product_inventory": product_value,
            "box_inventory": box_value,
            "material_inventory": material_value,
            "total_inventory_value": round_money(product_value + box_value + material_value),
        }

    @classmethod
    def get_asset_values(cls) -> Dict[str, Any]:
        values = cls.compute_asset_values()
        return success_response({key: money_str(value) for key, value in values.items()})

    @classmethod
    def get_transaction_summary(cls,
                                date_from: datetime = None,
                                date_to: datetime = None) -> Dict[str, Any]:
        filters = TransactionFilters(date_from=date_from, date_to=date_to)

        by_type = (
            cls.model.objects.filter(filters.to_q())
            .values("transaction_type")
            .annotate(
                total_income=Sum(
                    Case(When(amount__gt=0, then=F("amount")), default=Value(ZERO), output_field=MONEY_FIELD)
                ),
                total_expense=Sum(
                    Case(When(amount__lt=0, then=-F("amount")), default=Value(ZERO), output_field=MONEY_FIELD)
                ),
                count=Count("id"),
            )
            .order_by("transaction_type")
        )

        actual_values = cls.compute_asset_values()
        current_cash = cls.get_current_balance()
        current_asset = cls.get_current_asset_balance()
        difference = round_money(current_asset - actual_values["total_inventory_value"])

        return success_response({
            "by_type": [
                {
                    "type": row["transaction_type"],
                    "total_income": money_str(row["total_income"]),
                    "total_expense": money_str(row["total_expense"]),
                    "count": row["count"],
                }
                for row in by_type
            ],
            "current_balance": money_str(current_cash),
            "current_asset_balance": money_str(current_asset),
            "total_assets": money_str(current_cash + current_asset),
            "actual_inventory_values": {key: money_str(value) for key, value in actual_values.items()},
            "assets_in_sync": difference == 0,
            "asset_difference": money_str(difference),
        })

    # ==================== AUDIT ====================

    @classmethod
    def replay_ledger(cls) -> Dict[str, Any]:
        """
        Recompute every row's balances from the type rules in creation order
        and compare them with what was stored.
        """
        cash = ZERO
        asset = ZERO
        checked = 0
        mismatches = []

        for txn in cls.model.objects.order_by("created_at", "id").iterator():
            cash_change, asset_change = cls.apply_rule(txn.transaction_type, txn.amount)
            cash = round_money(cash + cash_change)
            asset = round_money(asset + asset_change)
            checked += 1

            expected = (cash, asset, round_money(cash + asset))
            stored = (txn.cash_balance_after, txn.asset_balance_after, txn.balance_after)
            if tuple(round_money(v) for v in stored) != expected:
                mismatches.append({
                    "transaction_id": txn.id,
                    "expected": {
                        "cash_balance_after": money_str(expected[0]),
                        "asset_balance_after": money_str(expected[1]),
                        "balance_after": money_str(expected[2]),
                    },
                    "stored": {
                        "cash_balance_after": money_str(stored[0]),
                        "asset_balance_after": money_str(stored[1]),
                        "balance_after": money_str(stored[2]),
                    },
                })

        cached_cash = cls.get_current_balance()

        return {
            "checked": checked,
            "mismatches": mismatches,
            "final_cash": money_str(cash),
            "final_asset": money_str(asset),
            "cached_cash": money_str(cached_cash),
            "cash_cache_matches": round_money(cached_cash) == cash,
        }

    @classmethod
    def check_stock_counters(cls) -> List[Dict[str, Any]]:
        """Cached stock counters that disagree with the sum of their batches."""
        problems = []

        for variant in ProductVariant.objects.annotate(batch_total=Sum("batches__remaining_quantity")):
            batch_total = variant.batch_total or 0
            if variant.inventory_quantity != batch_total:
                problems.append({
                    "resource": "variant", "id": variant.id,
                    "cached": str(variant.inventory_quantity), "batches": str(batch_total),
                })

        for box_type in BoxType.objects.annotate(batch_total=Sum("batches__remaining_quantity")):
            batch_total = box_type.batch_total or 0
            if box_type.current_stock != batch_total:
                problems.append({
                    "resource": "box_type", "id": box_type.id,
                    "cached": str(box_type.current_stock), "batches": str(batch_total),
                })

        for material in PackingMaterial.objects.annotate(batch_total=Sum("batches__remaining_amount")):
            batch_total = round_money(material.batch_total)
            if round_money(material.current_balance) != batch_total:
                problems.append({
                    "resource": "material", "id": material.id,
                    "cached": money_str(material.current_balance), "batches": money_str(batch_total),
                })

        return problems
