from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from catalog.models import BoxType, PackingMaterial
from catalog.tests.factories import make_box_type, make_material, make_variant
from finance.models import FinancialTransaction
from finance.services import FinanceService
from stock.models import BoxInventoryBatch, BoxTransaction, PackingMaterialBatch, PackingMaterialTransaction
from stock.services import (
    BoxInventoryService, PackingMaterialService, add_box_batch, add_inventory_batch,
    add_material_batch, deduct_box_inventory_fifo, deduct_inventory_fifo,
    deduct_material_inventory_fifo, revert_box_inventory_fifo, revert_inventory_fifo,
    revert_material_inventory_fifo,
)

TransactionType = FinancialTransaction.TransactionType


class BoxInventoryTests(TestCase):

    def setUp(self):
        self.box = make_box_type()

    def box_stock(self):
        return BoxType.objects.get(pk=self.box.pk).current_stock

    def test_purchase_writes_audit_row_and_books_ledger(self):
        result = add_box_batch(self.box.id, 10, Decimal("20"))

        self.assertTrue(result["success"])
        self.assertTrue(result["batch"]["batch_number"].startswith("BOX-"))
        self.assertEqual(self.box_stock(), 10)

        audit = BoxTransaction.objects.get(box_type=self.box)
        self.assertEqual(audit.transaction_type, "purchase")
        self.assertEqual((audit.stock_before, audit.stock_after), (0, 10))

        txn = FinancialTransaction.objects.get(box_batch_id=result["batch"]["id"])
        self.assertEqual(txn.transaction_type, TransactionType.INVENTORY_PURCHASE)
        self.assertEqual(txn.asset_balance_after, Decimal("200.00"))

    def test_deduct_and_revert_round_trip(self):
        older = add_box_batch(self.box.id, 3, Decimal("20"), purchase_date=timezone.now() - timedelta(days=2))
        newer = add_box_batch(self.box.id, 3, Decimal("25"), purchase_date=timezone.now() - timedelta(days=1))

        deducted = deduct_box_inventory_fifo(self.box.id, 4)
        self.assertEqual(deducted["total_cost"], "85.00")
        self.assertEqual(self.box_stock(), 2)

        reverted = revert_box_inventory_fifo(deducted["allocations"], self.box.id)
        self.assertTrue(reverted["success"])
        self.assertEqual(self.box_stock(), 6)

        remaining = dict(BoxInventoryBatch.objects.values_list("id", "remaining_quantity"))
        self.assertEqual(remaining, {older["batch"]["id"]: 3, newer["batch"]["id"]: 3})

        movements = list(
            BoxTransaction.objects.filter(box_type=self.box).order_by("id").values_list(
                "transaction_type", "quantity", "stock_before", "stock_after"
            )
        )
        self.assertEqual(movements[-2:], [("order_use", -4, 6, 2), ("revert", 4, 2, 6)])

    def test_insufficient_boxes_fail_hard(self):
        add_box_batch(self.box.id, 1, Decimal("20"))

        result = deduct_box_inventory_fifo(self.box.id, 2)

        self.assertEqual(result["error_code"], "INSUFFICIENT_INVENTORY")
        self.assertEqual(self.box_stock(), 1)
        self.assertFalse(BoxTransaction.objects.filter(transaction_type="order_use").exists())

    def test_counter_credit_without_batches(self):
        with self.assertLogs("stock.services.batch_service", level="WARNING"):
            BoxInventoryService.credit_counter(self.box.id, 2, notes="Legacy return")

        self.assertEqual(self.box_stock(), 2)
        self.assertEqual(BoxTransaction.objects.get().transaction_type, "revert")

    def test_revert_of_nothing_leaves_no_audit_row(self):
        add_box_batch(self.box.id, 3, Decimal("20"))

        result = revert_box_inventory_fifo([], self.box.id)

        self.assertTrue(result["success"])
        self.assertEqual(self.box_stock(), 3)
        self.assertFalse(BoxTransaction.objects.filter(transaction_type="revert").exists())


class PackingMaterialTests(TestCase):

    def setUp(self):
        self.material = make_material()

    def balance(self):
        return PackingMaterial.objects.get(pk=self.material.pk).current_balance

    def test_deduct_across_batches_and_revert(self):
        first = add_material_batch(self.material.id, Decimal("30"), purchase_date=timezone.now() - timedelta(days=2))
        second = add_material_batch(self.material.id, Decimal("40"), purchase_date=timezone.now() - timedelta(days=1))
        self.assertTrue(first["batch"]["batch_number"].startswith("MAT-"))

        deducted = deduct_material_inventory_fifo(self.material.id, Decimal("45"))

        self.assertIsNone(deducted["shortfall"])
        self.assertEqual(deducted["allocations"], [
            {"batch_id": first["batch"]["id"], "amount": "30.00"},
            {"batch_id": second["batch"]["id"], "amount": "15.00"},
        ])
        self.assertEqual(self.balance(), Decimal("25.00"))

        reverted = revert_material_inventory_fifo(deducted["allocations"], self.material.id)
        self.assertEqual(reverted["restored_amount"], "45.00")
        self.assertEqual(self.balance(), Decimal("70.00"))

    def test_shortfall_takes_what_is_there(self):
        batch = add_material_batch(self.material.id, Decimal("30"))

        with self.assertLogs("stock.services.packing_service", level="WARNING"):
            result = deduct_material_inventory_fifo(self.material.id, Decimal("50"))

        self.assertTrue(result["success"])
        self.assertEqual(result["total_cost"], "30.00")
        self.assertEqual(result["shortfall"]["code"], "MATERIAL_SHORTFALL")
        self.assertEqual(result["shortfall"]["available"], "30.00")
        self.assertEqual(result["shortfall"]["needed"], "50.00")

        self.assertEqual(PackingMaterialBatch.objects.get(pk=batch["batch"]["id"]).remaining_amount, Decimal("0.00"))
        self.assertEqual(self.balance(), Decimal("0.00"))

        use = PackingMaterialTransaction.objects.get(transaction_type="order_use")
        self.assertEqual(use.amount, Decimal("-30.00"))
        self.assertEqual((use.balance_before, use.balance_after), (Decimal("30.00"), Decimal("0.00")))

    def test_nothing_in_stock_is_a_full_shortfall(self):
        with self.assertLogs("stock.services.packing_service", level="WARNING"):
            result = deduct_material_inventory_fifo(self.material.id, Decimal("5"))

        self.assertEqual(result["allocations"], [])
        self.assertEqual(result["shortfall"]["missing"], "5.00")
        self.assertFalse(PackingMaterialTransaction.objects.exists())

    def test_revert_to_missing_batch(self):
        with self.assertLogs("stock.services.packing_service", level="ERROR"):
            result = revert_material_inventory_fifo([{"batch_id": 999999, "amount": "5.00"}], self.material.id)
        self.assertEqual(result["error_code"], "BATCH_NOT_FOUND")

    def test_revert_cannot_exceed_purchase_amount(self):
        batch = add_material_batch(self.material.id, Decimal("10"))
        result = revert_material_inventory_fifo(
            [{"batch_id": batch["batch"]["id"], "amount": "1.00"}], self.material.id
        )
        self.assertEqual(result["error_code"], "BUSINESS_RULE_VIOLATION")

    def test_amount_must_be_positive(self):
        self.assertEqual(add_material_batch(self.material.id, Decimal("0"))["error_code"], "VALIDATION_ERROR")
        self.assertEqual(
            deduct_material_inventory_fifo(self.material.id, Decimal("-1"))["error_code"], "VALIDATION_ERROR"
        )


class StockCounterConsistencyTests(TestCase):

    def test_counters_match_batches_after_mixed_activity(self):
        variant = make_variant()
        box = make_box_type()
        material = make_material()

        add_inventory_batch(variant.id, 8, Decimal("100"))
        add_inventory_batch(variant.id, 4, Decimal("110"))
        add_box_batch(box.id, 6, Decimal("20"))
        add_material_batch(material.id, Decimal("12.50"))

        product_use = deduct_inventory_fifo(variant.id, 10)
        box_use = deduct_box_inventory_fifo(box.id, 5)
        with self.assertLogs("stock.services.packing_service", level="WARNING"):
            material_use = deduct_material_inventory_fifo(material.id, Decimal("20"))

        self.assertEqual(FinanceService.check_stock_counters(), [])

        revert_inventory_fifo(product_use["allocations"], variant.id)
        revert_box_inventory_fifo(box_use["allocations"], box.id)
        revert_material_inventory_fifo(material_use["allocations"], material.id)

        self.assertEqual(FinanceService.check_stock_counters(), [])
