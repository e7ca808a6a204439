from decimal import Decimal

from django.test import TestCase, override_settings

from catalog.models import BoxType, PackingMaterial, ProductVariant
from catalog.tests.factories import make_box_type, make_material, make_product, make_variant
from finance.models import FinancialTransaction
from finance.services import FinanceService
from orders.models import Order, OrderItem, OrderPackingDetails
from orders.services import (
    OrderCostService, OrderService, process_inventory_and_costs, revert_inventory_and_costs,
)
from stock.models import BoxInventoryBatch, BoxTransaction, InventoryBatch, PackingMaterialTransaction
from stock.services import add_box_batch, add_inventory_batch, add_material_batch

TransactionType = FinancialTransaction.TransactionType


class OrderTestCase(TestCase):
    """
    A mug at 500 with a 300 batch cost, one 20 box per unit and 5 of bubble
    wrap per unit. No weight is set, so the courier charge falls back to the
    80 charged to the customer.
    """

    def setUp(self):
        FinanceService.record_cash_in(Decimal("10000"), "Opening cash")

        self.box = make_box_type()
        self.wrap = make_material()
        self.product = make_product(name="Ceramic Mug", price="500.00")
        self.variant = make_variant(
            product=self.product, box_type=self.box, materials=[(self.wrap, "5.00")]
        )

        add_inventory_batch(self.variant.id, 10, Decimal("300"))
        add_box_batch(self.box.id, 10, Decimal("20"))
        add_material_batch(self.wrap.id, Decimal("100"))

    def make_order(self, quantity=2, status=Order.Status.CONFIRMED, total="1000.00", shipping="80.00"):
        order = Order.objects.create(
            order_number=f"ORD-{Order.objects.count() + 1}",
            status=status,
            total_amount=Decimal(total),
            shipping_cost=Decimal(shipping),
        )
        OrderItem.objects.create(
            order=order, product=self.product, variant=self.variant,
            product_name="Ceramic Mug - Default", product_price=Decimal("500.00"),
            quantity=quantity, item_total=Decimal("500.00") * quantity,
        )
        return order

    def ledger_types(self, order):
        return sorted(
            FinancialTransaction.objects.filter(order=order).values_list("transaction_type", "amount")
        )


class ShipAndReturnTests(OrderTestCase):

    def test_ship_fixes_costs_and_profit(self):
        order = self.make_order()

        result = OrderService.update_status(order.id, Order.Status.SHIPPED)

        self.assertTrue(result["success"], result)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.SHIPPED)
        self.assertEqual(order.total_purchase_cost, Decimal("600.00"))
        self.assertEqual(order.total_packing_charges, Decimal("50.00"))
        self.assertEqual(order.actual_shipping_cost, Decimal("80.00"))
        self.assertEqual(order.cod_cost, Decimal("10.00"))
        self.assertEqual(order.total_profit, Decimal("260.00"))

        item = order.items.get()
        self.assertEqual(item.purchase_cost, Decimal("600.00"))
        self.assertEqual(len(item.batch_allocations), 1)
        self.assertEqual(item.batch_allocations[0]["quantity"], 2)

        packing = order.packing_details
        self.assertTrue(packing.is_inventory_deducted)
        self.assertEqual(packing.total_packing_cost, Decimal("50.00"))
        self.assertEqual(packing.boxes_used[0]["quantity"], 2)
        self.assertEqual(packing.materials_used[0]["cost_used"], "10.00")

        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 8)
        self.assertEqual(BoxType.objects.get(pk=self.box.pk).current_stock, 8)
        self.assertEqual(PackingMaterial.objects.get(pk=self.wrap.pk).current_balance, Decimal("90.00"))
        self.assertTrue(BoxTransaction.objects.filter(order=order, transaction_type="order_use").exists())
        self.assertTrue(PackingMaterialTransaction.objects.filter(order=order, transaction_type="order_use").exists())

        self.assertEqual(self.ledger_types(order), [
            (TransactionType.INVENTORY_USAGE, Decimal("-650.00")),
            (TransactionType.ORDER_EXPENSE, Decimal("-90.00")),
            (TransactionType.ORDER_REVENUE, Decimal("1000.00")),
        ])

    def test_return_restores_stock_and_books_loss(self):
        order = self.make_order()
        OrderService.update_status(order.id, Order.Status.SHIPPED)

        result = OrderService.update_status(order.id, Order.Status.RETURNED)

        self.assertTrue(result["success"], result)
        order.refresh_from_db()
        self.assertEqual(order.total_profit, Decimal("-740.00"))
        self.assertTrue(order.items.get().is_inventory_reverted)
        self.assertFalse(order.packing_details.is_inventory_deducted)

        self.assertEqual(InventoryBatch.objects.get().remaining_quantity, 10)
        self.assertEqual(BoxInventoryBatch.objects.get().remaining_quantity, 10)
        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 10)
        self.assertEqual(BoxType.objects.get(pk=self.box.pk).current_stock, 10)
        self.assertEqual(PackingMaterial.objects.get(pk=self.wrap.pk).current_balance, Decimal("100.00"))

        returned = FinancialTransaction.objects.get(order=order, category="inventory_return")
        self.assertEqual(returned.transaction_type, TransactionType.INVENTORY_SYNC)
        self.assertEqual(returned.amount, Decimal("650.00"))
        self.assertTrue(
            FinancialTransaction.objects.filter(order=order, category="refund", amount=Decimal("-1000.00")).exists()
        )

    def test_ledger_assets_track_stock_through_ship_and_return(self):
        order = self.make_order()

        OrderService.update_status(order.id, Order.Status.SHIPPED)
        self.assertTrue(FinanceService.get_transaction_summary()["assets_in_sync"])

        OrderService.update_status(order.id, Order.Status.DELIVERED)
        OrderService.update_status(order.id, Order.Status.RETURNED)
        summary = FinanceService.get_transaction_summary()
        self.assertTrue(summary["assets_in_sync"])
        self.assertEqual(summary["current_asset_balance"], "3300.00")
        self.assertEqual(FinanceService.replay_ledger()["mismatches"], [])
        self.assertEqual(FinanceService.check_stock_counters(), [])

    def test_weighed_items_use_the_rate_table(self):
        ProductVariant.objects.filter(pk=self.variant.pk).update(weight=Decimal("0.300"))
        order = self.make_order()

        OrderService.update_status(order.id, Order.Status.SHIPPED)

        order.refresh_from_db()
        self.assertEqual(order.actual_shipping_cost, Decimal("70.00"))
        self.assertEqual(order.total_profit, Decimal("270.00"))

    @override_settings(FINANCE_BOOK_ORDER_CASHFLOW=False)
    def test_cashflow_booking_can_be_turned_off(self):
        order = self.make_order()

        OrderService.update_status(order.id, Order.Status.SHIPPED)
        OrderService.update_status(order.id, Order.Status.RETURNED)

        self.assertEqual(self.ledger_types(order), [
            (TransactionType.INVENTORY_SYNC, Decimal("650.00")),
            (TransactionType.INVENTORY_USAGE, Decimal("-650.00")),
        ])

    @override_settings(ORDER_COD_RATE=Decimal("0.02"))
    def test_cod_rate_is_configurable(self):
        order = self.make_order()
        OrderService.update_status(order.id, Order.Status.SHIPPED)

        order.refresh_from_db()
        self.assertEqual(order.cod_cost, Decimal("20.00"))

    def test_existing_packing_details_are_used(self):
        order = self.make_order()
        OrderPackingDetails.objects.create(
            order=order,
            boxes_used=[{"box_type_id": self.box.id, "box_name": "Small Box", "quantity": 1}],
            materials_used=[],
        )

        OrderService.update_status(order.id, Order.Status.SHIPPED)

        order.refresh_from_db()
        self.assertEqual(order.total_packing_charges, Decimal("20.00"))
        self.assertEqual(BoxType.objects.get(pk=self.box.pk).current_stock, 9)

    def test_material_shortfall_does_not_stop_shipment(self):
        order = self.make_order(quantity=1)
        OrderPackingDetails.objects.create(
            order=order,
            boxes_used=[],
            materials_used=[{"material_id": self.wrap.id, "material_name": "Bubble Wrap", "cost_used": "150.00"}],
        )

        with self.assertLogs("stock.services.packing_service", level="WARNING"):
            result = process_inventory_and_costs(order.id)

        self.assertTrue(result["success"], result)
        self.assertEqual(result["warnings"][0]["code"], "MATERIAL_SHORTFALL")
        self.assertEqual(result["total_packing_charges"], "100.00")
        self.assertEqual(PackingMaterial.objects.get(pk=self.wrap.pk).current_balance, Decimal("0.00"))

    def test_shipping_twice_is_refused(self):
        order = self.make_order()
        self.assertTrue(process_inventory_and_costs(order.id)["success"])

        result = process_inventory_and_costs(order.id)

        self.assertEqual(result["error_code"], "BUSINESS_RULE_VIOLATION")
        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 8)

    def test_returning_twice_is_refused(self):
        order = self.make_order()
        OrderService.update_status(order.id, Order.Status.SHIPPED)
        self.assertTrue(revert_inventory_and_costs(order.id)["success"])

        result = revert_inventory_and_costs(order.id)

        self.assertEqual(result["error_code"], "BUSINESS_RULE_VIOLATION")
        self.assertEqual(result["details"]["rule"], "already_returned")
        self.assertEqual(FinancialTransaction.objects.filter(order=order, category="refund").count(), 1)
        self.assertEqual(FinancialTransaction.objects.filter(order=order, category="inventory_return").count(), 1)
        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 10)
        order.refresh_from_db()
        self.assertEqual(order.total_profit, Decimal("-740.00"))
        self.assertIsNotNone(order.returned_at)

    def test_return_before_shipping_is_refused(self):
        order = self.make_order()

        result = revert_inventory_and_costs(order.id)

        self.assertEqual(result["error_code"], "BUSINESS_RULE_VIOLATION")
        self.assertEqual(result["details"]["rule"], "not_shipped")
        self.assertFalse(FinancialTransaction.objects.filter(order=order).exists())
        order.refresh_from_db()
        self.assertIsNone(order.total_profit)
        self.assertIsNone(order.returned_at)

    def test_status_change_after_direct_processing_does_not_repeat_effects(self):
        order = self.make_order()
        self.assertTrue(process_inventory_and_costs(order.id)["success"])

        shipped = OrderService.update_status(order.id, Order.Status.SHIPPED)

        self.assertTrue(shipped["success"], shipped)
        self.assertTrue(shipped["actions"][0]["already_processed"])
        self.assertEqual(shipped["actions"][0]["result"]["total_profit"], "260.00")
        self.assertEqual(Order.objects.get(pk=order.pk).status, Order.Status.SHIPPED)
        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 8)
        self.assertEqual(
            FinancialTransaction.objects.filter(order=order, transaction_type=TransactionType.INVENTORY_USAGE).count(),
            1,
        )

        self.assertTrue(revert_inventory_and_costs(order.id)["success"])
        returned = OrderService.update_status(order.id, Order.Status.RETURNED)

        self.assertTrue(returned["success"], returned)
        self.assertTrue(returned["actions"][0]["already_processed"])
        self.assertEqual(Order.objects.get(pk=order.pk).status, Order.Status.RETURNED)
        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 10)
        self.assertEqual(FinancialTransaction.objects.filter(order=order, category="refund").count(), 1)

    def test_legacy_packing_without_batch_detail_is_credited_to_counters(self):
        order = self.make_order()
        OrderService.update_status(order.id, Order.Status.SHIPPED)

        packing = order.packing_details
        packing.boxes_used = [{"box_type_id": self.box.id, "quantity": 2}]
        packing.materials_used = [{"material_id": self.wrap.id, "cost_used": "10.00"}]
        packing.save()

        with self.assertLogs("stock.services", level="WARNING"):
            OrderService.update_status(order.id, Order.Status.RETURNED)

        self.assertEqual(BoxType.objects.get(pk=self.box.pk).current_stock, 10)
        self.assertEqual(PackingMaterial.objects.get(pk=self.wrap.pk).current_balance, Decimal("100.00"))
        # Batches are untouched: the allocations were never recorded
        self.assertEqual(BoxInventoryBatch.objects.get().remaining_quantity, 8)


class ShipFailureTests(OrderTestCase):

    def test_short_box_stock_rolls_back_everything(self):
        BoxInventoryBatch.objects.update(remaining_quantity=1)
        BoxType.objects.filter(pk=self.box.pk).update(current_stock=1)
        order = self.make_order()

        result = OrderService.update_status(order.id, Order.Status.SHIPPED)

        self.assertFalse(result["success"])
        self.assertEqual(result["error_code"], "INSUFFICIENT_INVENTORY")

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CONFIRMED)
        self.assertIsNone(order.total_profit)
        self.assertIsNone(order.items.get().batch_allocations)
        self.assertEqual(InventoryBatch.objects.get().remaining_quantity, 10)
        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 10)
        self.assertEqual(PackingMaterial.objects.get(pk=self.wrap.pk).current_balance, Decimal("100.00"))
        self.assertFalse(OrderPackingDetails.objects.filter(order=order).exists())
        self.assertFalse(FinancialTransaction.objects.filter(order=order).exists())

    def test_short_product_stock_names_the_product(self):
        order = self.make_order(quantity=11)

        result = OrderService.update_status(order.id, Order.Status.SHIPPED)

        self.assertEqual(result["error_code"], "INSUFFICIENT_INVENTORY")
        self.assertIn("Ceramic Mug - Default", result["message"])
        self.assertEqual(result["details"]["available"], "10")
        self.assertEqual(Order.objects.get(pk=order.pk).status, Order.Status.CONFIRMED)


class StatusTransitionTests(OrderTestCase):

    def test_invalid_transitions_are_rejected(self):
        order = self.make_order(status=Order.Status.ORDER_PLACED)

        for target in (Order.Status.SHIPPED, Order.Status.DELIVERED, Order.Status.RETURNED, "lost"):
            with self.subTest(target=target):
                result = OrderService.update_status(order.id, target)
                self.assertEqual(result["error_code"], "VALIDATION_ERROR")

        self.assertEqual(Order.objects.get(pk=order.pk).status, Order.Status.ORDER_PLACED)

    def test_terminal_statuses(self):
        for status in (Order.Status.CANCELED, Order.Status.RETURNED):
            order = self.make_order(status=status)
            with self.subTest(status=status):
                result = OrderService.update_status(order.id, Order.Status.CONFIRMED)
                self.assertFalse(result["success"])

    def test_cancel_before_shipping_leaves_stock_alone(self):
        order = self.make_order(status=Order.Status.ORDER_PLACED)

        self.assertTrue(OrderService.update_status(order.id, Order.Status.CONFIRMED)["success"])
        self.assertTrue(OrderService.update_status(order.id, Order.Status.CANCELED)["success"])

        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 10)
        self.assertFalse(FinancialTransaction.objects.filter(order=order).exists())

    def test_cancel_after_shipping_keeps_deduction(self):
        order = self.make_order()
        OrderService.update_status(order.id, Order.Status.SHIPPED)

        result = OrderService.update_status(order.id, Order.Status.CANCELED)

        self.assertTrue(result["success"])
        self.assertEqual(result["actions"], [])
        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 8)

    def test_unknown_order(self):
        self.assertEqual(OrderService.update_status(999999, Order.Status.CONFIRMED)["error_code"], "NOT_FOUND")


class PlaceOrderTests(OrderTestCase):

    def test_totals_include_shipping_and_stock_is_untouched(self):
        plain = make_product(name="Saucer", price="120.00")
        premium = make_variant(product=self.product, title="Gold rim", price="650.00")

        result = OrderService.place_order(
            [
                {"variant_id": self.variant.id, "quantity": 2},
                {"variant_id": premium.id, "quantity": 1},
                {"product_id": plain.id, "quantity": 3},
            ],
            delivery_type=Order.DeliveryType.OUTSIDE,
            shipping_cost=Decimal("130"),
        )

        self.assertTrue(result["success"], result)
        order = result["order"]
        self.assertEqual(order["status"], "order_placed")
        self.assertEqual(order["total_amount"], "2140.00")
        self.assertEqual(
            [(i["product_name"], i["item_total"]) for i in order["items"]],
            [("Ceramic Mug - Default", "1000.00"), ("Ceramic Mug - Gold rim", "650.00"), ("Saucer", "360.00")],
        )
        self.assertIsNone(order["total_profit"])
        self.assertEqual(ProductVariant.objects.get(pk=self.variant.pk).inventory_quantity, 10)

    def test_invalid_orders(self):
        self.assertEqual(OrderService.place_order([])["error_code"], "VALIDATION_ERROR")
        self.assertEqual(
            OrderService.place_order([{"variant_id": self.variant.id, "quantity": 0}])["error_code"],
            "VALIDATION_ERROR",
        )
        self.assertEqual(
            OrderService.place_order([{"variant_id": 999999, "quantity": 1}])["error_code"], "NOT_FOUND"
        )
        self.assertEqual(
            OrderService.place_order([{"variant_id": self.variant.id, "quantity": 1}], "overseas")["error_code"],
            "VALIDATION_ERROR",
        )
        self.assertFalse(Order.objects.exists())

    def test_get_order(self):
        order = self.make_order()
        self.assertEqual(OrderService.get_order(order.id)["order"]["order_number"], order.order_number)
        self.assertEqual(OrderService.get_order(999999)["error_code"], "NOT_FOUND")


class ProfitCalculationTests(TestCase):

    def test_profit_and_return_loss(self):
        args = (Decimal("600"), Decimal("50"), Decimal("80"), Decimal("10"))
        self.assertEqual(OrderCostService.calculate_order_profit(Decimal("1000"), *args), Decimal("260.00"))
        self.assertEqual(OrderCostService.calculate_return_loss(*args), Decimal("-740.00"))

    def test_missing_costs_count_as_zero(self):
        self.assertEqual(OrderCostService.calculate_return_loss(None, None, Decimal("80"), None), Decimal("-80.00"))
