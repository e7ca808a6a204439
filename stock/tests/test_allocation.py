from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase

from stock.services.allocation import (
    AggregateFallback, BatchAllocation, DetailedAllocation, MaterialAllocation,
    MaterialShortfall, parse_box_usage, parse_material_usage, total_cost, walk_fifo,
)


def _batch(batch_id, remaining):
    return SimpleNamespace(id=batch_id, remaining=remaining)


class WalkFifoTests(SimpleTestCase):

    def test_stops_once_covered(self):
        batches = [_batch(1, 5), _batch(2, 5), _batch(3, 5)]
        takes, still_needed = walk_fifo(batches, 7, lambda b: b.remaining)

        self.assertEqual([(b.id, taken) for b, taken in takes], [(1, 5), (2, 2)])
        self.assertEqual(still_needed, 0)

    def test_skips_empty_batches(self):
        batches = [_batch(1, 0), _batch(2, 4)]
        takes, _ = walk_fifo(batches, 3, lambda b: b.remaining)
        self.assertEqual([(b.id, taken) for b, taken in takes], [(2, 3)])

    def test_reports_uncovered_amount(self):
        batches = [_batch(1, Decimal("30.00"))]
        takes, still_needed = walk_fifo(batches, Decimal("50.00"), lambda b: b.remaining)

        self.assertEqual(takes[0][1], Decimal("30.00"))
        self.assertEqual(still_needed, Decimal("20.00"))

    def test_does_not_touch_batches(self):
        batch = _batch(1, 5)
        walk_fifo([batch], 3, lambda b: b.remaining)
        self.assertEqual(batch.remaining, 5)


class AllocationValueTests(SimpleTestCase):

    def test_batch_allocation_dict_uses_money_strings(self):
        allocation = BatchAllocation(7, 3, Decimal("120"))
        self.assertEqual(allocation.to_dict(), {"batch_id": 7, "quantity": 3, "cost_per_unit": "120.00"})
        self.assertEqual(BatchAllocation.from_dict(allocation.to_dict()), allocation)

    def test_total_cost_is_rounded(self):
        allocations = [BatchAllocation(1, 3, Decimal("0.335")), MaterialAllocation(2, Decimal("1.000"))]
        self.assertEqual(total_cost(allocations), Decimal("2.01"))

    def test_material_shortfall(self):
        shortfall = MaterialShortfall(4, Decimal("30.00"), Decimal("50.00"))
        self.assertEqual(shortfall.missing, Decimal("20.00"))
        self.assertEqual(shortfall.to_dict()["code"], "MATERIAL_SHORTFALL")
        self.assertIn("Available: 30.00, Needed: 50.00", shortfall.message)


class PackingUsageParsingTests(SimpleTestCase):

    def test_box_usage_with_batches(self):
        usage = parse_box_usage({
            "box_type_id": 3,
            "quantity": 2,
            "batch_allocations": [{"batch_id": 9, "quantity": 2, "cost_per_unit": "20.00"}],
        })
        self.assertIsInstance(usage, DetailedAllocation)
        self.assertEqual(usage.allocations, (BatchAllocation(9, 2, Decimal("20.00")),))

    def test_box_usage_without_batches(self):
        usage = parse_box_usage({"box_type_id": 3, "quantity": 2})
        self.assertEqual(usage, AggregateFallback(resource_id=3, quantity=2))

    def test_material_usage_with_batches(self):
        usage = parse_material_usage({
            "material_id": 5,
            "cost_used": "12.00",
            "batch_allocations": [
                {"batch_id": 1, "amount": "10.00"},
                {"batch_id": 2, "amount": "2.00"},
            ],
        })
        self.assertIsInstance(usage, DetailedAllocation)
        self.assertEqual(usage.quantity, Decimal("12.00"))

    def test_material_usage_without_batches_uses_cost(self):
        usage = parse_material_usage({"material_id": 5, "cost_used": "12.50", "batch_allocations": []})
        self.assertEqual(usage, AggregateFallback(resource_id=5, quantity=Decimal("12.50")))
