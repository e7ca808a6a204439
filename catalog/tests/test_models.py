from decimal import Decimal

from django.test import TestCase

from catalog.tests.factories import make_box_type, make_material, make_product, make_variant


class ProductVariantTests(TestCase):

    def test_effective_price_falls_back_to_product(self):
        product = make_product(price="450.00")
        variant = make_variant(product=product)
        self.assertEqual(variant.effective_price, Decimal("450.00"))

    def test_effective_price_prefers_variant_price(self):
        variant = make_variant(product=make_product(price="450.00"), price="520.00")
        self.assertEqual(variant.effective_price, Decimal("520.00"))

    def test_packing_defaults(self):
        box = make_box_type()
        tape = make_material("Tape")
        variant = make_variant(box_type=box, materials=[(tape, "3.50")])

        self.assertEqual(variant.default_box_type, box)
        self.assertEqual(variant.default_materials.get().cost, Decimal("3.50"))
        self.assertEqual(list(box.variants.all()), [variant])
