from decimal import Decimal
from itertools import count

from catalog.models import BoxType, PackingMaterial, Product, ProductVariant, VariantPackingMaterial

_sequence = count(1)


def make_product(name="Ceramic Mug", price="500.00", handle=None):
    n = next(_sequence)
    return Product.objects.create(
        name=name,
        handle=handle or f"product-{n}",
        price=Decimal(price),
    )


def make_box_type(name="Small Box"):
    return BoxType.objects.create(name=name, dimensions="20x15x10")


def make_material(name="Bubble Wrap"):
    return PackingMaterial.objects.create(name=name)


def make_variant(product=None, title="Default", price=None, weight=None,
                 box_type=None, materials=()):
    """`materials` is a list of (PackingMaterial, cost per unit)."""
    variant = ProductVariant.objects.create(
        product=product or make_product(),
        title=title,
        sku=f"SKU-{next(_sequence)}",
        price=Decimal(price) if price is not None else None,
        weight=Decimal(weight) if weight is not None else None,
        default_box_type=box_type,
    )
    for material, cost in materials:
        VariantPackingMaterial.objects.create(variant=variant, material=material, cost=Decimal(cost))
    return variant
