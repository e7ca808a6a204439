from decimal import Decimal
from typing import Any, Dict, Iterable

from catalog.models import BoxType, PackingMaterial, ProductVariant, VariantPackingMaterial
from storefront.base_service import money_str


def calculate_packing_from_variants(items: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Packing usage derived from variant defaults: one default box per unit,
    default material spend times quantity. Boxes are aggregated by box type
    and materials by material.
    """
    items = [item for item in items if item.get("variant_id")]
    variant_ids = [item["variant_id"] for item in items]

    box_by_variant = dict(
        ProductVariant.objects.filter(id__in=variant_ids).values_list("id", "default_box_type_id")
    )
    materials_by_variant: Dict[int, list] = {}
    for default in VariantPackingMaterial.objects.filter(variant_id__in=variant_ids):
        materials_by_variant.setdefault(default.variant_id, []).append(default)

    box_quantities: Dict[int, int] = {}
    material_costs: Dict[int, Decimal] = {}

    for item in items:
        quantity = int(item["quantity"])

        box_type_id = box_by_variant.get(item["variant_id"])
        if box_type_id:
            box_quantities[box_type_id] = box_quantities.get(box_type_id, 0) + quantity

        for default in materials_by_variant.get(item["variant_id"], []):
            material_costs[default.material_id] = (
                material_costs.get(default.material_id, Decimal("0")) + default.cost * quantity
            )

    box_names = dict(BoxType.objects.filter(id__in=box_quantities).values_list("id", "name"))
    material_names = dict(
        PackingMaterial.objects.filter(id__in=material_costs).values_list("id", "name")
    )

    return {
        "boxes_used": [
            {
                "box_type_id": box_type_id,
                "box_name": box_names.get(box_type_id, "Unknown Box"),
                "quantity": quantity,
            }
            for box_type_id, quantity in box_quantities.items()
        ],
        "materials_used": [
            {
                "material_id": material_id,
                "material_name": material_names.get(material_id, "Unknown Material"),
                "cost_used": money_str(cost),
            }
            for material_id, cost in material_costs.items()
        ],
        "total_material_cost": money_str(sum(material_costs.values(), Decimal("0"))),
    }
