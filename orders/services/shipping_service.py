"""
Courier charge from parcel weight and delivery zone.

Rates come from settings.SHIPPING_RATES: per zone, a list of
(max grams, price) tiers and a surcharge per started kg beyond 1 kg.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING
from typing import Any, Dict, Iterable, Tuple

from django.conf import settings

from catalog.models import ProductVariant
from storefront.base_service import ValidationError, round_money, to_decimal

GRAMS_PER_KG = Decimal("1000")

DEFAULT_SHIPPING_RATES = {
    "inside": {
        "tiers": [(150, Decimal("50")), (500, Decimal("60")), (1000, Decimal("70"))],
        "per_extra_kg": Decimal("20"),
    },
    "outside": {
        "tiers": [(500, Decimal("110")), (1000, Decimal("130"))],
        "per_extra_kg": Decimal("20"),
    },
}


@dataclass(frozen=True)
class ShippingCalculation:
    actual_shipping_cost: Decimal
    total_weight_grams: Decimal

    @property
    def total_weight_kg(self) -> Decimal:
        return self.total_weight_grams / GRAMS_PER_KG


def _rates_for(delivery_type: str) -> Dict[str, Any]:
    rates = getattr(settings, "SHIPPING_RATES", DEFAULT_SHIPPING_RATES)
    if delivery_type not in rates:
        raise ValidationError(f"Unknown delivery type: {delivery_type}", "delivery_type")
    return rates[delivery_type]


def calculate_shipping_cost(total_weight_grams: Any, delivery_type: str) -> Decimal:
    grams = to_decimal(total_weight_grams)
    rates = _rates_for(delivery_type)
    if grams <= 0:
        return round_money(0)

    tiers = rates["tiers"]
    for max_grams, price in tiers:
        if grams <= max_grams:
            return round_money(price)

    top_grams, top_price = tiers[-1]
    extra_kg = ((grams - top_grams) / GRAMS_PER_KG).to_integral_value(rounding=ROUND_CEILING)
    return round_money(to_decimal(top_price) + extra_kg * to_decimal(rates["per_extra_kg"]))


def calculate_order_shipping(items: Iterable[Tuple[int, Any]], delivery_type: str) -> ShippingCalculation:
    """`items` are (quantity, weight in kg) pairs; a missing weight counts as 0."""
    total_grams = Decimal("0")
    for quantity, weight_kg in items:
        total_grams += to_decimal(weight_kg) * GRAMS_PER_KG * quantity

    return ShippingCalculation(
        actual_shipping_cost=calculate_shipping_cost(total_grams, delivery_type),
        total_weight_grams=total_grams,
    )


def calculate_actual_shipping_cost(items: Iterable[Dict[str, Any]], delivery_type: str) -> ShippingCalculation:
    """`items` are {"variant_id", "quantity"} dicts; weights are read from the variants."""
    items = list(items)
    variant_ids = [item["variant_id"] for item in items if item.get("variant_id")]

    weights = dict(
        ProductVariant.objects.filter(id__in=variant_ids).values_list("id", "weight")
    )

    return calculate_order_shipping(
        [(item["quantity"], weights.get(item.get("variant_id"))) for item in items],
        delivery_type,
    )
