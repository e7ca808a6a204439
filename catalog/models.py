"""
Catalog master data.

Maintained by the storefront admin; the inventory and finance core only reads
these rows, apart from the cached stock counters (inventory_quantity,
current_stock, current_balance) which the stock services keep equal to the sum
of the matching batches.
"""

import uuid as uuid_lib

from django.db import models


class Product(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=255)
    handle = models.SlugField(max_length=255, unique=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class BoxType(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=100)
    dimensions = models.CharField(max_length=100, blank=True, default="")
    current_stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.current_stock} in stock)"


class PackingMaterial(models.Model):
    """Tape, bubble wrap, fillers: tracked as money spent, not as units."""

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=100)
    current_balance = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} (balance {self.current_balance})"


class ProductVariant(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="variants"
    )
    title = models.CharField(max_length=255)
    sku = models.CharField(max_length=100, unique=True, blank=True, null=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    weight = models.DecimalField(
        max_digits=8,
        decimal_places=3,
        null=True,
        blank=True,
        help_text="Shipping weight in kg",
    )
    inventory_quantity = models.IntegerField(default=0)

    # Packing defaults
    default_box_type = models.ForeignKey(
        BoxType,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="variants",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["product__name", "title"]

    @property
    def effective_price(self):
        return self.price if self.price is not None else self.product.price

    def __str__(self):
        return f"{self.product.name} - {self.title}"


class VariantPackingMaterial(models.Model):
    """Default material spend per unit of a variant."""

    variant = models.ForeignKey(
        ProductVariant, on_delete=models.CASCADE, related_name="default_materials"
    )
    material = models.ForeignKey(
        PackingMaterial, on_delete=models.CASCADE, related_name="variant_defaults"
    )
    cost = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        unique_together = [("variant", "material")]

    def __str__(self):
        return f"{self.variant} – {self.material.name}: {self.cost}"
