import uuid as uuid_lib

from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class InventoryBatch(models.Model):
    """A purchase of one product variant, consumed FIFO by shipped orders."""

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    batch_number = models.CharField(max_length=100)
    variant = models.ForeignKey(
        "catalog.ProductVariant", on_delete=models.CASCADE, related_name="batches"
    )
    purchase_date = models.DateTimeField(default=timezone.now, db_index=True)
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    remaining_quantity = models.PositiveIntegerField()
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["purchase_date", "id"]
        verbose_name_plural = "inventory batches"
        indexes = [
            models.Index(fields=["variant", "purchase_date"], name="inventory_batch_variant_date"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(remaining_quantity__lte=F("quantity")),
                name="inventory_batch_remaining_lte_quantity",
            ),
        ]

    def __str__(self):
        return f"Batch {self.batch_number}: {self.remaining_quantity}/{self.quantity} @ {self.purchase_price}"


class BoxInventoryBatch(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    batch_number = models.CharField(max_length=100)
    box_type = models.ForeignKey(
        "catalog.BoxType", on_delete=models.CASCADE, related_name="batches"
    )
    purchase_date = models.DateTimeField(default=timezone.now, db_index=True)
    purchase_price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField()
    remaining_quantity = models.PositiveIntegerField()
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["purchase_date", "id"]
        verbose_name_plural = "box inventory batches"
        constraints = [
            models.CheckConstraint(
                condition=Q(remaining_quantity__lte=F("quantity")),
                name="box_batch_remaining_lte_quantity",
            ),
        ]

    def __str__(self):
        return f"Box batch {self.batch_number}: {self.remaining_quantity}/{self.quantity}"


class PackingMaterialBatch(models.Model):
    """Money spent on a packing material; consumed FIFO as an amount."""

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    batch_number = models.CharField(max_length=100)
    material = models.ForeignKey(
        "catalog.PackingMaterial", on_delete=models.CASCADE, related_name="batches"
    )
    purchase_date = models.DateTimeField(default=timezone.now, db_index=True)
    purchase_amount = models.DecimalField(max_digits=12, decimal_places=2)
    remaining_amount = models.DecimalField(max_digits=12, decimal_places=2)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["purchase_date", "id"]
        verbose_name_plural = "packing material batches"
        constraints = [
            models.CheckConstraint(
                condition=Q(remaining_amount__gte=0) & Q(remaining_amount__lte=F("purchase_amount")),
                name="material_batch_remaining_in_range",
            ),
        ]

    def __str__(self):
        return f"Material batch {self.batch_number}: {self.remaining_amount}/{self.purchase_amount}"


class BoxTransaction(models.Model):
    class TransactionType(models.TextChoices):
        PURCHASE = "purchase", "Purchase"
        ORDER_USE = "order_use", "Order Use"
        REVERT = "revert", "Revert"

    box_type = models.ForeignKey(
        "catalog.BoxType", on_delete=models.PROTECT, related_name="transactions"
    )
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    quantity = models.IntegerField()
    stock_before = models.IntegerField()
    stock_after = models.IntegerField()
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="box_transactions",
    )
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.quantity:+d} {self.box_type.name}"


class PackingMaterialTransaction(models.Model):
    class TransactionType(models.TextChoices):
        PURCHASE = "purchase", "Purchase"
        ORDER_USE = "order_use", "Order Use"
        REVERT = "revert", "Revert"

    material = models.ForeignKey(
        "catalog.PackingMaterial", on_delete=models.PROTECT, related_name="transactions"
    )
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="material_transactions",
    )
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} {self.material.name}"
