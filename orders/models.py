import uuid as uuid_lib

from django.db import models


class Order(models.Model):
    class Status(models.TextChoices):
        ORDER_PLACED = "order_placed", "Order Placed"
        CONFIRMED = "confirmed", "Confirmed"
        SHIPPED = "shipped", "Shipped"
        DELIVERED = "delivered", "Delivered"
        RETURNED = "returned", "Returned"
        CANCELED = "canceled", "Canceled"

    class DeliveryType(models.TextChoices):
        INSIDE = "inside", "Inside city"
        OUTSIDE = "outside", "Outside city"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    order_number = models.CharField(max_length=50, unique=True)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.ORDER_PLACED, db_index=True
    )
    delivery_type = models.CharField(
        max_length=10, choices=DeliveryType.choices, default=DeliveryType.INSIDE
    )

    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    shipping_cost = models.DecimalField(
        max_digits=10, decimal_places=2, default=0,
        help_text="Shipping charged to the customer",
    )

    # Set once, when the order ships
    actual_shipping_cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    total_purchase_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    total_packing_charges = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    cod_cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    total_profit = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    # Set once, when the shipped order comes back
    returned_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Order {self.order_number} ({self.get_status_display()})"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        "catalog.Product", on_delete=models.PROTECT, related_name="order_items"
    )
    variant = models.ForeignKey(
        "catalog.ProductVariant",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_items",
    )
    product_name = models.CharField(max_length=255)
    product_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    item_total = models.DecimalField(max_digits=12, decimal_places=2)

    # Filled in at shipment
    purchase_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    batch_allocations = models.JSONField(null=True, blank=True)
    is_inventory_reverted = models.BooleanField(default=False)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.product_name} × {self.quantity}"


class OrderPackingDetails(models.Model):
    """
    Boxes and materials used for an order.

    boxes_used / materials_used hold one entry per box type / material. After
    deduction each entry also carries the batch allocations it consumed.
    """

    order = models.OneToOneField(
        Order, on_delete=models.CASCADE, related_name="packing_details"
    )
    boxes_used = models.JSONField(default=list, blank=True)
    materials_used = models.JSONField(default=list, blank=True)
    total_packing_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_inventory_deducted = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "order packing details"

    def __str__(self):
        return f"Packing for {self.order.order_number}"
