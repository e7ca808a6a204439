import uuid as uuid_lib

from django.db import models


class LedgerImmutableError(Exception):
    """Raised on any attempt to change or remove a written ledger row."""


class FinancialTransaction(models.Model):
    """
    One ledger line. Each row carries the cash and asset balances that resulted
    from it, so the latest row is the current state of the books.
    Rows are append-only.
    """

    class TransactionType(models.TextChoices):
        CASH_IN = "CASH_IN", "Cash In"
        EXPENSE = "EXPENSE", "Expense"
        INVENTORY_PURCHASE = "INVENTORY_PURCHASE", "Inventory Purchase"
        INVENTORY_SYNC = "INVENTORY_SYNC", "Inventory Sync"
        ORDER_REVENUE = "ORDER_REVENUE", "Order Revenue"
        ORDER_EXPENSE = "ORDER_EXPENSE", "Order Expense"
        INVENTORY_USAGE = "INVENTORY_USAGE", "Inventory Usage"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    transaction_type = models.CharField(
        max_length=30, choices=TransactionType.choices, db_index=True
    )
    category = models.CharField(max_length=50, blank=True, default="", db_index=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    cash_balance_after = models.DecimalField(max_digits=14, decimal_places=2)
    asset_balance_after = models.DecimalField(max_digits=14, decimal_places=2)
    balance_after = models.DecimalField(max_digits=14, decimal_places=2)
    description = models.TextField(blank=True, default="")

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="financial_transactions",
    )
    inventory_batch = models.ForeignKey(
        "stock.InventoryBatch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="financial_transactions",
    )
    box_batch = models.ForeignKey(
        "stock.BoxInventoryBatch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="financial_transactions",
    )
    material_batch = models.ForeignKey(
        "stock.PackingMaterialBatch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="financial_transactions",
    )
    created_by = models.CharField(max_length=100, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["transaction_type", "created_at"], name="fin_txn_type_created"),
            models.Index(fields=["category", "created_at"], name="fin_txn_category_created"),
        ]

    def save(self, *args, **kwargs):
        if self.pk is not None and not kwargs.get("force_insert"):
            raise LedgerImmutableError(f"Financial transaction {self.pk} is immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerImmutableError(f"Financial transaction {self.pk} cannot be deleted")

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} -> {self.balance_after}"


class CashBalance(models.Model):
    """
    Singleton cache of the current cash balance (pk=1).
    Only finance.services.ledger_balance.LedgerBalance reads or writes it.
    """

    balance = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "cash balance"
        verbose_name_plural = "cash balance"

    def save(self, *args, **kwargs):
        # Enforce singleton: always use pk=1
        self.pk = 1
        super().save(*args, **kwargs)

    def __str__(self):
        return f"Cash balance: {self.balance}"
