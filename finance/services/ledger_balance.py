from decimal import Decimal

from finance.models import CashBalance


class LedgerBalance:
    """
    Lifecycle of the cached cash balance row.

    initialize() creates the singleton, read() returns the cached figure,
    lock() takes the row lock every ledger append serializes on, and write()
    stores the balance produced by the row just inserted. Callers other than
    FinanceService should not touch CashBalance directly.
    """

    SINGLETON_PK = 1

    @classmethod
    def initialize(cls) -> CashBalance:
        obj, _ = CashBalance.objects.get_or_create(
            pk=cls.SINGLETON_PK, defaults={"balance": Decimal("0.00")}
        )
        return obj

    @classmethod
    def read(cls) -> Decimal:
        return cls.initialize().balance

    @classmethod
    def lock(cls) -> CashBalance:
        """Must be called inside transaction.atomic()."""
        cls.initialize()
        return CashBalance.objects.select_for_update().get(pk=cls.SINGLETON_PK)

    @classmethod
    def write(cls, row: CashBalance, balance: Decimal) -> None:
        row.balance = balance
        row.save(update_fields=["balance", "updated_at"])
