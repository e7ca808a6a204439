"""
Finance Services - Cash/asset ledger

Usage:
    from finance.services import FinanceService, TransactionFilters

    FinanceService.record_cash_in(Decimal("10000"), "Owner investment")
    FinanceService.get_transactions(TransactionFilters(transaction_type="CASH_IN"))
"""

from .ledger_balance import LedgerBalance
from .finance_service import FinanceService, TransactionFilters

__all__ = [
    "LedgerBalance",
    "FinanceService",
    "TransactionFilters",
]
