import logging
import time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from functools import wraps
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import OperationalError, transaction
from django.db.models import Model
from django.utils import timezone

logger = logging.getLogger(__name__)

MONEY_PLACES = Decimal("0.01")


class ServiceError(Exception):
    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class NotFoundError(ServiceError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class BatchNotFoundError(NotFoundError):
    """A stored allocation points at a batch that no longer exists."""

    def __init__(self, batch_kind: str, batch_id: Any):
        super().__init__(batch_kind, batch_id)
        self.code = "BATCH_NOT_FOUND"


class BusinessRuleError(ServiceError):
    def __init__(self, message: str, rule: str = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", {"rule": rule})


class InsufficientInventoryError(ServiceError):
    def __init__(self, resource: str, available: Any, needed: Any):
        super().__init__(
            f"Insufficient inventory for {resource}. Available: {available}, Needed: {needed}",
            "INSUFFICIENT_INVENTORY",
            {"resource": resource, "available": str(available), "needed": str(needed)}
        )
        self.available = available
        self.needed = needed


class UnknownTransactionTypeError(ValueError):
    """Raised for a ledger transaction type with no balance rule."""


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def error_response(message: str, code: str = "ERROR", details: Dict = None) -> Dict:
    return {
        "success": False,
        "message": message,
        "error_code": code,
        "details": details or {}
    }


def service_error_response(error: ServiceError) -> Dict:
    return error_response(error.message, error.code, error.details)


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None:
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def round_money(value: Optional[Decimal]) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def money_str(value: Optional[Decimal]) -> str:
    """Fixed-point string with two places, the only wire format for money."""
    return str(round_money(value))


def generate_batch_number(prefix: str, resource_id: Any = None) -> str:
    stamp = timezone.now().strftime("%Y%m%d%H%M%S%f")
    if resource_id is None:
        return f"{prefix}-{stamp}"
    return f"{prefix}-{stamp}-{resource_id}"


def retry_on_conflict(func):
    """
    Re-run a top-level unit of work when the database reports a lock conflict
    (serialization failure or deadlock). Inside an outer atomic block the error
    is re-raised at once: only the outermost transaction can be retried.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        attempts = max(1, getattr(settings, "LOCK_RETRY_ATTEMPTS", 3))
        backoff = getattr(settings, "LOCK_RETRY_BACKOFF", 0.05)

        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except OperationalError as e:
                if transaction.get_connection().in_atomic_block or attempt == attempts:
                    raise
                logger.warning(
                    f"Lock conflict in {func.__qualname__} "
                    f"(attempt {attempt}/{attempts}): {e}"
                )
                time.sleep(backoff * attempt)

    return wrapper


class BaseService:
    model = None

    @classmethod
    def get_by_id(cls, id: int) -> Optional[Model]:
        try:
            return cls.model.objects.get(id=id)
        except cls.model.DoesNotExist:
            return None

    @classmethod
    def get_or_404(cls, id: int) -> Model:
        obj = cls.get_by_id(id)
        if not obj:
            raise NotFoundError(cls.model.__name__, id)
        return obj
