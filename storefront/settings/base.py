"""
Base settings for the storefront operations backend.
Shared between local and cloud deployments.
"""

from decimal import Decimal
from pathlib import Path
import os


# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-k2v$0r7!storefront-ops-local-only-key')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


# Application definition
INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'catalog',
    'orders',
    'stock',
    'finance',
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Asia/Dhaka'
USE_I18N = True
USE_TZ = True


# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# =============================================================================
# ORDER COSTING
# =============================================================================
# Cash-on-delivery handling fee as a fraction of the order total
ORDER_COD_RATE = Decimal(os.getenv('ORDER_COD_RATE', '0.01'))

# Courier rate table per delivery type. Each tier is (max_grams, cost);
# above the last tier the cost grows by `per_extra_kg` for every started kg over 1 kg.
SHIPPING_RATES = {
    'inside': {
        'tiers': [(150, Decimal('50')), (500, Decimal('60')), (1000, Decimal('70'))],
        'per_extra_kg': Decimal('20'),
    },
    'outside': {
        'tiers': [(500, Decimal('110')), (1000, Decimal('130'))],
        'per_extra_kg': Decimal('20'),
    },
}


# =============================================================================
# FINANCE LEDGER
# =============================================================================
# Book order revenue / shipping + COD expense / refunds on ship and return.
# Inventory usage and returns are always booked.
FINANCE_BOOK_ORDER_CASHFLOW = os.getenv('FINANCE_BOOK_ORDER_CASHFLOW', 'True').lower() == 'true'


# =============================================================================
# LOCKING
# =============================================================================
# Retries for top-level units of work that hit a lock conflict or deadlock
LOCK_RETRY_ATTEMPTS = int(os.getenv('LOCK_RETRY_ATTEMPTS', '3'))
LOCK_RETRY_BACKOFF = float(os.getenv('LOCK_RETRY_BACKOFF', '0.05'))  # seconds, multiplied by attempt
