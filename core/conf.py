# core/conf.py

from django.conf import settings

from core.money import to_money

DEFAULTS = {
    'REGISTRATION_FEE': '0.00',
    'ALLOW_OVERPAYMENT': True,
    'DEFAULT_PAYMENT_METHOD': 'CASH',
    'DEFAULT_SOURCE_ACCOUNT': 'hospital',
    'LOCK_NOWAIT': False,
    'EVENT_CHANNEL': 'visits',
}


def billing_setting(key, default=None):
    """
    Get a CLINIC_BILLING setting with fallback to the built-in defaults
    """
    configured = getattr(settings, 'CLINIC_BILLING', {}) or {}
    if key in configured:
        return configured[key]
    if key in DEFAULTS:
        return DEFAULTS[key]
    return default


def registration_fee():
    return to_money(billing_setting('REGISTRATION_FEE'))
