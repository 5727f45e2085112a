# config/settings/test.py
from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

CLINIC_BILLING = {
    'REGISTRATION_FEE': '0.00',
    'ALLOW_OVERPAYMENT': True,
    'DEFAULT_PAYMENT_METHOD': 'CASH',
    'DEFAULT_SOURCE_ACCOUNT': 'hospital',
    'LOCK_NOWAIT': False,
    'EVENT_CHANNEL': 'visits',
}

LOGGING['loggers']['apps']['level'] = 'WARNING'  # noqa: F405
LOGGING['loggers']['core']['level'] = 'WARNING'  # noqa: F405
