"""Test settings for the Roomstay service.

In-memory SQLite, eager Celery and dummy Stripe credentials. Nothing
in the test suite talks to the network.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

STRIPE_SECRET_KEY = 'sk_test_dummy'
STRIPE_WEBHOOK_SECRET = 'whsec_test_dummy'
PAYMENT_CURRENCY = 'INR'

BOOKINGS = {
    'REPOSITORY': 'django',
    'HOLD_PENDING': False,
    'PENDING_PAYMENT_TIMEOUT_MINUTES': 30,
    'TRANSITION_RETRIES': 3,
}
