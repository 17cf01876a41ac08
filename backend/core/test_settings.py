# backend/core/test_settings.py
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from .settings import *  # noqa: E402,F401,F403

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}
}

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

TWILIO_ACCOUNT_SID = None
TWILIO_AUTH_TOKEN = None
TWILIO_PHONE_NUMBER = None

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

DISPUTE_ORDER_CONTEXT_PROVIDER = "orders.context.DatabaseOrderContextProvider"
DISPUTE_NOTIFICATION_DISPATCHER = "disputes.services.notifications.CeleryNotificationDispatcher"
DISPUTE_AUDIT_LOGGER = "disputes.services.audit.DatabaseAuditLogger"

# Let caplog see application records.
for _logger in LOGGING["loggers"].values():
    _logger["propagate"] = True
