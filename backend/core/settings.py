# backend/core/settings.py
import os
from pathlib import Path

from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv, find_dotenv
import dj_database_url

# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def get_env_var(name: str, default: str | None = None, required: bool = False) -> str:
    val = os.getenv(name, default)
    if required and not val:
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val  # type: ignore

def get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "t", "yes", "y")

def get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

# ──────────────────────────────────────────────────────────────────────────────
# Paths & .env
# ──────────────────────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent       # ~/backend/backend
REPO_DIR = BASE_DIR.parent                               # ~/backend

# Robust .env loading
explicit_env = REPO_DIR / ".env"
if explicit_env.exists():
    load_dotenv(dotenv_path=explicit_env, override=True)
else:
    discovered = find_dotenv(filename=".env", usecwd=True)
    if discovered:
        load_dotenv(discovered, override=True)

# ──────────────────────────────────────────────────────────────────────────────
# Security & Debug
# ──────────────────────────────────────────────────────────────────────────────
SECRET_KEY = get_env_var("SECRET_KEY", required=True)
DEBUG = get_bool("DEBUG", default=False)
ALLOWED_HOSTS = [h.strip() for h in get_env_var("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

# Public URLs (used to build links inside notifications)
FRONTEND_URL = get_env_var("FRONTEND_URL", "http://localhost:3000").rstrip("/")
SITE_URL     = get_env_var("SITE_URL",     "http://127.0.0.1:8000").rstrip("/")

CSRF_TRUSTED_ORIGINS = [SITE_URL]

# ──────────────────────────────────────────────────────────────────────────────
# Installed Apps & Middleware
# ──────────────────────────────────────────────────────────────────────────────
INSTALLED_APPS = [
    # Django core
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "django_celery_beat",
    "django_celery_results",

    # Local apps
    "core",
    "accounts",
    "orders",
    "disputes",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "core.urls"
WSGI_APPLICATION = "core.wsgi.application"

AUTH_USER_MODEL = "accounts.User"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Deadlines are compared against timezone-aware "now"
USE_TZ = True
TIME_ZONE = get_env_var("TIME_ZONE", "UTC")

# ──────────────────────────────────────────────────────────────────────────────
# Database
# ──────────────────────────────────────────────────────────────────────────────
_sqlite_candidates = [
    REPO_DIR / "db.sqlite3",
    BASE_DIR / "db.sqlite3",
]
_sqlite_file = next((p for p in _sqlite_candidates if p.exists()), _sqlite_candidates[0])
SQLITE_ABS_PATH = str(_sqlite_file.resolve())

DEFAULT_DB_URL = f"sqlite:///{SQLITE_ABS_PATH}"
DATABASE_URL = os.environ.get("DATABASE_URL", DEFAULT_DB_URL)

DATABASES = {
    "default": dj_database_url.parse(
        DATABASE_URL,
        conn_max_age=600,
        ssl_require=DATABASE_URL.startswith(("postgres://", "postgresql://")),
    )
}

# ──────────────────────────────────────────────────────────────────────────────
# Templates
# ──────────────────────────────────────────────────────────────────────────────
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS":    [REPO_DIR / "templates"],  # optional; safe if folder missing
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

STATIC_URL = "/static/"
STATIC_ROOT = REPO_DIR / "staticfiles"

# ──────────────────────────────────────────────────────────────────────────────
# Cache (sweeper lock lives here; Redis when available)
# ──────────────────────────────────────────────────────────────────────────────
REDIS_URL = get_env_var("REDIS_URL", "")
if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": REDIS_URL,
        }
    }
else:
    CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}
    }

# ──────────────────────────────────────────────────────────────────────────────
# Celery
# ──────────────────────────────────────────────────────────────────────────────
from celery.schedules import crontab
CELERY_BROKER_URL     = REDIS_URL or "redis://localhost:6379/0"
CELERY_RESULT_BACKEND = "django-db"
CELERY_TASK_ALWAYS_EAGER = get_bool("CELERY_TASK_ALWAYS_EAGER", default=False)
CELERY_BEAT_SCHEDULE  = {
    "sweep-dispute-deadlines": {
        "task":    "disputes.tasks.sweep_dispute_deadlines",
        "schedule": crontab(minute="*/10"),
    },
}

# ──────────────────────────────────────────────────────────────────────────────
# Disputes
# ──────────────────────────────────────────────────────────────────────────────
DISPUTE_NEGOTIATION_DEADLINE_HOURS = get_int("DISPUTE_NEGOTIATION_DEADLINE_HOURS", 48)
DISPUTE_ARBITRATION_DEADLINE_HOURS = get_int("DISPUTE_ARBITRATION_DEADLINE_HOURS", 72)
DISPUTE_SWEEP_LOCK_SECONDS = get_int("DISPUTE_SWEEP_LOCK_SECONDS", 300)

# Collaborators (dotted paths, swapped out in tests or other deployments)
DISPUTE_ORDER_CONTEXT_PROVIDER = get_env_var(
    "DISPUTE_ORDER_CONTEXT_PROVIDER", "orders.context.DatabaseOrderContextProvider"
)
DISPUTE_NOTIFICATION_DISPATCHER = get_env_var(
    "DISPUTE_NOTIFICATION_DISPATCHER", "disputes.services.notifications.CeleryNotificationDispatcher"
)
DISPUTE_AUDIT_LOGGER = get_env_var(
    "DISPUTE_AUDIT_LOGGER", "disputes.services.audit.DatabaseAuditLogger"
)

# ──────────────────────────────────────────────────────────────────────────────
# Twilio (optional)
# ──────────────────────────────────────────────────────────────────────────────
TWILIO_ACCOUNT_SID  = get_env_var("TWILIO_ACCOUNT_SID",  required=False)
TWILIO_AUTH_TOKEN   = get_env_var("TWILIO_AUTH_TOKEN",   required=False)
TWILIO_PHONE_NUMBER = get_env_var("TWILIO_PHONE_NUMBER", required=False)

# ──────────────────────────────────────────────────────────────────────────────
# Email (safe defaults for MVP)
# ──────────────────────────────────────────────────────────────────────────────
if DEBUG:
    EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"
else:
    if os.getenv("EMAIL_HOST") and os.getenv("EMAIL_HOST_USER"):
        EMAIL_BACKEND = "django.core.mail.backends.smtp.EmailBackend"
    else:
        EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

EMAIL_HOST          = get_env_var("EMAIL_HOST", required=False)
EMAIL_PORT          = int(get_env_var("EMAIL_PORT", "587"))
EMAIL_USE_TLS       = get_bool("EMAIL_USE_TLS", True)
EMAIL_HOST_USER     = get_env_var("EMAIL_HOST_USER", required=False)
EMAIL_HOST_PASSWORD = get_env_var("EMAIL_HOST_PASSWORD", required=False)
DEFAULT_FROM_EMAIL  = get_env_var("DEFAULT_FROM_EMAIL", "Marketplace Disputes <no-reply@example.com>")

# ──────────────────────────────────────────────────────────────────────────────
# Production Security (enable when DEBUG=False)
# ──────────────────────────────────────────────────────────────────────────────
if not DEBUG:
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True

# ── LOGGING ───────────────────────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "standard"},
    },
    "root": {"handlers": ["console"], "level": "INFO"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "accounts": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "orders": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "disputes": {"handlers": ["console"], "level": get_env_var("DISPUTES_LOG_LEVEL", "INFO"), "propagate": False},
    },
}
