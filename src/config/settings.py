import re
from datetime import timedelta
from pathlib import Path

import structlog
from decouple import Csv, config
from dj_database_url import parse as db_url

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Security - Fail Fast: no default forces explicit configuration
SECRET_KEY = config("SECRET_KEY")

DEBUG = config("DEBUG", default=False, cast=bool)

ALLOWED_HOSTS = config("ALLOWED_HOSTS", default="127.0.0.1,localhost", cast=Csv())

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party
    "rest_framework",
    "corsheaders",
    "django_filters",
    "drf_spectacular",
    # Local Apps (Modules)
    "modules.core",
    "modules.geo",
    "modules.couriers",
    "modules.customers",
    "modules.deliveries",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "modules.core.middleware.CorrelationIdMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
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

WSGI_APPLICATION = "config.wsgi.application"

# Database - Fail Fast: no default forces DATABASE_URL to be set
DATABASES = {
    "default": config(
        "DATABASE_URL", default=f'sqlite:///{BASE_DIR / "db.sqlite3"}', cast=db_url
    )
}

# Cache - Redis
REDIS_URL = config("REDIS_URL", default="redis://localhost:6379/0")

CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": REDIS_URL,
        "OPTIONS": {
            "CLIENT_CLASS": "django_redis.client.DefaultClient",
        },
    }
}

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"
    },
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# Internationalization
LANGUAGE_CODE = "pt-br"
TIME_ZONE = "America/Sao_Paulo"
USE_I18N = True
USE_TZ = True

# ---------------------------------------------------------------------------
# Celery (async tasks via Redis)
# ---------------------------------------------------------------------------
CELERY_BROKER_URL = config("CELERY_BROKER_URL", default="redis://localhost:6379/0")
CELERY_RESULT_BACKEND = config(
    "CELERY_RESULT_BACKEND", default="redis://localhost:6379/0"
)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ROUTES = {
    "deliveries.*": {"queue": "dispatch"},
}

# ---------------------------------------------------------------------------
# Dispatch board (loja, frete, loops periódicos, geolocalização)
# ---------------------------------------------------------------------------
DISPATCH_STORE_ID = config(
    "DISPATCH_STORE_ID", default="5b4ce4be-c8cb-4cee-a0cd-ca6edce71901"
)
DISPATCH_STORE_NAME = config(
    "DISPATCH_STORE_NAME", default="Padaria e Conveniência Rebeca"
)
DISPATCH_STORE_ADDRESS = config(
    "DISPATCH_STORE_ADDRESS", default="Rua dos Andradas, 468 - Itu"
)
DISPATCH_STORE_LAT = config("DISPATCH_STORE_LAT", default=-23.257217, cast=float)
DISPATCH_STORE_LNG = config("DISPATCH_STORE_LNG", default=-47.300549, cast=float)
DISPATCH_STORE_CITY = config("DISPATCH_STORE_CITY", default="Itu, SP, Brazil")

DISPATCH_BASE_FREIGHT = config("DISPATCH_BASE_FREIGHT", default="8.50")
DISPATCH_RETURN_FEE_ACTIVE = config(
    "DISPATCH_RETURN_FEE_ACTIVE", default=True, cast=bool
)
DISPATCH_OPEN_TIME = config("DISPATCH_OPEN_TIME", default="08:00")
DISPATCH_CLOSE_TIME = config("DISPATCH_CLOSE_TIME", default="22:00")
DISPATCH_IS_STORE_OPEN = config("DISPATCH_IS_STORE_OPEN", default=True, cast=bool)
DISPATCH_DELIVERY_RADIUS_KM = config(
    "DISPATCH_DELIVERY_RADIUS_KM", default=10.0, cast=float
)
DISPATCH_PREP_TIME_MINUTES = config(
    "DISPATCH_PREP_TIME_MINUTES", default=15, cast=int
)
DISPATCH_TIER_GOALS = {
    "bronze": config("DISPATCH_TIER_BRONZE", default=3, cast=int),
    "silver": config("DISPATCH_TIER_SILVER", default=5, cast=int),
    "gold": config("DISPATCH_TIER_GOLD", default=10, cast=int),
}
DISPATCH_ALERT_SOUND = config("DISPATCH_ALERT_SOUND", default="default")

DISPATCH_SYNC_INTERVAL = config("DISPATCH_SYNC_INTERVAL", default=3.0, cast=float)
DISPATCH_ROAMING_INTERVAL = config(
    "DISPATCH_ROAMING_INTERVAL", default=0.1, cast=float
)
DISPATCH_NOTIFICATION_TTL = config(
    "DISPATCH_NOTIFICATION_TTL", default=4.0, cast=float
)
DISPATCH_AUTOSTART_LOOPS = config(
    "DISPATCH_AUTOSTART_LOOPS", default=False, cast=bool
)

DISPATCH_GEO_ADAPTER = config("DISPATCH_GEO_ADAPTER", default="osm")
DISPATCH_NOMINATIM_URL = config(
    "DISPATCH_NOMINATIM_URL", default="https://nominatim.openstreetmap.org"
)
DISPATCH_OSRM_URL = config(
    "DISPATCH_OSRM_URL", default="https://router.project-osrm.org"
)
DISPATCH_HTTP_TIMEOUT = config("DISPATCH_HTTP_TIMEOUT", default=5.0, cast=float)
DISPATCH_HTTP_USER_AGENT = config(
    "DISPATCH_HTTP_USER_AGENT", default="Dispatch-Board/1.0"
)
# Shared secret expected in the X-Webhook-Token header of the chat gateway
DISPATCH_WEBHOOK_TOKEN = config("DISPATCH_WEBHOOK_TOKEN", default="")

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# DRF Configuration. Fail Closed: everything requires auth by default
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
        "rest_framework.throttling.ScopedRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": "100/day",
        "user": "5000/hour",
        "delivery_creation": "30/minute",
        "board_polling": "120/minute",
        "tracking": "60/minute",
        "intake": "60/minute",
    },
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": config("DEFAULT_PAGE_SIZE", default=20, cast=int),
    "DEFAULT_FILTER_BACKENDS": ["django_filters.rest_framework.DjangoFilterBackend"],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

if DEBUG:
    REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"].append(
        "rest_framework.renderers.BrowsableAPIRenderer"
    )

# ---------------------------------------------------------------------------
# SimpleJWT (local JWT for dev/test)
# ---------------------------------------------------------------------------
SIMPLE_JWT = {
    "ALGORITHM": "HS256",
    "SIGNING_KEY": SECRET_KEY,
    "AUTH_HEADER_TYPES": ("Bearer",),
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=15),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
}

# CORS
CORS_ALLOWED_ORIGINS = config(
    "CORS_ALLOWED_ORIGINS", default="http://localhost:3000", cast=Csv()
)

# CSRF
CSRF_TRUSTED_ORIGINS = config(
    "CSRF_TRUSTED_ORIGINS", default="http://localhost:3000", cast=Csv()
)

# ---------------------------------------------------------------------------
# drf-spectacular (OpenAPI / Swagger)
# ---------------------------------------------------------------------------
SPECTACULAR_SETTINGS = {
    "TITLE": "Dispatch Board API",
    "DESCRIPTION": "API do painel de despacho: entregas, entregadores, clientes e rastreio.",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "SECURITY": [{"BearerAuth": []}],
    "APPEND_COMPONENTS": {
        "securitySchemes": {
            "BearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        }
    },
}

# ---------------------------------------------------------------------------
# Structured Logging (structlog + Django LOGGING)
# ---------------------------------------------------------------------------
SENSITIVE_PATTERN = re.compile(
    r"(\d{3}\.?\d{3}\.?\d{3}-?\d{2})"  # CPF
    r"|(\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2})"  # CNPJ
    r"|(\(\d{2}\)\s?\d{4,5}-?\d{4})"  # Telefone
    r"|(password|passwd|secret|token|authorization|pickup_code|collection_code)"
    r"""([=:]\s*["']?)([^\s,}"']+)""",
    re.IGNORECASE,
)

# Keys whose values never reach the logs, whatever their format.
SENSITIVE_KEYS = {"pickup_code", "collection_code", "code", "tracking_token"}


def mask_sensitive_data(_, __, event_dict):
    """Processor that masks CPF, CNPJ, phones, pickup codes and tokens in log values."""
    for key in SENSITIVE_KEYS & event_dict.keys():
        event_dict[key] = "***MASKED***"
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = SENSITIVE_PATTERN.sub("***MASKED***", value)
    return event_dict


# Shared processors used by both structlog and stdlib logging
_shared_processors = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    mask_sensitive_data,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]

structlog.configure(
    processors=[
        *_shared_processors,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processors": [
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            "foreign_pre_chain": _shared_processors,
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "django.server": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}
