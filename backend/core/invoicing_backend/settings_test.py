import os

os.environ.setdefault("DATABASE_ENGINE", "django.db.backends.sqlite3")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from .settings import *  # noqa: E402,F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

ALLOWED_HOSTS = ["*"]
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

FISCAL_SIGNER = "hmac"
FISCAL_SIGNING_SECRET = "test-signing-secret"
FISCAL_SUBMISSION_BACKOFF_SECONDS = 0.0

LOGGING["root"]["level"] = "WARNING"  # noqa: F405
