import os
from typing import Final

basedir = os.path.abspath(os.path.dirname(__file__))

class Config:
    SECRET_KEY: Final[str] = os.getenv("SECRET_KEY", "change-me-in-production")
    try:
        SQLALCHEMY_DATABASE_URI: Final[str] = os.environ["DATABASE_URL"]
    except KeyError:
        raise RuntimeError("DATABASE_URL environment variable is required (no sqlite fallback)")
    SQLALCHEMY_TRACK_MODIFICATIONS: Final[bool] = False
    SESSION_COOKIE_HTTPONLY: Final[bool] = True
    SESSION_COOKIE_SECURE: Final[bool] = os.getenv("FLASK_ENV") == "production"
    SESSION_COOKIE_SAMESITE: Final[str] = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    REMEMBER_COOKIE_HTTPONLY: Final[bool] = True
    REMEMBER_COOKIE_SECURE: Final[bool] = os.getenv("FLASK_ENV") == "production"
    # Public URL of the web client; invitation links point at <APP_BASE_URL>/accept-invitation
    APP_BASE_URL: Final[str] = os.getenv("APP_BASE_URL", "http://localhost:5173")
    # Mail settings (invitation emails)
    MAIL_SERVER: Final[str] = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT: Final[int] = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS: Final[bool] = bool(os.getenv("MAIL_USE_TLS", "True") == "True")
    MAIL_USERNAME: Final[str] = os.getenv("MAIL_USERNAME", "")
    MAIL_PASSWORD: Final[str] = os.getenv("MAIL_PASSWORD", "")
    MAIL_DEFAULT_SENDER: Final[str] = os.getenv("MAIL_DEFAULT_SENDER", "Directory <noreply@directory.local>")
    # Which email provider to use. Set to 'resend' to use Resend API (preferred), or 'smtp' to use SMTP.
    EMAIL_PROVIDER: Final[str] = os.getenv("EMAIL_PROVIDER", "smtp")
    RESEND_API_KEY: Final[str] = os.getenv("RESEND_API_KEY", "")
    # Invitation lifetimes, one per entry point
    INVITATION_TTL_HOURS: Final[int] = int(os.getenv("INVITATION_TTL_HOURS", "48"))
    RESEND_INVITATION_TTL_HOURS: Final[int] = int(os.getenv("RESEND_INVITATION_TTL_HOURS", "48"))
    BULK_INVITATION_TTL_DAYS: Final[int] = int(os.getenv("BULK_INVITATION_TTL_DAYS", "7"))
    # Single issuances per inviter per rolling minute. 0 disables the check.
    INVITATION_RATE_LIMIT_PER_MINUTE: Final[int] = int(os.getenv("INVITATION_RATE_LIMIT_PER_MINUTE", "5"))
    # Max row errors reported back from a bulk issuance
    BULK_ERROR_LIMIT: Final[int] = int(os.getenv("BULK_ERROR_LIMIT", "10"))
    PASSWORD_MIN_LENGTH: Final[int] = int(os.getenv("PASSWORD_MIN_LENGTH", "8"))
    # Flask-WTF CSRF settings
    # Time limit for CSRF tokens (seconds). Set via env var `WTF_CSRF_TIME_LIMIT`.
    WTF_CSRF_TIME_LIMIT: Final[int] = int(os.getenv("WTF_CSRF_TIME_LIMIT", "86400"))
    # Optional separate secret for CSRF signing. If not provided, SECRET_KEY is used.
    WTF_CSRF_SECRET_KEY: Final[str] = os.getenv("WTF_CSRF_SECRET_KEY", SECRET_KEY)
