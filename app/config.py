"""
Application Configuration
Load settings from environment variables
"""
import hashlib
import hmac
import os
from dotenv import load_dotenv

load_dotenv()

# Database Configuration
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", 3306))
DB_USER = os.getenv("DB_USER", "root")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")
DB_NAME = os.getenv("DB_NAME", "gym_booking")


def derive_key(secret: str, label: str) -> str:
    """Per-purpose key so one secret never signs two kinds of token."""
    return hmac.new(secret.encode("utf-8"), label.encode("utf-8"), hashlib.sha256).hexdigest()


# Security Configuration
SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", 24))

# SMTP Configuration
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "noreply@gymbooking.app")
SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", "Gym Booking")
NOTIFY_EMAILS = os.getenv("NOTIFY_EMAILS", "false").lower() == "true"

# Application Settings
APP_NAME = os.getenv("APP_NAME", "Gym Booking API")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:8181").split(",")

# Booking Settings
CANCELLATION_WINDOW_HOURS = int(os.getenv("CANCELLATION_WINDOW_HOURS", 24))
NO_SHOW_GRACE_MINUTES = int(os.getenv("NO_SHOW_GRACE_MINUTES", 30))
BOOKING_RATE_LIMIT = int(os.getenv("BOOKING_RATE_LIMIT", 5))
BOOKING_RATE_WINDOW_SECONDS = int(os.getenv("BOOKING_RATE_WINDOW_SECONDS", 60))

# QR Token Settings
QR_TOKEN_MAX_AGE_MS = int(os.getenv("QR_TOKEN_MAX_AGE_MS", 5 * 60 * 1000))
QR_SIGNING_SECRET = os.getenv("QR_SIGNING_SECRET") or derive_key(SECRET_KEY, "qr")
QR_SIGNING_REQUIRED = os.getenv("QR_SIGNING_REQUIRED", "false").lower() == "true"

# Reward Settings
REWARD_HOURS_TARGET = float(os.getenv("REWARD_HOURS_TARGET", 15))
REWARD_CLASSES_TARGET = int(os.getenv("REWARD_CLASSES_TARGET", 15))

# Server Settings
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", 8002))
LOG_DIR = os.getenv("LOG_DIR", "logs")
