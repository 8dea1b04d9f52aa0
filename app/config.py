import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./petcare.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Frontend origin allowed by CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# M-Pesa (Daraja) Configuration
MPESA_CONSUMER_KEY = os.getenv("MPESA_CONSUMER_KEY")
MPESA_CONSUMER_SECRET = os.getenv("MPESA_CONSUMER_SECRET")
MPESA_BUSINESS_SHORT_CODE = os.getenv("MPESA_BUSINESS_SHORT_CODE", "174379")
MPESA_PASSKEY = os.getenv("MPESA_PASSKEY")
MPESA_CALLBACK_URL = os.getenv("MPESA_CALLBACK_URL", "http://localhost:8000/payments/mpesa/callback")
# "sandbox" or "production" - default to sandbox for safety
MPESA_ENVIRONMENT = os.getenv("MPESA_ENVIRONMENT", "sandbox")
MPESA_TIMEOUT_SECONDS = float(os.getenv("MPESA_TIMEOUT_SECONDS", "30"))
MPESA_COUNTRY_CODE = os.getenv("MPESA_COUNTRY_CODE", "254")

PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "KES")
# Pending payments older than this are re-queried against the gateway
PAYMENT_RECONCILE_AFTER_MINUTES = int(os.getenv("PAYMENT_RECONCILE_AFTER_MINUTES", "5"))
# Pending payments older than this are marked failed
PAYMENT_EXPIRE_AFTER_MINUTES = int(os.getenv("PAYMENT_EXPIRE_AFTER_MINUTES", "60"))

# Video consultations
VIDEO_SESSION_BASE_URL = os.getenv("VIDEO_SESSION_BASE_URL", "https://video.purrfectpetcare.com")
