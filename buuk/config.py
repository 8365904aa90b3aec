import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./buuk.db")

# Frontend base URL for checkout redirects and email links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Stripe Configuration
# Platform-level key, used when a business has not configured its own secret key
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com")
# Maximum accepted age of a Stripe-Signature timestamp
STRIPE_WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))

# PayPal Configuration (credentials are per business, see site_settings)
PAYPAL_API_BASE = os.getenv("PAYPAL_API_BASE", "https://api-m.paypal.com")

# Payments
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "eur")
DEFAULT_PLATFORM_FEE_PERCENTAGE = float(os.getenv("DEFAULT_PLATFORM_FEE_PERCENTAGE", "2.5"))
PAYMENT_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_PROVIDER_TIMEOUT_SECONDS", "15"))

# Fernet key for tenant payment secrets stored in site_settings
# (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
PAYMENT_SECRETS_ENCRYPTION_KEY = os.getenv("PAYMENT_SECRETS_ENCRYPTION_KEY")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Buuk <bookings@buuk.app>")

# Rate limiting - set RATE_LIMIT_ENABLED=false only for development/testing
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
REDIS_URL = os.getenv("REDIS_URL")
