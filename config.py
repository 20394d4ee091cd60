import os

from dotenv import load_dotenv

load_dotenv()

# Environment & Security
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))
ADMIN_EMAILS = {e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()}

# Pricing defaults, overridden by the settings record once an admin saves it
DEFAULT_TAX_RATE = float(os.getenv("DEFAULT_TAX_RATE", 18))
DEFAULT_SHIPPING_FEE = float(os.getenv("DEFAULT_SHIPPING_FEE", 100))
DEFAULT_FREE_SHIPPING_THRESHOLD = float(os.getenv("DEFAULT_FREE_SHIPPING_THRESHOLD", 500))

# Payments
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
