import os

from dotenv import load_dotenv

load_dotenv()

# ----------------------- Database -----------------------
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# ----------------------- HTTP -----------------------
API_PREFIX = os.getenv("API_PREFIX", "/api/v1")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", 15))

# ----------------------- Auth -----------------------
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", 30))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))
MAX_LOGIN_ATTEMPTS = 5
LOCK_MINUTES = 30
RESET_TOKEN_MINUTES = 10

SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-session-secret")
SESSION_COOKIE = "marketplace.session"
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", 24 * 60 * 60))

# ----------------------- Commerce -----------------------
CURRENCY = os.getenv("CURRENCY", "INR")
TAX_RATE = float(os.getenv("TAX_RATE", 0.18))
SHIPPING_RATES = {"standard": 50, "express": 100, "overnight": 200}

# ----------------------- Razorpay -----------------------
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
RAZORPAY_BASE_URL = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1")

# ----------------------- NimbusPost -----------------------
NIMBUS_POST_BASE_URL = os.getenv("NIMBUS_POST_BASE_URL", "https://api.nimbuspost.com/v1")
NIMBUS_POST_USERNAME = os.getenv("NIMBUS_POST_USERNAME", "")
NIMBUS_POST_PASSWORD = os.getenv("NIMBUS_POST_PASSWORD", "")
NIMBUS_POST_API_KEY = os.getenv("NIMBUS_POST_API_KEY", "")
NIMBUS_POST_WAREHOUSE = os.getenv("NIMBUS_POST_WAREHOUSE", "")
NIMBUS_TRACKING_URL = "https://track.nimbuspost.com/{awb}"

# ----------------------- Email -----------------------
RESEND_API_KEY = (os.getenv("RESEND_API_KEY") or "").strip()
EMAIL_FROM = os.getenv("EMAIL_FROM", "Marketplace <no-reply@marketplace.local>")

# ----------------------- Seed -----------------------
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@marketplace.local")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
