import os
from dotenv import load_dotenv
from pathlib import Path

# Project root (the directory holding the campaignwala package)
BASE_DIR = Path(__file__).resolve().parent.parent

dotenv_path = os.path.join(BASE_DIR, ".env")
load_dotenv(dotenv_path=dotenv_path)


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


APP_ENV = os.getenv("APP_ENV", "development")

# JWT
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))

# MongoDB
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "campaignwala")

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# OTP
OTP_LENGTH = int(os.getenv("OTP_LENGTH", "4"))
OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", "10"))
OTP_MAX_SENDS = int(os.getenv("OTP_MAX_SENDS", "5"))
OTP_WINDOW_MINUTES = int(os.getenv("OTP_WINDOW_MINUTES", "60"))
STATIC_OTP = os.getenv("STATIC_OTP")
ALLOW_STATIC_OTP = _env_bool("ALLOW_STATIC_OTP")

# SMS gateway
SMS_API_URL = os.getenv("SMS_API_URL")
SMS_API_KEY = os.getenv("SMS_API_KEY")
SMS_SENDER_ID = os.getenv("SMS_SENDER_ID", "CAMPWL")

# SendGrid
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDER_EMAIL = os.getenv("SENDER_EMAIL")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def is_production():
    return APP_ENV == "production"


def static_otp_enabled():
    """The well-known OTP is only reachable when explicitly switched on outside production."""
    return ALLOW_STATIC_OTP and bool(STATIC_OTP) and not is_production()
