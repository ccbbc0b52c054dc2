
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[1] / ".env")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///local.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "168"))
    CANCELLATION_CUTOFF_HOURS = int(os.getenv("CANCELLATION_CUTOFF_HOURS", "2"))
    DEFAULT_DURATION_MINUTES = int(os.getenv("DEFAULT_DURATION_MINUTES", "120"))
    MAX_DURATION_MINUTES = int(os.getenv("MAX_DURATION_MINUTES", "360"))
    SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "30"))
    MAX_PARTY_SIZE = int(os.getenv("MAX_PARTY_SIZE", "20"))

    RATE_WINDOW = int(os.getenv("RATE_WINDOW", "60"))
    RATE_MAX = int(os.getenv("RATE_MAX", "12"))
    # number of reverse proxies in front of the app whose X-Forwarded-For is trusted
    PROXY_COUNT = int(os.getenv("PROXY_COUNT", "0"))

    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASS = os.getenv("SMTP_PASS")
    EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@barsan.com")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SMTP_HOST = None
    RATE_MAX = 1000
