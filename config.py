"""Configuration module for the POS Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 43200  # 12 hours, one register shift
    # Only send the session cookie when the session changed
    SESSION_REFRESH_EACH_REQUEST = False

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'pos')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'pos')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'pos')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Backend API
    # Bearer token required by /api/* (empty disables the check, dev only)
    API_TOKEN = os.getenv('API_TOKEN', '')
    # When set, the terminal talks to a remote backend over HTTP instead of in-process
    BACKEND_URL = os.getenv('BACKEND_URL', '')
    BACKEND_TIMEOUT = float(os.getenv('BACKEND_TIMEOUT', '10'))

    # Receipts
    RECEIPT_LAYOUT = os.getenv('RECEIPT_LAYOUT', 'thermal')  # thermal | page
    THERMAL_WIDTH = int(os.getenv('THERMAL_WIDTH', '32'))
    PAGE_WIDTH = int(os.getenv('PAGE_WIDTH', '72'))
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '₱')

    # History
    RECENT_TRANSACTIONS_LIMIT = int(os.getenv('RECENT_TRANSACTIONS_LIMIT', '5'))
    TRANSACTION_LIST_LIMIT = int(os.getenv('TRANSACTION_LIST_LIMIT', '100'))

    # Stock
    LOW_STOCK_THRESHOLD = int(os.getenv('LOW_STOCK_THRESHOLD', '5'))

    # Business Information (fallback when app_settings is unavailable)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'My Store')
    BUSINESS_ADDRESS = os.getenv('BUSINESS_ADDRESS', '')
    BUSINESS_PHONE = os.getenv('BUSINESS_PHONE', '')
    BUSINESS_EMAIL = os.getenv('BUSINESS_EMAIL', '')
    RECEIPT_FOOTER = os.getenv('RECEIPT_FOOTER', 'Thank you for your purchase!')


class TestingConfig(Config):
    """Configuration used by the test suite (SQLite, no CSRF)."""

    TESTING = True
    DEBUG = False
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///pos-test.db')
    SQLALCHEMY_ECHO = False
    API_TOKEN = 'test-token'
    BACKEND_URL = ''
    BUSINESS_NAME = 'Test Store'
