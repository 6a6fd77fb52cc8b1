"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Preferred URL scheme (for url_for with _external=True)
    PREFERRED_URL_SCHEME = os.getenv('PREFERRED_URL_SCHEME', 'http')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'printshop')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'printshop')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'printshop')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Company information (emails, invoice PDF)
    COMPANY_NAME = os.getenv('COMPANY_NAME', 'Thuis3D.be')
    COMPANY_EMAIL = os.getenv('COMPANY_EMAIL', 'info@thuis3d.be')
    COMPANY_ADDRESS = os.getenv('COMPANY_ADDRESS', '')
    SITE_URL = os.getenv('SITE_URL', 'http://localhost:5000')

    # Quote approval pipeline
    DEFAULT_LANGUAGE = os.getenv('DEFAULT_LANGUAGE', 'es')
    DEFAULT_TAX_RATE = float(os.getenv('DEFAULT_TAX_RATE', '0'))  # percent, used when no tax_settings row is enabled
    INVOICE_DUE_DAYS = int(os.getenv('INVOICE_DUE_DAYS', '30'))
    INVOICE_NUMBER_PREFIX = os.getenv('INVOICE_NUMBER_PREFIX', 'FAC-')

    # Gift cards
    GIFT_CARD_MAX_ATTEMPTS = int(os.getenv('GIFT_CARD_MAX_ATTEMPTS', '3'))

    # Email configuration
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'noreply@thuis3d.be'
    )
    MAIL_ENABLED = os.getenv('MAIL_ENABLED', '1' if MAIL_USERNAME else '0') == '1'
    MAIL_DEBUG = False
    MAIL_SUPPRESS_SEND = False


class TestingConfig(Config):
    """Configuration for the pytest suite (SQLite, recorded mail)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///printshop-test.db')
    SQLALCHEMY_ECHO = False

    DEFAULT_LANGUAGE = 'es'
    DEFAULT_TAX_RATE = 0.0

    MAIL_ENABLED = True
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = 'noreply@thuis3d.be'
