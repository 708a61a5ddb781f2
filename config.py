"""Configuration module for the sales order application."""
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
    JSON_SORT_KEYS = False

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # Database - DATABASE_URL > DB_* variables > local SQLite file
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL and os.getenv('DB_HOST'):
        DB_HOST = os.getenv('DB_HOST')
        DB_PORT = os.getenv('DB_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME', 'salesorder')
        DB_USER = os.getenv('DB_USER', 'salesorder')
        DB_PASSWORD = os.getenv('DB_PASSWORD', 'salesorder')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    if not DATABASE_URL:
        DATABASE_URL = 'sqlite:///salesorder.db'

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    DB_CREATE_ALL = os.getenv('DB_CREATE_ALL', 'false').lower() == 'true'

    # Order numbering (PO-YYYYMMDD-NNN)
    ORDER_NUMBER_PREFIX = os.getenv('ORDER_NUMBER_PREFIX', 'PO')
    # Calendar day for the order number sequence is taken in this timezone
    ORDER_TIMEZONE = os.getenv('ORDER_TIMEZONE', 'Asia/Jakarta')

    # Pricing rules
    CUSTOM_PRICE_BAND_ENFORCED = os.getenv('CUSTOM_PRICE_BAND_ENFORCED', 'false').lower() == 'true'

    # Company information (purchase order header)
    COMPANY_NAME = os.getenv('COMPANY_NAME', 'Distributor')
    COMPANY_ADDRESS = os.getenv('COMPANY_ADDRESS', '')
    COMPANY_PHONE = os.getenv('COMPANY_PHONE', '')
    COMPANY_EMAIL = os.getenv('COMPANY_EMAIL', '')


class TestConfig(Config):
    """Configuration used by the test suite (in-memory SQLite)."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    DB_CREATE_ALL = True
    LOG_LEVEL = 'DEBUG'
    ORDER_TIMEZONE = 'Asia/Jakarta'
    CUSTOM_PRICE_BAND_ENFORCED = False
