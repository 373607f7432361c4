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

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Preferred URL scheme (for url_for with _external=True, used by share links)
    PREFERRED_URL_SCHEME = os.getenv('PREFERRED_URL_SCHEME', 'http')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'quotes')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'quotes')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'quotes')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    AUTO_CREATE_TABLES = os.getenv('AUTO_CREATE_TABLES', 'false').lower() == 'true'

    # Company branding defaults (overridden per user in Settings > Company)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', '您的公司名稱')
    BUSINESS_ADDRESS = os.getenv('BUSINESS_ADDRESS', '')
    BUSINESS_PHONE = os.getenv('BUSINESS_PHONE', '')
    BUSINESS_EMAIL = os.getenv('BUSINESS_EMAIL', '')
    BUSINESS_TAX_ID = os.getenv('BUSINESS_TAX_ID', '')

    # Quotes
    DEFAULT_TAX_RATE = os.getenv('DEFAULT_TAX_RATE', '5')
    QUOTE_VALID_DAYS = int(os.getenv('QUOTE_VALID_DAYS', '30'))

    # Share links: None = never expire
    SHARE_EXPIRES_DAYS = int(os.getenv('SHARE_EXPIRES_DAYS')) if os.getenv('SHARE_EXPIRES_DAYS') else None

    # PDF export
    # 'vector' renders with reportlab flowables, 'raster' captures the
    # document surface as a bitmap and paginates it.
    QUOTE_PDF_MODE = os.getenv('QUOTE_PDF_MODE', 'vector')
    PDF_PAGE_HEIGHT_MM = float(os.getenv('PDF_PAGE_HEIGHT_MM', '297'))
    PDF_RASTER_SCALE = float(os.getenv('PDF_RASTER_SCALE', '2'))
    PDF_FONT_PATH = os.getenv('PDF_FONT_PATH')  # TTF/TTC with CJK glyphs; unset = first installed CJK font

    # Upload constraints (logo, stamp, bankbook image)
    MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 2 * 1024 * 1024))  # 2MB
    MAX_CONTENT_LENGTH = MAX_UPLOAD_SIZE * 3
    ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}
    ALLOWED_MIME_TYPES = {
        'image/jpeg',
        'image/png',
        'image/gif',
        'image/webp'
    }
    IMAGE_MAX_DIMENSION = int(os.getenv('IMAGE_MAX_DIMENSION', '800'))


class TestConfig(Config):
    """Configuration used by the test suite (in-memory SQLite)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    AUTO_CREATE_TABLES = True
    WTF_CSRF_ENABLED = False
    SERVER_NAME = 'localhost'
    BUSINESS_NAME = '測試公司'
