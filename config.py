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

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'proposals')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'proposals')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'proposals')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Draft reconciliation
    DRAFT_WINDOW_MINUTES = int(os.getenv('DRAFT_WINDOW_MINUTES', '120'))
    DRAFT_ABANDON_DAYS = int(os.getenv('DRAFT_ABANDON_DAYS', '7'))

    # Offers and bundles
    BUNDLE_EXPIRATION_DAYS = int(os.getenv('BUNDLE_EXPIRATION_DAYS', '7'))
    MAX_BUNDLES_PER_PROPOSAL = int(os.getenv('MAX_BUNDLES_PER_PROPOSAL', '3'))

    # Proposal numbering (PRO-10001, PRO-10002, ...)
    PROPOSAL_NUMBER_PREFIX = os.getenv('PROPOSAL_NUMBER_PREFIX', 'PRO')
    PROPOSAL_NUMBER_START = int(os.getenv('PROPOSAL_NUMBER_START', '10000'))

    # Financing defaults for the pricing snapshot
    DEFAULT_FINANCING_TERM = int(os.getenv('DEFAULT_FINANCING_TERM', '60'))
    DEFAULT_INTEREST_RATE = os.getenv('DEFAULT_INTEREST_RATE', '5.99')

    # Redis Cache Configuration
    # Only the offer catalog listings are cached; the write path always reads live rows
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_OFFERS_TTL = int(os.getenv('CACHE_OFFERS_TTL', '120'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'proposals')


class TestConfig(Config):
    """Configuration used by the pytest suite (in-memory SQLite, no Redis)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
