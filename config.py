"""Configuration module for Flask application."""
import os
import tempfile
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

    # CSRF: API clients send the token in the X-CSRFToken header
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'roomshop')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'roomshop')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'roomshop')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Redis pub/sub for real-time stock and notification events
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    BROADCAST_ENABLED = os.getenv('BROADCAST_ENABLED', 'true').lower() == 'true'
    BROADCAST_CHANNEL_PREFIX = os.getenv('BROADCAST_CHANNEL_PREFIX', 'roomshop')

    # Room quota
    ROOM_ADDITIONAL_COST = int(os.getenv('ROOM_ADDITIONAL_COST', '50'))

    # Coin economy
    COIN_REGISTRATION_REWARD = int(os.getenv('COIN_REGISTRATION_REWARD', '15'))
    COIN_DAILY_LOGIN_REWARD = int(os.getenv('COIN_DAILY_LOGIN_REWARD', '5'))
    COIN_ACTIVITY_REWARD = int(os.getenv('COIN_ACTIVITY_REWARD', '10'))
    COIN_ACTIVITY_MINUTES_REQUIRED = int(os.getenv('COIN_ACTIVITY_MINUTES_REQUIRED', '30'))

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestingConfig(Config):
    """Configuration used by the pytest suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    BROADCAST_ENABLED = False
    SENTRY_DSN = None
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'TEST_DATABASE_URL',
        'sqlite:///' + os.path.join(tempfile.gettempdir(), 'roomshop_test.db')
    )
