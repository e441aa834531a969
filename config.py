"""
Configuration for Single Database Multi-Tenant School Fee Service
"""

import os
from urllib.parse import quote_plus
from sqlalchemy.pool import StaticPool
import dotenv
dotenv.load_dotenv()  # Load environment variables from .env file


def _env_int(name, default):
    return int(os.environ.get(name, default))


def _env_flag(name):
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


class Config:
    """Base configuration for single database multi-tenancy"""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'supersecretkey'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Database settings (DATABASE_URL wins over the individual DB_* values)
    DATABASE_URL = os.environ.get('DATABASE_URL')
    MYSQL_HOST = os.environ.get('DB_HOST', 'localhost')
    MYSQL_PORT = _env_int('DB_PORT', 3306)
    MYSQL_USERNAME = os.environ.get('DB_USER', 'school_fees')
    MYSQL_PASSWORD = os.environ.get('DB_PASS', '')
    MYSQL_DATABASE = os.environ.get('DB_NAME', 'school_fees')
    MYSQL_CHARSET = 'utf8mb4'

    # SQLAlchemy settings
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_recycle': 280,
        'pool_pre_ping': True,
    }

    # Fee engine defaults
    FEE_GRACE_PERIOD_DAYS = _env_int('FEE_GRACE_PERIOD_DAYS', 0)
    FEE_INSTALLMENT_INTERVAL_DAYS = _env_int('FEE_INSTALLMENT_INTERVAL_DAYS', 30)
    FEE_ALLOCATION_STRATEGY = os.environ.get('FEE_ALLOCATION_STRATEGY', 'oldest_first')
    FEE_SCOPE_PAYMENTS_TO_TERM = _env_flag('FEE_SCOPE_PAYMENTS_TO_TERM')
    FEE_FIRST_REMINDER_DAYS = _env_int('FEE_FIRST_REMINDER_DAYS', 7)
    FEE_SECOND_REMINDER_DAYS = _env_int('FEE_SECOND_REMINDER_DAYS', 15)
    FEE_FINAL_REMINDER_DAYS = _env_int('FEE_FINAL_REMINDER_DAYS', 30)

    # WhatsApp delivery of fee reminders
    WHATSAPP_PROVIDER = os.environ.get('WHATSAPP_PROVIDER')  # 'Meta Cloud API' or 'Twilio'
    WHATSAPP_ACCESS_TOKEN = os.environ.get('WHATSAPP_ACCESS_TOKEN')
    WHATSAPP_PHONE_NUMBER_ID = os.environ.get('WHATSAPP_PHONE_NUMBER_ID')
    WHATSAPP_API_KEY = os.environ.get('WHATSAPP_API_KEY')  # Twilio account SID
    WHATSAPP_API_SECRET = os.environ.get('WHATSAPP_API_SECRET')  # Twilio auth token
    WHATSAPP_TEMPLATE_LANGUAGE = os.environ.get('WHATSAPP_TEMPLATE_LANGUAGE', 'en')

    # Background reminder scheduler (use `flask send-fee-reminders` from cron in production)
    ENABLE_FEE_REMINDER_SCHEDULER = _env_flag('ENABLE_FEE_REMINDER_SCHEDULER')
    FEE_REMINDER_INTERVAL = _env_int('FEE_REMINDER_INTERVAL', 3600)

    def _encoded_password(self) -> str:
        """Percent-encode special characters for URL usage."""
        return quote_plus(self.MYSQL_PASSWORD) if self.MYSQL_PASSWORD else ''

    def get_database_uri(self) -> str:
        """Get single database URI for all tenants."""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = self.MYSQL_USERNAME
        pwd = self._encoded_password()
        host = self.MYSQL_HOST
        port = self.MYSQL_PORT
        database = self.MYSQL_DATABASE

        if pwd:
            return f"mysql+pymysql://{user}:{pwd}@{host}:{port}/{database}?charset={self.MYSQL_CHARSET}"
        return f"mysql+pymysql://{user}@{host}:{port}/{database}?charset={self.MYSQL_CHARSET}"

    def reminder_thresholds(self) -> dict:
        """Days overdue at which each reminder tier starts"""
        return {
            'first_reminder_days': self.FEE_FIRST_REMINDER_DAYS,
            'second_reminder_days': self.FEE_SECOND_REMINDER_DAYS,
            'final_reminder_days': self.FEE_FINAL_REMINDER_DAYS,
        }


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    LOGIN_DISABLED = True
    ENABLE_FEE_REMINDER_SCHEDULER = False
    # In-memory SQLite shared by every session
    SQLALCHEMY_ENGINE_OPTIONS = {
        'poolclass': StaticPool,
        'connect_args': {'check_same_thread': False},
    }

    def get_database_uri(self) -> str:
        return 'sqlite:///:memory:'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
