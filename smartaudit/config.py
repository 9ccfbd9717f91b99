# smartaudit/config.py
import os


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class BaseConfig:
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://redis:6379/0")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://redis:6379/0")
    CELERY_TASK_ALWAYS_EAGER = False

    # --- DB ---
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", "postgresql+psycopg2://app_user:app_pass@db:5432/app_db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False

    # --- Report producer (external analysis service) ---
    REPORT_PRODUCER_URL = os.environ.get("REPORT_PRODUCER_URL", "")
    REPORT_PRODUCER_TOKEN = os.environ.get("REPORT_PRODUCER_TOKEN")
    REPORT_PRODUCER_TIMEOUT = _int_env("REPORT_PRODUCER_TIMEOUT", 300)

    # --- Audits ---
    MAX_CONTRACT_BYTES = _int_env("MAX_CONTRACT_BYTES", 100_000)
    STUCK_SESSION_MINUTES = _int_env("STUCK_SESSION_MINUTES", 10)
    HISTORY_LIMIT = 50

    # --- Etherscan (submission by address) ---
    ETHERSCAN_API_KEY = os.environ.get("ETHERSCAN_API_KEY")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"


class ProductionConfig(BaseConfig):
    DEBUG = False
    ENV = "production"


class TestingConfig(BaseConfig):
    TESTING = True
    ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = "cache+memory://"
    CELERY_TASK_ALWAYS_EAGER = True
    REPORT_PRODUCER_URL = "http://producer.test"
