"""Application settings and environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


class Settings:
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: int = int(os.getenv("DB_PORT", "3306"))
    DB_DATABASE: str = os.getenv("DB_NAME", "inventory_db")
    DB_USER: str = os.getenv("DB_USER", "user")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "password")

    DB_POOL_NAME: str = os.getenv("DB_POOL_NAME", "inventory_pool")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "5"))
    # Seconds a transaction waits for a row lock before it is rolled back
    DB_LOCK_WAIT_TIMEOUT: int = int(os.getenv("DB_LOCK_WAIT_TIMEOUT", "10"))

    # How many times a sale is re-run from the stock check after a lock conflict
    SALE_MAX_RETRIES: int = int(os.getenv("SALE_MAX_RETRIES", "3"))

    TIMEZONE: str = os.getenv("TIMEZONE", "America/Bogota")

    # Daily expiry report
    EXPIRY_REPORT_DAYS: int = int(os.getenv("EXPIRY_REPORT_DAYS", "30"))
    EXPIRY_REPORT_TIME: str = os.getenv("EXPIRY_REPORT_TIME", "07:00")

    # Logging settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")  # INFO, DEBUG, WARNING, ERROR, CRITICAL


settings = Settings()
