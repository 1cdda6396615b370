"""
Configuration management for the application.
Loads settings from environment variables using Pydantic Settings.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./isp_billing.sqlite"

    @property
    def database_url_async(self) -> str:
        """
        Transform DATABASE_URL to use the appropriate async driver.
        - PostgreSQL: postgresql+asyncpg://...
        - SQLite: sqlite+aiosqlite:///...
        """
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("sqlite://"):
            return self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return self.DATABASE_URL

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    PORTAL_TOKEN_EXPIRE_MINUTES: int = 120
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    # Application
    APP_NAME: str = "ISP Billing API"
    ENVIRONMENT: str = "development"  # development, production, test
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    SEED_DEMO_DATA: bool = False

    # Email Configuration (Postmark)
    POSTMARK_ENABLED: bool = True
    POSTMARK_SERVER_TOKEN: str = ""
    POSTMARK_FROM_EMAIL: str = "billing@example.com"
    POSTMARK_FROM_NAME: str = "Billing Team"
    EMAIL_TEST_MODE: bool = False

    # SMS Configuration
    SMS_PROVIDER: str = "mock"  # 'mock' or 'http'
    SMS_API_URL: str = ""
    SMS_API_KEY: str = ""
    SMS_SENDER_ID: str = "ISP-BILL"

    # Frontend URL (for email links)
    FRONTEND_URL: str = "http://localhost:5173"

    # Generated documents
    PDF_STORAGE_DIR: str = "./pdfs"
    UPLOAD_DIR: str = "./uploads"

    # Billing
    DEFAULT_DUE_DAYS: int = 15
    BILLING_SCHEDULER_ENABLED: bool = False
    BILLING_SCHEDULER_HOUR: int = 2  # Hour of day (UTC) for the daily billing run

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Singleton instance - import this in other modules
settings = Settings()
