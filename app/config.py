from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Discord settings
    DISCORD_TOKEN: str = ""
    DISCORD_APPLICATION_ID: str = ""
    DISCORD_PUBLIC_KEY: str = ""
    DISCORD_GUILD_ID: str = ""
    VIP_ROLE_ID: str = ""
    LOG_CHANNEL_ID: str | None = None

    # Link handed out by the /form command
    FORM_URL: str = ""

    # Google Sheets roster settings
    SHEET_ID: str = ""
    SHEET_TAB_NAME: str = "Responses"
    GOOGLE_SERVICE_ACCOUNT_FILE: str = "credentials.json"

    # Shared secret for the gateway relay posting member joins
    INTERNAL_API_TOKEN: str | None = None

    # Postgres settings
    DATABASE_URL: str = "postgresql://localhost:5432/vip_sync"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 5
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # =================================================================
    # SYNC SETTINGS
    # =================================================================
    SYNC_INTERVAL_MINUTES: int = 5
    EXPIRY_SWEEP_INTERVAL_MINUTES: int = 60
    SYNC_TIMEOUT_SECONDS: float = 240.0
    SYNC_MAX_CONCURRENCY: int = 4
    RUN_SCHEDULER_IN_APP: bool = True

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def sheet_range(self) -> str:
        """A1 range covering the roster tab, e.g. Responses!A:Z."""
        return f"{self.SHEET_TAB_NAME}!A:Z"

    def missing_discord_settings(self) -> list[str]:
        """Names of Discord settings the bot cannot run without."""
        required = {
            "DISCORD_TOKEN": self.DISCORD_TOKEN,
            "DISCORD_GUILD_ID": self.DISCORD_GUILD_ID,
            "VIP_ROLE_ID": self.VIP_ROLE_ID,
        }
        return [name for name, value in required.items() if not value]

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # A single bot process never needs more than a handful
            config.update({"max_size": min(self.DB_POOL_MAX_SIZE, 3), "timeout": 15.0})

        return config


settings = Settings()
