import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MIGRATIONS_DIR = str(Path(__file__).resolve().parent.parent / "migrations" / "versions")


class Settings(BaseSettings):
    """
    Configuration class for environment variables and runner settings.
    """

    # Service settings
    service_name: str = os.getenv("SERVICE_NAME", "docmigrate")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "True").lower() == "true"

    # Logging settings
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    json_logs: bool = os.getenv("JSON_LOGS", "False").lower() == "true"
    log_file: str | None = os.getenv("LOG_FILE", None)
    log_retention: str = os.getenv("LOG_RETENTION", "7 days")

    # MongoDB settings
    mongodb: str = os.getenv("MONGODB", "mongodb://localhost:27017")
    mongodb_database: str = os.getenv("MONGODB_DATABASE", "travel")
    mongo_server_selection_timeout_ms: int = int(
        os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")
    )

    # Migration settings
    migrations_dir: str = os.getenv("MIGRATIONS_DIR", DEFAULT_MIGRATIONS_DIR)
    migrations_collection: str = os.getenv("MIGRATIONS_COLLECTION", "_migrations")
    migrations_lock_collection: str = os.getenv(
        "MIGRATIONS_LOCK_COLLECTION", "_migration_locks"
    )
    migrations_lock_lease_seconds: float = float(
        os.getenv("MIGRATIONS_LOCK_LEASE_SECONDS", "60")
    )
    migrations_heartbeat_interval: float = float(
        os.getenv("MIGRATIONS_HEARTBEAT_INTERVAL", "15")
    )
    migrations_lock_wait_seconds: float = float(os.getenv("MIGRATIONS_LOCK_WAIT_SECONDS", "0"))
    migrations_lock_poll_interval: float = float(
        os.getenv("MIGRATIONS_LOCK_POLL_INTERVAL", "1.0")
    )
    migrations_timeout_seconds: float = float(os.getenv("MIGRATIONS_TIMEOUT_SECONDS", "0"))
    migrations_enabled: bool = os.getenv("MIGRATIONS_ENABLED", "True").lower() == "true"
    migrations_auto_run: bool = os.getenv("MIGRATIONS_AUTO_RUN", "True").lower() == "true"

    # Environment-specific logging configuration
    @property
    def logging_config(self) -> dict:
        """
        Returns logging configuration based on environment.
        """
        base_config = {
            "app_name": self.service_name,
            "log_level": self.log_level,
            "json_logs": self.json_logs,
            "log_file": self.log_file,
            "log_retention": self.log_retention,
        }

        if self.environment == "development":
            base_config.update({"json_logs": False, "log_level": "DEBUG" if self.debug else "INFO"})

        return base_config

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
