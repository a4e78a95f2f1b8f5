"""Configuration settings for the Tours API."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

PASSWORD_PLACEHOLDER = "<PASSWORD>"


class Settings(BaseSettings):
    """Application settings with Pydantic validation."""

    # Database settings
    database: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string, may contain a <PASSWORD> placeholder"
    )

    database_password: str = Field(
        default="",
        description="Secret substituted for the <PASSWORD> placeholder"
    )

    database_name: str = Field(
        default="natours",
        description="Name of the MongoDB database holding the tours collection"
    )

    tours_collection: str = Field(
        default="tours",
        description="Name of the tours collection"
    )

    # Environment settings
    environment: str = Field(
        default="development",
        description="Application environment"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Application log level"
    )

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # Server settings
    host: str = Field(
        default="0.0.0.0",
        description="Server host"
    )

    port: int = Field(
        default=3000,
        description="Server port"
    )

    # Tracing
    otlp_endpoint: str | None = Field(
        default=None,
        description="OTLP collector endpoint; tracing export is disabled when unset"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        valid_environments = ["development", "staging", "production"]
        if v.lower() not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level value."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def mongo_uri(self) -> str:
        """Connection string with the password placeholder substituted."""
        return self.database.replace(PASSWORD_PLACEHOLDER, self.database_password)

    @property
    def debug(self) -> bool:
        """Return True if in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Return True if in production mode."""
        return self.environment == "production"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Global settings instance
settings = Settings()
