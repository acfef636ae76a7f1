"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    AI_PROVIDER: str = "anthropic"  # Options: anthropic, openai, azure
    AI_API_KEY: str | None = None
    AI_MODEL: str | None = None
    AI_BASE_URL: str | None = None
    AI_API_VERSION: str = "2024-10-21"
    AI_MAX_TOKENS: int = 4096
    AI_TIMEOUT: float = 120.0

    # Agent loop
    AGENT_MAX_ITERATIONS: int = 25
    CONTEXT_BUDGET: int = 100_000

    # Remote ABAP system (unset base URL => offline fixture gateway)
    ADT_BASE_URL: str | None = None
    ADT_TIMEOUT: float = 30.0
    ADT_TOKEN_URL: str | None = None
    ADT_CLIENT_ID: str | None = None
    ADT_CLIENT_SECRET: str | None = None
    ADT_SCOPE: str | None = None
    ADT_TENANT: str | None = None
    ADT_TENANT_HEADER: str = "X-Tenant-Id"

    # Safety gate
    SAFETY_GATE_ENABLED: bool = True
    SAFETY_STRICTNESS: str = "moderate"  # Options: strict, moderate, permissive

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
