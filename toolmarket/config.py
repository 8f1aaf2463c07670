"""
Configuration settings for the tool marketplace.

This module provides a centralized configuration loaded from the environment
or a .env file.
"""

import os
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """
    Application settings.

    Load configuration from environment variables or .env file.
    """
    # OpenAI embedding configuration
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    embedding_max_attempts: int = int(os.getenv("EMBEDDING_MAX_ATTEMPTS", "3"))

    # Development mode
    debug: bool = os.getenv("DEBUG", "False").lower() == "true"

    # Storage settings
    data_dir: str = os.getenv("DATA_DIR", "data")

    # Execution defaults (used when a tool omits them)
    default_timeout_ms: int = int(os.getenv("DEFAULT_TIMEOUT_MS", "30000"))
    default_max_retries: int = int(os.getenv("DEFAULT_MAX_RETRIES", "3"))
    retry_base_delay_seconds: float = float(os.getenv("RETRY_BASE_DELAY_SECONDS", "1.0"))
    retry_backoff: float = float(os.getenv("RETRY_BACKOFF", "2.0"))

    # Discovery settings
    default_search_limit: int = int(os.getenv("DEFAULT_SEARCH_LIMIT", "10"))
    default_popular_limit: int = int(os.getenv("DEFAULT_POPULAR_LIMIT", "5"))

    # API settings
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Logging settings
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: Optional[str] = os.getenv("LOG_FILE", None)
    enable_file_logging: bool = os.getenv("ENABLE_FILE_LOGGING", "False").lower() == "true"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def validate_api_keys(self) -> List[str]:
        """
        Validate that required API keys are present.

        Returns:
            List of missing API keys
        """
        missing_keys = []

        if not self.openai_api_key:
            missing_keys.append("OPENAI_API_KEY")

        return missing_keys

    def validate_settings(self) -> Dict[str, str]:
        """
        Validate all settings and return any warnings or errors.

        Returns:
            Dictionary of validation messages
        """
        validation_messages = {}

        missing_keys = self.validate_api_keys()
        if missing_keys:
            validation_messages["missing_api_keys"] = f"Missing required API keys: {', '.join(missing_keys)}"

        if self.default_timeout_ms <= 0:
            validation_messages["default_timeout_ms"] = "Default timeout must be positive"

        if self.default_max_retries < 1:
            validation_messages["default_max_retries"] = "At least one attempt is always made; retries below 1 are raised to 1"

        if self.retry_backoff < 1:
            validation_messages["retry_backoff"] = "Backoff below 1 shortens delays between attempts"

        if not os.path.isdir(self.data_dir):
            try:
                os.makedirs(self.data_dir, exist_ok=True)
            except OSError as e:
                validation_messages["data_dir"] = f"Failed to create data directory: {e}"

        return validation_messages

    def configure_logging(self) -> None:
        """Configure logging based on settings."""
        import logging

        log_level = getattr(logging, self.log_level.upper(), logging.INFO)

        logging_config = {
            'level': log_level,
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        }

        if self.enable_file_logging and self.log_file:
            logging_config['filename'] = self.log_file
            logging_config['filemode'] = 'a'

        logging.basicConfig(**logging_config)

        # Quieten chatty client libraries
        logging.getLogger("openai").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# Create a global settings instance
settings = Settings()

# Automatically configure logging
settings.configure_logging()


def print_settings(include_secrets: bool = False) -> str:
    """
    Generate a printable string of current settings.

    Args:
        include_secrets: Whether to include secret values like API keys

    Returns:
        String representation of settings
    """
    secret_fields = {"openai_api_key"}

    lines = ["Current Settings:"]

    settings_dict = settings.model_dump()

    for key, value in sorted(settings_dict.items()):
        if key in secret_fields and not include_secrets:
            if value:
                value = f"{'*' * 8}{value[-4:]}" if isinstance(value, str) and len(value) > 4 else "********"
            else:
                value = "Not set"

        lines.append(f"  {key}: {value}")

    return "\n".join(lines)


def validate_environment() -> None:
    """
    Validate the environment and log warnings for anything missing.
    """
    import logging
    logger = logging.getLogger(__name__)

    validation_messages = settings.validate_settings()

    if validation_messages:
        logger.warning("Environment validation found issues:")
        for category, message in validation_messages.items():
            logger.warning(f"  {category}: {message}")
    else:
        logger.info("Environment validation: All checks passed")
