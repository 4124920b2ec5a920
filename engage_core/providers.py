"""
Service Providers - Configuration Access.

Loads configuration from environment variables (and an optional ``.env``
file) into a nested dictionary, exposed through dot-notation lookups.

Each component reads only the keys it needs:
- ``security.*`` for the vault encryption key material
- ``webhook.*`` for inbound webhook shared secrets and policy
- ``database.*`` / ``server.*`` / ``app.*`` for runtime wiring
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Protocol
import os

from dotenv import load_dotenv


PRODUCTION_ENVIRONMENTS = ("production", "prod")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# =============================================================================
# Configuration Provider
# =============================================================================

class IConfigurationProvider(Protocol):
    """Protocol for configuration access."""

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot notation key."""
        ...

    def is_production(self) -> bool:
        """Check if the process runs in a production environment."""
        ...


@dataclass
class ConfigurationProvider:
    """
    Provides configuration values loaded from environment variables.

    Implements IConfigurationProvider protocol for type-safe configuration access.
    """

    _config: Dict[str, Any] = field(default_factory=dict)
    _loaded: bool = field(default=False)

    def load(self, env_path: Optional[str] = None) -> "ConfigurationProvider":
        """
        Load configuration from .env file and the process environment.

        Args:
            env_path: Optional path to .env file

        Returns:
            Self for method chaining
        """
        if self._loaded:
            return self

        if env_path:
            load_dotenv(env_path)
        else:
            project_root = Path(__file__).parent.parent
            env_file = project_root / ".env"
            if env_file.exists():
                load_dotenv(env_file)

        self._config = {
            "server": {
                "host": os.getenv("SERVER_HOST", "127.0.0.1"),
                "port": int(os.getenv("SERVER_PORT", "8000")),
                "base_url": os.getenv("BASE_URL", ""),
            },
            "app": {
                "environment": os.getenv("APP_ENV", "development").strip().lower(),
                "debug": _env_flag("APP_DEBUG", "true"),
                "log_level": os.getenv("APP_LOG_LEVEL", "INFO"),
            },
            "database": {
                "url": os.getenv("DATABASE_URL", ""),
            },
            "security": {
                "encryption_key": os.getenv("ENCRYPTION_KEY", ""),
                # Retired keys, newest first; only used to decrypt during rotation
                "previous_encryption_keys": _env_list("ENCRYPTION_KEY_PREVIOUS"),
            },
            "webhook": {
                "secrets": {
                    "meta": os.getenv("META_APP_SECRET", ""),
                    "shopify": os.getenv("SHOPIFY_WEBHOOK_SECRET", ""),
                    "stripe": os.getenv("STRIPE_WEBHOOK_SECRET", ""),
                    "woocommerce": os.getenv("WOOCOMMERCE_WEBHOOK_SECRET", ""),
                },
                "allow_unverified": _env_flag("ALLOW_UNVERIFIED_WEBHOOKS"),
                "stripe_tolerance_seconds": int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300")),
                "meta_verify_token": os.getenv("META_VERIFY_TOKEN", ""),
            },
        }
        self._loaded = True
        return self

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot notation key.

        Args:
            key: Dot-separated key path (e.g., "webhook.secrets.meta")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def is_production(self) -> bool:
        """Check if APP_ENV names a production environment."""
        return self.get("app.environment", "development") in PRODUCTION_ENVIRONMENTS

    def is_webhook_configured(self, provider: str) -> bool:
        """Check if a shared secret is set for the given webhook provider."""
        return bool(self.get(f"webhook.secrets.{provider}"))


# Singleton instance
_configuration_provider: Optional[ConfigurationProvider] = None


def get_configuration_provider() -> ConfigurationProvider:
    """
    Get the singleton ConfigurationProvider instance.

    Returns:
        ConfigurationProvider: The configuration provider
    """
    global _configuration_provider
    if _configuration_provider is None:
        _configuration_provider = ConfigurationProvider()
        _configuration_provider.load()
    return _configuration_provider


def get_settings() -> ConfigurationProvider:
    """Alias for get_configuration_provider for cleaner DI."""
    return get_configuration_provider()


def reset_configuration_provider() -> None:
    """Drop the cached provider so the next access re-reads the environment."""
    global _configuration_provider
    _configuration_provider = None
