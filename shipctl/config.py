"""Configuration management for the shipctl application."""
import os

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Application configuration with sensible defaults."""

    # Storage
    REGISTRY_PATH: str = os.getenv("SHIPCTL_REGISTRY_PATH", "clusters/cluster-registry.json")
    PROVIDER_CONFIG: str = os.getenv("SHIPCTL_PROVIDER_CONFIG", "")
    MANAGEMENT_KUBECONFIG: str = os.getenv("SHIPCTL_KUBECONFIG", "")

    # API
    API_KEY: str = os.getenv("SHIPCTL_API_KEY", "shipctl-secret")
    API_HOST: str = os.getenv("SHIPCTL_API_HOST", "127.0.0.1")
    API_PORT: int = int(os.getenv("SHIPCTL_API_PORT", "8080"))

    # Timeouts (in seconds)
    SSH_TIMEOUT: int = int(os.getenv("SSH_TIMEOUT", "10"))
    PASS_TIMEOUT: int = int(os.getenv("SHIPCTL_PASS_TIMEOUT", "3600"))

    # Notifications
    SLACK_WEBHOOK: str = os.getenv("SHIPCTL_SLACK_WEBHOOK", "")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Security
    REDACT_KEYS: tuple = ("api_key", "password", "secret", "token", "private_key", "ca_key",
                          "certificate_key", "certs_data", "kubeconfigs", "ext_data")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if not cls.API_KEY:
            raise ValueError("Missing required configuration: SHIPCTL_API_KEY")
