"""Runtime configuration — env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
GITOPS_SQUARED_* environment variables.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export GITOPS_SQUARED_REGISTRY_HOST=registry.internal:5000
        export GITOPS_SQUARED_LOG_LEVEL=DEBUG
        export GITOPS_SQUARED_SERIALIZE_MUTATIONS=false
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GITOPS_SQUARED_",
        env_file_encoding="utf-8",
    )

    # Registry
    registry_host: str = "localhost:5000"
    repo_prefix: str = "gitops-squared"
    plain_http: bool = True
    request_timeout_seconds: float = 30.0
    page_size: int = 100

    # Catalog behavior
    default_namespace: str = "default"
    serialize_mutations: bool = True

    # Observability
    log_level: str = "INFO"

    @property
    def resource_prefix(self) -> str:
        """Repository prefix under which one repo per resource lives."""
        return f"{self.repo_prefix}/resources"

    @property
    def catalog_repo(self) -> str:
        """Repository holding the aggregate catalog artifact."""
        return f"{self.repo_prefix}/catalog"

    @property
    def registry_url(self) -> str:
        scheme = "http" if self.plain_http else "https"
        return f"{scheme}://{self.registry_host}"


# Module-level singleton: import as `from gitops_squared.config import settings`
settings = Settings()
