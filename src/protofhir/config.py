"""Configuration management for the Protocol to FHIR pipeline."""

from typing import Optional

from pydantic_settings import BaseSettings

DEFAULT_SYNTHESIS_ENDPOINTS = [
    "/process",
    "/convert",
    "/text-to-fhir",
    "/api/process",
    "/api/convert",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Remote synthesis service
    synthesis_base_url: str = "http://localhost:8003"
    synthesis_endpoints: list[str] = list(DEFAULT_SYNTHESIS_ENDPOINTS)
    synthesis_language: str = "da"
    synthesis_timeout_seconds: float = 10.0

    # Deployment target
    deploy_target: str = "simulated"  # "simulated" or "http"
    fhir_server_url: Optional[str] = None
    deploy_timeout_seconds: float = 30.0
    deploy_simulated_delay_seconds: float = 2.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def synthesis_urls(self) -> list[str]:
        """Full candidate URLs in attempt order."""
        base = self.synthesis_base_url.rstrip("/")
        return [f"{base}{path}" for path in self.synthesis_endpoints]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
