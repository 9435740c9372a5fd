import logging
import sys

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("kyc_bridge")

REQUIRED_CREDENTIALS = ("HYPERVERGE_APP_ID", "HYPERVERGE_APP_KEY", "HYPERVERGE_WORKFLOW_ID")


class Settings(BaseSettings):
    # Project Info
    PROJECT_NAME: str = "HyperVerge Backend Server"
    VERSION: str = "1.0.0"

    # Server
    HOST: str = Field("0.0.0.0", description="Interface to bind")
    PORT: int = Field(3000, description="Listening port")
    CORS_ORIGINS: str = Field("*", description="Comma separated list of allowed browser origins")
    LOG_LEVEL: str = Field("INFO", description="Root log level")

    # HyperVerge credentials
    HYPERVERGE_APP_ID: str = Field(..., description="HyperVerge application id")
    HYPERVERGE_APP_KEY: str = Field(..., description="HyperVerge application key")
    HYPERVERGE_WORKFLOW_ID: str = Field(..., description="Workflow selecting the verification steps")
    TOKEN_EXPIRY: int = Field(1800, description="Auth token validity in seconds (default: 30 mins)")

    # HyperVerge endpoints
    HYPERVERGE_AUTH_URL: str = Field("https://ind-state.idv.hyperverge.co/v2/auth/token")
    HYPERVERGE_LOGS_URL: str = Field("https://ind.idv.hyperverge.co/v1/link-kyc/results")
    HYPERVERGE_OUTPUT_URL: str = Field("https://ind.idv.hyperverge.co/v1/output")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator(*REQUIRED_CREDENTIALS)
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


class ClientSettings(BaseSettings):
    """Settings for the verification client (the browser side of the flow)."""

    BACKEND_URL: str = Field("http://localhost:3000", description="Base URL of the proxy service")
    HYPERVERGE_WORKFLOW_ID: str = Field(..., description="Workflow the SDK is launched with")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )


def load_settings(**overrides) -> Settings:
    """
    Build the server settings once at process start.
    Exits the process when any setting is missing or invalid,
    before anything gets a chance to bind the listening port.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        failed = {str(err["loc"][0]): err["msg"] for err in e.errors() if err["loc"]}
        credentials = [name for name in REQUIRED_CREDENTIALS if name in failed]
        if credentials:
            logger.error("Missing HyperVerge credentials. Please check your .env file.")
            logger.error(f"Required: {', '.join(REQUIRED_CREDENTIALS)}")
        for name, msg in sorted(failed.items()):
            logger.error(f"Invalid setting {name}: {msg}")
        sys.exit(1)
