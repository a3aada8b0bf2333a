"""
This module defines the configuration settings for the duetcode server.

It uses Pydantic's `BaseSettings` to build a strongly-typed settings object
populated from `DUETCODE_`-prefixed environment variables. The settings cover
the listening socket, the generation backend, logging, and the tuning knobs of the
adaptive dispatcher.
"""
from typing import Literal, Optional, Tuple

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DuetSettings(BaseSettings):
    """
    Configuration model for the duetcode server.

    Attributes:
        host: Interface the server binds to.
        port: Port the server listens on.
        default_model: Generation model used until a client sends `modelUpdate`.
        gemini_api_key: API key for the Gemini endpoint; also read from
                        `GEMINI_API_KEY`. Without one the mock backend is used.
        gemini_timeout: Per-request timeout in seconds; `None` waits forever.
        policy_memory_scope: `global` shares the last routed request across all
                             connections, `connection` keeps one per client.
        feedback_retry_limit: Alternate modes tried after negative feedback.
    """

    model_config = SettingsConfigDict(
        env_prefix="DUETCODE_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Generation backend
    default_model: str = "gemini-1.5-flash"
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("DUETCODE_GEMINI_API_KEY", "GEMINI_API_KEY", "gemini_api_key"),
    )
    gemini_api_base_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    gemini_timeout: Optional[float] = None
    mock_mode: bool = False

    # Adaptive dispatcher
    policy_epsilon: float = Field(default=0.1, ge=0.0, le=1.0)
    policy_learning_rate: float = Field(default=0.1, gt=0.0, le=1.0)
    policy_discount_factor: float = Field(default=0.9, ge=0.0, lt=1.0)
    policy_state_space: int = Field(default=1000, gt=0)
    policy_memory_scope: Literal["global", "connection"] = "global"

    # Feedback
    feedback_capacity: int = Field(default=1024, gt=0)
    feedback_retry_limit: int = Field(default=2, ge=1)

    # Sessions
    session_id_length: int = Field(default=9, ge=4, le=32)

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    quiet_loggers: Tuple[str, ...] = ("httpx", "uvicorn.access")
