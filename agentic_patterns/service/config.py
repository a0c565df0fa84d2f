"""
Configuration module for the Agentic Patterns service.

Uses pydantic-settings for environment variable management with type validation.
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PatternsConfig(BaseSettings):
    """Configuration for the agent composition service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Configuration
    host: str = Field(default="0.0.0.0", description="Host to bind the service")
    port: int = Field(default=8080, description="Port to bind the service")
    reload: bool = Field(default=False, description="Enable auto-reload for development")
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # LLM Provider Configuration
    llm_provider: Optional[str] = Field(
        default=None,
        description="LLM provider (gemini, openai, mock); detected from API keys if unset",
    )
    llm_model: Optional[str] = Field(
        default=None, description="Model identifier (provider default if unset)"
    )
    llm_temperature: float = Field(
        default=0.7, ge=0.0, le=2.0, description="Default sampling temperature"
    )
    llm_timeout_seconds: float = Field(
        default=60.0, gt=0, description="Timeout for a single model request"
    )

    # Composition Configuration
    parallel_max_workers: int = Field(
        default=3, ge=1, description="Worker pool size for parallel blocks"
    )
    parallel_acquire_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Maximum wait for a free worker (unbounded if unset)"
    )
    loop_max_iterations: int = Field(
        default=5, ge=1, description="Iteration ceiling for the refinement loop"
    )
    loop_quality_threshold: float = Field(
        default=0.9, ge=0.0, le=1.0, description="Score that ends the refinement loop"
    )
    supervisor_max_steps: int = Field(
        default=8, ge=1, description="Maximum number of steps in a supervisor plan"
    )

    # Human Feedback Configuration
    feedback_mode: str = Field(
        default="console", description="Feedback channel (console, api, static)"
    )
    feedback_default_response: str = Field(
        default="Good response with clear communication",
        description="Answer used by the static channel and non-interactive consoles",
    )
    feedback_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Human-input timeout (waits indefinitely if unset)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed_levels:
            raise ValueError(f"log_level must be one of {allowed_levels}")
        return v_upper

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: Optional[str]) -> Optional[str]:
        """Validate LLM provider is supported."""
        if v is None or not v.strip():
            return None
        allowed_providers = {"gemini", "openai", "mock"}
        v_lower = v.strip().lower()
        if v_lower not in allowed_providers:
            raise ValueError(f"llm_provider must be one of {allowed_providers}")
        return v_lower

    @field_validator("feedback_mode")
    @classmethod
    def validate_feedback_mode(cls, v: str) -> str:
        """Validate feedback mode is supported."""
        allowed_modes = {"console", "api", "static"}
        v_lower = v.lower()
        if v_lower not in allowed_modes:
            raise ValueError(f"feedback_mode must be one of {allowed_modes}")
        return v_lower


# Global config instance
config = PatternsConfig()
