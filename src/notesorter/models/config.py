"""Configuration models for notesorter."""

from pydantic import BaseModel, Field, HttpUrl, field_validator
from pathlib import Path
from typing import Optional
import yaml
import os
import stat


class LLMConfig(BaseModel):
    """Configuration for the classification service connection."""

    endpoint: HttpUrl = Field(
        ...,
        description="LLM API endpoint URL (OpenAI or Ollama compatible)"
    )

    api_key: str = Field(
        ...,
        description="API key for authentication"
    )

    model: str = Field(
        ...,
        description="Primary model identifier used for routing"
    )

    fallback_model: Optional[str] = Field(
        default=None,
        description="Model tried once when the primary model fails (defaults to the primary model)"
    )

    num_ctx: int = Field(
        default=32768,
        ge=1024,
        description="Context window size (Ollama-specific, controls VRAM usage)"
    )

    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for routing requests"
    )

    model_config = {"frozen": True}

    @property
    def effective_fallback_model(self) -> str:
        return self.fallback_model or self.model


class OrganizerConfig(BaseModel):
    """Tuning for the auto-organization pipeline."""

    idle_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Idle time after the last edit before a run is attempted"
    )

    debounce_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum spacing between accepted run attempts"
    )

    excerpt_chars: int = Field(
        default=1200,
        ge=0,
        description="Characters of the source document sent as context"
    )

    inbox_path: str = Field(
        default="/Inbox",
        description="Catch-all destination used when routing fails"
    )

    history_capacity: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Number of revertible changes kept"
    )

    history_max_age_days: float = Field(
        default=7.0,
        gt=0.0,
        description="Changes older than this are no longer revertible"
    )

    @field_validator('inbox_path')
    @classmethod
    def validate_inbox_path(cls, v: str) -> str:
        """Catch-all destination must name at least one segment."""
        segments = [s.strip() for s in v.split("/") if s.strip()]
        if not segments:
            raise ValueError("inbox_path must name a document, e.g. /Inbox")
        return "/" + "/".join(segments)

    model_config = {"frozen": True}


class StoreConfig(BaseModel):
    """Location of the JSON document store used by the CLI."""

    path: str = Field(
        default="~/.local/share/notesorter",
        description="Directory holding documents.json and profile.json"
    )

    @field_validator('path')
    @classmethod
    def expand_path(cls, v: str) -> str:
        return str(Path(v).expanduser())

    model_config = {"frozen": True}


class Config(BaseModel):
    """Root configuration for notesorter."""

    llm: LLMConfig = Field(..., description="Classification service settings")
    organizer: OrganizerConfig = Field(default_factory=OrganizerConfig, description="Pipeline settings")
    store: StoreConfig = Field(default_factory=StoreConfig, description="Document store settings")

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        Validates file permissions before loading.
        Raises PermissionError if file is group/world readable.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance

        Raises:
            PermissionError: If file permissions are too open
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(
                f"Configuration file not found at {path}\n\n"
                f"Please create the file with the following format:\n\n"
                f"llm:\n"
                f"  endpoint: https://api.openai.com/v1\n"
                f"  api_key: YOUR_API_KEY_HERE\n"
                f"  model: gpt-4o-mini\n"
                f"  fallback_model: gpt-4o\n\n"
                f"organizer:\n"
                f"  idle_timeout_seconds: 30\n"
                f"  inbox_path: /Inbox\n\n"
                f"store:\n"
                f"  path: ~/.local/share/notesorter\n"
            )

        # Must be 600: the file holds an API key
        mode = os.stat(path).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            raise PermissionError(
                f"Config file has overly permissive permissions: {oct(mode)}\n"
                f"Run: chmod 600 {path}"
            )

        with open(path) as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a YAML mapping")

        return cls(**data)

    model_config = {"frozen": True}
