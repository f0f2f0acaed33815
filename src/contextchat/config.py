"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a helpful AI assistant. Use provided tools when necessary. "
    "When using a tool, you don't need to ask for permission."
)


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gemini_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY", "gemini_api_key"),
    )
    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com/v1beta"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url", "base_url"),
    )
    default_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("GEMINI_DEFAULT_MODEL", "default_model"),
    )
    system_instruction: str = Field(
        default=DEFAULT_SYSTEM_INSTRUCTION,
        validation_alias=AliasChoices(
            "GEMINI_SYSTEM_INSTRUCTION",
            "system_instruction",
        ),
    )
    max_output_tokens: int = Field(
        default=8192,
        ge=1,
        validation_alias=AliasChoices(
            "GEMINI_MAX_OUTPUT_TOKENS",
            "max_output_tokens",
        ),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("GEMINI_TIMEOUT", "request_timeout", "timeout"),
        ge=1,
    )
    tool_turn_limit: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices("TOOL_TURN_LIMIT", "tool_turn_limit"),
    )
    mcp_request_timeout: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("MCP_REQUEST_TIMEOUT", "mcp_request_timeout"),
    )
    attachments_max_size_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices(
            "ATTACHMENTS_MAX_SIZE_BYTES",
            "attachments_max_size_bytes",
        ),
    )
    storage_dir: Path = Field(
        default_factory=lambda: Path("data"),
        validation_alias=AliasChoices("STORAGE_DIR", "storage_dir"),
    )
    storage_namespace: str = Field(
        default="contextchat",
        min_length=1,
        validation_alias=AliasChoices("STORAGE_NAMESPACE", "storage_namespace"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["DEFAULT_SYSTEM_INSTRUCTION", "PROJECT_ROOT", "Settings", "get_settings"]
