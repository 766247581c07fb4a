"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "forge-agent"
    project_root: Path = Field(default_factory=Path.cwd)
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=60.0, ge=0.5)
    llm_max_retries: int = Field(default=0, ge=0)
    llm_backoff_s: float = Field(default=0.5, ge=0.0)
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_system_prompt: str = "You are a helpful assistant for project asset management."
    openai_api_key: str = ""
    command_timeout_s: float = Field(default=30.0, ge=0.1)
    sidecar_suffixes: list[str] = Field(default_factory=lambda: [".meta"])
    orchestrator_auto_chain: bool = True
    prompt_preview_chars: int = Field(default=500, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="FORGE_AGENT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
