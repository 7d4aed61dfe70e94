"""Shared configuration loaded from environment / ``.env`` file."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

PACKAGE_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Vector store
    chroma_host: str = "127.0.0.1"
    chroma_port: int = 8000
    chroma_tenant: str = "wikillm"
    chroma_database: str = "wikillm"
    chroma_collection: str = Field(
        default="documents",
        description="Fallback collection used when a document id yields no namespace",
    )

    # Embedding
    ollama_host: str = "127.0.0.1"
    ollama_port: int = 11434
    ollama_embeddings_model: str = "nomic-embed-text"
    ollama_keep_alive: str = "30m"

    # Chat completions
    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible API (the part before /chat/completions)",
    )
    llm_api_key: str = Field(default="", description="API key; servers without auth get a placeholder")
    llm_model: str = "gpt-3.5-turbo"
    llm_max_tokens: int = 6144
    temperature: float | None = 0.3
    top_p: float | None = 0.8
    top_k: int | None = 20
    min_p: float | None = 0.0
    think: bool = False
    use_tools: bool = False
    use_context: bool = True

    # Outbound HTTP
    http_timeout: float = 30.0

    # Documents
    pages_dir: str = Field(
        default="/var/www/html/dokuwiki/data/pages/",
        description="Base directory stripped from file paths when deriving document ids",
    )
    document_extension: str = ".txt"
    root_namespace: str = "reports"
    default_institution: str = "default"

    # Prompts
    prompts_dir: Path = PACKAGE_PROMPTS_DIR
    language: str = "default"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def ollama_url(self) -> str:
        return f"http://{self.ollama_host}:{self.ollama_port}"


# Singleton — import `settings` wherever needed.
settings = Settings()
