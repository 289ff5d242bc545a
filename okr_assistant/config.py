"""Configuration for the OKR assistant service."""
from dataclasses import dataclass
from typing import Optional
import os
from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime settings; every field has a development default"""
    # Cohere (default provider, intent analysis, embeddings)
    cohere_api_key: Optional[str] = None
    cohere_model: str = "command-r-plus"
    cohere_embed_model: str = "embed-english-v3.0"
    cohere_temperature: float = 0.7

    # Azure OpenAI (primary function-calling provider)
    azure_openai_api_key: Optional[str] = None
    azure_openai_endpoint: Optional[str] = None
    azure_openai_deployment: str = "gpt-4o"
    azure_openai_api_version: str = "2024-06-01"

    # DeepSeek (secondary provider)
    deepseek_api_key: Optional[str] = None
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-chat"

    default_llm_provider: str = "cohere"
    llm_timeout_seconds: float = 60.0
    multi_step_timeout_seconds: float = 120.0
    max_function_steps: int = 8
    history_window: int = 10

    memory_min_relevance: float = 0.7
    memory_result_limit: int = 5

    document_max_tokens: int = 4000

    okr_api_base_url: str = "http://localhost:5000"
    okr_api_timeout_seconds: float = 30.0

    chat_database_url: str = ""
    jwt_secret: str = "change-me"
    auth_required: bool = True
    environment: str = "development"
    frontend_url: str = "http://localhost:4200"
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build Settings from the environment (after loading a local .env)"""
    load_dotenv()

    return Settings(
        cohere_api_key=os.environ.get("COHERE_API_KEY") or None,
        cohere_model=os.environ.get("COHERE_MODEL", "command-r-plus"),
        cohere_embed_model=os.environ.get("COHERE_EMBED_MODEL", "embed-english-v3.0"),
        cohere_temperature=float(os.environ.get("COHERE_TEMPERATURE", "0.7")),
        azure_openai_api_key=os.environ.get("AZURE_OPENAI_API_KEY") or None,
        azure_openai_endpoint=os.environ.get("AZURE_OPENAI_ENDPOINT") or None,
        azure_openai_deployment=os.environ.get("AZURE_OPENAI_DEPLOYMENT", "gpt-4o"),
        azure_openai_api_version=os.environ.get("AZURE_OPENAI_API_VERSION", "2024-06-01"),
        deepseek_api_key=os.environ.get("DEEPSEEK_API_KEY") or None,
        deepseek_base_url=os.environ.get("DEEPSEEK_BASE_URL", "https://api.deepseek.com"),
        deepseek_model=os.environ.get("DEEPSEEK_MODEL", "deepseek-chat"),
        default_llm_provider=os.environ.get("DEFAULT_LLM_PROVIDER", "cohere"),
        llm_timeout_seconds=float(os.environ.get("LLM_TIMEOUT_SECONDS", "60")),
        multi_step_timeout_seconds=float(os.environ.get("MULTI_STEP_TIMEOUT_SECONDS", "120")),
        max_function_steps=int(os.environ.get("MAX_FUNCTION_STEPS", "8")),
        history_window=int(os.environ.get("HISTORY_WINDOW", "10")),
        memory_min_relevance=float(os.environ.get("MEMORY_MIN_RELEVANCE", "0.7")),
        memory_result_limit=int(os.environ.get("MEMORY_RESULT_LIMIT", "5")),
        document_max_tokens=int(os.environ.get("DOCUMENT_MAX_TOKENS", "4000")),
        okr_api_base_url=os.environ.get("OKR_API_BASE_URL", "http://localhost:5000"),
        okr_api_timeout_seconds=float(os.environ.get("OKR_API_TIMEOUT_SECONDS", "30")),
        chat_database_url=os.environ.get("CHAT_DATABASE_URL", ""),
        jwt_secret=os.environ.get("JWT_SECRET", "change-me"),
        auth_required=_env_bool("AUTH_REQUIRED", True),
        environment=os.environ.get("ENVIRONMENT", "development"),
        frontend_url=os.environ.get("FRONTEND_URL", "http://localhost:4200"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
