from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration with environment variable support"""

    # Database
    database_url: str = "sqlite:///./session_notes.db"

    # App
    app_name: str = "Session Note Pipeline"
    environment: str = "development"  # 'development' or 'production'
    log_level: str = "INFO"

    # LLM Configuration (REQUIRED - set in .env)
    llm_provider: str = "openai"  # 'openai' or 'anthropic'
    llm_model: str = ""  # Fallback model when a task has no dedicated model
    llm_api_key: str = ""  # Required: OpenAI or Anthropic API key

    # Per-task models (see src.agent.router.ModelRouter)
    intake_model: str = "gpt-4.1-nano"
    extraction_model: str = "gpt-4.1"
    extraction_simple_model: str = "gpt-4.1-nano"
    risk_model: str = "gpt-4.1-mini"
    summarization_model: str = "gpt-4.1-nano"

    # Embedding Configuration
    # Note: Embeddings currently only support OpenAI
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-large"
    embedding_api_key: str = ""  # Optional: defaults to llm_api_key if empty

    # Agent loop limits
    agent_max_tool_calls: int = 15
    agent_timeout_seconds: float = 300.0

    # External call bounds
    embedding_timeout_seconds: float = 30.0
    search_timeout_seconds: float = 30.0

    # Risk assessment
    risk_confidence_threshold: float = 0.9
    risk_always_re_extract: bool = True
    risk_enable_keyword_safety_net: bool = True
    risk_use_conservative_merge: bool = True
    risk_require_criteria_used: bool = True
    risk_criteria_validation_attempts: int = 2

    # Document limits
    max_document_bytes: int = 10 * 1024 * 1024
    max_document_pages: int = 30

    # Search index (in-memory when empty)
    search_index_path: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
