"""
Application configuration and environment variables
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv

# Get the project root directory (parent of 'examprep' folder)
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env file from project root explicitly
env_path = BASE_DIR / ".env"
load_dotenv(dotenv_path=env_path, override=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Configuration
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "ExamPrep Quiz & Tutor API"
    PLATFORM_NAME: str = "ExamPrep"
    VERSION: str = "1.0.0"

    # Supabase Configuration
    SUPABASE_URL: str = "https://your-project.supabase.co"
    SUPABASE_KEY: str = "your-supabase-anon-key"
    SUPABASE_SERVICE_KEY: Optional[str] = None

    # Document store: "supabase" for the hosted documents table, "memory" for local runs
    DOCUMENT_STORE_BACKEND: str = "supabase"
    DOCUMENTS_TABLE: str = "documents"
    TRANSACTION_MAX_ATTEMPTS: int = 5

    # OpenAI Configuration
    OPENAI_API_KEY: str = "your-openai-api-key"
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"

    # Autosave
    AUTOSAVE_DEBOUNCE_MS: int = 500
    TIMER_SYNC_INTERVAL_SECONDS: int = 30
    AUTOSAVE_MAX_RETRIES: int = 3
    AUTOSAVE_RATE_LIMIT_PER_MINUTE: int = 10

    # Global per-client request limit
    RATE_LIMIT_PER_MINUTE: int = 100

    # AI Tutor
    TUTOR_CACHE_TTL_SECONDS: int = 1800
    TUTOR_CACHE_MAX_ENTRIES: int = 500
    EMBEDDING_CACHE_MAX_ENTRIES: int = 200
    TUTOR_HISTORY_LIMIT: int = 10
    BOOK_MATCH_COUNT: int = 5
    SYLLABUS_MATCH_COUNT: int = 2

    # Support chat
    SITE_CONTEXT_URLS: str = "https://tayyarihub.com,https://tayyarihub.com/series/fresher,https://tayyarihub.com/series/improver,https://tayyarihub.com/about-us"
    SITE_CONTEXT_TIMEOUT_SECONDS: float = 5.0
    SITE_CONTEXT_CACHE_SECONDS: int = 86400
    SUPPORT_HISTORY_LIMIT: int = 6
    SUPPORT_PHONE: str = "03237507673"

    # Application Settings
    DEBUG: bool = True  # Default to True for development (set to False for production)
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"

    @field_validator('CORS_ORIGINS')
    @classmethod
    def parse_cors_origins(cls, v):
        """Normalize comma-separated CORS origins"""
        if isinstance(v, str):
            return ",".join(origin.strip() for origin in v.split(',') if origin.strip())
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list"""
        return [origin for origin in self.CORS_ORIGINS.split(',') if origin]

    @property
    def site_context_urls_list(self) -> list[str]:
        """Get support-chat website pages as a list"""
        return [url.strip() for url in self.SITE_CONTEXT_URLS.split(',') if url.strip()]

    model_config = {
        "env_file": str(BASE_DIR / ".env"),  # Use absolute path to ensure it's found
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore"
    }


# Global settings instance
try:
    settings = Settings()

    # Validate and warn about placeholder values
    import warnings
    if settings.DOCUMENT_STORE_BACKEND == "supabase" and "your-project" in settings.SUPABASE_URL:
        warnings.warn(
            "[WARN] SUPABASE_URL is not configured. Please set it in your .env file.",
            UserWarning
        )
    if settings.DOCUMENT_STORE_BACKEND == "supabase" and "your-supabase" in settings.SUPABASE_KEY:
        warnings.warn(
            "[WARN] SUPABASE_KEY is not configured. Please set it in your .env file.",
            UserWarning
        )
    if "your-openai" in settings.OPENAI_API_KEY:
        warnings.warn(
            "[WARN] OPENAI_API_KEY is not configured. Please set it in your .env file.",
            UserWarning
        )
except Exception as e:
    import sys
    print(f"[ERROR] Error loading configuration: {e}", file=sys.stderr)
    print("Please check your .env file or create one with required variables.", file=sys.stderr)
    raise
