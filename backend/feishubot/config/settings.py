"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "FeishuGPT Bot"
    app_version: str = "1.0.0"
    debug: bool = False

    # Feishu (Lark) Bot settings
    feishu_app_id: Optional[str] = None
    feishu_app_secret: Optional[str] = None
    feishu_verification_token: Optional[str] = None
    feishu_encrypt_key: Optional[str] = None
    feishu_bot_name: Optional[str] = None  # used to detect @mentions in groups
    feishu_timeout: float = 30.0

    # LLM Provider settings
    llm_provider: str = "openai"
    llm_api_key: Optional[str] = None
    llm_model: Optional[str] = None  # uses provider default if not set
    llm_base_url: Optional[str] = None  # uses provider default if not set
    llm_image_model: Optional[str] = None
    llm_timeout: float = 120.0
    image_timeout: float = 180.0

    # Legacy key (still accepted)
    openai_api_key: Optional[str] = None

    # Sessions
    session_store: str = "memory"  # "memory" or "local"
    local_storage_path: str = "./data"
    session_ttl_hours: float = 12
    session_sweep_minutes: float = 10  # how often expired in-memory sessions are dropped

    # Built-in roles; the bundled list is used when unset
    role_list_path: Optional[str] = None

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/feishubot.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all webhook requests/responses

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def api_key(self) -> Optional[str]:
        return self.llm_api_key or self.openai_api_key

    @property
    def feishu_configured(self) -> bool:
        return bool(self.feishu_app_id and self.feishu_app_secret)


settings = Settings()
