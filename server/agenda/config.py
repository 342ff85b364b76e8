from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "development"
    database_url: str = "sqlite:///./agenda_blobs.db"
    blob_store_name: str = "agenda"
    blob_key: str = "appointments.json"
    cors_origins: str = "*"
    log_level: str = "INFO"
    audit_log_level: str = "INFO"

    gist_id: str = ""
    gist_token: str = ""
    github_api_url: str = "https://api.github.com"
    http_timeout_seconds: float = 8.0

    telegram_enabled: bool = True
    telegram_bot_token: str = ""
    telegram_admin_chat_id: str = ""
    telegram_users_csv_url: str = ""
    telegram_api_url: str = "https://api.telegram.org"
    identity_cache_ttl_seconds: float = 300.0

    service_token: str = ""
    service_token_pattern: str = r"^MCQ_[A-Za-z0-9]+$"

    site_label: str = "mcquadro"
    default_stato: str = "Nuovo"

    @property
    def gist_configured(self) -> bool:
        return bool(self.gist_id.strip() and self.gist_token.strip())

    @property
    def telegram_active(self) -> bool:
        return self.telegram_enabled and bool(self.telegram_bot_token.strip())


settings = Settings()
