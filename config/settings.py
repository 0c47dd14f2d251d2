from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field
from typing import List


class Settings(BaseSettings):
    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)
    admin_ids_str: str = Field(default="", alias="ADMIN_IDS")
    # Общий секрет со шлюзом авторизации. Пустой = заголовкам доверяем без проверки
    gateway_secret: str = Field(default="")

    # Database
    database_url: str = Field(...)

    # Redis (очередь уведомлений)
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Push-уведомления (Expo)
    expo_push_url: str = Field(default="https://exp.host/--/api/v2/push/send")
    notifications_enabled: bool = Field(default=True)

    # File Storage
    upload_path: str = Field(default="./uploads")
    public_upload_url: str = Field(default="/uploads")
    max_file_size: int = Field(default=10485760)  # 10MB
    max_document_images: int = Field(default=5)

    # Валюта по умолчанию для отображения цен
    currency_symbol: str = Field(default="₹")

    # Logging
    log_level: str = Field(default="INFO")

    @computed_field
    @property
    def admin_ids(self) -> List[int]:
        """Parse comma-separated admin IDs from environment variable"""
        if not self.admin_ids_str.strip():
            return []
        return [int(id.strip()) for id in self.admin_ids_str.split(",") if id.strip()]

    # Порядок важен: сначала проверяется .env.local (для разработки),
    # затем .env (продакшн на сервере), затем test.env
    model_config = SettingsConfigDict(
        env_file=[".env.local", ".env", "config/test.env"],
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance
settings = Settings()
