from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    All values can be overridden via .env file.
    """

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = 'ignore'  # RabbitMQ config handled separately

    # Основные настройки приложения
    PROJECT_NAME: str = "NotificationGateway"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Настройки логирования
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "var/log"

    # Адрес HTTP сервера (health checks)
    HOST: str = "0.0.0.0"
    PORT: int = 8000


settings = Settings()
