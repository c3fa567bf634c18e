from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    # Project
    PROJECT_NAME: str = "Volunteer Chat API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # Paths
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"

    # Server
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 4001

    # Database
    DATABASE_URL: str = f"sqlite+aiosqlite:///{DATA_DIR}/app.db"
    DATABASE_ECHO: bool = False
    DATABASE_BUSY_TIMEOUT_SECONDS: float = 15.0

    # Tokens are issued by the external auth platform and signed with this secret
    SECRET_KEY: str = "your-secret-key-here"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"

    # Chat
    CHAT_MESSAGE_MAX_LENGTH: int = 500
    CHAT_UNREAD_WINDOW_HOURS: int = 24
    CHAT_LOAD_TIMEOUT_SECONDS: float = 10.0
    CHAT_ASSIGNMENT_MESSAGE: str = "New volunteers have been assigned to this opportunity"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
