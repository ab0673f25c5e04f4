from pydantic_settings import BaseSettings
from typing import Optional, List

class Settings(BaseSettings):
    PROJECT_NAME: str = "Course Catalog"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    DATABASE_HOST: Optional[str] = None
    DATABASE_PORT: str = "5432"
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = ""
    DATABASE_NAME: str = "course_catalog"

    DATABASE_URL: str = ""
    TEST_DATABASE_URL: Optional[str] = None

    def __init__(self, **data):
        super().__init__(**data)
        if not self.DATABASE_URL:
            if self.DATABASE_HOST:
                self.DATABASE_URL = (
                    f'postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}'
                    f'@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}'
                )
            else:
                self.DATABASE_URL = "sqlite:///./course_catalog.db"

    # Cache
    REDIS_URL: Optional[str] = None
    CACHE_ENABLED: bool = True
    CACHE_TTL: int = 300
    REDIS_SOCKET_TIMEOUT: float = 2.0
    REDIS_RETRY_ATTEMPTS: int = 3
    REDIS_BACKOFF_BASE: float = 0.05  # seconds
    REDIS_BACKOFF_CAP: float = 1.0    # seconds

    # Uploads
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB

    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True

    class Config:
        env_file = ".env"

settings = Settings()
