from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    SESSION_COOKIE_NAME: str = "cart_session"
    SESSION_TTL_SECONDS: int = 86400
    SESSION_PURGE_INTERVAL_SECONDS: int = 300

    # regex character classes, without the surrounding brackets
    CART_PRODUCT_ID_RULES: str = r"\.a-z0-9_-"
    CART_PRODUCT_NAME_RULES: str = r"\w \-\.\:\%\,\&"
    CART_PRODUCT_NAME_SAFE: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
