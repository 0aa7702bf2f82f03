from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_TITLE: str = "Attendance Service"
    MONGODB_URL: str
    MONGODB_DB_NAME: str = "hr_system"
    PRODUCTION_MODE: bool = False
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    TIMEZONE: str = "UTC"
    PORT: int = 11000
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    class Config:
        env_file = ".env"

settings = Settings()
