from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache

class Settings(BaseSettings):
    PROJECT_NAME: str = "Support Chat Client"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Backend API
    API_URL: str = "http://localhost:8000/api"
    HTTP_TIMEOUT: float = 10.0

    # Chat session
    SESSION_TITLE: str = "모바일 대화"
    SESSION_MODEL_ID: int = 1

    # Question answering
    QA_TOP_K: int = 5
    QA_KNOWLEDGE_ID: Optional[int] = None

    # FAQ sub-menu paging
    FAQ_PAGE_LIMIT: int = 50
    FAQ_ORDER_BY: Optional[str] = None

    # Speech
    STT_LANGUAGE: str = "ko-KR"
    STREAMING_STT_URL: Optional[str] = None  # ws://host/stt/stream
    SAMPLE_RATE: int = 16000
    SILENCE_THRESHOLD_DB: float = -45.0  # dBFS
    SILENCE_TIMEOUT_SECONDS: float = 2.0
    MAX_RECORDING_SECONDS: float = 30.0

    # Conversation
    IDLE_FEEDBACK_SECONDS: float = 60.0
    MAX_ATTACHMENTS: int = 3

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env

@lru_cache()
def get_settings():
    return Settings()

settings = get_settings()
