"""
MODULE OVERVIEW:
Application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every knob the client, the CLI and the development server need is declared once here
and read from the environment (prefix `AGENT_CHAT_`) or a `.env` file. Constructors
still accept explicit overrides, so these values are only the defaults.
"""
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Agent server
    BASE_URL: str = "http://127.0.0.1:8000"
    AGENT_ID: str = "echo-agent"
    AUTHORIZATION: str | None = None

    # Timeouts
    REQUEST_TIMEOUT_S: float = 30.0
    STREAM_TIMEOUT_S: float = 300.0

    # Chat behaviour
    STREAMING: bool = True
    MAX_FILE_SIZE: int = 10 * 1024 * 1024
    MAX_FILES: int = 10
    ALLOWED_FILE_TYPES: list[str] = []

    # Development server
    PORT: int = 8000
    AGENT_DELAY_S: float = 0.05
    LOG_LEVEL: str = "INFO"

    class Config:
        env_prefix = "AGENT_CHAT_"
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'

settings = Settings()
