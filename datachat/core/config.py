from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./datachat.db"
    SQL_ECHO: bool = False
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Model gateway (Ollama chat API)
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"
    OLLAMA_TIMEOUT_SECONDS: float = 300.0
    OLLAMA_TEMPERATURE: float = 0.1
    OLLAMA_NUM_PREDICT: int = 16384
    OLLAMA_NUM_CTX: int = 32768

    # Quota
    DEFAULT_QUERY_LIMIT: int = 100

    # Keeps the instruction payload bounded for file conversations
    PROMPT_PREVIEW_ROWS: int = 50
    PROMPT_PREVIEW_CHARS: int = 10000

    MAX_MESSAGE_LENGTH: int = 10000
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create a single instance of the settings to use everywhere
settings = Settings()
