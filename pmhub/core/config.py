from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env into the process environment; real environment variables win
load_dotenv()


class Settings(BaseSettings):
    # [App Settings]
    PROJECT_NAME: str = "PMHub-Realtime-Service"
    ENV: str = "local"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # [Database]
    DATABASE_URL: str = "sqlite+aiosqlite:///./pmhub.db"

    # [Security - JWT Settings]
    SECRET_KEY: str = "your-secret-key-here"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # [Realtime]
    WS_TOKEN_QUERY_PARAM: str = "token"

    # [Frontend URL]
    FRONTEND_URL: str = "http://localhost:5173"

    # [CORS]
    CORS_ORIGINS: str = "*"

    # [Client]
    API_BASE_URL: str = "http://localhost:8000"
    CLIENT_MUTATION_TIMEOUT_SECONDS: float = 0

    @property
    def cors_origin_list(self) -> list[str]:
        if self.CORS_ORIGINS == "*":
            return ["*"]
        origins = [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]
        if self.FRONTEND_URL and self.FRONTEND_URL not in origins:
            origins.append(self.FRONTEND_URL)
        return origins

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()  # type: ignore
