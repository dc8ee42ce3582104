from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    APP_ENV: str = "development"
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:8080",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:3001",
        "http://127.0.0.1:8080",
    ]

    # Discord
    DISCORD_ENABLED: bool = True
    DISCORD_BOT_TOKEN: str = ""
    DISCORD_MEMBERS_INTENT: bool = True  # privileged, must be enabled in the developer portal
    DISCORD_READY_TIMEOUT: float = 30.0  # seconds a dispatch waits for the gateway

    # Bulk sends
    BULK_CONCURRENCY: int = 1
    BULK_MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024


settings = Settings()
