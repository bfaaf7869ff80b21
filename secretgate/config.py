from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    # Passphrase the encryption key is derived from; unset falls back to an insecure default
    ENCRYPTION_KEY: str | None = None
    # Master API key granting unrestricted access; empty disables master access
    MASTER_API_KEY: str = ""
    # Embedded store location
    DATA_DIR: str = "./data"
    DATABASE_URL: str | None = None
    # Tool-invocation endpoint whose JSON-RPC payload is inspected by the gateway
    TOOL_ENDPOINT_PATH: str = "/mcp"
    MAX_BODY_SIZE: int = 1048576

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def database_url(self) -> str:
        """Explicit DATABASE_URL, or a SQLite file inside DATA_DIR."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        data_dir = Path(self.DATA_DIR).expanduser().resolve()
        data_dir.mkdir(parents=True, exist_ok=True)
        return f"sqlite+aiosqlite:///{data_dir / 'secretgate.db'}"

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
