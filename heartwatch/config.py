from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Storage (SQLite file + error.log live under data_dir)
    data_dir: Path = BASE_DIR / "data"
    db_name: str = "heartwatch.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    # Logging
    log_level: str = "INFO"

    # Timezone override, consulted before the persisted setting
    tz: str = ""

    # Checkers
    tailscale_cli_path: str = "tailscale"  # assumes `tailscale` is on PATH
    check_workers: int = 8

    # Set inside the container image; gates the nscd service hooks
    is_container: bool = False

    # Per-subscriber SSE buffer; events beyond this are dropped
    sse_queue_size: int = 100

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


settings = Settings()
