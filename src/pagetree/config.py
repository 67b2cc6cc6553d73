"""Application configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Node store settings loaded from environment variables."""

    data_dir: Path = Path("data/nodes")
    debug: bool = False
    default_revision: str = "master"
    draft_revision: str = "draft"
    default_locale: str = "en"
    default_theme: str | None = None
    widget_id_offset: int = 0
    trash_name: str = "_trash"
    expired_routes: bool = True
    markdown: bool = False

    model_config = SettingsConfigDict(
        env_prefix="PAGETREE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


settings = Settings()
