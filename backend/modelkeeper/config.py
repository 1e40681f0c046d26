from pathlib import Path

from pydantic_settings import BaseSettings

_DATA_DIR = Path(__file__).parent / "data"


class Settings(BaseSettings):
    models_dir: Path = Path.home() / ".modelkeeper" / "models"
    catalog_path: Path = _DATA_DIR / "models.config.json"
    presets_path: Path = _DATA_DIR / "presets.config.json"
    user_config_filename: str = "user.config.json"
    backend_url: str | None = None  # dependent service, e.g. http://127.0.0.1:8890
    max_redirects: int = 10
    download_chunk_size: int = 1024 * 1024
    connect_timeout: float = 30.0
    read_timeout: float = 300.0
    user_agent: str = "ModelKeeper/0.1"
    log_level: str = "INFO"

    model_config = {"env_prefix": "MODELKEEPER_"}


settings = Settings()
