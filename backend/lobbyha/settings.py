import os
from pathlib import Path

from pydantic_settings import BaseSettings


class ServerSettings(BaseSettings):
    """Process environment, read once at startup.

    The HA fields are only the environment layer of the effective
    configuration; see ``config.resolve_config`` for precedence.
    """

    data_dir: str = ""
    static_dir: str = ""
    ha_url: str = ""
    ha_token: str = ""
    port: str = ""
    log_level: str = ""
    allowed_entities: str = ""

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir or resolve_data_dir())


def resolve_data_dir(override: str | None = None) -> str:
    """Pick the data directory: explicit override, ``/data`` if writable, else ``./data``."""
    if override:
        return str(Path(override).resolve())
    container_data = Path("/data")
    if container_data.is_dir() and os.access(container_data, os.W_OK):
        return str(container_data)
    return str(Path.cwd() / "data")


settings = ServerSettings()
