"""Configuration management for dataplayground.

Loads settings from a YAML configuration file with environment variable
overrides (``DATAPLAYGROUND_`` prefix, ``__`` for nesting). Supports
.env files.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/dataplayground.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535, description="WebSocket session port")
    static_port: int = Field(default=8000, ge=1, le=65535)
    static_dir: str = Field(default="public", description="Directory holding the client bundle")


class InterpreterConfig(BaseModel):
    command: list[str] = Field(default_factory=lambda: ["R", "--no-save", "--interactive"])
    template_dir: str = Field(default="templates/r")
    run_dir_prefix: str = Field(default="dataplayground-")
    api_domain_var: str = Field(default="APIDOMAIN")
    api_domain: str = Field(default="https://public-api.us-east-1.inindca.com")
    inherit_environment: bool = Field(
        default=False,
        description="Start from the server's environment instead of an empty one",
    )
    marker: str = Field(default="#DataPlayground", description="Tag on injected commands")
    plot_width: int = Field(default=1024, gt=0)
    plot_height: int = Field(default=1024, gt=0)
    plot_pipe: str = Field(default="plot.png")
    dataframe_pipe: str = Field(default="dataframe.json")
    dflist_pipe: str = Field(default="dflist.json")
    read_size: int = Field(default=65536, gt=0, description="Bytes per pipe read")
    max_fragment_size: int = Field(default=65536, gt=0, description="Characters per message")


class ClientConfig(BaseModel):
    url: str = Field(default="ws://localhost:8080/")
    plot_dir: str = Field(default="plots")
    history_size: int = Field(default=50, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for dataplayground.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "DATAPLAYGROUND_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    interpreter: InterpreterConfig = Field(default_factory=InterpreterConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Values from the YAML file are passed as init arguments, so they take
    precedence over the environment for the sections they set.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    return Settings(**yaml_data)
