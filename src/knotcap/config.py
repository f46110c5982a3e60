"""Global configuration — XDG paths, env vars, optional YAML file, defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

# Bodies with an unknown encoding below this size get one blind decompression pass
SMALL_BODY_LIMIT = 1_024_000


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "knotcap"
    return Path.home() / ".local" / "share" / "knotcap"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "knotcap"
    return Path.home() / ".config" / "knotcap"


@dataclass
class KnotConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    logs_dir: Path | None = None
    output_dir: Path | None = None
    product_name: str = "Knot"
    small_body_limit: int = SMALL_BODY_LIMIT
    current_policy: str | None = None
    web_host: str = "127.0.0.1"  # never 0.0.0.0
    web_port: int = 8471
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.logs_dir is None:
            self.logs_dir = self.data_dir / "logs"
        if self.output_dir is None:
            self.output_dir = self.data_dir / "output"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "knotcap.db"

    @classmethod
    def load(cls) -> KnotConfig:
        """Load config from config.yaml and environment variables."""
        config = cls()

        data_dir = os.environ.get("KNOTCAP_DATA_DIR")
        if data_dir:
            config = cls(data_dir=Path(data_dir))

        config._apply_file(config.config_dir / "config.yaml")

        env_logs = os.environ.get("KNOTCAP_LOGS_DIR")
        if env_logs:
            config.logs_dir = Path(env_logs)

        env_output = os.environ.get("KNOTCAP_OUTPUT_DIR")
        if env_output:
            config.output_dir = Path(env_output)

        env_port = os.environ.get("KNOTCAP_WEB_PORT")
        if env_port:
            config.web_port = int(env_port)

        env_policy = os.environ.get("KNOTCAP_POLICY")
        if env_policy:
            config.current_policy = env_policy

        return config

    def _apply_file(self, path: Path) -> None:
        if not path.is_file():
            return
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError):
            logger.warning("Failed to load config from %s", path)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a mapping", path)
            return

        if "logs_dir" in data:
            self.logs_dir = Path(data["logs_dir"])
        if "output_dir" in data:
            self.output_dir = Path(data["output_dir"])
        if "product_name" in data:
            self.product_name = str(data["product_name"])
        if "small_body_limit" in data:
            self.small_body_limit = int(data["small_body_limit"])
        if "current_policy" in data:
            self.current_policy = data["current_policy"] or None
        if "web_port" in data:
            self.web_port = int(data["web_port"])
