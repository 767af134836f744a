from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

ARCHIVE_SIGNATURE = b"DIRCTXTV"
MAX_PATH_LEN = 4096
IGNORE_FILE_NAME = ".dircontxtignore"
ARCHIVE_SUFFIX = ".dircontxt"
SNAPSHOT_SUFFIX = ".llmcontext.txt"
VERIFY_CHUNK_SIZE = 64 * 1024

DEFAULT_IGNORED_DIRS = (".git", ".hg", ".svn")


class OutputMode(str, Enum):
    BOTH = "both"
    TEXT = "text"
    BINARY = "binary"


@dataclass(frozen=True)
class AppConfig:
    output_mode: OutputMode = OutputMode.BOTH


def config_dir() -> Path:
    return Path.home() / ".config" / "dircontxt"


def default_config_path() -> Path:
    return config_dir() / "config.toml"


def global_ignore_path() -> Path:
    return config_dir() / "ignore"


def load_app_config(path: Path | None = None) -> AppConfig:
    """Read the user config, falling back to defaults for anything unusable."""
    config_path = path if path is not None else default_config_path()
    if not config_path.is_file():
        logger.debug("No config file at %s, using defaults", config_path)
        return AppConfig()

    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Cannot read config %s: %s. Using defaults.", config_path, exc)
        return AppConfig()

    logger.info("Loading configuration from %s", config_path)
    output_mode = OutputMode.BOTH
    for key, value in data.items():
        if key == "output_mode":
            try:
                output_mode = OutputMode(str(value).strip().lower())
            except ValueError:
                logger.warning(
                    "Unknown output_mode %r in %s, using %s",
                    value,
                    config_path,
                    output_mode.value,
                )
        else:
            logger.warning("Unknown key %r in config %s", key, config_path)
    return AppConfig(output_mode=output_mode)
