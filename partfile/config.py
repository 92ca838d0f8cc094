"""Configuration and environment variables."""

import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

# Global config directory
CONFIG_DIR = Path.home() / ".partfile"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
LOCAL_CONFIG_NAME = ".partfile.yaml"

# Template for new config file
CONFIG_TEMPLATE = """# partfile configuration

# Keep working directories under this root, named by a hash of the target
# path, instead of next to the target as <target>.part/
# work_root: "/var/tmp/partfile"

# fsync every chunk and the assembled file before the rename
fsync: true

# Buffer used when copying streams and chunks
copy_buffer_size: 1048576

# Defaults for `partfile split`
chunk_size: 1048576
workers: 4

# JSONL operation log
log_enabled: false
# log_dir: "~/.partfile/logs"

debug: false
"""


def ensure_config_dir() -> Path:
    """Create config directory if it doesn't exist."""
    if not CONFIG_DIR.exists():
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR


def ensure_config_file() -> Path:
    """Create template config file if it doesn't exist."""
    ensure_config_dir()
    if not CONFIG_FILE.exists():
        CONFIG_FILE.write_text(CONFIG_TEMPLATE)
    return CONFIG_FILE


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _coerce(current, value):
    """Convert a YAML or environment value to the type of ``current``.

    Values that cannot be converted are returned as is and reported by
    Config.validate().
    """
    if isinstance(current, str):
        return value if value is None or isinstance(value, str) else str(value)
    if not isinstance(value, str):
        return value
    if isinstance(current, bool):
        return _parse_bool(value)
    if isinstance(current, int):
        try:
            return int(value.strip())
        except ValueError:
            return value
    return value


INT_FIELDS = {
    "copy_buffer_size": "must be a positive number of bytes",
    "chunk_size": "must be a positive number of bytes",
    "workers": "must be at least 1",
}
BOOL_FIELDS = ("fsync", "log_enabled", "debug")


@dataclass
class Config:
    """Settings shared by the library entry points and the CLI."""

    work_root: str = ""
    fsync: bool = True
    copy_buffer_size: int = 1024 * 1024
    chunk_size: int = 1024 * 1024
    workers: int = 4
    log_enabled: bool = False
    log_dir: str = ""
    debug: bool = False

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from files and environment variables.

        Config priority (later overrides earlier):
        1. ~/.partfile/config.yaml (global)
        2. .partfile.yaml (current directory)
        3. PARTFILE_* environment variables
        """
        config_data = {}

        config_paths = [
            str(CONFIG_FILE),
            os.path.join(os.getcwd(), LOCAL_CONFIG_NAME),  # local override
        ]

        for path in config_paths:
            if os.path.exists(path):
                try:
                    with open(path, "r") as f:
                        file_data = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError):
                    continue  # Unreadable config files are ignored
                if isinstance(file_data, dict):
                    config_data.update(file_data)

        defaults = cls()
        config = cls()
        known = [f.name for f in fields(cls)]
        for name in known:
            if name in config_data:
                setattr(config, name, _coerce(getattr(defaults, name), config_data[name]))

        # Override with environment variables (highest priority)
        for name in known:
            raw = os.getenv(f"PARTFILE_{name.upper()}")
            if raw is None or raw == "":
                continue
            setattr(config, name, _coerce(getattr(defaults, name), raw))

        return config

    @property
    def work_root_path(self):
        """Expanded work_root, or None for the default <target>.part/ layout."""
        if not self.work_root:
            return None
        return Path(self.work_root).expanduser()

    @property
    def log_dir_path(self):
        if not self.log_dir:
            return None
        return Path(self.log_dir).expanduser()

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []
        for name, message in INT_FIELDS.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{name} must be an integer, got {value!r}")
            elif value <= 0:
                errors.append(f"{name} {message}")
        for name in BOOL_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, bool):
                errors.append(f"{name} must be true or false, got {value!r}")
        return errors

    @staticmethod
    def get_config_path() -> Path:
        """Return path to global config file."""
        return CONFIG_FILE
