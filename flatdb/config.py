"""
Configuration settings for FlatDB.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# Storage settings
DEFAULT_DATA_DIR = "./data"
TABLE_FILE_EXTENSION = ".txt"

# Shell settings
DEFAULT_HISTORY_SIZE = 100  # Statements kept by the REPL history

# Logging settings
DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Environment variable names
ENV_DATA_DIR = "FLATDB_DATA_DIR"
ENV_DATABASE = "FLATDB_DATABASE"
ENV_HISTORY_SIZE = "FLATDB_HISTORY_SIZE"
ENV_LOG_LEVEL = "FLATDB_LOG_LEVEL"


@dataclass
class Settings:
    """Runtime settings; CLI flags override values read from the environment"""
    data_dir: str = DEFAULT_DATA_DIR
    database: Optional[str] = None
    history_size: int = DEFAULT_HISTORY_SIZE
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Build settings from environment variables, falling back to defaults"""
        env = os.environ if env is None else env

        history = env.get(ENV_HISTORY_SIZE)
        try:
            history_size = int(history) if history else DEFAULT_HISTORY_SIZE
        except ValueError:
            raise ValueError(f"{ENV_HISTORY_SIZE} must be an integer, got '{history}'")

        return cls(
            data_dir=env.get(ENV_DATA_DIR) or DEFAULT_DATA_DIR,
            database=env.get(ENV_DATABASE) or None,
            history_size=history_size,
            log_level=(env.get(ENV_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper(),
        )
