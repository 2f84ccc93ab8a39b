"""
Inspection Sync Configuration Management
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any

from dotenv import load_dotenv


@dataclass
class SyncConfig:
    """Configuration for the inspection sync client"""

    # API settings
    api_base_url: str = "http://localhost:3000/api"
    auth_token: Optional[str] = None
    timeout: float = 30.0

    # Sync settings
    retry_limit: int = 3
    health_check_interval: float = 15.0  # seconds between connectivity checks

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text, json
    log_file: Optional[str] = None
    verbose: bool = False

    # Paths
    data_dir: str = field(default_factory=lambda: str(Path.home() / ".inspection_sync"))

    def __post_init__(self):
        """Ensure the data directory exists"""
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)

        if self.retry_limit < 1:
            raise ValueError("retry_limit must be at least 1")

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from JSON file"""
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
                for key, value in data.items():
                    if hasattr(self, key):
                        setattr(self, key, value)

    def save_to_file(self, config_path: Optional[str] = None) -> None:
        """Save configuration to JSON file"""
        path = Path(config_path or (Path(self.data_dir) / "config.json"))
        data = asdict(self)
        # Tokens stay out of the config file
        data.pop("auth_token", None)
        with open(path, 'w') as f:
            json.dump(data, f, indent=2)

    @classmethod
    def load_default(cls, data_dir: Optional[str] = None) -> "SyncConfig":
        """Load default configuration from the data directory, then the environment"""
        load_dotenv()

        config = cls(data_dir=data_dir) if data_dir else cls()
        default_config_path = Path(config.data_dir) / "config.json"
        if default_config_path.exists():
            config.load_from_file(str(default_config_path))

        # Override with environment variables
        config._load_from_env()

        return config

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        env_mappings = {
            "INSPECTION_SYNC_API_URL": "api_base_url",
            "INSPECTION_SYNC_TOKEN": "auth_token",
            "INSPECTION_SYNC_TIMEOUT": ("timeout", float),
            "INSPECTION_SYNC_RETRY_LIMIT": ("retry_limit", int),
            "INSPECTION_SYNC_HEALTH_INTERVAL": ("health_check_interval", float),
            "INSPECTION_SYNC_LOG_LEVEL": "log_level",
            "INSPECTION_SYNC_LOG_FORMAT": "log_format",
            "INSPECTION_SYNC_LOG_FILE": "log_file",
            "INSPECTION_SYNC_VERBOSE": ("verbose", lambda x: x.lower() == "true"),
        }

        for env_var, mapping in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(mapping, tuple):
                    attr, converter = mapping
                    setattr(self, attr, converter(value))
                else:
                    setattr(self, mapping, value)

    @property
    def auth_headers(self) -> Dict[str, str]:
        """Authorization header for API calls, empty when no token is set"""
        if not self.auth_token:
            return {}
        return {"Authorization": f"Bearer {self.auth_token}"}

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return asdict(self)
