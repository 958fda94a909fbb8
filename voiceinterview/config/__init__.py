"""YAML configuration loader for the voice interview pipeline."""

import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "voiceinterview.yaml"


@dataclass
class SessionSettings:
    """Typed view of the settings one interview session needs."""
    agent_url: str = ""
    api_key: str = ""
    connect_timeout_seconds: float = 10.0
    context_delay_ms: float = 1000.0
    session_timeout_ms: float = 30 * 60 * 1000
    max_reconnect_attempts: int = 3
    sample_rate: int = 16000
    chunk_size: int = 4096
    channels: int = 1
    capture_queue_size: int = 32
    silence_threshold: float = 0.005
    agent_speaking_window_ms: float = 1000.0

    @property
    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}


class VoiceInterviewConfig:
    """Voice interview configuration loader."""
    
    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.
        
        Args:
            config_path: Path to YAML config file. If None, uses voiceinterview.yaml
                        in the current directory.
        """
        self.config_file = Path(config_path or DEFAULT_CONFIG_FILE)
        
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
        
        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "VoiceInterviewConfig":
        """Build a configuration from an in-memory mapping (paths left as given)."""
        instance = cls.__new__(cls)
        instance.config_file = Path(DEFAULT_CONFIG_FILE)
        instance.config = config
        return instance
    
    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

        # Resolve relative paths
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config
    
    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent
        
        for section, key in (('storage', 'data_directory'), ('logging', 'file_path')):
            if isinstance(config.get(section), dict) and key in config[section]:
                path = config[section][key]
                if not os.path.isabs(path):
                    config[section][key] = str(config_dir / path)
    
    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'session.timeout_ms').
        
        Args:
            key_path: Dot-separated key path
            default: Default value if key not found
            
        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config
        
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        
        return value
    
    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.
        
        Args:
            key_path: Dot-separated path to config value (e.g., 'agent.url')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config
        
        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]
        
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' updated")
    
    def get_agent_url(self) -> str:
        """Get agent endpoint URL - CRASHES if not configured."""
        url = self.get('agent.url')
        if not url:
            raise ValueError(f"Agent URL not configured in {self.config_file.name}")
        return url
    
    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_session_settings(self) -> SessionSettings:
        """Collect the per-session settings with their documented defaults."""
        defaults = SessionSettings()
        settings = SessionSettings(
            agent_url=self.get('agent.url', defaults.agent_url) or "",
            api_key=self.get('agent.api_key', defaults.api_key) or "",
            connect_timeout_seconds=float(self.get('agent.connect_timeout_seconds', defaults.connect_timeout_seconds)),
            context_delay_ms=float(self.get('agent.context_delay_ms', defaults.context_delay_ms)),
            session_timeout_ms=float(self.get('session.timeout_ms', defaults.session_timeout_ms)),
            max_reconnect_attempts=int(self.get('session.max_reconnect_attempts', defaults.max_reconnect_attempts)),
            sample_rate=int(self.get('audio.sample_rate', defaults.sample_rate)),
            chunk_size=int(self.get('audio.chunk_size', defaults.chunk_size)),
            channels=int(self.get('audio.channels', defaults.channels)),
            capture_queue_size=int(self.get('audio.capture_queue_size', defaults.capture_queue_size)),
            silence_threshold=float(self.get('turn_taking.silence_threshold', defaults.silence_threshold)),
            agent_speaking_window_ms=float(
                self.get('turn_taking.agent_speaking_window_ms', defaults.agent_speaking_window_ms)),
        )

        if settings.max_reconnect_attempts < 0:
            raise ValueError("session.max_reconnect_attempts must be >= 0")
        if settings.session_timeout_ms <= 0:
            raise ValueError("session.timeout_ms must be positive")
        if settings.channels != 1:
            raise ValueError("audio.channels must be 1 (mono PCM)")
        return settings
