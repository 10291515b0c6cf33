"""
pipebridge Configuration Loader

Configuration management for the bridge:
- JSON configuration file loading
- Validation of sizes, timeouts and permission modes
- Default value handling
- Runtime configuration updates with dot-notation keys

Author: pipebridge developers
Version: 1.0.0
"""

import json
import threading
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from pipebridge.exceptions import ConfigurationError


@dataclass
class BridgeConfig:
    """Session and transfer settings."""
    chunk_size: int = 8192
    open_timeout: Optional[float] = 30.0  # None waits for a peer forever
    poll_interval: float = 0.05
    max_sessions: int = 64
    join_timeout: float = 2.0


@dataclass
class PipeConfig:
    """Settings for per-session FIFO allocation."""
    runtime_dir: Optional[str] = None  # None -> <tmp>/pipebridge-<uid>
    mode: int = 0o600
    prefix: str = "bridge"
    suffix: str = ""
    remove_on_release: bool = True


@dataclass
class LegacyConfig:
    """Fixed pipe pool kept for applications that expect known paths."""
    enabled: bool = False
    pipe_dir: str = ""
    pipe_count: int = 10
    pipe_prefix: str = "pipe"
    photo_path: str = ""
    mode: int = 0o666


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "INFO"
    log_file: Optional[str] = None
    console_output: bool = True
    use_colors: bool = True


@dataclass
class Config:
    """
    Main configuration container.

    Holds every bridge setting, grouped by concern.
    """
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    pipes: PipeConfig = field(default_factory=PipeConfig)
    legacy: LegacyConfig = field(default_factory=LegacyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def parse_mode(value: Any, key: str = "mode") -> int:
    """
    Convert a permission mode from config into an int.

    Accepts ints and strings such as ``"0o600"`` or ``"600"`` (octal).
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid permission mode: {value!r}", key=key)
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        try:
            mode = int(text, 8)
        except ValueError:
            raise ConfigurationError(
                f"Invalid permission mode: {value!r}", key=key
            ) from None
    else:
        raise ConfigurationError(f"Invalid permission mode: {value!r}", key=key)

    if not 0 <= mode <= 0o777:
        raise ConfigurationError(f"Permission mode out of range: {oct(mode)}", key=key)
    return mode


class ConfigLoader:
    """
    Configuration loader and manager.

    Handles loading configuration from JSON files, validating
    settings, and providing runtime configuration access.

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load('pipebridge.json')
        >>> config.bridge.chunk_size
        8192
    """

    _instance: Optional['ConfigLoader'] = None
    _lock = threading.Lock()

    def __new__(cls) -> 'ConfigLoader':
        """Singleton pattern for configuration access."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._config = Config()
                cls._instance._loaded = False
            return cls._instance

    def load(self, config_path: str) -> Config:
        """
        Load configuration from a JSON file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config object with loaded settings

        Raises:
            ConfigurationError: If the file cannot be read, parsed or validated
        """
        path = Path(config_path)

        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}")
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be an object")

        config = self._parse_config(data)
        self.validate(config)
        self._config = config
        self._loaded = True
        return self._config

    def load_dict(self, data: dict[str, Any]) -> Config:
        """Load configuration from an already parsed mapping."""
        config = self._parse_config(data)
        self.validate(config)
        self._config = config
        self._loaded = True
        return self._config

    @staticmethod
    def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
        section = data[name]
        if not isinstance(section, dict):
            raise ConfigurationError(f"Section '{name}' must be an object", key=name)
        return section

    def _parse_config(self, data: dict[str, Any]) -> Config:
        """Parse configuration data into Config object."""
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be an object")
        config = Config()

        if 'bridge' in data:
            bridge_data = self._section(data, 'bridge')
            config.bridge = BridgeConfig(
                chunk_size=bridge_data.get('chunk_size', config.bridge.chunk_size),
                open_timeout=bridge_data.get('open_timeout', config.bridge.open_timeout),
                poll_interval=bridge_data.get('poll_interval', config.bridge.poll_interval),
                max_sessions=bridge_data.get('max_sessions', config.bridge.max_sessions),
                join_timeout=bridge_data.get('join_timeout', config.bridge.join_timeout),
            )

        if 'pipes' in data:
            pipe_data = self._section(data, 'pipes')
            config.pipes = PipeConfig(
                runtime_dir=pipe_data.get('runtime_dir', config.pipes.runtime_dir),
                mode=parse_mode(pipe_data.get('mode', config.pipes.mode), 'pipes.mode'),
                prefix=pipe_data.get('prefix', config.pipes.prefix),
                suffix=pipe_data.get('suffix', config.pipes.suffix),
                remove_on_release=pipe_data.get('remove_on_release', config.pipes.remove_on_release),
            )

        if 'legacy' in data:
            legacy_data = self._section(data, 'legacy')
            config.legacy = LegacyConfig(
                enabled=legacy_data.get('enabled', config.legacy.enabled),
                pipe_dir=legacy_data.get('pipe_dir', config.legacy.pipe_dir),
                pipe_count=legacy_data.get('pipe_count', config.legacy.pipe_count),
                pipe_prefix=legacy_data.get('pipe_prefix', config.legacy.pipe_prefix),
                photo_path=legacy_data.get('photo_path', config.legacy.photo_path),
                mode=parse_mode(legacy_data.get('mode', config.legacy.mode), 'legacy.mode'),
            )

        if 'logging' in data:
            log_data = self._section(data, 'logging')
            config.logging = LoggingConfig(
                level=log_data.get('level', config.logging.level),
                log_file=log_data.get('log_file', config.logging.log_file),
                console_output=log_data.get('console_output', config.logging.console_output),
                use_colors=log_data.get('use_colors', config.logging.use_colors),
            )

        return config

    @staticmethod
    def validate(config: Config) -> None:
        """
        Check value ranges that the dataclasses cannot express.

        Raises:
            ConfigurationError: On the first invalid value
        """
        def is_integer(value: Any) -> bool:
            return isinstance(value, int) and not isinstance(value, bool)

        def is_number(value: Any) -> bool:
            return isinstance(value, (int, float)) and not isinstance(value, bool)

        bridge = config.bridge
        if not is_integer(bridge.chunk_size) or bridge.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be a positive integer", key="bridge.chunk_size")
        if bridge.open_timeout is not None and (
            not is_number(bridge.open_timeout) or bridge.open_timeout <= 0
        ):
            raise ConfigurationError("open_timeout must be positive or null", key="bridge.open_timeout")
        if not is_number(bridge.poll_interval) or bridge.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive", key="bridge.poll_interval")
        if not is_integer(bridge.max_sessions) or bridge.max_sessions <= 0:
            raise ConfigurationError("max_sessions must be a positive integer", key="bridge.max_sessions")
        if not is_number(bridge.join_timeout) or bridge.join_timeout < 0:
            raise ConfigurationError("join_timeout must be a non-negative number", key="bridge.join_timeout")

        pipes = config.pipes
        if not isinstance(pipes.prefix, str) or not pipes.prefix or '/' in pipes.prefix:
            raise ConfigurationError("prefix must be a non-empty file name", key="pipes.prefix")
        if not isinstance(pipes.suffix, str) or '/' in pipes.suffix:
            raise ConfigurationError("suffix must be a file name fragment", key="pipes.suffix")
        if pipes.runtime_dir is not None and not isinstance(pipes.runtime_dir, str):
            raise ConfigurationError("runtime_dir must be a path or null", key="pipes.runtime_dir")

        legacy = config.legacy
        if not isinstance(legacy.pipe_dir, str) or not isinstance(legacy.photo_path, str):
            raise ConfigurationError("legacy paths must be strings", key="legacy.pipe_dir")
        if not is_integer(legacy.pipe_count) or legacy.pipe_count < 0:
            raise ConfigurationError("pipe_count must be a non-negative integer", key="legacy.pipe_count")
        if legacy.enabled and not legacy.pipe_dir:
            raise ConfigurationError("pipe_dir is required in legacy mode", key="legacy.pipe_dir")

        if not isinstance(config.logging.level, str):
            raise ConfigurationError(f"Unknown log level: {config.logging.level!r}", key="logging.level")
        level = config.logging.level.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(f"Unknown log level: {config.logging.level}", key="logging.level")

    @property
    def config(self) -> Config:
        """Get the current configuration."""
        return self._config

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by dot-notation key.

        Args:
            key: Dot-notation key (e.g., 'bridge.chunk_size')
            default: Default value if key not found
        """
        obj: Any = self._config
        for part in key.split('.'):
            if hasattr(obj, part):
                obj = getattr(obj, part)
            else:
                return default
        return obj

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value at runtime.

        The change is validated but not persisted to disk.

        Raises:
            ConfigurationError: For unknown keys or invalid values
        """
        parts = key.split('.')
        obj: Any = self._config

        for part in parts[:-1]:
            if hasattr(obj, part):
                obj = getattr(obj, part)
            else:
                raise ConfigurationError(f"Invalid configuration key: {key}", key=key)

        final_key = parts[-1]
        if not hasattr(obj, '__dataclass_fields__') or final_key not in {f.name for f in fields(obj)}:
            raise ConfigurationError(f"Invalid configuration key: {key}", key=key)

        if final_key == 'mode':
            value = parse_mode(value, key)

        previous = getattr(obj, final_key)
        setattr(obj, final_key, value)
        try:
            self.validate(self._config)
        except ConfigurationError:
            setattr(obj, final_key, previous)
            raise

    def reload(self, config_path: str) -> Config:
        """Reload configuration from file."""
        return self.load(config_path)

    def reset(self) -> None:
        """Restore built-in defaults."""
        self._config = Config()
        self._loaded = False

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        def dataclass_to_dict(obj: Any) -> Any:
            if hasattr(obj, '__dataclass_fields__'):
                return {
                    k: dataclass_to_dict(v)
                    for k, v in obj.__dict__.items()
                }
            elif isinstance(obj, list):
                return [dataclass_to_dict(item) for item in obj]
            elif isinstance(obj, dict):
                return {k: dataclass_to_dict(v) for k, v in obj.items()}
            else:
                return obj

        return dataclass_to_dict(self._config)


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config object with current settings
    """
    return ConfigLoader().config
