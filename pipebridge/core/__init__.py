"""
pipebridge Core Module

Core infrastructure shared by the bridge components:
- Configuration Loader
- Subsystem lifecycle base
- Cancellation token
"""

from .config_loader import (
    ConfigLoader,
    Config,
    BridgeConfig,
    PipeConfig,
    LegacyConfig,
    LoggingConfig,
    get_config,
    parse_mode,
)
from .subsystem import Subsystem, SubsystemState
from .cancellation import CancellationToken

__all__ = [
    # Config
    'ConfigLoader',
    'Config',
    'BridgeConfig',
    'PipeConfig',
    'LegacyConfig',
    'LoggingConfig',
    'get_config',
    'parse_mode',
    # Subsystem
    'Subsystem',
    'SubsystemState',
    # Cancellation
    'CancellationToken',
]
