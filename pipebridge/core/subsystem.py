"""
pipebridge Subsystem Base

Lifecycle contract shared by long-lived bridge services.

Author: pipebridge developers
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from enum import Enum, auto

from pipebridge.logger import Logger, get_logger


class SubsystemState(Enum):
    """Lifecycle state of a subsystem."""
    CREATED = auto()
    INITIALIZED = auto()
    RUNNING = auto()
    STOPPED = auto()
    ERROR = auto()


class Subsystem(ABC):
    """
    Abstract base class for bridge services.

    Lifecycle:
        1. __init__() - Subsystem is created
        2. initialize() - Resources are prepared
        3. start() - Subsystem starts accepting work
        4. stop() - Active work is cancelled
        5. cleanup() - Resources are released
    """

    def __init__(self, name: str):
        self._name = name
        self._logger = get_logger(name)
        self._state = SubsystemState.CREATED

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> SubsystemState:
        return self._state

    @property
    def logger(self) -> Logger:
        return self._logger

    def set_state(self, state: SubsystemState) -> None:
        self._state = state
        self._logger.debug(f"State changed to {state.name}")

    @abstractmethod
    def initialize(self) -> None:
        """
        Prepare the subsystem for operation.

        Should allocate resources and perform initial setup.
        """

    def start(self) -> None:
        """Begin normal operation. Default implementation does nothing."""

    def stop(self) -> None:
        """Stop active operations. Default implementation does nothing."""

    def cleanup(self) -> None:
        """Release all resources. Default implementation does nothing."""

    def health_check(self) -> bool:
        """
        Check if the subsystem is healthy.

        Returns:
            True if the subsystem is initialized or running
        """
        return self._state in (
            SubsystemState.INITIALIZED,
            SubsystemState.RUNNING
        )
