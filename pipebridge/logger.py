"""
pipebridge Logger Module

Logging facade shared by every bridge component:
- Structured logging with a per-call context dictionary
- Component-specific loggers under the ``pipebridge`` namespace
- Optional file output and ANSI colors on terminals
- In-memory ring buffer of recent records for inspection
- Thread-safe operation (sessions log from their worker threads)

Author: pipebridge developers
Version: 1.0.0
"""

import logging
import sys
import threading
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Optional, Any, List


class LogLevel(IntEnum):
    """Log level enumeration with numeric values for comparison."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_name(cls, name: str) -> 'LogLevel':
        """Look up a level by its (case-insensitive) name."""
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown log level: {name}") from None


class LogFormatter(logging.Formatter):
    """
    Formatter for bridge log records.

    Output layout:
        [timestamp] LEVEL [component] (session=N) message {key=value ...}
    """

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        """Check if stdout is a terminal."""
        if not hasattr(sys.stdout, 'isatty'):
            return False
        return sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime(
            '%Y-%m-%d %H:%M:%S.%f'
        )[:-3]

        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level_display = f"{self.COLORS[level]}{level:8s}{self.RESET}"
        else:
            level_display = f"{level:8s}"

        components = [f"[{timestamp}]", level_display]

        if hasattr(record, 'component'):
            components.append(f"[{record.component}]")

        if getattr(record, 'session', None) is not None:
            components.append(f"(session={record.session})")

        components.append(str(record.getMessage()))

        if getattr(record, 'context', None):
            context_str = " ".join(f"{k}={v}" for k, v in record.context.items())
            components.append(f"{{{context_str}}}")

        message = " ".join(components)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


class BridgeLogHandler(logging.Handler):
    """
    Keeps the most recent log records in memory.

    Lets callers and tests inspect what a session did (state changes,
    failures) without configuring an external sink.
    """

    def __init__(self, max_entries: int = 10000):
        super().__init__()
        self.max_entries = max_entries
        self._log_buffer: List[dict[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        log_entry = {
            'timestamp': record.created,
            'level': record.levelname,
            'message': record.getMessage(),
            'component': getattr(record, 'component', None),
            'session': getattr(record, 'session', None),
            'context': getattr(record, 'context', {}),
            'thread': record.threadName,
        }

        with self._lock:
            self._log_buffer.append(log_entry)
            if len(self._log_buffer) > self.max_entries:
                self._log_buffer = self._log_buffer[-self.max_entries:]

    def get_logs(
        self,
        level: Optional[str] = None,
        component: Optional[str] = None,
        session: Optional[int] = None,
        limit: int = 100
    ) -> List[dict[str, Any]]:
        """Retrieve buffered records, newest last."""
        with self._lock:
            logs = self._log_buffer.copy()

        if level:
            logs = [entry for entry in logs if entry['level'] == level]
        if component:
            logs = [entry for entry in logs if entry['component'] == component]
        if session is not None:
            logs = [entry for entry in logs if entry['session'] == session]

        return logs[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._log_buffer.clear()


class Logger:
    """
    Component logger for pipebridge.

    One instance exists per component name; repeated construction returns
    the same object. Every call accepts an optional session id and a
    context dictionary that the formatter renders after the message.

    Example:
        >>> log = Logger('session')
        >>> log.info("Transfer complete", session=3, context={'bytes': 8192})
    """

    _instances: dict[str, 'Logger'] = {}
    _lock = threading.Lock()
    _initialized = False
    _buffer_handler: Optional[BridgeLogHandler] = None
    _handlers: List[logging.Handler] = []
    _global_level: int = LogLevel.INFO

    def __new__(cls, component: str = 'bridge') -> 'Logger':
        with cls._lock:
            if component not in cls._instances:
                instance = super().__new__(cls)
                instance._component = component
                instance._logger = logging.getLogger(f'pipebridge.{component}')
                cls._instances[component] = instance
            return cls._instances[component]

    @classmethod
    def initialize(
        cls,
        level: int = LogLevel.INFO,
        log_file: Optional[str] = None,
        use_colors: bool = True,
        console_output: bool = True
    ) -> None:
        """
        Configure handlers on the ``pipebridge`` root logger.

        Only the first call has an effect until ``shutdown`` is called.

        Args:
            level: Minimum level captured by every handler
            log_file: Optional path for plain-text file output
            use_colors: Whether to color console output on terminals
            console_output: Whether to attach a stdout handler
        """
        with cls._lock:
            if cls._initialized:
                return

            cls._global_level = level
            root_logger = logging.getLogger('pipebridge')
            root_logger.setLevel(level)

            cls._buffer_handler = BridgeLogHandler()
            cls._buffer_handler.setLevel(level)
            handlers: List[logging.Handler] = [cls._buffer_handler]

            if console_output:
                console_handler = logging.StreamHandler(sys.stdout)
                console_handler.setLevel(level)
                console_handler.setFormatter(LogFormatter(use_colors=use_colors))
                handlers.append(console_handler)

            if log_file:
                file_path = Path(log_file)
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_file)
                file_handler.setLevel(level)
                file_handler.setFormatter(LogFormatter(use_colors=False))
                handlers.append(file_handler)

            for handler in handlers:
                root_logger.addHandler(handler)
            cls._handlers = handlers
            cls._initialized = True

    @classmethod
    def shutdown(cls) -> None:
        """Detach and close the handlers installed by ``initialize``."""
        with cls._lock:
            root_logger = logging.getLogger('pipebridge')
            for handler in cls._handlers:
                root_logger.removeHandler(handler)
                handler.close()
            cls._handlers = []
            cls._buffer_handler = None
            cls._initialized = False

    @classmethod
    def get_bridge_logs(
        cls,
        level: Optional[str] = None,
        component: Optional[str] = None,
        session: Optional[int] = None,
        limit: int = 100
    ) -> List[dict[str, Any]]:
        """Get records from the in-memory buffer."""
        if cls._buffer_handler is None:
            return []
        return cls._buffer_handler.get_logs(
            level=level, component=component, session=session, limit=limit
        )

    @property
    def component(self) -> str:
        return self._component

    def _log(
        self,
        level: int,
        message: str,
        session: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        exc_info: Any = None
    ) -> None:
        extra = {
            'component': self._component,
            'session': session,
            'context': context or {},
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(
        self,
        message: str,
        session: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        self._log(LogLevel.DEBUG, message, session, context)

    def info(
        self,
        message: str,
        session: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        self._log(LogLevel.INFO, message, session, context)

    def warning(
        self,
        message: str,
        session: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        self._log(LogLevel.WARNING, message, session, context)

    def error(
        self,
        message: str,
        session: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        self._log(LogLevel.ERROR, message, session, context)

    def critical(
        self,
        message: str,
        session: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        self._log(LogLevel.CRITICAL, message, session, context)

    def exception(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        session: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log an error together with a stack trace."""
        self._log(
            LogLevel.ERROR,
            message,
            session,
            context,
            exc_info=exc if exc is not None else True
        )


def get_logger(component: str) -> Logger:
    """
    Get the logger for a bridge component.

    Args:
        component: Component name (e.g. 'session', 'fifo', 'manager')

    Returns:
        Logger instance for the component
    """
    return Logger(component)
