"""
Centralized logging system with rotating file handlers, compression, and singleton pattern.
"""
import sys
import os
import re
import logging
import logging.handlers
import gzip
import shutil
import threading
import atexit
from pathlib import Path
from typing import Dict, Any
from pythonjsonlogger import jsonlogger
from core.config import settings


class ComponentFilter(logging.Filter):
    """Filter to ensure all log records have a component field."""

    def __init__(self, default_component: str = "unknown"):
        super().__init__()
        self.default_component = default_component

    def filter(self, record):
        """Add component field if missing."""
        if not hasattr(record, 'component'):
            logger_name = record.name
            if logger_name in ['httpx', 'uvicorn', 'uvicorn.access']:
                record.component = 'http'
            elif logger_name.startswith('sqlalchemy') or logger_name.startswith('alembic'):
                record.component = 'database'
            else:
                record.component = self.default_component
        return True


class SecurityFilter(logging.Filter):
    """Filter to remove sensitive information from logs."""

    SENSITIVE_KEYS = {
        'password', 'token', 'secret', 'key', 'api_key',
        'authorization', 'auth', 'credential', 'pass',
        'jwt', 'bearer', 'session'
    }

    def filter(self, record):
        """Filter sensitive information from log records."""
        if hasattr(record, 'msg') and isinstance(record.msg, str):
            record.msg = self._sanitize_message(record.msg)

        if hasattr(record, 'args') and record.args:
            record.args = tuple(self._sanitize_value(arg) for arg in record.args)

        return True

    def _sanitize_message(self, message: str) -> str:
        """Sanitize message content."""
        # Long alphanumeric strings are usually API keys
        message = re.sub(r'\b[A-Za-z0-9]{32,}\b', '[REDACTED]', message)

        message = re.sub(
            r'Bearer\s+[A-Za-z0-9\-_=]+\.[A-Za-z0-9\-_=]+\.[A-Za-z0-9\-_=]+',
            'Bearer [REDACTED]',
            message
        )

        # Credentials embedded in database URLs
        message = re.sub(r'://[^:]+:[^@]+@', '://[REDACTED]:[REDACTED]@', message)

        return message

    def _sanitize_value(self, value: Any) -> Any:
        """Sanitize a single value."""
        if isinstance(value, str):
            return self._sanitize_message(value)
        elif isinstance(value, dict):
            return {
                k: '[REDACTED]' if any(sensitive in k.lower() for sensitive in self.SENSITIVE_KEYS) else v
                for k, v in value.items()
            }
        return value


class CompressedRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """Rotating file handler that gzips the rotated file."""

    def __init__(self, *args, **kwargs):
        self.compress_logs = kwargs.pop('compress_logs', settings.log_compression)
        super().__init__(*args, **kwargs)

    def doRollover(self):
        super().doRollover()

        if not (self.compress_logs and self.backupCount > 0):
            return

        backup_file = f"{self.baseFilename}.1"
        if not os.path.exists(backup_file):
            return

        try:
            # Shift older archives up by one before writing the new .1.gz
            for i in range(self.backupCount - 1, 0, -1):
                older = f"{self.baseFilename}.{i}.gz"
                newer = f"{self.baseFilename}.{i + 1}.gz"
                if os.path.exists(older):
                    if os.path.exists(newer):
                        os.remove(newer)
                    os.rename(older, newer)

            with open(backup_file, 'rb') as f_in:
                with gzip.open(f"{backup_file}.gz", 'wb') as f_out:
                    shutil.copyfileobj(f_in, f_out)
            os.remove(backup_file)
        except OSError as e:
            # Keep the uncompressed file if compression fails
            print(f"Warning: Failed to compress log file {backup_file}: {e}")


class StructuredLogger:
    """A logger wrapper that accepts structured keyword data."""

    RESERVED_ATTRS = {
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "message", "asctime", "taskName",
    }

    def __init__(self, name: str, logger: logging.Logger):
        self.name = name
        self._logger = logger

    def _format_message(self, msg: str, **kwargs) -> str:
        if not kwargs or settings.log_format == "json":
            return msg

        structured_parts = [f"{key}={value}" for key, value in kwargs.items()]
        return f"{msg} [{', '.join(structured_parts)}]"

    def _log(self, level: int, msg: str, *args, **kwargs):
        exc_info = kwargs.pop('exc_info', False)
        extra = kwargs.pop('extra', {})
        extra['component'] = self.name

        if settings.log_format == "json":
            # The JSON formatter serializes extra fields as top-level keys
            for key, value in kwargs.items():
                if key not in self.RESERVED_ATTRS:
                    extra.setdefault(key, value)

        formatted_msg = self._format_message(msg, **kwargs)
        self._logger.log(level, formatted_msg, *args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs['exc_info'] = True
        self.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        self._log(logging.CRITICAL, msg, *args, **kwargs)


class CentralizedLogManager:
    """Singleton centralized log manager with rotating handlers and compression."""

    _instance = None
    _lock = threading.Lock()
    _initialized = False

    # component -> (log file setting, level, logger names)
    COMPONENTS = {
        'security': ('security_log_file', logging.INFO, ['security', 'auth']),
        'billing': ('billing_log_file', logging.INFO,
                    ['billing', 'trial', 'subscription', 'quota', 'access_control']),
        'ai': ('ai_log_file', logging.INFO, ['ai_manager', 'practice', 'gemini']),
        'database': ('database_log_file', None, ['database', 'sqlalchemy.engine', 'alembic']),
        'access': ('access_log_file', logging.INFO, ['uvicorn', 'uvicorn.access', 'access', 'httpx']),
    }
    # Loggers that would otherwise be duplicated in app.log
    NON_PROPAGATING = {'security', 'auth', 'ai_manager', 'practice', 'gemini'}
    # Third-party loggers whose existing handlers are left alone
    SHARED = {'uvicorn', 'uvicorn.access', 'httpx'}

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._loggers: Dict[str, StructuredLogger] = {}
        self._handlers: Dict[str, logging.Handler] = {}
        self._log_directory = None

        with self._lock:
            if not self._initialized:
                if settings.enable_file_logging:
                    self._ensure_log_directory()
                self._setup_root_logger()
                self._setup_component_loggers()
                self._initialized = True

    def _ensure_log_directory(self):
        self._log_directory = Path(settings.log_directory)
        self._log_directory.mkdir(parents=True, exist_ok=True)

    def _create_formatter(self, include_component: bool = True) -> logging.Formatter:
        """Create a formatter based on settings."""
        if settings.log_format == "json":
            fmt = "%(asctime)s %(name)s %(levelname)s %(message)s"
            if include_component:
                fmt = "%(asctime)s %(name)s %(levelname)s %(component)s %(message)s"
            return jsonlogger.JsonFormatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%S")

        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        if include_component:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - [%(component)s] - %(message)s"
        return logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def _create_rotating_handler(self, log_file: str, level: int = logging.INFO) -> logging.Handler:
        handler = CompressedRotatingFileHandler(
            filename=str(self._log_directory / log_file),
            maxBytes=settings.log_file_max_size_mb * 1024 * 1024,
            backupCount=settings.log_file_backup_count,
            compress_logs=settings.log_compression
        )
        handler.setLevel(level)
        handler.addFilter(ComponentFilter())
        handler.addFilter(SecurityFilter())
        handler.setFormatter(self._create_formatter(include_component=True))
        return handler

    def _create_console_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
        handler.addFilter(ComponentFilter())
        handler.addFilter(SecurityFilter())
        handler.setFormatter(self._create_formatter(include_component=False))
        return handler

    def _setup_root_logger(self):
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

        console_handler = self._create_console_handler()
        root_logger.addHandler(console_handler)
        self._handlers['console'] = console_handler

        if settings.enable_file_logging:
            app_handler = self._create_rotating_handler(settings.app_log_file)
            root_logger.addHandler(app_handler)
            self._handlers['app'] = app_handler

            error_handler = self._create_rotating_handler(settings.error_log_file, logging.ERROR)
            root_logger.addHandler(error_handler)
            self._handlers['error'] = error_handler

    def _setup_component_loggers(self):
        """Route each component's loggers to its own file."""
        if not settings.enable_file_logging:
            return

        for component, (file_setting, level, logger_names) in self.COMPONENTS.items():
            if level is None:
                level = logging.INFO if settings.enable_sql_logging else logging.WARNING

            handler = self._create_rotating_handler(getattr(settings, file_setting), level)
            self._handlers[component] = handler

            for logger_name in logger_names:
                logger = logging.getLogger(logger_name)
                if logger_name not in self.SHARED:
                    logger.handlers.clear()
                logger.addHandler(handler)
                logger.setLevel(level)
                if logger_name in self.NON_PROPAGATING:
                    logger.propagate = False

    def get_logger(self, name: str) -> StructuredLogger:
        """Get a structured logger instance for a component."""
        if name not in self._loggers:
            self._loggers[name] = StructuredLogger(name, logging.getLogger(name))
        return self._loggers[name]

    def get_standard_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def shutdown(self):
        """Close all handlers."""
        for handler_name, handler in list(self._handlers.items()):
            try:
                handler.close()
            except Exception as e:
                print(f"Error closing handler {handler_name}: {e}")
        self._handlers.clear()

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            handler.close()
            root_logger.removeHandler(handler)

        self._loggers.clear()
        logging.shutdown()
        CentralizedLogManager._initialized = False
        CentralizedLogManager._instance = None


# Global singleton instance
_log_manager = None


def setup_logging():
    """Setup centralized logging system."""
    global _log_manager
    if _log_manager is None:
        _log_manager = CentralizedLogManager()
    return _log_manager


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return setup_logging().get_logger(name)


def get_standard_logger(name: str) -> logging.Logger:
    """Get a standard Python logger instance."""
    return setup_logging().get_standard_logger(name)


def shutdown_logging():
    """Shutdown logging system gracefully."""
    global _log_manager
    if _log_manager is not None:
        _log_manager.shutdown()
        _log_manager = None


# Pre-configured logger instances for common components
app_logger = get_logger("app")
security_logger = get_logger("security")
billing_logger = get_logger("billing")
database_logger = get_logger("database")


def _cleanup_logging():
    try:
        shutdown_logging()
    except Exception as e:
        print(f"Error during logging cleanup: {e}")


atexit.register(_cleanup_logging)
