import logging
import json
import os
from pathlib import Path
import threading


ROOT_LOGGER_NAME = "mms"


class SingletonLogger:
    """
    Singleton logger that configures the "mms" logger hierarchy once per process.

    Named loggers ("mms.business.equipment", ...) are children of the root
    and share its handlers.
    """
    _instance = None
    _lock = threading.Lock()
    _logger = None

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def get_logger(self, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        """
        Get a logger from the singleton hierarchy.

        Args:
            name (str): Dotted logger name. Names outside the "mms" namespace
                are re-rooted under it.

        Returns:
            logging.Logger: The configured logger
        """
        if self._logger is None:
            with self._lock:
                if self._logger is None:
                    self._logger = self._create_logger()

        if not name or name == ROOT_LOGGER_NAME:
            return self._logger
        if not name.startswith(ROOT_LOGGER_NAME + "."):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        return logging.getLogger(name)

    def _create_logger(self) -> logging.Logger:
        """
        Create the root logger with file and console handlers.

        Returns:
            logging.Logger: Configured logger instance
        """
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        # Clear any existing handlers
        logger.handlers.clear()

        formatter = JsonFormatter({
            "timestamp": "asctime",
            "level": "levelname",
            "logger": "name",
            "module": "module",
            "function": "funcName",
            "line": "lineno",
            "message": "message"
        })

        if os.environ.get('MMS_LOG_TO_FILE', 'True').lower() in ('true', '1', 'yes', 'on'):
            logs_dir = Path(os.environ.get('MMS_LOG_DIR', 'logs'))
            logs_dir.mkdir(parents=True, exist_ok=True)

            # Fixed filenames, cleared on each run
            file_handler = logging.FileHandler(logs_dir / "mms.log", mode='w', encoding='utf-8')
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

            error_file_handler = logging.FileHandler(logs_dir / "mms_errors.log", mode='w', encoding='utf-8')
            error_file_handler.setLevel(logging.ERROR)
            error_file_handler.setFormatter(formatter)
            logger.addHandler(error_file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, os.environ.get('MMS_CONSOLE_LOG_LEVEL', 'INFO').upper(), logging.INFO))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        return logger


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    Args:
        fmt_dict (dict): Output key -> LogRecord attribute, e.g.
            {"level": "levelname"}. Defaults to {"message": "message"}.
        time_format (str): strftime format used for "asctime"
        msec_format (str): Milliseconds suffix format
    """

    def __init__(self, fmt_dict: dict = None, time_format: str = "%Y-%m-%dT%H:%M:%S", msec_format: str = "%s.%03dZ"):
        super().__init__()
        self.fmt_dict = fmt_dict or {"message": "message"}
        self.default_time_format = time_format
        self.default_msec_format = msec_format

    def usesTime(self) -> bool:
        return "asctime" in self.fmt_dict.values()

    def format(self, record) -> str:
        record.message = record.getMessage()
        if self.usesTime():
            record.asctime = self.formatTime(record)

        # Unknown attributes in fmt_dict raise KeyError
        payload = {key: record.__dict__[attribute] for key, attribute in self.fmt_dict.items()}

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            payload["exception"] = record.exc_text
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)

        return json.dumps(payload, default=str)


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger from the singleton "mms" hierarchy.

    Args:
        name (str): Dotted logger name, e.g. "mms.business.inspections"

    Returns:
        logging.Logger: Logger sharing the singleton's handlers
    """
    return SingletonLogger().get_logger(name)
