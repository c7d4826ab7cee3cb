import collections
import logging
import re
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..core.signals import signals

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Most recent records kept by the tank
TANK_SIZE = 10_000

MASK = '***'

_TOKEN_PATTERNS = (
    re.compile(r'(Bearer\s+)\S+', re.IGNORECASE),
    re.compile(r'eyJ[\w-]*\.[\w-]+\.[\w-]*'),
    re.compile(r'((?:token|resetToken|password)["\']?\s*[:=]\s*["\']?)[^"\'\s,}]+', re.IGNORECASE),
)


def set_logging_level(level):
    """
    Sets the logging level for the root logger.

    Args:
        level (int): The logging level to set. Should be one of the standard logging levels.
    """
    if not isinstance(level, int):
        raise ValueError('Logging level must be an integer.')
    if level not in (
            logging.DEBUG,
            logging.INFO,
            logging.WARNING,
            logging.ERROR,
            logging.CRITICAL,
    ):
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    logging.getLogger().setLevel(level)


def mask_secrets(message):
    """Replace bearer tokens, JWTs and password or token fields in a message with ``***``."""
    for pattern in _TOKEN_PATTERNS:
        if pattern.groups:
            message = pattern.sub(lambda m: m.group(1) + MASK, message)
        else:
            message = pattern.sub(MASK, message)
    return message


class SecretFilter(logging.Filter):
    """
    Masks session tokens and passwords before a record reaches any handler.

    Remote error messages, request urls and session payloads are logged by the
    client, the session manager and the server, and may carry credentials.
    """

    def filter(self, record):
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def qt_message_handler(mode, context, message):
    """
    Routes Qt messages into Python logging.
    """
    logger = logging.getLogger('Qt')
    message = message.strip()

    if mode == QtMsgType.QtDebugMsg:
        logger.debug(message)
    elif mode == QtMsgType.QtInfoMsg:
        logger.info(message)
    elif mode == QtMsgType.QtWarningMsg:
        logger.warning(message)
    elif mode == QtMsgType.QtCriticalMsg:
        logger.error(message)
    elif mode == QtMsgType.QtFatalMsg:
        logger.critical(message)
        sys.exit(1)


def get_tank_handler():
    """Return the TankHandler installed on the root logger, or None."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, TankHandler):
            return handler
    return None


def setup_logging(level=LOG_LEVEL, qt=True, tank_size=TANK_SIZE):
    """
    Configures the root logger for the sync client or the API server.

    Args:
        level (int): Level applied to the root logger and its handlers.
        qt (bool): Install the Qt message handler. The server process has no Qt event loop.
        tank_size (int): Number of records the in-memory tank keeps.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Start from a clean slate so repeated calls don't duplicate output
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    secret_filter = SecretFilter()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    stream_handler.addFilter(secret_filter)
    root_logger.addHandler(stream_handler)

    tank_handler = TankHandler(maxlen=tank_size)
    tank_handler.setFormatter(formatter)
    tank_handler.setLevel(level)
    tank_handler.addFilter(secret_filter)
    root_logger.addHandler(tank_handler)

    if qt:
        qInstallMessageHandler(qt_message_handler)


def setup_server_logging(level=logging.INFO):
    """
    Configures logging for the API server.

    The uvicorn loggers lose their own handlers and propagate to the root
    logger, so request and error logs share the client's format and filter.
    """
    setup_logging(level=level, qt=False)
    for name in ('uvicorn', 'uvicorn.error', 'uvicorn.access'):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True


class TankHandler(logging.Handler):
    """
    Logging handler that keeps the most recent formatted records in memory.

    Errors and criticals are also announced with ``signals.errorLogged`` so a
    front end can surface them without polling the tank.

    Attributes:
        tank (collections.deque[tuple[int, str]]): Tuples of log level and formatted message.
    """

    def __init__(self, maxlen=TANK_SIZE):
        super().__init__()
        self.tank = collections.deque(maxlen=maxlen)

    def emit(self, record):
        try:
            message = self.format(record)
            self.tank.append((record.levelno, message))
            if record.levelno >= logging.ERROR:
                signals.errorLogged.emit(message)
        except (Exception, KeyboardInterrupt):
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET):
        """
        Returns the stored log messages filtered by a minimum logging level.

        Args:
            level (int, optional): The minimum logging level. Defaults to logging.NOTSET.

        Returns:
            list[str]: Formatted messages with a level >= the specified level.
        """
        return [msg for lvl, msg in self.tank if lvl >= level]

    def clear_logs(self):
        self.tank.clear()
