# logging_config.py
import logging
import os
import sys

LOGGER_NAME = "falcon-mcp"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = None, log_file: str = None) -> logging.Logger:
    """
    Configure the `falcon-mcp` logger tree.
    Console output goes to stderr so it never interleaves with the stdio transport.
    """
    level = (level or os.getenv("MCP_LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("MCP_SERVER_LOG_FILE")

    logger = logging.getLogger(LOGGER_NAME)
    # getLevelName returns a string for names it does not know
    invalid_level = not isinstance(logging.getLevelName(level), int)
    logger.setLevel(logging.INFO if invalid_level else level)
    formatter = logging.Formatter(LOG_FORMAT)

    # Avoid duplicate handlers when called more than once
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    if invalid_level:
        logger.warning("Unknown log level '%s', falling back to INFO", level)
    return logger
