#!/usr/bin/env python3
"""
ERROR / TRACE log streams for the traffic agent
"""
import logging
import sys

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOGGER_NAME = "traffic_agent"
LOG_FORMAT = "%(levelname)s: %(asctime)s %(filename)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y/%m/%d %H:%M:%S"

logger = logging.getLogger(LOGGER_NAME)


def setup_logging(log_file, echo=True):
    """Attach the log file (and stdout) to the agent logger, returns the handlers"""
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    handlers = [logging.FileHandler(log_file, mode='a', encoding='utf-8')]
    if echo:
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(TRACE)
    logger.propagate = False
    return handlers


def close_logging(handlers):
    for handler in handlers:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


def error(msg, *args):
    logger.error(msg, *args, stacklevel=2)


def trace(msg, *args):
    logger.log(TRACE, msg, *args, stacklevel=2)
