"""
Logging utilities
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
import colorlog

PACKAGE_LOGGER = 'hadoop_cluster'
DEFAULT_LOG_DIR = '/var/log'


def setup_logger(name, log_file=None, level=logging.INFO):
    """
    Setup logger with console and file handlers

    Args:
        name: Logger name
        log_file: Log file path (optional)
        level: Log level

    Returns:
        Logger instance
    """
    # Create logger
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers = []

    # Console handler with colors, on stderr so stdout stays usable for output
    console_handler = colorlog.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_formatter = colorlog.ColoredFormatter(
        '%(log_color)s%(asctime)s - %(levelname)s - %(message)s%(reset)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        log_path = Path(log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10*1024*1024,  # 10MB
                backupCount=5
            )
        except OSError as e:
            logger.warning(f"Cannot write log file {log_file}: {e}")
        else:
            file_handler.setLevel(level)
            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

    return logger


def get_logger(name):
    """
    Get a module logger that reports through the package logger handlers

    Args:
        name: Module name (usually __name__)

    Returns:
        Logger instance
    """
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + '.'):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def tool_log_file(tool):
    """Per-tool log file path, e.g. /var/log/hadoop-deploy-install.log"""
    log_dir = os.getenv('HADOOP_CLUSTER_LOG_DIR', DEFAULT_LOG_DIR)
    return str(Path(log_dir) / f"hadoop-deploy-{tool}.log")


def mask_sensitive_data(data):
    """
    Mask sensitive information in data

    Args:
        data: Data to mask (dict, list, or str)

    Returns:
        Masked data
    """
    sensitive_keys = ['password', 'secret', 'token', 'credential']

    if isinstance(data, dict):
        return {
            k: '***MASKED***' if any(s in k.lower() for s in sensitive_keys)
            else mask_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [mask_sensitive_data(item) for item in data]
    else:
        return data


def log_section(logger, title):
    """Log a banner separating the steps of a flow"""
    logger.info("=" * 70)
    logger.info(title)
    logger.info("=" * 70)
