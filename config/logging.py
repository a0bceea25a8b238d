"""
OhMyCook - Logging Configuration

Attaches rotating file, error file and console handlers to the ``ohmycook``
root logger. Layer loggers (see ``config.loggers``) inherit them.
"""

import logging
import logging.handlers
import os


ROOT_LOGGER_NAME = 'ohmycook'

# logger名は30桁、レベルは5桁で揃える
LOG_FORMAT = '%(asctime)s - %(name)-30.30s - %(levelname)-5s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
BACKUP_COUNT = 5


def _log_paths():
    """LOG_DIR / LOG_FILE から通常ログとエラーログのパスを決定"""
    log_dir = os.getenv('LOG_DIR', '.')
    log_file = os.path.basename(os.getenv('LOG_FILE', 'ohmycook.log'))
    os.makedirs(log_dir, exist_ok=True)

    # ohmycook.log -> ohmycook_error.log
    stem = log_file[:-len('.log')] if log_file.endswith('.log') else log_file
    return os.path.join(log_dir, log_file), os.path.join(log_dir, f"{stem}_error.log")


def _add_handler(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(handler)


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure the ``ohmycook`` root logger

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured root logger
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    log_file, error_log_file = _log_paths()
    for filename, handler_level in ((log_file, level), (error_log_file, logging.ERROR)):
        try:
            handler = logging.handlers.RotatingFileHandler(
                filename=filename,
                maxBytes=MAX_FILE_SIZE,
                backupCount=BACKUP_COUNT,
                encoding='utf-8'
            )
        except OSError as e:
            root_logger.error(f"❌ [LOGGING] File handler setup failed for {filename}: {e}")
            continue
        _add_handler(root_logger, handler, handler_level)

    _add_handler(root_logger, logging.StreamHandler(), level)
    root_logger.propagate = False

    root_logger.debug(f"🔧 [LOGGING] Logging configured (level: {log_level}, file: {log_file})")
    return root_logger


def get_log_level() -> str:
    """
    LOG_LEVEL があればそれを、なければ ENVIRONMENT ごとの既定値を返す

    production: INFO / development: DEBUG / staging: WARNING / otherwise INFO
    """
    log_level = os.getenv('LOG_LEVEL', '').upper()
    if log_level:
        return log_level

    environment = os.getenv('ENVIRONMENT', 'development').lower()
    environment_defaults = {
        'production': 'INFO',
        'development': 'DEBUG',
        'staging': 'WARNING'
    }
    return environment_defaults.get(environment, 'INFO')
