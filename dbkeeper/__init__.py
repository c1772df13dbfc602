import os
import logging
from logging.handlers import RotatingFileHandler


__version__ = '1.0.0'


def configure_logging(settings):
    """Configure application logging"""

    # Create logs directory if it doesn't exist
    log_dir = settings['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    if settings.get('LOG_LEVEL'):
        log_level = logging.getLevelName(settings['LOG_LEVEL'].upper())
        if not isinstance(log_level, int):
            raise ValueError(f"Invalid LOG_LEVEL: {settings['LOG_LEVEL']}")
    else:
        log_level = logging.DEBUG if settings.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'dbkeeper.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=[console_handler, file_handler])

    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(log_level)
    package_logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def load_settings(config_name=None, **overrides):
    """
    Collect configuration values for an environment.

    Args:
        config_name: Key into dbkeeper.config.config (default: $DBKEEPER_ENV or 'production')
        **overrides: Values that take precedence over the config class

    Returns:
        Dict of upper-case settings
    """
    if config_name is None:
        config_name = os.environ.get('DBKEEPER_ENV', 'production')

    from dbkeeper.config import config
    if config_name not in config:
        raise ValueError(
            f"Unknown configuration: {config_name}. "
            f"Valid options: {list(config.keys())}"
        )

    config_class = config[config_name]
    settings = {key: getattr(config_class, key) for key in dir(config_class) if key.isupper()}
    settings.update(overrides)
    return settings


def create_manager(config_name=None, setup_logging=True, **overrides):
    """BackupManager factory"""
    from dbkeeper.backup import BackupManager

    settings = load_settings(config_name, **overrides)

    if setup_logging:
        configure_logging(settings)

    manager = BackupManager.from_config(settings)
    manager.settings = settings

    logging.getLogger(__name__).info(
        f"Backup manager ready (database: {manager.db_path}, "
        f"backups: {manager.backup_dir}, keep: {manager.max_backups})"
    )

    return manager
