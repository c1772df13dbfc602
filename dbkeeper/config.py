import os


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


class Config:
    """Base configuration"""

    # Primary database and backup location
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or '/data/crm_demo.db'
    BACKUP_DIR = os.environ.get('BACKUP_DIR') or '/data/backups'
    METADATA_FILENAME = os.environ.get('METADATA_FILENAME') or 'backups.json'
    BACKUP_PREFIX = os.environ.get('BACKUP_PREFIX') or 'crm_backup'

    # Retention and compression
    MAX_BACKUPS = _env_int('MAX_BACKUPS', 30)
    COMPRESSION_LEVEL = _env_int('COMPRESSION_LEVEL', 6)

    # Scheduler
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE') or 'UTC'
    DAILY_BACKUP_CRON = os.environ.get('DAILY_BACKUP_CRON') or '0 2 * * *'
    WEEKLY_BACKUP_CRON = os.environ.get('WEEKLY_BACKUP_CRON') or '0 3 * * sun'

    # Logging
    DEBUG = False
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'
    LOG_LEVEL = os.environ.get('LOG_LEVEL')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or os.path.join(DATA_DIR, 'crm_demo.db')
    BACKUP_DIR = os.environ.get('BACKUP_DIR') or os.path.join(DATA_DIR, 'backups')
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(DevelopmentConfig):
    """Testing configuration"""
    MAX_BACKUPS = 5


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
