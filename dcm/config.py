"""
Configuration management for the placement compiler
Handles environment-based solver, encoding and logging settings

Values are read through python-decouple, so they can come from the process
environment or a .env file next to the working directory.
"""
from decouple import config
from typing import Optional

from dcm.constants import (
    DEFAULT_MAX_AGGREGATE_BOUND,
    DEFAULT_NUM_WORKERS,
    DEFAULT_PROBING_LEVEL,
    DEFAULT_TIME_LIMIT_SECONDS,
    ENCODING_CHOICES,
    MAX_PROBING_LEVEL,
)
from dcm.error_handlers.exceptions import ConfigurationException


class Config:
    """Base configuration class"""
    # Logging settings
    LOG_LEVEL = config('DCM_LOG_LEVEL', default='INFO')
    LOG_FILE = config('DCM_LOG_FILE', default='')

    # Solver settings
    SOLVER_NUM_WORKERS = config('DCM_SOLVER_NUM_WORKERS', default=DEFAULT_NUM_WORKERS, cast=int)
    SOLVER_LOG_SEARCH_PROGRESS = config('DCM_SOLVER_LOG_SEARCH_PROGRESS', default=False, cast=bool)
    SOLVER_PROBING_LEVEL = config('DCM_SOLVER_PROBING_LEVEL', default=DEFAULT_PROBING_LEVEL, cast=int)
    SOLVER_TIME_LIMIT_SECONDS = config('DCM_SOLVER_TIME_LIMIT_SECONDS',
                                       default=DEFAULT_TIME_LIMIT_SECONDS, cast=float)

    # Model-building settings
    ENCODING = config('DCM_ENCODING', default='auto')
    SYMMETRY_BREAKING = config('DCM_SYMMETRY_BREAKING', default=True, cast=bool)
    MAX_AGGREGATE_BOUND = config('DCM_MAX_AGGREGATE_BOUND', default=DEFAULT_MAX_AGGREGATE_BOUND, cast=int)
    HINT_CURRENT_ASSIGNMENT = config('DCM_HINT_CURRENT_ASSIGNMENT', default=False, cast=bool)

    @classmethod
    def validate(cls) -> None:
        """
        Validate solver and model-building settings

        Raises:
            ConfigurationException: If any setting is out of range

        Example:
            >>> config = get_config()
            >>> config.validate()
        """
        problems = []
        if cls.SOLVER_NUM_WORKERS < 1:
            problems.append('DCM_SOLVER_NUM_WORKERS must be >= 1')
        if not 0 <= cls.SOLVER_PROBING_LEVEL <= MAX_PROBING_LEVEL:
            problems.append(f'DCM_SOLVER_PROBING_LEVEL must be between 0 and {MAX_PROBING_LEVEL}')
        if cls.SOLVER_TIME_LIMIT_SECONDS is not None and cls.SOLVER_TIME_LIMIT_SECONDS <= 0:
            problems.append('DCM_SOLVER_TIME_LIMIT_SECONDS must be positive')
        if str(cls.ENCODING).lower() not in ENCODING_CHOICES:
            problems.append(f"DCM_ENCODING must be one of {', '.join(ENCODING_CHOICES)}")
        if cls.MAX_AGGREGATE_BOUND is None or cls.MAX_AGGREGATE_BOUND <= 0:
            problems.append('DCM_MAX_AGGREGATE_BOUND must be a positive integer')

        if problems:
            raise ConfigurationException(
                'Invalid configuration: ' + '; '.join(problems),
                details={'problems': problems},
            )


class DevelopmentConfig(Config):
    """Development configuration"""
    LOG_LEVEL = config('DCM_LOG_LEVEL', default='DEBUG')


class TestingConfig(Config):
    """Testing configuration: single worker for reproducible search"""
    SOLVER_NUM_WORKERS = 1
    SOLVER_LOG_SEARCH_PROGRESS = False
    SOLVER_TIME_LIMIT_SECONDS = 30.0
    HINT_CURRENT_ASSIGNMENT = False


class ProductionConfig(Config):
    """Production configuration"""
    LOG_LEVEL = config('DCM_LOG_LEVEL', default='WARNING')
    SOLVER_NUM_WORKERS = config('DCM_SOLVER_NUM_WORKERS', default=8, cast=int)


# Configuration mapping
config_mapping = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None, validate: bool = False) -> type:
    """
    Get configuration class based on environment.

    Args:
        config_name: Environment name ('development', 'testing', 'production')
        validate: Whether to validate configuration immediately (default: False)

    Returns:
        Config class for the specified environment

    Raises:
        ConfigurationException: If validation is enabled and a setting is invalid

    Example:
        >>> config = get_config('production', validate=True)
    """
    if config_name is None:
        config_name = config('DCM_ENV', default='development')

    config_class = config_mapping.get(config_name, DevelopmentConfig)

    if validate:
        config_class.validate()

    return config_class
