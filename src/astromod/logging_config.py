"""
Logging configuration for astromod.

The package itself only attaches a ``NullHandler``; applications that want
to see build and compilation messages call :func:`setup_logging` once,
early on:

    ```python
    from astromod.logging_config import setup_logging
    setup_logging()
    ```
"""

import logging
import logging.config
from pathlib import Path


def setup_logging(default_level=logging.INFO, log_file=None):
    """
    Setup logging configuration for astromod.

    Parameters
    ----------
    default_level : int, optional
        Level for the ``astromod`` logger. Default is logging.INFO.
    log_file : str or Path, optional
        If given, DEBUG and above is also written to this file through a
        rotating file handler. Parent directories are created as needed.

    Returns
    -------
    None
        The function configures the logging system directly.
    """
    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'level': default_level,
            'formatter': 'standard',
            'stream': 'ext://sys.stdout',
        },
    }
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': 'DEBUG',
            'formatter': 'detailed',
            'filename': str(log_path),
            'maxBytes': 10485760,  # 10 MB
            'backupCount': 5,
            'encoding': 'utf8'
        }

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'detailed': {
                'format': '%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
        },
        'handlers': handlers,
        'loggers': {
            'astromod': {
                'handlers': list(handlers),
                'level': 'DEBUG' if log_file is not None else default_level,
                'propagate': False
            },
        }
    }

    logging.config.dictConfig(config)

    logger = logging.getLogger(__name__)
    logger.debug("Logging configuration applied")
