"""
Utility functions and classes for the Astromod package.
"""

import logging
from time import perf_counter
import warnings
from typing import Type
from .config import config
from .errors import InvalidConfigurationError

logger = logging.getLogger(__name__)


class Timer:
    """
    Context manager for timing code execution.

    Elapsed time is reported through the package logger rather than
    printed, so it follows whatever logging setup the caller applied.

    Examples
    --------
    >>> from astromod.utils import Timer
    >>> with Timer("CR3BP compilation"):
    ...     f = cr3bp_function()
    CR3BP compilation: 0.123456 s

    >>> with Timer(verbose=False) as t:
    ...     # ... code ...
    >>> print(f"Took {t.elapsed:.6f} seconds")
    """
    def __init__(self, name="Operation", verbose=True, level=logging.DEBUG):
        """
        Parameters
        ----------
        name : str, optional
            Name to report when timing completes (default: "Operation")
        verbose : bool, optional
            Whether to log timing automatically (default: True)
        level : int, optional
            Logging level for the timing message (default: DEBUG)
        """
        self.name = name
        self.verbose = verbose
        self.level = level
        self.elapsed = None

    def __enter__(self):
        self.start = perf_counter()
        return self

    def __exit__(self, *args):
        self.end = perf_counter()
        self.elapsed = self.end - self.start
        if self.verbose:
            logger.log(self.level, "%s: %.6f s", self.name, self.elapsed)


def validation_error(message: str, error_class: Type[Exception] = ValueError):
    """
    Raise error or warn based on config.STRICT_VALIDATION.

    This function provides consistent guard behavior across the package.
    When STRICT_VALIDATION is True (default), raises the specified exception.
    When False, issues a UserWarning instead and the caller carries on.

    Parameters
    ----------
    message : str
        Validation error message
    error_class : Type[Exception], optional
        Exception class to raise if STRICT_VALIDATION is True.
        Default: ValueError

    Raises
    ------
    Exception (of type error_class)
        If config.STRICT_VALIDATION is True

    Warns
    -----
    UserWarning
        If config.STRICT_VALIDATION is False

    Examples
    --------
    >>> from astromod.utils import validation_error
    >>> from astromod.errors import InvalidConfigurationError
    >>> from astromod import config
    >>> config.STRICT_VALIDATION = True
    >>> validation_error("Too many states", InvalidConfigurationError)  # Raises

    >>> config.STRICT_VALIDATION = False
    >>> validation_error("Too many states", InvalidConfigurationError)  # Warns
    """
    if config.STRICT_VALIDATION:
        raise error_class(message)
    else:
        warnings.warn(message, UserWarning, stacklevel=3)


def stm_dimension(n: int) -> int:
    """
    Number of states after appending state transition matrix dynamics.

    Parameters
    ----------
    n : int
        Dimension of the base model

    Returns
    -------
    int
        ``n + n**2``

    Examples
    --------
    >>> stm_dimension(6)
    42
    >>> stm_dimension(12)   # NBP(2)
    156
    """
    return n + n ** 2


def check_state_budget(n_states: int, description: str, max_states=None):
    """
    Apply the state-count guards to a model about to be built.

    Parameters
    ----------
    n_states : int
        Number of states the model would have
    description : str
        Human-readable name of the model, used in messages
    max_states : int, optional
        Caller-imposed budget. Falls back to config.MAX_MODEL_STATES.

    Raises
    ------
    InvalidConfigurationError
        If the budget is exceeded and config.STRICT_VALIDATION is True

    Warns
    -----
    ResourceWarning
        If n_states exceeds config.STM_WARNING_STATES
    """
    budget = max_states if max_states is not None else config.MAX_MODEL_STATES
    if budget is not None and n_states > budget:
        validation_error(
            f"{description} would have {n_states} states, which exceeds "
            f"the budget of {budget} states.",
            InvalidConfigurationError,
        )
    if n_states > config.STM_WARNING_STATES:
        warnings.warn(
            f"{description} has {n_states} states. State transition matrix "
            f"dynamics grow as n + n**2 and differentiation and compilation "
            f"cost grows with them; this may take a very long time.",
            ResourceWarning,
            stacklevel=3,
        )
