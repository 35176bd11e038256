"""
Global Configuration for Astromod Package
=========================================

This module provides package-wide configuration settings that users can modify
to control model defaults, size guards and compiler options.

Examples
--------
View current configuration:

>>> import astromod
>>> print(astromod.config)

Modify settings:

>>> astromod.config.DEFAULT_JACOBIAN_NBP = True  # Precompute NBP Jacobians
>>> astromod.config.MAX_MODEL_STATES = 500       # Refuse larger models

Reset to defaults:

>>> astromod.config.reset()

Temporarily modify settings:

>>> with astromod.temp_config(STRICT_VALIDATION=False):
...     # Size guard violations only warn inside this block
...     model = astromod.build_nbp(3, stm=True, max_states=100)

Notes
-----
These settings affect package-wide behavior. Modifying them will impact
all subsequent operations until changed again or reset. Settings that
influence compilation are part of the compilation cache key, so changing
them never returns an evaluator built under the old values.
"""

from dataclasses import dataclass
from contextlib import contextmanager
from typing import Optional


@dataclass
class AstromodConfig:
    """
    Global configuration for Astromod package.

    Attributes
    ----------
    STRICT_VALIDATION : bool
        If True, size guard violations raise exceptions.
        If False, they issue warnings and the work proceeds.
        Default: True
    DEFAULT_BACKEND : str
        Name of the symbolic backend used when none is passed explicitly.
        Default: 'heyoka'
    DEFAULT_SIMPLIFY : bool
        Value used by the model builders when ``simplify=None``.
        Default: False
    DEFAULT_JACOBIAN_R2BP : bool
        Whether ``r2bp_function`` compiles a Jacobian evaluator when
        ``jac=None``. Default: True
    DEFAULT_JACOBIAN_CR3BP : bool
        Whether ``cr3bp_function`` compiles a Jacobian evaluator when
        ``jac=None``. Default: True
    DEFAULT_JACOBIAN_NBP : bool
        Whether ``nbp_function`` compiles a Jacobian evaluator when
        ``jac=None``. N-body systems grow quickly, so this is off.
        Default: False
    STM_WARNING_STATES : int
        A ResourceWarning is issued when state transition matrix
        augmentation produces more states than this.
        Default: 1000
    MAX_MODEL_STATES : int or None
        Hard budget on the number of states any built model may have.
        None disables the budget.
        Default: None
    COMPILE_OPT_LEVEL : int
        LLVM optimisation level passed to the heyoka compiler (0-3).
        Default: 3
    COMPILE_HIGH_ACCURACY : bool
        Enable heyoka's high-accuracy mode when compiling.
        Default: False
    COMPACT_MODE_OUTPUTS : int
        Compiled functions with more outputs than this are built in
        heyoka's compact mode, which trades runtime speed for much
        shorter compilation.
        Default: 2000
    """

    # Validation behavior
    STRICT_VALIDATION: bool = True

    # Model defaults
    DEFAULT_BACKEND: str = 'heyoka'
    DEFAULT_SIMPLIFY: bool = False
    DEFAULT_JACOBIAN_R2BP: bool = True
    DEFAULT_JACOBIAN_CR3BP: bool = True
    DEFAULT_JACOBIAN_NBP: bool = False

    # Size guards
    STM_WARNING_STATES: int = 1000
    MAX_MODEL_STATES: Optional[int] = None

    # Compiler options
    COMPILE_OPT_LEVEL: int = 3
    COMPILE_HIGH_ACCURACY: bool = False
    COMPACT_MODE_OUTPUTS: int = 2000

    def default_jacobian(self, kind) -> bool:
        """
        Jacobian precompute default for a model kind.

        Parameters
        ----------
        kind : ModelKind or str
            Model kind; anything other than R2BP, CR3BP or NBP gets False.

        Returns
        -------
        bool
        """
        name = getattr(kind, 'value', kind)
        return {
            'R2BP': self.DEFAULT_JACOBIAN_R2BP,
            'CR3BP': self.DEFAULT_JACOBIAN_CR3BP,
            'NBP': self.DEFAULT_JACOBIAN_NBP,
        }.get(name, False)

    def reset(self):
        """
        Reset all configuration values to package defaults.

        Examples
        --------
        >>> import astromod
        >>> astromod.config.STM_WARNING_STATES = 10  # Modify
        >>> astromod.config.reset()  # Back to defaults
        >>> astromod.config.STM_WARNING_STATES
        1000
        """
        defaults = AstromodConfig()
        for key in self.__dataclass_fields__:
            setattr(self, key, getattr(defaults, key))

    def __repr__(self):
        """Return formatted string showing all configuration values."""
        lines = ["AstromodConfig:"]
        lines.append("  Behavior:")
        lines.append(f"    STRICT_VALIDATION = {self.STRICT_VALIDATION}")
        lines.append("  Model Defaults:")
        lines.append(f"    DEFAULT_BACKEND = '{self.DEFAULT_BACKEND}'")
        lines.append(f"    DEFAULT_SIMPLIFY = {self.DEFAULT_SIMPLIFY}")
        lines.append(f"    DEFAULT_JACOBIAN_R2BP = {self.DEFAULT_JACOBIAN_R2BP}")
        lines.append(f"    DEFAULT_JACOBIAN_CR3BP = {self.DEFAULT_JACOBIAN_CR3BP}")
        lines.append(f"    DEFAULT_JACOBIAN_NBP = {self.DEFAULT_JACOBIAN_NBP}")
        lines.append("  Size Guards:")
        lines.append(f"    STM_WARNING_STATES = {self.STM_WARNING_STATES}")
        lines.append(f"    MAX_MODEL_STATES = {self.MAX_MODEL_STATES}")
        lines.append("  Compilation:")
        lines.append(f"    COMPILE_OPT_LEVEL = {self.COMPILE_OPT_LEVEL}")
        lines.append(f"    COMPILE_HIGH_ACCURACY = {self.COMPILE_HIGH_ACCURACY}")
        lines.append(f"    COMPACT_MODE_OUTPUTS = {self.COMPACT_MODE_OUTPUTS}")
        return "\n".join(lines)


# Global configuration instance
config = AstromodConfig()


@contextmanager
def temp_config(**kwargs):
    """
    Context manager for temporarily modifying configuration values.

    Configuration is automatically restored when the context exits,
    even if an exception occurs.

    Parameters
    ----------
    **kwargs
        Configuration attributes to temporarily modify.

    Examples
    --------
    >>> import astromod
    >>> with astromod.temp_config(DEFAULT_SIMPLIFY=True):
    ...     model = astromod.build_r2bp()
    >>> model.simplified
    True
    >>> astromod.config.DEFAULT_SIMPLIFY
    False

    Raises
    ------
    AttributeError
        If an invalid configuration attribute is specified.
    """
    for key in kwargs:
        if key not in config.__dataclass_fields__:
            raise AttributeError(
                f"AstromodConfig has no attribute '{key}'. "
                f"Valid attributes: {list(config.__dataclass_fields__.keys())}"
            )

    old_values = {key: getattr(config, key) for key in kwargs}
    for key, value in kwargs.items():
        setattr(config, key, value)

    try:
        yield config
    finally:
        for key, value in old_values.items():
            setattr(config, key, value)
