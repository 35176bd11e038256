"""
Compilation of DynamicsModels into numeric evaluators, with memoization.

A compiled evaluator has the call signature ``f(state, parameters, time)``
and returns the time derivative of the state. Compilation (especially with
STM dynamics or a Jacobian) is far more expensive than evaluation, so every
entry point here goes through a :class:`ConfigCache` keyed on the full
configuration that produced the evaluator.

Examples
--------
>>> f = cr3bp_function()
>>> dx = f([0.8, 0.0, 0.0, 0.0, 0.1, 0.0], [0.012], 0.0)
>>> f.jac([0.8, 0.0, 0.0, 0.0, 0.1, 0.0], [0.012], 0.0).shape
(6, 6)
>>> cr3bp_function() is f   # cached
True
"""

import logging
import numbers
import threading
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

import numpy as np

from .backend import get_backend
from .builders import build_cr3bp, build_nbp, build_r2bp
from .config import config
from .errors import CompilationError, InvalidConfigurationError
from .jacobians import jacobian as jacobian_matrix
from .model import DynamicsModel, ModelKind
from .utils import Timer

logger = logging.getLogger(__name__)


class ConfigCache:
    """
    Thread-safe memo table from configuration keys to compiled objects.

    Concurrent requests for the same missing key build it once: the first
    caller builds while the others wait on that key's lock. Requests for
    different keys only share a short registry lock.

    Attributes
    ----------
    hits : int
        Number of lookups answered from the cache
    misses : int
        Number of builds performed (one per key, unless cleared)

    Examples
    --------
    >>> cache = ConfigCache()
    >>> f = r2bp_function(cache=cache)
    >>> g = r2bp_function(cache=cache)
    >>> f is g
    True
    """

    def __init__(self):
        self._entries: Dict[Hashable, Any] = {}
        self._key_locks: Dict[Hashable, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_or_build(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        """
        Return the entry for ``key``, calling ``factory()`` once if missing.

        Exceptions raised by ``factory`` propagate and nothing is stored.
        """
        with self._registry_lock:
            if key in self._entries:
                self.hits += 1
                return self._entries[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._registry_lock:
                if key in self._entries:
                    self.hits += 1
                    return self._entries[key]
            value = factory()
            with self._registry_lock:
                self._entries[key] = value
                self.misses += 1
            return value

    def clear(self):
        """Drop every entry and reset the counters."""
        with self._registry_lock:
            self._entries.clear()
            self._key_locks.clear()
            self.hits = 0
            self.misses = 0

    def __contains__(self, key) -> bool:
        with self._registry_lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)

    def __repr__(self):
        return (f"ConfigCache(entries={len(self)}, hits={self.hits}, "
                f"misses={self.misses})")


# Process-wide cache used when no cache is passed explicitly
default_cache = ConfigCache()


def clear_cache():
    """Clear the process-wide default cache."""
    default_cache.clear()


class JacobianEvaluator:
    """
    Compiled Jacobian of a model: ``J(state, parameters, time) -> (n, n)``.
    """

    def __init__(self, model: DynamicsModel, kernel):
        self._model = model
        self._kernel = kernel

    @property
    def model(self) -> DynamicsModel:
        return self._model

    def __call__(self, state, parameters=None, time: float = 0.0) -> np.ndarray:
        n = self._model.dimension
        values = _pack_inputs(self._model, state, parameters, time)
        out = self._kernel(values)
        return out.reshape((n, n) + out.shape[1:])

    def __repr__(self):
        return f"JacobianEvaluator(model='{self._model.name}', n={self._model.dimension})"


class CompiledEvaluator:
    """
    Compiled right-hand side of a model: ``f(state, parameters, time)``.

    Parameters
    ----------
    model : DynamicsModel
        Model the evaluator was compiled from
    kernel : callable
        Backend kernel over the packed ``[state, parameters, time]`` vector
    jacobian : JacobianEvaluator, optional
        Compiled Jacobian, if requested at compile time

    Notes
    -----
    - Evaluators hold no mutable state and can be shared between threads
    - ``state`` may have shape (n,) or (n, k) for k evaluations that share
      the same parameters and time
    """

    def __init__(self, model: DynamicsModel, kernel,
                 jacobian: Optional[JacobianEvaluator] = None):
        self._model = model
        self._kernel = kernel
        self._jacobian = jacobian

    # ========== EVALUATION ==========
    def __call__(self, state, parameters=None, time: float = 0.0) -> np.ndarray:
        """
        Evaluate the time derivative.

        Parameters
        ----------
        state : array_like
            State vector of length n (or array of shape (n, k))
        parameters : array_like, optional
            Parameter vector in ``model.parameter_names`` order. May be
            omitted only for models without parameters.
        time : float, optional
            Time value. Default: 0.0

        Returns
        -------
        np.ndarray
            Derivative with the same shape as ``state``

        Raises
        ------
        ValueError
            If state or parameter lengths do not match the model
        """
        values = _pack_inputs(self._model, state, parameters, time)
        return self._kernel(values)

    def jac(self, state, parameters=None, time: float = 0.0) -> np.ndarray:
        """
        Evaluate the Jacobian of the right-hand side.

        Raises
        ------
        RuntimeError
            If the evaluator was compiled without a Jacobian
        """
        if self._jacobian is None:
            raise RuntimeError(
                f"Evaluator for '{self._model.name}' was compiled without a "
                f"Jacobian. Request it with jacobian=True."
            )
        return self._jacobian(state, parameters, time)

    # ========== PROPERTY ACCESS ==========
    @property
    def model(self) -> DynamicsModel:
        return self._model

    @property
    def jacobian(self) -> Optional[JacobianEvaluator]:
        """Compiled Jacobian evaluator, or None."""
        return self._jacobian

    @property
    def has_jacobian(self) -> bool:
        return self._jacobian is not None

    @property
    def dimension(self) -> int:
        return self._model.dimension

    @property
    def state_names(self) -> Tuple[str, ...]:
        return self._model.state_names

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return self._model.parameter_names

    def __repr__(self):
        return (f"CompiledEvaluator(model='{self._model.name}', "
                f"n={self._model.dimension}, jacobian={self.has_jacobian})")


def _pack_inputs(model: DynamicsModel, state, parameters, time) -> np.ndarray:
    """Validate and stack ``[state, parameters, time]`` for a kernel."""
    n = model.dimension
    n_params = len(model.parameters)

    state = np.asarray(state, dtype=float)
    if state.ndim not in (1, 2) or state.shape[0] != n:
        raise ValueError(
            f"Model '{model.name}' expects a state of length {n}, "
            f"got shape {state.shape}"
        )
    if not np.all(np.isfinite(state)):
        raise ValueError(f"State contains NaN or Inf values: {state}")

    if parameters is None:
        params = np.empty(0)
    else:
        params = np.atleast_1d(np.asarray(parameters, dtype=float)).ravel()
    if params.size != n_params:
        raise ValueError(
            f"Expected {n_params} parameters {list(model.parameter_names)}, "
            f"got {params.size}"
        )

    t = float(time)
    if state.ndim == 1:
        return np.concatenate([state, params, [t]])
    k = state.shape[1]
    return np.vstack([
        state,
        np.repeat(params[:, None], k, axis=1),
        np.full((1, k), t),
    ])


def _compiler_options(options: Dict[str, Any]) -> Tuple:
    """Resolve compiler options against config into a hashable key part."""
    unknown = set(options) - {'opt_level', 'high_accuracy', 'compact_mode'}
    if unknown:
        raise TypeError(f"Unknown compiler options: {sorted(unknown)}")
    opt_level = options.get('opt_level')
    high_accuracy = options.get('high_accuracy')
    return (
        ('compact_mode', options.get('compact_mode')),
        ('high_accuracy',
         config.COMPILE_HIGH_ACCURACY if high_accuracy is None else high_accuracy),
        ('opt_level',
         config.COMPILE_OPT_LEVEL if opt_level is None else opt_level),
        ('compact_mode_outputs', config.COMPACT_MODE_OUTPUTS),
    )


def _lower(model: DynamicsModel, outputs, options: Tuple, what: str):
    """Lower expressions of ``model`` into a kernel, wrapping failures."""
    backend = model.backend
    inputs = list(model.states) + list(model.parameters) + [model.time]
    kwargs = {k: v for k, v in options if k != 'compact_mode_outputs'}
    logger.info("Compiling %s %s (%d outputs)...", model.name, what,
                len(outputs))
    try:
        with Timer(f"{model.name} {what} compilation", level=logging.INFO):
            return backend.lambdify(outputs, inputs, **kwargs)
    except Exception as exc:
        raise CompilationError(
            f"Could not compile {what} of model '{model.name}' with the "
            f"{backend.name} backend: {exc}"
        ) from exc


def compile_model(
    model: DynamicsModel,
    jacobian: bool = False,
    cache: Optional[ConfigCache] = None,
    **options,
) -> CompiledEvaluator:
    """
    Compile a model into a numeric evaluator, memoized by configuration.

    Parameters
    ----------
    model : DynamicsModel
        Model to compile
    jacobian : bool, optional
        Also compile the Jacobian evaluator, available as ``f.jac``.
        Default: False
    cache : ConfigCache, optional
        Cache to use. Default: the process-wide ``default_cache``
    **options
        Compiler options: ``opt_level``, ``high_accuracy``,
        ``compact_mode`` (heyoka backend only). Unset options come from
        config.

    Returns
    -------
    CompiledEvaluator

    Raises
    ------
    CompilationError
        If the backend cannot lower the expressions

    Notes
    -----
    The right-hand side kernel and the Jacobian kernel are cached under
    separate keys, so asking for the Jacobian later does not recompile the
    right-hand side.
    """
    cache = default_cache if cache is None else cache
    opts = _compiler_options(options)
    jacobian = bool(jacobian)

    def build_rhs():
        return _lower(model, list(model.equations), opts, "right-hand side")

    def build_jacobian():
        J = jacobian_matrix(model)
        kernel = _lower(model, [e for row in J for e in row], opts, "Jacobian")
        return JacobianEvaluator(model, kernel)

    def build_evaluator():
        kernel = cache.get_or_build((model.key, 'rhs', opts), build_rhs)
        jac = None
        if jacobian:
            jac = cache.get_or_build((model.key, 'jacobian', opts),
                                     build_jacobian)
        return CompiledEvaluator(model, kernel, jac)

    return cache.get_or_build((model.key, 'evaluator', jacobian, opts),
                              build_evaluator)


# ========== CACHED MODEL FUNCTIONS ==========
def _model_function(kind: ModelKind, builder, size, stm, simplify, name, jac,
                    backend, cache, max_states, options):
    cache = default_cache if cache is None else cache
    backend = get_backend(backend)
    simplify = config.DEFAULT_SIMPLIFY if simplify is None else bool(simplify)
    jac = config.default_jacobian(kind) if jac is None else bool(jac)
    opts = _compiler_options(options)
    key = (kind.value, size, bool(stm), simplify, name, jac, backend.name, opts)

    def build():
        logger.debug("Cache miss for %s", key)
        args = () if size is None else (size,)
        model = builder(*args, stm=stm, simplify=simplify, name=name,
                        backend=backend, max_states=max_states)
        return compile_model(model, jacobian=jac, cache=cache, **options)

    return cache.get_or_build(key, build)


def r2bp_function(
    stm: bool = False,
    simplify: Optional[bool] = None,
    name: str = "R2BP",
    jac: Optional[bool] = None,
    backend=None,
    cache: Optional[ConfigCache] = None,
    max_states: Optional[int] = None,
    **options,
) -> CompiledEvaluator:
    """
    Compiled R2BP dynamics. Results are cached by configuration.

    The order of the states follows: [x, y, z, vx, vy, vz].

    The order of the parameters follows: [mu].

    Parameters
    ----------
    stm, simplify, name, backend, max_states
        Passed to :func:`build_r2bp`
    jac : bool, optional
        Compile the Jacobian too. Default: ``config.DEFAULT_JACOBIAN_R2BP``
    cache : ConfigCache, optional
        Cache to use. Default: the process-wide ``default_cache``
    **options
        Compiler options passed to :func:`compile_model`

    Notes
    -----
    ``max_states`` is checked only when the configuration is first built.
    It is not part of the cache key, so a configuration that is already
    cached is returned whatever ``max_states`` a later call passes.

    Examples
    --------
    >>> f = r2bp_function()
    >>> dx = f([1.0, 0.0, 0.0, 0.0, 1.0, 0.0], [1.0], 0.0)
    >>> dx[3:]   # acceleration toward the origin
    array([-1.,  0.,  0.])
    """
    return _model_function(ModelKind.R2BP, build_r2bp, None, stm, simplify,
                           name, jac, backend, cache, max_states, options)


def cr3bp_function(
    stm: bool = False,
    simplify: Optional[bool] = None,
    name: str = "CR3BP",
    jac: Optional[bool] = None,
    backend=None,
    cache: Optional[ConfigCache] = None,
    max_states: Optional[int] = None,
    **options,
) -> CompiledEvaluator:
    """
    Compiled CR3BP dynamics. Results are cached by configuration.

    The order of the states follows: [x, y, z, vx, vy, vz].

    The order of the parameters follows: [mu].

    Parameters
    ----------
    stm, simplify, name, backend, max_states
        Passed to :func:`build_cr3bp`
    jac : bool, optional
        Compile the Jacobian too. Default: ``config.DEFAULT_JACOBIAN_CR3BP``
    cache : ConfigCache, optional
        Cache to use. Default: the process-wide ``default_cache``
    **options
        Compiler options passed to :func:`compile_model`

    Notes
    -----
    ``max_states`` is checked only when the configuration is first built.
    It is not part of the cache key, so a configuration that is already
    cached is returned whatever ``max_states`` a later call passes.
    """
    return _model_function(ModelKind.CR3BP, build_cr3bp, None, stm, simplify,
                           name, jac, backend, cache, max_states, options)


def nbp_function(
    N: int,
    stm: bool = False,
    simplify: Optional[bool] = None,
    name: str = "NBP",
    jac: Optional[bool] = None,
    backend=None,
    cache: Optional[ConfigCache] = None,
    max_states: Optional[int] = None,
    **options,
) -> CompiledEvaluator:
    """
    Compiled NBP dynamics. Results are cached by configuration.

    The order of the states follows:
    [x1, y1, z1, ..., xN, yN, zN, vx1, vy1, vz1, ..., vxN, vyN, vzN].

    The order of the parameters follows: [G, m1, m2, ..., mN].

    Parameters
    ----------
    N : int
        Number of bodies
    stm, simplify, name, backend, max_states
        Passed to :func:`build_nbp`
    jac : bool, optional
        Compile the Jacobian too. Default: ``config.DEFAULT_JACOBIAN_NBP``,
        which is False because the Jacobian of an N-body model has
        (6N)**2 entries (and far more with STM dynamics).
    cache : ConfigCache, optional
        Cache to use. Default: the process-wide ``default_cache``
    **options
        Compiler options passed to :func:`compile_model`

    Raises
    ------
    InvalidConfigurationError
        If N is not an integer >= 1

    Notes
    -----
    ``max_states`` is checked only when the configuration is first built.
    It is not part of the cache key, so a configuration that is already
    cached is returned whatever ``max_states`` a later call passes.
    """
    if (isinstance(N, bool) or not isinstance(N, numbers.Integral)
            or N < 1):
        raise InvalidConfigurationError(
            f"N-body models need an integer body count >= 1, got {N!r}"
        )
    N = int(N)
    return _model_function(ModelKind.NBP, build_nbp, N, stm, simplify,
                           name, jac, backend, cache, max_states, options)
