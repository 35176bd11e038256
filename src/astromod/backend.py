"""
Symbolic backends.

Every piece of astromod that touches expressions goes through a
:class:`SymbolicBackend`. The backend owns symbol creation, arithmetic
helpers, differentiation, simplification, substitution and the lowering of
expression lists into numeric callables.

Two backends ship with the package:

- ``heyoka`` (default): heyoka expressions, LLVM compilation via
  ``heyoka.cfunc``, simplification through heyoka's SymPy bridge
- ``sympy``: SymPy expressions, compilation via ``sympy.lambdify``
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

import numpy as np
import heyoka as hy
import sympy

from .config import config

logger = logging.getLogger(__name__)

# A compiled kernel maps a (n_inputs,) or (n_inputs, k) float array to a
# (n_outputs,) or (n_outputs, k) float array.
Kernel = Callable[[np.ndarray], np.ndarray]


class SymbolicBackend(ABC):
    """
    Abstract interface to a computer-algebra engine.

    Expressions are opaque to the rest of the package; they are only created,
    combined and inspected through the methods below.
    """

    name: str = "abstract"

    # ========== CONSTRUCTION ==========
    @abstractmethod
    def symbol(self, name: str) -> Any:
        """Create a named scalar symbol."""

    @abstractmethod
    def constant(self, value: float) -> Any:
        """Create a numeric constant expression."""

    def symbols(self, *names: str) -> tuple:
        """Create several symbols at once, in order."""
        return tuple(self.symbol(name) for name in names)

    @abstractmethod
    def sqrt(self, expr) -> Any:
        """Square root of an expression."""

    def total(self, terms: Sequence) -> Any:
        """Sum of a sequence of expressions (zero when empty)."""
        terms = list(terms)
        if not terms:
            return self.constant(0.0)
        result = terms[0]
        for term in terms[1:]:
            result = result + term
        return result

    # ========== TRANSFORMATION ==========
    @abstractmethod
    def diff(self, expr, symbol) -> Any:
        """Partial derivative of ``expr`` with respect to ``symbol``."""

    @abstractmethod
    def simplify(self, expr) -> Any:
        """Return an equivalent, typically smaller, expression."""

    @abstractmethod
    def substitute(self, expr, mapping: Dict[str, Any]) -> Any:
        """Replace symbols (keyed by name) with expressions."""

    # ========== INSPECTION ==========
    @abstractmethod
    def free_symbols(self, expr) -> Set[str]:
        """Names of all symbols appearing in ``expr``."""

    @abstractmethod
    def symbol_name(self, symbol) -> str:
        """Name of a symbol created by :meth:`symbol`."""

    @abstractmethod
    def is_zero(self, expr) -> bool:
        """True if ``expr`` is structurally the constant zero."""

    def equal(self, lhs, rhs) -> bool:
        """Structural equality of two expressions."""
        return bool(lhs == rhs)

    def to_string(self, expr) -> str:
        """Plain-text form of an expression."""
        return str(expr)

    @abstractmethod
    def to_latex(self, expr) -> str:
        """LaTeX form of an expression."""

    @abstractmethod
    def to_sympy(self, expr) -> sympy.Expr:
        """Equivalent SymPy expression, for printing and code generation."""

    def jacobian(self, equations: Sequence, states: Sequence) -> tuple:
        """
        First partial derivatives of ``equations`` by ``states``.

        Returns a tuple of ``len(equations)`` rows of ``len(states)``
        expressions. Backends with a batched differentiator override this.
        """
        return tuple(
            tuple(self.diff(eq, s) for s in states)
            for eq in equations
        )

    # ========== LOWERING ==========
    @abstractmethod
    def lambdify(self, outputs: Sequence, inputs: Sequence, **options) -> Kernel:
        """
        Lower ``outputs`` into a numeric kernel over ``inputs``.

        Parameters
        ----------
        outputs : sequence of expressions
            Values computed by the kernel, in order
        inputs : sequence of symbols
            Symbols bound, in order, to the rows of the input array
        **options
            Backend-specific compiler options

        Returns
        -------
        Kernel
            Callable taking a float array of shape (len(inputs),) or
            (len(inputs), k) and returning shape (len(outputs),) or
            (len(outputs), k)
        """

    def __repr__(self):
        return f"{type(self).__name__}(name='{self.name}')"


class HeyokaBackend(SymbolicBackend):
    """
    Backend built on heyoka expressions and its LLVM just-in-time compiler.

    heyoka expressions form a closed set of node kinds (number, variable,
    parameter, function), which keeps differentiation and compilation
    exhaustive. Parameters of a model are represented as ordinary variables
    and passed as extra inputs at call time, so the compiled kernel never
    depends on ``heyoka.par``.
    """

    name = "heyoka"

    def symbol(self, name: str):
        return hy.expression(name)

    def constant(self, value: float):
        return hy.expression(float(value))

    def sqrt(self, expr):
        return hy.sqrt(expr)

    def total(self, terms: Sequence):
        terms = list(terms)
        if not terms:
            return self.constant(0.0)
        if len(terms) == 1:
            return terms[0]
        return hy.sum(terms)

    def diff(self, expr, symbol):
        return hy.diff(expr, symbol)

    def simplify(self, expr):
        # heyoka has no general simplifier of its own
        return hy.from_sympy(sympy.simplify(hy.to_sympy(expr)))

    def substitute(self, expr, mapping: Dict[str, Any]):
        return hy.subs(expr, dict(mapping))

    def free_symbols(self, expr) -> Set[str]:
        return set(hy.get_variables(expr))

    def symbol_name(self, symbol) -> str:
        return str(symbol)

    def is_zero(self, expr) -> bool:
        return bool(expr == hy.expression(0.0))

    def to_latex(self, expr) -> str:
        return sympy.latex(hy.to_sympy(expr))

    def to_sympy(self, expr):
        return hy.to_sympy(expr)

    def jacobian(self, equations: Sequence, states: Sequence) -> tuple:
        equations = list(equations)
        states = list(states)
        if not equations or not states:
            return super().jacobian(equations, states)
        # whole first-order tensor in one pass, shared subexpressions
        # differentiated once
        dt = hy.diff_tensors(equations, diff_args=states, diff_order=1)
        return tuple(tuple(row) for row in dt.jacobian)

    def lambdify(self, outputs: Sequence, inputs: Sequence,
                 opt_level: Optional[int] = None,
                 high_accuracy: Optional[bool] = None,
                 compact_mode: Optional[bool] = None) -> Kernel:
        outputs = list(outputs)
        if opt_level is None:
            opt_level = config.COMPILE_OPT_LEVEL
        if high_accuracy is None:
            high_accuracy = config.COMPILE_HIGH_ACCURACY
        if compact_mode is None:
            compact_mode = len(outputs) > config.COMPACT_MODE_OUTPUTS

        logger.debug(
            "heyoka cfunc: %d outputs, %d inputs, opt_level=%d, "
            "compact_mode=%s", len(outputs), len(inputs), opt_level,
            compact_mode
        )
        cf = hy.cfunc(
            outputs,
            vars=list(inputs),
            opt_level=opt_level,
            high_accuracy=high_accuracy,
            compact_mode=compact_mode,
        )

        def kernel(values: np.ndarray) -> np.ndarray:
            return cf(np.ascontiguousarray(values, dtype=float))

        return kernel


class SympyBackend(SymbolicBackend):
    """
    Backend built on SymPy, compiled through ``sympy.lambdify``.

    Slower to evaluate than heyoka but has no JIT dependency, and its
    expressions can be handed directly to any SymPy tooling.
    """

    name = "sympy"

    def symbol(self, name: str):
        return sympy.Symbol(name)

    def constant(self, value: float):
        return sympy.Float(value)

    def sqrt(self, expr):
        return sympy.sqrt(expr)

    def diff(self, expr, symbol):
        return sympy.diff(expr, symbol)

    def simplify(self, expr):
        return sympy.simplify(expr)

    def substitute(self, expr, mapping: Dict[str, Any]):
        return sympy.sympify(expr).xreplace(
            {sympy.Symbol(name): value for name, value in mapping.items()}
        )

    def free_symbols(self, expr) -> Set[str]:
        return {s.name for s in sympy.sympify(expr).free_symbols}

    def symbol_name(self, symbol) -> str:
        return symbol.name

    def is_zero(self, expr) -> bool:
        expr = sympy.sympify(expr)
        return bool(expr.is_number and expr.is_zero)

    def to_latex(self, expr) -> str:
        return sympy.latex(expr)

    def to_sympy(self, expr):
        return sympy.sympify(expr)

    def lambdify(self, outputs: Sequence, inputs: Sequence, **options) -> Kernel:
        outputs = list(outputs)
        n_outputs = len(outputs)
        fn = sympy.lambdify(list(inputs), outputs, modules="numpy")

        def kernel(values: np.ndarray) -> np.ndarray:
            values = np.asarray(values, dtype=float)
            results = fn(*values)
            out = np.empty((n_outputs,) + values.shape[1:], dtype=float)
            # constant outputs come back as scalars and broadcast here
            for i, result in enumerate(results):
                out[i] = result
            return out

        return kernel


# ========== REGISTRY ==========
_BACKEND_TYPES = {
    HeyokaBackend.name: HeyokaBackend,
    SympyBackend.name: SympyBackend,
}
_instances: Dict[str, SymbolicBackend] = {}
_instances_lock = threading.Lock()


def list_backends() -> List[str]:
    """Names of the available backends."""
    return sorted(_BACKEND_TYPES)


def get_backend(backend=None) -> SymbolicBackend:
    """
    Resolve a backend from an instance, a name, or the configured default.

    Parameters
    ----------
    backend : SymbolicBackend or str, optional
        Instance (returned unchanged) or registered name. If None,
        ``config.DEFAULT_BACKEND`` is used.

    Returns
    -------
    SymbolicBackend
        One shared instance per backend name

    Raises
    ------
    ValueError
        If the name is not registered
    TypeError
        If ``backend`` is neither a string nor a SymbolicBackend
    """
    if isinstance(backend, SymbolicBackend):
        return backend
    if backend is None:
        backend = config.DEFAULT_BACKEND
    if not isinstance(backend, str):
        raise TypeError(
            f"backend must be SymbolicBackend or str, got {type(backend)}"
        )
    if backend not in _BACKEND_TYPES:
        raise ValueError(
            f"Unknown backend '{backend}'. Use: {list_backends()}"
        )
    with _instances_lock:
        if backend not in _instances:
            _instances[backend] = _BACKEND_TYPES[backend]()
        return _instances[backend]


def register_backend(backend_type) -> None:
    """
    Make a SymbolicBackend subclass available by its ``name``.

    Parameters
    ----------
    backend_type : type
        Concrete subclass of SymbolicBackend
    """
    if not (isinstance(backend_type, type)
            and issubclass(backend_type, SymbolicBackend)):
        raise TypeError(
            f"Expected a SymbolicBackend subclass, got {backend_type!r}"
        )
    with _instances_lock:
        _BACKEND_TYPES[backend_type.name] = backend_type
        _instances.pop(backend_type.name, None)


def set_default_backend(name: str) -> None:
    """Change ``config.DEFAULT_BACKEND`` after checking the name exists."""
    if name not in _BACKEND_TYPES:
        raise ValueError(f"Unknown backend '{name}'. Use: {list_backends()}")
    config.DEFAULT_BACKEND = name
