"""
DynamicsModel class definition.

A DynamicsModel is an immutable, ordered set of first-order differential
equations: one right-hand side per state, plus the parameters and the time
symbol those right-hand sides may reference.
"""

import logging
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from .backend import SymbolicBackend, get_backend
from .errors import (
    DimensionMismatchError,
    InvalidConfigurationError,
    UndefinedSymbolError,
)

logger = logging.getLogger(__name__)


# define an enumerated list of model kinds
class ModelKind(Enum):
    R2BP = 'R2BP'
    CR3BP = 'CR3BP'
    NBP = 'NBP'
    CUSTOM = 'custom'


class DynamicsModel:
    """
    Immutable symbolic definition of a dynamical system.

    Parameters
    ----------
    states : sequence of symbols
        State symbols, in vector order
    equations : sequence of expressions
        Time derivative of each state, aligned by index with ``states``
    parameters : sequence of symbols, optional
        Parameter symbols, in vector order
    name : str, optional
        Display name of the model
    kind : ModelKind or str, optional
        Which family the model belongs to (default: custom)
    backend : SymbolicBackend or str, optional
        Backend that created the expressions (default: configured default)
    time : symbol, optional
        Independent variable. Created as ``t`` if not given.
    body_count : int, optional
        Number of bodies for N-body models
    stm : bool, optional
        Whether the model includes state transition matrix dynamics
    simplified : bool, optional
        Whether the equations were passed through simplification
    base_dimension : int, optional
        Dimension before STM augmentation (defaults to the dimension)
    key : hashable, optional
        Cache key identifying the configuration that produced the model.
        Derived from the model's structure if not given.

    Raises
    ------
    DimensionMismatchError
        If the number of states and equations differ
    InvalidConfigurationError
        If state, parameter and time names are not pairwise distinct
    UndefinedSymbolError
        If an equation references an undeclared symbol

    Notes
    -----
    - DynamicsModel is immutable; every transformation returns a new model
    - Models are usually produced by the builders in ``astromod.builders``
      or by ``astromod.variational.augment_stm``
    """

    # ========== CONSTRUCTION ==========
    def __init__(
        self,
        states: Sequence,
        equations: Sequence,
        parameters: Sequence = (),
        name: str = "model",
        kind=ModelKind.CUSTOM,
        backend=None,
        time=None,
        body_count: Optional[int] = None,
        stm: bool = False,
        simplified: bool = False,
        base_dimension: Optional[int] = None,
        key=None,
    ):
        self._backend = get_backend(backend)
        self._states = tuple(states)
        self._equations = tuple(equations)
        self._parameters = tuple(parameters)
        self._time = time if time is not None else self._backend.symbol("t")
        self._name = str(name)
        self._kind = self._parse_kind(kind)
        self._body_count = body_count
        self._stm = bool(stm)
        self._simplified = bool(simplified)
        self._base_dimension = (
            base_dimension if base_dimension is not None else len(self._states)
        )
        self._key = key

        self._state_names = tuple(
            self._backend.symbol_name(s) for s in self._states
        )
        self._parameter_names = tuple(
            self._backend.symbol_name(p) for p in self._parameters
        )
        self._time_name = self._backend.symbol_name(self._time)

        self._validate()

    # ========== VALIDATION ==========
    def _validate(self):
        """Check the structural invariants of the model."""
        if len(self._states) != len(self._equations):
            raise DimensionMismatchError(
                f"Model '{self._name}' has {len(self._states)} states but "
                f"{len(self._equations)} equations."
            )

        names = self._state_names + self._parameter_names + (self._time_name,)
        if len(names) != len(set(names)):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise InvalidConfigurationError(
                f"Model '{self._name}' declares duplicate symbol names: "
                f"{duplicates}"
            )

        declared = set(names)
        for state_name, eq in zip(self._state_names, self._equations):
            undefined = self._backend.free_symbols(eq) - declared
            if undefined:
                raise UndefinedSymbolError(
                    f"Equation for '{state_name}' in model '{self._name}' "
                    f"references undeclared symbols: {sorted(undefined)}"
                )

    # ========== PROPERTY ACCESS ==========
    @property
    def name(self) -> str:
        """Display name of the model."""
        return self._name

    @property
    def kind(self) -> ModelKind:
        """Model family."""
        return self._kind

    @property
    def backend(self) -> SymbolicBackend:
        """Backend that owns the model's expressions."""
        return self._backend

    @property
    def states(self) -> Tuple:
        """State symbols, in vector order."""
        return self._states

    @property
    def state_names(self) -> Tuple[str, ...]:
        return self._state_names

    @property
    def parameters(self) -> Tuple:
        """Parameter symbols, in vector order."""
        return self._parameters

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return self._parameter_names

    @property
    def equations(self) -> Tuple:
        """Right-hand sides, aligned with ``states``."""
        return self._equations

    @property
    def time(self):
        """Independent variable symbol."""
        return self._time

    @property
    def time_name(self) -> str:
        return self._time_name

    @property
    def dimension(self) -> int:
        """Number of states."""
        return len(self._states)

    @property
    def base_dimension(self) -> int:
        """Number of states before STM augmentation."""
        return self._base_dimension

    @property
    def body_count(self) -> Optional[int]:
        """Number of bodies (N-body models only)."""
        return self._body_count

    @property
    def stm(self) -> bool:
        """Whether state transition matrix dynamics are included."""
        return self._stm

    @property
    def simplified(self) -> bool:
        """Whether the equations were simplified."""
        return self._simplified

    @property
    def key(self):
        """Hashable key identifying this model for compilation caching."""
        if self._key is None:
            self._key = (
                'custom',
                self._state_names,
                self._parameter_names,
                self._time_name,
                tuple(self._backend.to_string(eq) for eq in self._equations),
                self._backend.name,
            )
        return self._key

    # ========== DISPLAY ==========
    def equation_pairs(self) -> List[Tuple[Any, Any]]:
        """List of (state, right-hand side) tuples."""
        return list(zip(self._states, self._equations))

    def equation_strings(self) -> List[str]:
        """Plain-text equations, one ``d(x)/dt = ...`` line per state."""
        return [
            f"d({name})/d{self._time_name} = {self._backend.to_string(eq)}"
            for name, eq in zip(self._state_names, self._equations)
        ]

    def to_latex(self) -> str:
        """
        Render the equations of motion as a LaTeX ``align*`` block.

        Returns
        -------
        str
        """
        time = self._backend.to_latex(self._time)
        rows = [
            rf"\frac{{d {self._backend.to_latex(s)}}}{{d {time}}} &= "
            f"{self._backend.to_latex(eq)}"
            for s, eq in zip(self._states, self._equations)
        ]
        return "\\begin{align*}\n" + " \\\\\n".join(rows) + "\n\\end{align*}"

    def summary(self):
        """Print detailed summary of the model."""
        print(f"Model: {self._name} ({self._kind.value})")
        if self._body_count is not None:
            print(f"Bodies: {self._body_count}")
        print(f"States ({self.dimension}): {', '.join(self._state_names[:12])}"
              + (" ..." if self.dimension > 12 else ""))
        print(f"Parameters ({len(self._parameters)}): "
              f"{', '.join(self._parameter_names)}")
        print(f"STM dynamics: {self._stm} "
              f"(base dimension {self._base_dimension})")
        print(f"Simplified: {self._simplified}")
        print(f"Backend: {self._backend.name}")

    # ========== SPECIAL METHODS ==========
    def __len__(self):
        return self.dimension

    def __str__(self):
        return "\n".join(self.equation_strings())

    def __repr__(self):
        parts = [f"DynamicsModel(name='{self._name}'",
                 f"kind='{self._kind.value}'"]
        if self._body_count is not None:
            parts.append(f"N={self._body_count}")
        parts.append(f"states={self.dimension}")
        parts.append(f"parameters={len(self._parameters)}")
        if self._stm:
            parts.append("stm=True")
        return ", ".join(parts) + ")"

    # ========== STATIC METHODS ==========
    @staticmethod
    def _parse_kind(kind):
        """Convert string or enum to ModelKind enum"""
        if isinstance(kind, ModelKind):
            return kind
        elif isinstance(kind, str):
            kind_map = {
                'R2BP': ModelKind.R2BP,
                '2body': ModelKind.R2BP,
                '2BODY': ModelKind.R2BP,
                'CR3BP': ModelKind.CR3BP,
                '3body': ModelKind.CR3BP,
                '3BODY': ModelKind.CR3BP,
                'NBP': ModelKind.NBP,
                'Nbody': ModelKind.NBP,
                'NBODY': ModelKind.NBP,
                'custom': ModelKind.CUSTOM,
            }
            if kind in kind_map:
                return kind_map[kind]
            else:
                raise ValueError(f"Unknown model kind '{kind}'. "
                                 f"Use: {list(kind_map.keys())}")
        else:
            raise TypeError(f"kind must be ModelKind or str, got {type(kind)}")
