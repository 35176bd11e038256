"""
State transition matrix (variational) dynamics.

Given a base model x' = f(x, p, t) of dimension n, the state transition
matrix Phi obeys Phi' = J(x, p, t) Phi with J = df/dx. Appending the n**2
entries of Phi to the state vector gives a model of dimension n + n**2:

- the first n states and equations are the base model, unchanged
- the remaining n**2 states are Phi flattened row-major, named
  ``phi_<row>_<col>`` with 1-based indices

The growth is quadratic in n, and so is the number of symbolic
derivatives needed to build it. That cost dominates everything else in the
package: NBP(6) with STM dynamics has 36 + 1296 = 1332 states. Use the
``max_states`` guard (or ``config.MAX_MODEL_STATES``) to refuse such
models instead of waiting on them.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from .jacobians import jacobian_of
from .model import DynamicsModel
from .utils import Timer, check_state_budget, stm_dimension

logger = logging.getLogger(__name__)


def _stm_names(n: int, taken) -> list:
    """Row-major STM state names that do not collide with ``taken``."""
    names = []
    taken = set(taken)
    for i in range(n):
        for j in range(n):
            name = f"phi_{i + 1}_{j + 1}"
            while name in taken:
                name = "_" + name
            taken.add(name)
            names.append(name)
    return names


def augment_stm(
    model: DynamicsModel,
    name: Optional[str] = None,
    simplify: bool = False,
    max_states: Optional[int] = None,
) -> DynamicsModel:
    """
    Append state transition matrix dynamics to a model.

    Parameters
    ----------
    model : DynamicsModel
        Base model of dimension n. Augmenting an already augmented model
        is allowed but gives (n + n**2) + (n + n**2)**2 states.
    name : str, optional
        Name of the new model (default: the base model's name)
    simplify : bool, optional
        Simplify the n**2 new equations. The base equations are copied
        as they are. Every new equation goes through ``sympy.simplify``
        (heyoka models via the SymPy bridge), which is impractically slow
        for CR3BP and NBP STM models, most of all on the sympy backend.
        Default: False
    max_states : int, optional
        Refuse to build models with more states than this. Falls back to
        ``config.MAX_MODEL_STATES``.

    Returns
    -------
    DynamicsModel
        Model of dimension n + n**2 with ``stm=True``

    Raises
    ------
    InvalidConfigurationError
        If the state budget is exceeded (and STRICT_VALIDATION is on)

    Warns
    -----
    ResourceWarning
        If the result exceeds ``config.STM_WARNING_STATES`` states
    """
    backend = model.backend
    n = model.dimension
    total = stm_dimension(n)
    name = model.name if name is None else name
    check_state_budget(total, f"{name} with STM dynamics", max_states)

    logger.debug("Appending STM dynamics to %s: %d -> %d states",
                 model.name, n, total)
    with Timer(f"STM augmentation of {model.name}"):
        J = jacobian_of(backend, model.equations, model.states)

        taken = model.state_names + model.parameter_names + (model.time_name,)
        phi_flat = backend.symbols(*_stm_names(n, taken))
        phi = [phi_flat[i * n:(i + 1) * n] for i in range(n)]

        # Phi'[i][j] = sum_k J[i][k] Phi[k][j]; structurally zero J terms dropped
        stm_equations = []
        for i in range(n):
            nonzero = [k for k in range(n) if not backend.is_zero(J[i][k])]
            for j in range(n):
                eq = backend.total([J[i][k] * phi[k][j] for k in nonzero])
                if simplify:
                    eq = backend.simplify(eq)
                stm_equations.append(eq)

    return DynamicsModel(
        states=model.states + phi_flat,
        equations=model.equations + tuple(stm_equations),
        parameters=model.parameters,
        name=name,
        kind=model.kind,
        backend=backend,
        time=model.time,
        body_count=model.body_count,
        stm=True,
        simplified=model.simplified and simplify,
        base_dimension=n,
        key=('stm', model.key, name, bool(simplify)),
    )


def stm_initial_conditions(state) -> np.ndarray:
    """
    Append an identity state transition matrix to a base state.

    Parameters
    ----------
    state : array_like
        Base state of length n

    Returns
    -------
    np.ndarray
        Vector of length n + n**2: ``[state, eye(n).ravel()]``
    """
    state = np.asarray(state, dtype=float).ravel()
    n = state.size
    return np.concatenate([state, np.eye(n).ravel()])


def split_stm(u, n: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split an augmented state vector into the base state and the STM.

    Parameters
    ----------
    u : array_like
        Augmented vector of length n + n**2
    n : int, optional
        Base dimension. Inferred from the length of ``u`` if omitted.

    Returns
    -------
    state : np.ndarray
        Base state, shape (n,)
    phi : np.ndarray
        State transition matrix, shape (n, n)

    Raises
    ------
    ValueError
        If the length of ``u`` is not n + n**2
    """
    u = np.asarray(u, dtype=float).ravel()
    if n is None:
        # positive root of n**2 + n - len(u) = 0
        n = int(round((-1.0 + np.sqrt(1.0 + 4.0 * u.size)) / 2.0))
    if u.size != stm_dimension(n):
        raise ValueError(
            f"Expected a vector of length {stm_dimension(n)} for base "
            f"dimension {n}, got {u.size}"
        )
    return u[:n].copy(), u[n:].reshape(n, n).copy()
