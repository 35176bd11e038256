"""
Symbolic Jacobian of a model's right-hand sides.
"""

import logging
from typing import Tuple

import numpy as np

from .model import DynamicsModel
from .utils import Timer

logger = logging.getLogger(__name__)

# n x n grid of expressions, row i column j = d(equation_i)/d(state_j)
JacobianMatrix = Tuple[Tuple, ...]


def jacobian_of(backend, equations, states) -> JacobianMatrix:
    """
    Partial derivatives of ``equations`` with respect to ``states``.

    Parameters
    ----------
    backend : SymbolicBackend
        Backend owning the expressions
    equations : sequence of expressions
    states : sequence of symbols

    Returns
    -------
    tuple of tuples
        ``len(equations)`` rows of ``len(states)`` expressions

    Notes
    -----
    The heyoka backend computes the whole grid with one call to
    ``heyoka.diff_tensors``; other backends differentiate entry by entry.
    """
    return backend.jacobian(equations, states)


def jacobian(model: DynamicsModel, simplify: bool = False) -> JacobianMatrix:
    """
    Jacobian of a model's equations with respect to its own states.

    Parameters
    ----------
    model : DynamicsModel
        Model to differentiate
    simplify : bool, optional
        Pass every entry through the backend's simplifier. This can be
        much more expensive than the differentiation itself.
        Default: False

    Returns
    -------
    tuple of tuples
        ``n x n`` grid, entry ``[i][j]`` is d(equation_i)/d(state_j)

    Notes
    -----
    This performs n**2 symbolic differentiations. For an STM-augmented
    model of base dimension n that is (n + n**2)**2 differentiations.

    Examples
    --------
    >>> J = jacobian(build_r2bp())
    >>> len(J), len(J[0])
    (6, 6)
    """
    backend = model.backend
    with Timer(f"Jacobian of {model.name} ({model.dimension}x{model.dimension})"):
        J = jacobian_of(backend, model.equations, model.states)
        if simplify:
            J = tuple(tuple(backend.simplify(e) for e in row) for row in J)
    return J


def jacobian_sparsity(model: DynamicsModel) -> np.ndarray:
    """
    Structural non-zero pattern of the model's Jacobian.

    Parameters
    ----------
    model : DynamicsModel

    Returns
    -------
    np.ndarray
        Boolean array of shape (n, n); True where the entry is not
        structurally zero
    """
    backend = model.backend
    J = jacobian(model)
    return np.array(
        [[not backend.is_zero(entry) for entry in row] for row in J],
        dtype=bool,
    ).reshape(model.dimension, model.dimension)
