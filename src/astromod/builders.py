"""
Model builders for the restricted two-body, circular restricted three-body
and Newtonian N-body problems.

Each builder is a pure function: it creates fresh symbols, assembles the
equations of motion, optionally simplifies them and optionally appends state
transition matrix dynamics. Nothing is cached here; see
``astromod.compiler`` for the memoized entry points.
"""

import logging
import numbers
from typing import Optional

from .backend import get_backend
from .config import config
from .errors import InvalidConfigurationError
from .model import DynamicsModel, ModelKind
from .utils import check_state_budget
from .variational import augment_stm

logger = logging.getLogger(__name__)

_CARTESIAN_NAMES = ("x", "y", "z", "vx", "vy", "vz")


def _finish(backend, kind, states, equations, parameters, *, stm, simplify,
            name, body_count=None, max_states=None):
    """Simplify, wrap in a DynamicsModel and optionally append the STM."""
    if simplify:
        equations = [backend.simplify(eq) for eq in equations]
    if not stm:
        check_state_budget(len(states), name, max_states)

    model = DynamicsModel(
        states=states,
        equations=equations,
        parameters=parameters,
        name=name,
        kind=kind,
        backend=backend,
        body_count=body_count,
        simplified=simplify,
        key=(kind.value, body_count, False, bool(simplify), name, backend.name),
    )
    if stm:
        model = augment_stm(model, name=name, simplify=simplify,
                            max_states=max_states)
    logger.debug("Built %r", model)
    return model


def build_r2bp(
    stm: bool = False,
    simplify: Optional[bool] = None,
    name: str = "R2BP",
    backend=None,
    max_states: Optional[int] = None,
) -> DynamicsModel:
    """
    Restricted Two-body Problem dynamics.

    One massless body moves under the point-mass gravity of a central body
    fixed at the origin.

    The order of the states follows: [x, y, z, vx, vy, vz].

    The order of the parameters follows: [mu].

    Parameters
    ----------
    stm : bool, optional
        Append state transition matrix dynamics (6 + 36 states).
        Default: False
    simplify : bool, optional
        Simplify the equations. Default: ``config.DEFAULT_SIMPLIFY``
    name : str, optional
        Model name. Default: "R2BP"
    backend : SymbolicBackend or str, optional
        Symbolic backend. Default: ``config.DEFAULT_BACKEND``
    max_states : int, optional
        Refuse to build models with more states than this

    Returns
    -------
    DynamicsModel

    Examples
    --------
    >>> model = build_r2bp()
    >>> model.state_names
    ('x', 'y', 'z', 'vx', 'vy', 'vz')
    """
    backend = get_backend(backend)
    simplify = config.DEFAULT_SIMPLIFY if simplify is None else simplify

    x, y, z, vx, vy, vz = backend.symbols(*_CARTESIAN_NAMES)
    mu = backend.symbol("mu")

    # Position magnitude
    r = backend.sqrt(x**2 + y**2 + z**2)

    equations = [
        vx,
        vy,
        vz,
        -mu * x / r**3,
        -mu * y / r**3,
        -mu * z / r**3,
    ]

    return _finish(
        backend, ModelKind.R2BP, (x, y, z, vx, vy, vz), equations, (mu,),
        stm=stm, simplify=simplify, name=name, max_states=max_states,
    )


def build_cr3bp(
    stm: bool = False,
    simplify: Optional[bool] = None,
    name: str = "CR3BP",
    backend=None,
    max_states: Optional[int] = None,
) -> DynamicsModel:
    """
    Circular Restricted Three-body Problem dynamics.

    A massless body moves in the rotating frame of two primaries on circular
    orbits about their barycenter. Units are normalised so the primaries
    are one length unit apart and the frame rotates at unit rate; the
    primaries sit at (-mu, 0, 0) and (1 - mu, 0, 0).

    The order of the states follows: [x, y, z, vx, vy, vz].

    The order of the parameters follows: [mu].

    Parameters
    ----------
    stm : bool, optional
        Append state transition matrix dynamics (6 + 36 states).
        Default: False
    simplify : bool, optional
        Simplify the equations. Default: ``config.DEFAULT_SIMPLIFY``
    name : str, optional
        Model name. Default: "CR3BP"
    backend : SymbolicBackend or str, optional
        Symbolic backend. Default: ``config.DEFAULT_BACKEND``
    max_states : int, optional
        Refuse to build models with more states than this

    Returns
    -------
    DynamicsModel

    Notes
    -----
    The mass ratio mu = m2 / (m1 + m2) is physically in [0, 1]; this is not
    checked, since mu is a symbol until evaluation.
    """
    backend = get_backend(backend)
    simplify = config.DEFAULT_SIMPLIFY if simplify is None else simplify

    x, y, z, vx, vy, vz = backend.symbols(*_CARTESIAN_NAMES)
    mu = backend.symbol("mu")

    # Distances to primaries (in rotating frame)
    r1 = backend.sqrt((x + mu)**2 + y**2 + z**2)
    r2 = backend.sqrt((x - 1.0 + mu)**2 + y**2 + z**2)
    # Pseudo-potential U (includes centrifugal effect)
    U = 0.5 * (x**2 + y**2) + (1.0 - mu) / r1 + mu / r2

    equations = [
        vx,
        vy,
        vz,
        2.0 * vy + backend.diff(U, x),    # 2Ω×v + ∂U/∂x
        -2.0 * vx + backend.diff(U, y),   # -2Ω×v + ∂U/∂y
        backend.diff(U, z),               # ∂U/∂z
    ]

    return _finish(
        backend, ModelKind.CR3BP, (x, y, z, vx, vy, vz), equations, (mu,),
        stm=stm, simplify=simplify, name=name, max_states=max_states,
    )


def build_nbp(
    N: int,
    stm: bool = False,
    simplify: Optional[bool] = None,
    name: str = "NBP",
    backend=None,
    max_states: Optional[int] = None,
) -> DynamicsModel:
    """
    Newtonian N-body Problem dynamics.

    N point masses move under their mutual gravity about a common,
    non-rotating origin.

    The order of the states follows:
    [x1, y1, z1, ..., xN, yN, zN, vx1, vy1, vz1, ..., vxN, vyN, vzN].

    The order of the parameters follows: [G, m1, m2, ..., mN].

    Parameters
    ----------
    N : int
        Number of bodies, at least 1. Any integral type (including numpy
        integers) is accepted.
    stm : bool, optional
        Append state transition matrix dynamics. The model then has
        6N + (6N)**2 states; N = 6 already gives 1332.
        Default: False
    simplify : bool, optional
        Simplify the equations. Default: ``config.DEFAULT_SIMPLIFY``
    name : str, optional
        Model name. Default: "NBP"
    backend : SymbolicBackend or str, optional
        Symbolic backend. Default: ``config.DEFAULT_BACKEND``
    max_states : int, optional
        Refuse to build models with more states than this

    Returns
    -------
    DynamicsModel

    Raises
    ------
    InvalidConfigurationError
        If N is not an integer >= 1

    Notes
    -----
    Coincident bodies make the equations singular; that is not guarded.
    """
    if isinstance(N, bool) or not isinstance(N, numbers.Integral):
        raise InvalidConfigurationError(
            f"Body count must be an integer, got {type(N).__name__}"
        )
    N = int(N)
    if N < 1:
        raise InvalidConfigurationError(
            f"N-body models need at least one body, got N={N}"
        )

    backend = get_backend(backend)
    simplify = config.DEFAULT_SIMPLIFY if simplify is None else simplify

    bodies = range(1, N + 1)
    positions = [backend.symbols(f"x{i}", f"y{i}", f"z{i}") for i in bodies]
    velocities = [backend.symbols(f"vx{i}", f"vy{i}", f"vz{i}") for i in bodies]
    G = backend.symbol("G")
    masses = backend.symbols(*(f"m{i}" for i in bodies))

    # |r_j - r_i|**3 for every unordered pair
    distance_cubed = {}
    for i in range(N):
        for j in range(i + 1, N):
            d = [positions[j][a] - positions[i][a] for a in range(3)]
            distance = backend.sqrt(d[0]**2 + d[1]**2 + d[2]**2)
            distance_cubed[(i, j)] = distance_cubed[(j, i)] = distance**3

    accelerations = []
    for i in range(N):
        for a in range(3):
            terms = [
                G * masses[j] * (positions[j][a] - positions[i][a])
                / distance_cubed[(i, j)]
                for j in range(N) if j != i
            ]
            accelerations.append(backend.total(terms))

    states = tuple(s for triple in positions for s in triple) \
        + tuple(s for triple in velocities for s in triple)
    equations = [s for triple in velocities for s in triple] + accelerations

    return _finish(
        backend, ModelKind.NBP, states, equations, (G,) + tuple(masses),
        stm=stm, simplify=simplify, name=name, body_count=N,
        max_states=max_states,
    )
