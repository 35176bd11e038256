"""
Source code generation for the dynamics of a model.

The right-hand side (and optionally the Jacobian) is converted to SymPy,
reduced by common subexpression elimination, and printed as a C function
or an Octave/MATLAB function file. The generated functions take the same
inputs as a compiled evaluator: the state vector, the parameter vector and
the time.

Examples
--------
>>> print(generate_code(build_r2bp(), target="c"))
>>> generate_code(build_cr3bp(), target="octave", path="cr3bp_rhs.m")
"""

import logging
import pathlib
import re
from typing import List, Optional, Sequence

import sympy

from .jacobians import jacobian
from .model import DynamicsModel

logger = logging.getLogger(__name__)

_TARGETS = {
    'c': 'c',
    'C': 'c',
    'octave': 'octave',
    'matlab': 'octave',
    'MATLAB': 'octave',
}


def _function_name(model: DynamicsModel) -> str:
    """Identifier derived from the model name."""
    name = re.sub(r'\W', '_', model.name).lower()
    if not name or name[0].isdigit() or name[0] == '_':
        name = "model_" + name
    return name


def _cse_prefix(model: DynamicsModel) -> str:
    """Prefix for temporaries that no declared symbol starts with."""
    declared = model.state_names + model.parameter_names + (model.time_name,)
    prefix = "cse"
    while any(name.startswith(prefix) for name in declared):
        prefix += "_"
    return prefix


def _reduce(model: DynamicsModel, outputs: Sequence):
    """Convert outputs to SymPy and eliminate common subexpressions."""
    backend = model.backend
    exprs = [backend.to_sympy(e) for e in outputs]
    return sympy.cse(exprs, symbols=sympy.numbered_symbols(_cse_prefix(model)))


def _c_function(model: DynamicsModel, name: str, outputs: Sequence,
                out_name: str) -> List[str]:
    replacements, reduced = _reduce(model, outputs)
    lines = [
        f"void {name}(const double *state, const double *params, "
        f"double {model.time_name}, double *{out_name})",
        "{",
    ]
    for i, s in enumerate(model.state_names):
        lines.append(f"    const double {s} = state[{i}];")
    for i, p in enumerate(model.parameter_names):
        lines.append(f"    const double {p} = params[{i}];")
    lines.append(f"    (void){model.time_name};")
    for symbol, expr in replacements:
        lines.append(f"    const double {symbol} = {sympy.ccode(expr)};")
    for i, expr in enumerate(reduced):
        lines.append("    " + sympy.ccode(expr, assign_to=f"{out_name}[{i}]"))
    lines.append("}")
    return lines


def _octave_function(model: DynamicsModel, name: str, outputs: Sequence,
                     out_name: str, shape) -> List[str]:
    replacements, reduced = _reduce(model, outputs)
    lines = [
        f"function {out_name} = {name}(state, params, {model.time_name})",
    ]
    for i, s in enumerate(model.state_names):
        lines.append(f"  {s} = state({i + 1});")
    for i, p in enumerate(model.parameter_names):
        lines.append(f"  {p} = params({i + 1});")
    for symbol, expr in replacements:
        lines.append(f"  {symbol} = {sympy.octave_code(expr)};")
    lines.append(f"  {out_name} = zeros({shape[0]}, {shape[1]});")
    for k, expr in enumerate(reduced):
        i, j = divmod(k, shape[1])
        target = (f"{out_name}({i + 1})" if shape[1] == 1
                  else f"{out_name}({i + 1}, {j + 1})")
        lines.append("  " + sympy.octave_code(expr, assign_to=target))
    lines.append("end")
    return lines


def generate_code(
    model: DynamicsModel,
    target: str = "c",
    function_name: Optional[str] = None,
    jacobian_function: bool = False,
    path=None,
) -> str:
    """
    Generate source code implementing a model's dynamics.

    Parameters
    ----------
    model : DynamicsModel
        Model to translate (any backend)
    target : str, optional
        ``"c"`` or ``"octave"`` (``"matlab"`` is accepted as an alias).
        Default: "c"
    function_name : str, optional
        Name of the right-hand side function. Default: the model name,
        lower-cased, with ``_rhs`` appended
    jacobian_function : bool, optional
        Also emit ``<function_name>_jac`` computing the Jacobian. In C it
        fills a row-major n*n array; in Octave it returns an n x n matrix.
        Default: False
    path : str or Path, optional
        Also write the code to this file. Parent directories are created
        as needed.

    Returns
    -------
    str
        Generated source code

    Raises
    ------
    ValueError
        If the target is not supported

    Notes
    -----
    C signature: ``void f(const double *state, const double *params,
    double t, double *dstate)``. Octave signature:
    ``dstate = f(state, params, t)`` returning a column vector.
    """
    if target not in _TARGETS:
        raise ValueError(f"Unknown code generation target '{target}'. "
                         f"Use: {list(_TARGETS.keys())}")
    language = _TARGETS[target]
    name = function_name or _function_name(model) + "_rhs"
    n = model.dimension

    logger.info("Generating %s code for %s (%d equations)", language,
                model.name, n)
    J = None
    if jacobian_function:
        J = [e for row in jacobian(model) for e in row]

    if language == 'c':
        lines = [
            f"/* Dynamics of {model.name}: {n} states, "
            f"{len(model.parameters)} parameters */",
            f"/* state:  {', '.join(model.state_names)} */",
            f"/* params: {', '.join(model.parameter_names)} */",
            "#include <math.h>",
            "",
        ]
        lines += _c_function(model, name, model.equations, "dstate")
        if J is not None:
            lines.append("")
            lines += _c_function(model, name + "_jac", J, "jac")
    else:
        lines = [
            f"% Dynamics of {model.name}: {n} states, "
            f"{len(model.parameters)} parameters",
            f"% state:  {', '.join(model.state_names)}",
            f"% params: {', '.join(model.parameter_names)}",
        ]
        lines += _octave_function(model, name, model.equations, "dstate",
                                  (n, 1))
        if J is not None:
            lines.append("")
            lines += _octave_function(model, name + "_jac", J, "jac", (n, n))

    code = "\n".join(lines) + "\n"
    if path is not None:
        path = pathlib.Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(code)
        logger.debug("Wrote %s", path)
    return code
