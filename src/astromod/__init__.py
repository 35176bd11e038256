"""
Astromod: Symbolic Astrodynamical Models

A Python package that builds equations of motion for common astrodynamical
models (R2BP, CR3BP, NBP), optionally appends state transition matrix
dynamics, differentiates them, and compiles them into fast, cached numeric
evaluators.
"""

import logging

# Configuration
from .config import config, temp_config, AstromodConfig

# Errors
from .errors import (
    AstromodError,
    InvalidConfigurationError,
    DimensionMismatchError,
    CompilationError,
    UndefinedSymbolError,
)

# Symbolic backends
from .backend import (
    SymbolicBackend,
    HeyokaBackend,
    SympyBackend,
    get_backend,
    list_backends,
    register_backend,
    set_default_backend,
)

# Core classes and functions
from .model import DynamicsModel, ModelKind
from .builders import build_r2bp, build_cr3bp, build_nbp
from .jacobians import jacobian, jacobian_sparsity
from .variational import augment_stm, stm_initial_conditions, split_stm
from .utils import stm_dimension
from .compiler import (
    CompiledEvaluator,
    JacobianEvaluator,
    ConfigCache,
    compile_model,
    clear_cache,
    default_cache,
    r2bp_function,
    cr3bp_function,
    nbp_function,
)
from .reporting import model_frame, plot_jacobian_sparsity
from .codegen import generate_code

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Package metadata
__version__ = "0.1.0"

# Define what gets imported with "from astromod import *"
__all__ = [
    # Configuration
    "config",
    "temp_config",
    "AstromodConfig",
    # Errors
    "AstromodError",
    "InvalidConfigurationError",
    "DimensionMismatchError",
    "CompilationError",
    "UndefinedSymbolError",
    # Backends
    "SymbolicBackend",
    "HeyokaBackend",
    "SympyBackend",
    "get_backend",
    "list_backends",
    "register_backend",
    "set_default_backend",
    # Models
    "DynamicsModel",
    "ModelKind",
    "build_r2bp",
    "build_cr3bp",
    "build_nbp",
    "jacobian",
    "jacobian_sparsity",
    "augment_stm",
    "stm_initial_conditions",
    "split_stm",
    "stm_dimension",
    # Compilation
    "CompiledEvaluator",
    "JacobianEvaluator",
    "ConfigCache",
    "compile_model",
    "clear_cache",
    "default_cache",
    "r2bp_function",
    "cr3bp_function",
    "nbp_function",
    # Reporting
    "model_frame",
    "plot_jacobian_sparsity",
    # Code generation
    "generate_code",
]
