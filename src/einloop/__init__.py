from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _load_version

from . import linalg
from .core.cache import KernelCache
from .core.chain import ChainNode, ChainPlan, chain_cost_table, execute_chain, plan_chain
from .core.engine import Engine, EngineConfig, compile_spec, default_engine, einsum, engine_for
from .core.exceptions import (
    ArgumentCountError,
    ConsistencyError,
    DimensionMismatchError,
    EinloopError,
    MalformedSpecError,
    NonMultipliableShapesError,
    ShapeMismatchError,
    TypeMismatchError,
)
from .core.ir import NormalizedSpec
from .core.kernel import CompiledKernel, compile_kernel
from .core.normalizer import normalize
from .core.planner import plan_loop_order
from .linalg import (
    matmul,
    matmul_chain,
    matmul_chain_naive,
    transpose,
)

try:
    __version__ = _load_version("einloop")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "einsum",
    "compile_spec",
    "Engine",
    "EngineConfig",
    "default_engine",
    "engine_for",
    "KernelCache",
    "CompiledKernel",
    "compile_kernel",
    "NormalizedSpec",
    "normalize",
    "plan_loop_order",
    "ChainNode",
    "ChainPlan",
    "chain_cost_table",
    "plan_chain",
    "execute_chain",
    "matmul",
    "matmul_chain",
    "matmul_chain_naive",
    "transpose",
    "linalg",
    "EinloopError",
    "MalformedSpecError",
    "ConsistencyError",
    "DimensionMismatchError",
    "ShapeMismatchError",
    "TypeMismatchError",
    "NonMultipliableShapesError",
    "ArgumentCountError",
    "__version__",
]
