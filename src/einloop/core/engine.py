from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

import numpy as np

from .cache import KernelCache
from .ir import NormalizedSpec, json_ready
from .kernel import CompiledKernel, bind_operands, compile_kernel
from .normalizer import RawSpec, normalize
from .planner import PLANNERS
from .stats import compute_einsum_stats
from .tensor import as_tensor


@dataclass(frozen=True)
class EngineConfig:
    """
    Switches for the einsum engine.

    * ``planner`` picks the loop nesting order: ``"locality"`` sorts loops by
      how often each index sits late in the operand specs, ``"declared"``
      keeps first-appearance order.
    * ``cache_kernels`` memoizes compiled kernels by normalized spec. When off,
      every call normalizes, plans and compiles from scratch.
    * ``record_logs`` keeps one structured entry per call for ``explain``;
      at most ``max_logs`` entries are retained.
    """

    planner: str = "locality"  # "locality" | "declared"
    cache_kernels: bool = True
    cache_size: Optional[int] = 256
    record_logs: bool = True
    max_logs: int = 1000

    def normalized(self) -> "EngineConfig":
        planner = (self.planner or "locality").lower()
        if planner not in PLANNERS:
            raise ValueError(f"Unsupported loop planner: {self.planner}")
        cache_size = self.cache_size
        if cache_size is not None:
            cache_size = int(cache_size)
            if cache_size <= 0:
                raise ValueError("cache_size must be positive when provided")
        max_logs = int(self.max_logs)
        if max_logs <= 0:
            raise ValueError("max_logs must be positive")
        return replace(
            self,
            planner=planner,
            cache_kernels=bool(self.cache_kernels),
            cache_size=cache_size,
            record_logs=bool(self.record_logs),
            max_logs=max_logs,
        )


class Engine:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        cache: Optional[KernelCache] = None,
    ):
        self.config = (config or EngineConfig()).normalized()
        self.cache = cache if cache is not None else KernelCache(self.config.cache_size)
        self.logs: List[Dict[str, Any]] = []

    # Public API ----------------------------------------------------------------
    def __call__(self, spec: RawSpec, *operands: Any, out: Any = None):
        return self.einsum(spec, *operands, out=out)

    def einsum(self, spec: RawSpec, *operands: Any, out: Any = None):
        start = time.perf_counter()
        normalized = normalize(spec)
        kernel, cache_hit = self._kernel_for(normalized)

        inputs, outputs = bind_operands(normalized, operands, out)
        tensors = [as_tensor(value) for value in inputs]
        dims = kernel.dimensions(tensors, normalized)
        results = kernel.prepare_outputs(tensors, dims, outputs)
        kernel.run(tensors, results, dims)

        if self.config.record_logs:
            duration_ms = (time.perf_counter() - start) * 1000.0
            self._log_call(normalized, kernel, tensors, results, dims, cache_hit, duration_ms)
        if len(results) == 1:
            return results[0]
        return tuple(results)

    def compile(self, spec: RawSpec) -> CompiledKernel:
        """Build a kernel once for a spec known ahead of time."""
        return compile_kernel(normalize(spec), planner=self.config.planner)

    def describe(self, spec: RawSpec) -> Dict[str, Any]:
        kernel = self.compile(spec)
        normalized = kernel.spec
        return {
            "spec": normalized.format(),
            "normalized": normalized.as_dict(),
            "planner": kernel.planner,
            "loop_order": [json_ready(normalized.label_for(idx)) for idx in kernel.loop_order],
            "source": kernel.source,
        }

    def explain(self, *, json: bool = False):
        total_time_ms = 0.0
        total_flops = 0.0
        hits = 0
        for entry in self.logs:
            record = entry["einsum"]
            total_time_ms += record.get("duration_ms") or 0.0
            total_flops += record.get("flops") or 0.0
            hits += 1 if record.get("cache_hit") else 0

        if json:
            return {
                "logs": json_ready(self.logs),
                "totals": {
                    "calls": len(self.logs),
                    "cache_hits": hits,
                    "duration_ms": total_time_ms,
                    "flops": total_flops,
                },
                "cache": self.cache.info(),
            }

        lines: List[str] = []
        for entry in self.logs:
            record = entry["einsum"]
            loop = " ".join(str(label) for label in record["loop_order"]) or "-"
            parts = [
                record["spec"],
                f"loops[{loop}]",
                "hit" if record["cache_hit"] else "compiled",
                _format_metric(record.get("flops"), "flops"),
                f"time={record['duration_ms']:.3f}ms",
            ]
            lines.append(" ".join(part for part in parts if part))
        lines.append(
            f"Total: calls={len(self.logs)} hits={hits} "
            f"{_format_metric(total_flops, 'flops')} time={total_time_ms:.3f}ms"
        )
        return "\n".join(lines)

    def reset_logs(self) -> None:
        self.logs.clear()

    # Internals -----------------------------------------------------------------
    def _kernel_for(self, spec: NormalizedSpec):
        if self.config.cache_kernels:
            return self.cache.lookup(spec, self.config.planner)
        return compile_kernel(spec, planner=self.config.planner), False

    def _log_call(
        self,
        spec: NormalizedSpec,
        kernel: CompiledKernel,
        inputs: List[np.ndarray],
        outputs: List[np.ndarray],
        dims: Dict[int, int],
        cache_hit: bool,
        duration_ms: float,
    ) -> None:
        # A cached kernel may carry another spelling; report the caller's labels.
        result_itemsize = outputs[0].dtype.itemsize if outputs else 0
        stats = compute_einsum_stats(
            spec,
            dims,
            [tensor.dtype.itemsize for tensor in inputs],
            result_itemsize,
        )
        entry = {
            "kind": "einsum",
            "einsum": {
                "spec": spec.format(),
                "planner": kernel.planner,
                "loop_order": [spec.label_for(idx) for idx in kernel.loop_order],
                "cache_hit": cache_hit,
                "duration_ms": duration_ms,
                "dims": {str(spec.label_for(idx)): size for idx, size in dims.items()},
                **stats,
            },
        }
        self.logs.append(entry)
        overflow = len(self.logs) - self.config.max_logs
        if overflow > 0:
            del self.logs[:overflow]


def _format_metric(value: Optional[float], unit: str) -> Optional[str]:
    if value is None:
        return None
    magnitude = float(value)
    if magnitude == 0:
        return f"{unit}=0"
    suffixes = [
        (1e12, "T"),
        (1e9, "G"),
        (1e6, "M"),
        (1e3, "K"),
    ]
    for threshold, label in suffixes:
        if magnitude >= threshold:
            return f"{unit}={magnitude / threshold:.2f}{label}"
    return f"{unit}={magnitude:.0f}"


_DEFAULT_ENGINE: Optional[Engine] = None
_CONFIG_ENGINES: Dict[EngineConfig, Engine] = {}


def default_engine() -> Engine:
    global _DEFAULT_ENGINE
    if _DEFAULT_ENGINE is None:
        _DEFAULT_ENGINE = Engine()
    return _DEFAULT_ENGINE


def engine_for(config: Optional[EngineConfig] = None) -> Engine:
    """Return the process-wide engine for ``config``.

    One engine is kept per normalized config, so logs accumulate across calls.
    All of them share the default engine's kernel cache; ``cache_size`` only
    applies to engines built directly.
    """
    base = default_engine()
    if config is None:
        return base
    cfg = config.normalized()
    if cfg == base.config:
        return base
    engine = _CONFIG_ENGINES.get(cfg)
    if engine is None:
        engine = Engine(cfg, cache=base.cache)
        _CONFIG_ENGINES[cfg] = engine
    return engine


def einsum(
    spec: RawSpec,
    *operands: Any,
    out: Any = None,
    config: Optional[EngineConfig] = None,
):
    """Evaluate an Einstein-summation spec over ``operands``.

    ``spec`` is a string such as ``"ij,jk->ik"``, a sequence spelling such as
    ``["ij", ("j", "k"), "->", "ik"]``, or an already normalized spec. Output
    tensors may be appended to ``operands`` or passed through ``out``; they
    are written in place. One declared output returns a tensor, several
    return a tuple. Calls with the same ``config`` log to the same engine,
    see :func:`engine_for`.
    """
    return engine_for(config).einsum(spec, *operands, out=out)


def compile_spec(spec: RawSpec, config: Optional[EngineConfig] = None) -> CompiledKernel:
    cfg = (config or EngineConfig()).normalized()
    return compile_kernel(normalize(spec), planner=cfg.planner)
