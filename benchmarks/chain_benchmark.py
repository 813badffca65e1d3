#!/usr/bin/env python3
"""
Matrix-chain benchmark.

Times ``matmul_chain`` (planned association order) against
``matmul_chain_naive`` (left fold) on a random chain of matrices, and reports
the scalar multiplication counts each order implies. Both paths run through
the same generated einsum kernel, so the gap is entirely due to ordering.
"""

from __future__ import annotations

import argparse
import math
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence

import numpy as np

from einloop import matmul_chain, matmul_chain_naive, plan_chain


@dataclass
class BenchmarkResult:
    order: str
    min_s: float
    mean_s: float
    iterations: int
    multiplications: int


def build_inputs(dims: Sequence[int], *, seed: int) -> List[np.ndarray]:
    rng = np.random.default_rng(seed)
    return [rng.normal(size=(rows, cols)) for rows, cols in zip(dims, dims[1:])]


def bench(fn: Callable[[], Any], *, iterations: int, warmup: int) -> Iterable[float]:
    timings = []
    for step in range(iterations + warmup):
        start = time.perf_counter()
        fn()
        elapsed = time.perf_counter() - start
        if step >= warmup:
            timings.append(elapsed)
    return timings


def run(
    label: str,
    fn: Callable[..., np.ndarray],
    operands: List[np.ndarray],
    *,
    multiplications: int,
    iterations: int,
    warmup: int,
) -> BenchmarkResult:
    timings = list(bench(lambda: fn(*operands), iterations=iterations, warmup=warmup))
    return BenchmarkResult(
        order=label,
        min_s=min(timings),
        mean_s=sum(timings) / len(timings),
        iterations=iterations,
        multiplications=multiplications,
    )


def format_results(results: Iterable[BenchmarkResult]) -> str:
    header = f"{'order':<8} {'min (ms)':>12} {'mean (ms)':>12} {'iters':>8} {'mults':>14}"
    rows = [header]
    for result in results:
        rows.append(
            f"{result.order:<8} {result.min_s * 1e3:12.3f} {result.mean_s * 1e3:12.3f} "
            f"{result.iterations:8d} {result.multiplications:14d}"
        )
    return "\n".join(rows)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Benchmark planned versus left-to-right matrix-chain products."
    )
    parser.add_argument(
        "--dims",
        type=int,
        nargs="+",
        default=[12, 2, 16, 3, 14],
        help="Chain dimensions d0 d1 ... dn; matrix k is d(k) x d(k+1).",
    )
    parser.add_argument("--seed", type=int, default=2024, help="Random seed (default: 2024).")
    parser.add_argument(
        "--iterations", type=int, default=10, help="Timed iterations per order (default: 10)."
    )
    parser.add_argument(
        "--warmup", type=int, default=2, help="Warmup iterations to discard (default: 2)."
    )
    return parser.parse_args(argv)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    if len(args.dims) < 3:
        print("Need at least three dimensions (two matrices).", file=sys.stderr)
        return 1
    operands = build_inputs(args.dims, seed=args.seed)
    plan = plan_chain([op.shape for op in operands])
    print(f"plan: {plan.render()}")

    results = [
        run(
            "planned",
            matmul_chain,
            operands,
            multiplications=plan.cost,
            iterations=args.iterations,
            warmup=args.warmup,
        ),
        run(
            "naive",
            matmul_chain_naive,
            operands,
            multiplications=plan.naive_cost,
            iterations=args.iterations,
            warmup=args.warmup,
        ),
    ]
    print(format_results(results))
    speedup = results[1].min_s / results[0].min_s if results[0].min_s > 0 else math.nan
    print(f"speedup: {speedup:.2f}x")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
