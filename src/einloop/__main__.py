from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import numpy as np

from .core.chain import plan_chain
from .core.engine import Engine, EngineConfig
from .core.exceptions import EinloopError


def _load_tensor(path: Path) -> np.ndarray:
    try:
        if str(path).lower().endswith(".json"):
            return np.asarray(json.loads(path.read_text(encoding="utf-8")))
        return np.load(path)
    except FileNotFoundError as exc:
        raise SystemExit(f"Operand file not found: {path}") from exc


def _write_output(path: Path, tensor: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if str(path).lower().endswith(".json"):
        path.write_text(json.dumps(np.asarray(tensor).tolist(), indent=2), encoding="utf-8")
    elif str(path).lower().endswith(".npz"):
        np.savez(path, np.asarray(tensor))
    else:
        np.save(path, np.asarray(tensor))


def _parse_shape(text: str) -> Tuple[int, int]:
    try:
        rows, cols = (int(part) for part in text.lower().split("x"))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected ROWSxCOLS, got '{text}'") from exc
    return rows, cols


def _run(spec: str, operands: List[Path], out: Optional[Path], planner: str) -> None:
    engine = Engine(EngineConfig(planner=planner))
    tensors = [_load_tensor(path) for path in operands]
    result = engine.einsum(spec, *tensors)
    results = result if isinstance(result, tuple) else (result,)
    if out is None:
        np.set_printoptions(suppress=True)
        for k, tensor in enumerate(results):
            print(f"# output {k + 1}")
            print(np.asarray(tensor))
        print(engine.explain())
        return
    if len(results) > 1:
        out_data = {f"output{k + 1}": np.asarray(t).tolist() for k, t in enumerate(results)}
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(out_data, indent=2), encoding="utf-8")
    else:
        _write_output(out, results[0])


def _explain(spec: str, planner: str, as_json: bool) -> None:
    info = Engine(EngineConfig(planner=planner)).describe(spec)
    if as_json:
        print(json.dumps(info, indent=2))
        return
    print(f"spec:       {info['spec']}")
    print(f"planner:    {info['planner']}")
    print(f"loop order: {' '.join(str(label) for label in info['loop_order']) or '-'}")
    print(info["source"], end="")


def _chain(shapes: List[Tuple[int, int]]) -> None:
    plan = plan_chain(shapes)
    print(f"order:      {plan.render()}")
    print(f"cost:       {plan.cost}")
    print(f"naive cost: {plan.naive_cost}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="einloop command line utilities")
    subparsers = parser.add_subparsers(dest="cmd")

    run_parser = subparsers.add_parser("run", help="Evaluate an einsum spec over tensor files")
    run_parser.add_argument("spec", help="Contraction spec, e.g. 'ij,jk->ik'")
    run_parser.add_argument("operands", type=Path, nargs="*", help="Operand files (.npy/.json)")
    run_parser.add_argument(
        "--planner",
        default="locality",
        choices=["locality", "declared"],
        help="Loop nesting planner (default: locality)",
    )
    run_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Optional output path (.npy/.npz/.json). If omitted, prints the result",
    )

    explain_parser = subparsers.add_parser("explain", help="Show the generated kernel for a spec")
    explain_parser.add_argument("spec", help="Contraction spec, e.g. 'ij,jk->ik'")
    explain_parser.add_argument(
        "--planner",
        default="locality",
        choices=["locality", "declared"],
    )
    explain_parser.add_argument("--json", action="store_true", help="Emit JSON")

    chain_parser = subparsers.add_parser("chain", help="Plan a matrix-chain product")
    chain_parser.add_argument("shapes", type=_parse_shape, nargs="+", help="Shapes as ROWSxCOLS")
    return parser


def main(argv: Optional[list] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.cmd == "run":
            _run(args.spec, args.operands, out=args.out, planner=args.planner)
            return
        if args.cmd == "explain":
            _explain(args.spec, planner=args.planner, as_json=args.json)
            return
        if args.cmd == "chain":
            _chain(args.shapes)
            return
    except EinloopError as exc:
        raise SystemExit(f"error: {exc}") from exc

    parser.print_help()


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
