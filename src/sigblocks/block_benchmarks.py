"""Utilities for benchmarking bound block topologies across render sizes.

Each registered topology is bound once per block size, warmed up, and then
timed over ``iterations`` runs of synthetic input.  The numbers expose the
per-sample overhead of the evaluator tree (one Python call per block per
sample), which is what dominates when comparing topologies of different
depth.
"""

from __future__ import annotations

import argparse
import time
import zlib
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

import numpy as np
import pandas as pd

from .blocks import Block, Cell, fir, mem, repeat_seq
from .evaluator import Evaluator, make_evaluator, process_frames
from .patches import build_patch, one_pole
from .state import RAW_DTYPE
from .syntax import _, delay, ref, tanh


# ---------------------------------------------------------------------------
# Benchmark definitions


PrepareFn = Callable[[np.random.Generator, int, int], np.ndarray]
RunnerFn = Callable[[Evaluator, np.ndarray], np.ndarray]


def _uniform_prepare(rng: np.random.Generator, frames: int, channels: int) -> np.ndarray:
    return rng.uniform(-1.0, 1.0, size=(frames, channels)).astype(RAW_DTYPE, copy=False)


def _impulse_prepare(rng: np.random.Generator, frames: int, channels: int) -> np.ndarray:
    data = np.zeros((frames, channels), dtype=RAW_DTYPE)
    if frames:
        data[0, :] = 1.0
    return data


@dataclass(slots=True)
class BlockBenchmarkSpec:
    """Definition for how to benchmark a particular topology."""

    factory: Callable[[], Block]
    prepare: PrepareFn = _uniform_prepare
    runner: RunnerFn | None = None
    description: str = ""


@dataclass(slots=True)
class BenchmarkStats:
    """Simple statistics captured for each (topology, block size) pair."""

    mean_seconds: float
    stdev_seconds: float
    min_seconds: float
    max_seconds: float
    frames: int = 0

    @property
    def ns_per_sample(self) -> float:
        if self.frames <= 0:
            return float("nan")
        return self.mean_seconds * 1e9 / self.frames


def _patch_block(name: str) -> Callable[[], Block]:
    return lambda: build_patch(name).block


def _fixed_delay() -> Block:
    return delay(ref(Cell(64.0)))


BLOCK_BENCHMARKS: dict[str, BlockBenchmarkSpec] = {
    "ident": BlockBenchmarkSpec(factory=lambda: _, description="passthrough"),
    "gain": BlockBenchmarkSpec(factory=lambda: _ * 0.5, description="curried multiply"),
    "mem": BlockBenchmarkSpec(factory=lambda: mem(1), description="one-sample register"),
    "mem_ring": BlockBenchmarkSpec(factory=lambda: mem(64), description="64-sample ring buffer"),
    "delay": BlockBenchmarkSpec(factory=_fixed_delay, description="variable delay at 64 samples"),
    "one_pole": BlockBenchmarkSpec(factory=lambda: one_pole(0.9), description="feedback smoother"),
    "fir16": BlockBenchmarkSpec(
        factory=lambda: fir(np.full(16, 1.0 / 16.0)),
        description="16-tap moving average",
    ),
    "tanh": BlockBenchmarkSpec(factory=lambda: tanh, description="function block"),
    "chain8": BlockBenchmarkSpec(
        factory=lambda: repeat_seq(_ * 0.99, 8),
        description="eight gains in sequence",
    ),
    "echo": BlockBenchmarkSpec(
        factory=_patch_block("echo"),
        prepare=_impulse_prepare,
        description="echo patch",
    ),
    "saturator": BlockBenchmarkSpec(factory=_patch_block("saturator"), description="saturator patch"),
}


def _rng_seed(seed: int, block_name: str, size: int) -> int:
    # crc32 is stable across processes, unlike the salted str hash.
    return (seed + zlib.crc32(block_name.encode("utf-8")) * 1_000_003 + size) & 0xFFFFFFFFFFFF


def _default_runner(evaluator: Evaluator, data: np.ndarray) -> np.ndarray:
    return process_frames(evaluator, data)


def run_block_benchmarks(
    block_sizes: Iterable[int],
    *,
    iterations: int = 5,
    block_names: Iterable[str] | None = None,
    seed: int = 0,
) -> dict[str, dict[int, BenchmarkStats]]:
    """Execute the benchmark suite and return summary statistics.

    Results are keyed by topology name and then by block size (samples per
    timed run).  A fresh evaluator is bound for every block size and warmed
    up with one untimed run.
    """

    selected = list(block_names) if block_names is not None else list(BLOCK_BENCHMARKS)
    unknown = sorted(name for name in selected if name not in BLOCK_BENCHMARKS)
    if unknown:
        raise KeyError(f"Unknown benchmark blocks requested: {', '.join(unknown)}")

    sizes = list(block_sizes)
    if not sizes:
        raise ValueError("at least one block size must be provided")
    for size in sizes:
        if size <= 0:
            raise ValueError("block sizes must be positive integers")
    if iterations <= 0:
        raise ValueError("iterations must be positive")

    results: dict[str, dict[int, BenchmarkStats]] = {}
    for block_name in selected:
        spec = BLOCK_BENCHMARKS[block_name]
        runner = spec.runner or _default_runner
        block_results: dict[int, BenchmarkStats] = {}
        for size in sizes:
            rng = np.random.default_rng(_rng_seed(seed, block_name, size))
            evaluator = make_evaluator(spec.factory())
            runner(evaluator, spec.prepare(rng, size, evaluator.ins))

            times: list[float] = []
            for _iteration in range(iterations):
                data = spec.prepare(rng, size, evaluator.ins)
                start = time.perf_counter()
                output = runner(evaluator, data)
                float(np.sum(output))
                times.append(time.perf_counter() - start)

            times_arr = np.array(times, dtype=RAW_DTYPE)
            block_results[size] = BenchmarkStats(
                mean_seconds=float(times_arr.mean()),
                stdev_seconds=float(times_arr.std(ddof=0)),
                min_seconds=float(times_arr.min()),
                max_seconds=float(times_arr.max()),
                frames=int(size),
            )
        results[block_name] = block_results
    return results


def results_frame(results: Mapping[str, Mapping[int, BenchmarkStats]]) -> pd.DataFrame:
    """Flatten benchmark results into one row per (block, block size)."""

    rows = [
        {
            "block": name,
            "block_size": size,
            "mean_ms": stats.mean_seconds * 1e3,
            "stdev_ms": stats.stdev_seconds * 1e3,
            "min_ms": stats.min_seconds * 1e3,
            "max_ms": stats.max_seconds * 1e3,
            "ns_per_sample": stats.ns_per_sample,
        }
        for name, per_size in results.items()
        for size, stats in per_size.items()
    ]
    columns = ["block", "block_size", "mean_ms", "stdev_ms", "min_ms", "max_ms", "ns_per_sample"]
    frame = pd.DataFrame(rows, columns=columns)
    return frame.sort_values(["block", "block_size"], ignore_index=True)


def _format_table(results: Mapping[str, Mapping[int, BenchmarkStats]]) -> str:
    if not results:
        return "No results"

    sizes = sorted({size for per_size in results.values() for size in per_size})
    if not sizes:
        return "No results"

    header = ["Block"] + [f"N={size}" for size in sizes]
    widths = [max(max(len(name) for name in results), 12)] + [max(len(h), 22) for h in header[1:]]
    lines = [" ".join(h.ljust(w) for h, w in zip(header, widths))]
    lines.append(" ".join("-" * w for w in widths))
    for name in sorted(results):
        row = [name.ljust(widths[0])]
        for idx, size in enumerate(sizes, start=1):
            stats = results[name].get(size)
            if stats is None:
                cell = "n/a"
            else:
                mean_ms = stats.mean_seconds * 1e3
                stdev_ms = stats.stdev_seconds * 1e3
                cell = f"{mean_ms:7.3f}±{stdev_ms:6.3f} ms"
            row.append(cell.ljust(widths[idx]))
        lines.append(" ".join(row))
    return "\n".join(lines)


def plot_benchmark_bars(
    results: Mapping[str, Mapping[int, BenchmarkStats]],
    *,
    output_path: str | None = None,
) -> "matplotlib.figure.Figure":
    """Render grouped bars of nanoseconds per sample for every block size.

    Parameters
    ----------
    results:
        Output of :func:`run_block_benchmarks`.
    output_path:
        Optional location to save the generated figure.  When ``None`` the
        figure is still created and returned to the caller but not saved.
    """

    try:
        import matplotlib.pyplot as plt
    except ModuleNotFoundError as exc:  # pragma: no cover - import guard
        raise ModuleNotFoundError(
            "matplotlib is required to render benchmark plots"
        ) from exc

    frame = results_frame(results)
    if frame.empty:
        raise ValueError("benchmark results are empty")
    table = frame.pivot(index="block", columns="block_size", values="ns_per_sample")

    names = list(table.index)
    sizes = list(table.columns)
    positions = np.arange(len(names), dtype=float)
    width = 0.8 / max(len(sizes), 1)

    fig, ax = plt.subplots(figsize=(10, 5))
    for i, size in enumerate(sizes):
        ax.bar(positions + i * width, table[size].to_numpy(), width=width, label=f"N={size}")
    ax.set_xticks(positions + width * (len(sizes) - 1) / 2.0)
    ax.set_xticklabels(names, rotation=30, ha="right")
    ax.set_ylabel("Mean time per sample (ns)")
    ax.set_title("Block evaluator cost")
    ax.legend()
    fig.tight_layout()

    if output_path is not None:
        fig.savefig(output_path, bbox_inches="tight")

    return fig


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Benchmark bound block topologies across block sizes")
    parser.add_argument(
        "--block-sizes",
        type=int,
        nargs="*",
        default=[64, 256, 1024],
        help="Samples per timed run",
    )
    parser.add_argument("--iterations", type=int, default=5, help="Timed runs per block size")
    parser.add_argument("--seed", type=int, default=0, help="RNG seed for synthetic data")
    parser.add_argument(
        "--blocks",
        nargs="*",
        default=None,
        help="Optional subset of benchmark names to run",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available benchmark names and exit",
    )
    parser.add_argument("--csv", type=str, default=None, help="Optional path to write results as CSV")
    parser.add_argument(
        "--plot-output",
        type=str,
        default=None,
        help="Optional output path for a bar chart of the results",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.list:
        for name in sorted(BLOCK_BENCHMARKS):
            print(f"{name:<12} {BLOCK_BENCHMARKS[name].description}")
        return 0

    results = run_block_benchmarks(
        args.block_sizes,
        iterations=args.iterations,
        block_names=args.blocks,
        seed=args.seed,
    )
    print(_format_table(results))

    if args.csv is not None:
        results_frame(results).to_csv(args.csv, index=False)
        print(f"Saved results to {args.csv}")
    if args.plot_output is not None:
        plot_benchmark_bars(results, output_path=args.plot_output)
        print(f"Saved benchmark plot to {args.plot_output}")
    return 0


__all__ = [
    "BLOCK_BENCHMARKS",
    "BenchmarkStats",
    "BlockBenchmarkSpec",
    "main",
    "plot_benchmark_bars",
    "results_frame",
    "run_block_benchmarks",
]


if __name__ == "__main__":  # pragma: no cover - manual invocation helper
    raise SystemExit(main())
