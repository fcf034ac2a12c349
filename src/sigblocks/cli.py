"""Command line entry point: list patches and render them offline."""

from __future__ import annotations

import argparse
import json
import sys
import time
import wave
from pathlib import Path
from typing import Dict, Mapping, Sequence

import numpy as np

from .config import DEFAULT_CONFIG_PATH, RenderConfig, load_configuration
from .diagnostics import enable_trace_logging, log_trace
from .evaluator import process
from .patches import Patch, available_patches, build_patch
from .state import RAW_DTYPE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render sigblocks patches offline")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to configuration file")
    parser.add_argument("--list", action="store_true", help="List available patches and exit")
    parser.add_argument("--patch", help="Patch to render (overrides the configuration)")
    parser.add_argument("--frames", type=int, help="Number of samples to render")
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Set a patch parameter; may be given more than once",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help=(
            "Optional path to write rendered audio. Paths ending in .wav are"
            " written as 16-bit WAV; other suffixes receive raw float32"
            " frames (little-endian)."
        ),
    )
    parser.add_argument("--trace", action="store_true", help="Append binding/render trace records to logs/")
    return parser


def _parse_params(parser: argparse.ArgumentParser, items: Sequence[str]) -> Dict[str, float]:
    params: Dict[str, float] = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name:
            parser.error(f"--param expects NAME=VALUE, got '{item}'")
        try:
            params[name.strip()] = float(value)
        except ValueError:
            parser.error(f"--param {name}: '{value}' is not a number")
    return params


def make_input_signal(render: RenderConfig, sample_rate: int, frames: int) -> np.ndarray:
    """Build the mono test signal fed to the patch."""

    if render.input == "impulse":
        signal = np.zeros(frames, dtype=RAW_DTYPE)
        if frames:
            signal[0] = render.amplitude
        return signal
    if render.input == "noise":
        rng = np.random.default_rng(render.seed)
        return rng.uniform(-1.0, 1.0, frames).astype(RAW_DTYPE) * render.amplitude
    if render.input == "sine":
        t = np.arange(frames, dtype=RAW_DTYPE) / float(sample_rate)
        return render.amplitude * np.sin(2.0 * np.pi * render.frequency_hz * t)
    if render.input == "silence":
        return np.zeros(frames, dtype=RAW_DTYPE)
    raise ValueError(f"Unknown input signal '{render.input}'")


def render_patch(patch: Patch, signal: np.ndarray) -> np.ndarray:
    """Bind ``patch`` once and run it over ``signal``."""

    evaluator = patch.bind()
    return process(evaluator, signal)


def write_output(path: Path, samples: np.ndarray, sample_rate: int, metadata: Mapping[str, object]) -> Path:
    """Write ``samples`` as WAV or raw float32 plus a ``.json`` sidecar."""

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".wav":
        pcm = np.round(np.clip(samples, -1.0, 1.0) * 32767.0).astype("<i2")
        with wave.open(str(path), "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(int(sample_rate))
            wav_file.writeframes(pcm.tobytes())
        fmt, dtype = "wav", "int16"
    else:
        samples.astype("<f4").tofile(str(path))
        fmt, dtype = "raw", "float32"
    meta = dict(metadata)
    meta.update(
        {
            "frames": int(samples.shape[0]),
            "channels": 1,
            "sample_rate": int(sample_rate),
            "format": fmt,
            "dtype": dtype,
        }
    )
    metadata_path = path.with_suffix(path.suffix + ".json")
    metadata_path.write_text(json.dumps(meta, indent=2, sort_keys=True), encoding="utf8")
    return metadata_path


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list:
        for name in available_patches():
            print(name)
        return 0

    overrides = _parse_params(parser, args.param)
    if args.trace:
        enable_trace_logging(True)

    try:
        config = load_configuration(args.config)
    except (OSError, ValueError) as exc:
        print(f"error: cannot load configuration {args.config}: {exc}", file=sys.stderr)
        return 2

    name = args.patch or config.patch.name
    params: Dict[str, float] = dict(config.patch.params) if name == config.patch.name else {}
    params.update(overrides)
    frames = args.frames if args.frames is not None else config.render.frames
    if frames <= 0:
        parser.error("--frames must be positive")

    try:
        patch = build_patch(name, params)
    except KeyError as exc:
        print(f"error: {exc.args[0]}", file=sys.stderr)
        return 2

    signal = make_input_signal(config.render, config.sample_rate, frames)
    start = time.perf_counter()
    output = render_patch(patch, signal)
    elapsed = time.perf_counter() - start
    peak = float(np.max(np.abs(output))) if output.size else 0.0
    log_trace(
        f"[render] patch={name} frames={frames} input={config.render.input} "
        f"elapsed_ms={elapsed * 1000.0:.3f} peak={peak:.6f}"
    )

    if args.output is not None:
        write_output(
            args.output,
            output,
            config.sample_rate,
            {"patch": name, "params": patch.values(), "input": config.render.input},
        )

    realtime = (frames / config.sample_rate) / elapsed if elapsed > 0 else float("inf")
    print(
        f"Rendered {frames} frames of '{name}' at {config.sample_rate} Hz "
        f"in {elapsed * 1000.0:.1f} ms ({realtime:.1f}x realtime, peak {peak:.3f})"
    )
    return 0


__all__ = ["build_parser", "main", "make_input_signal", "render_patch", "write_output"]
