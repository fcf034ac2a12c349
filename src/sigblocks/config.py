"""Configuration loading for offline renders."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

from .state import DEFAULT_RENDER_FRAMES, DEFAULT_SAMPLE_RATE, DEFAULT_SINE_HZ, INPUT_SIGNALS

_REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = _REPO_ROOT / "configs" / "default.json"


@dataclass(slots=True)
class RenderConfig:
    """How long to render and what to feed the patch."""

    frames: int = DEFAULT_RENDER_FRAMES
    input: str = "impulse"
    frequency_hz: float = DEFAULT_SINE_HZ
    amplitude: float = 1.0
    seed: int = 0


@dataclass(slots=True)
class PatchConfig:
    name: str
    params: Mapping[str, float] = field(default_factory=dict)


@dataclass(slots=True)
class AppConfig:
    sample_rate: int
    render: RenderConfig
    patch: PatchConfig


def _normalise_render(data: Mapping[str, Any]) -> RenderConfig:
    frames = int(data.get("frames", DEFAULT_RENDER_FRAMES))
    if frames <= 0:
        raise ValueError("render.frames must be positive")
    signal = str(data.get("input", "impulse")).lower()
    if signal not in INPUT_SIGNALS:
        raise ValueError(
            f"render.input must be one of {', '.join(INPUT_SIGNALS)}; got '{signal}'"
        )
    return RenderConfig(
        frames=frames,
        input=signal,
        frequency_hz=float(data.get("frequency_hz", DEFAULT_SINE_HZ)),
        amplitude=float(data.get("amplitude", 1.0)),
        seed=int(data.get("seed", 0)),
    )


def _normalise_patch(data: Mapping[str, Any]) -> PatchConfig:
    name = str(data.get("name", "") or "")
    if not name:
        raise ValueError("patch.name must be provided")
    params: Dict[str, float] = {}
    for key, value in dict(data.get("params", {}) or {}).items():
        try:
            params[str(key)] = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"patch.params.{key} must be a number") from exc
    return PatchConfig(name=name, params=params)


def load_configuration(path: str | Path) -> AppConfig:
    """Load an :class:`AppConfig` from ``path``."""

    with open(path, "r", encoding="utf8") as fh:
        raw = json.load(fh)
    render = _normalise_render(dict(raw.get("render", {}) or {}))
    patch = _normalise_patch(raw.get("patch", {}) or {})
    sample_rate = int(raw.get("sample_rate", DEFAULT_SAMPLE_RATE))
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    return AppConfig(sample_rate=sample_rate, render=render, patch=patch)


__all__ = [
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "PatchConfig",
    "RenderConfig",
    "load_configuration",
]
