"""Numeric defaults shared across the package."""

from __future__ import annotations

# =========================
# Settings / fidelity
# =========================
RAW_DTYPE = "float64"
DEFAULT_SAMPLE_RATE = 48000
DEFAULT_RENDER_FRAMES = 48000

# =========================
# Render inputs
# =========================
INPUT_SIGNALS = ("impulse", "noise", "sine", "silence")
DEFAULT_SINE_HZ = 440.0


__all__ = [
    "RAW_DTYPE",
    "DEFAULT_SAMPLE_RATE",
    "DEFAULT_RENDER_FRAMES",
    "INPUT_SIGNALS",
    "DEFAULT_SINE_HZ",
]
