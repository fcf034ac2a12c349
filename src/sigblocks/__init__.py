"""Composable per-sample signal-processing blocks."""

from __future__ import annotations

from .blocks import Block, Cell, as_block
from .evaluator import DynEvaluator, evaluate, make_evaluator, process, process_frames
from .frame import Frame, ShapeError
from .patches import available_patches, build_patch

__all__ = [
    "Block",
    "Cell",
    "DynEvaluator",
    "Frame",
    "ShapeError",
    "as_block",
    "available_patches",
    "build_patch",
    "evaluate",
    "make_evaluator",
    "process",
    "process_frames",
]
