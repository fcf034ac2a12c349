"""Binding of block descriptors into stateful per-sample evaluators.

:func:`make_evaluator` walks a descriptor tree once and returns a tree of
evaluators.  Leaf evaluators own whatever private state their block kind
needs (registers, ring buffers, FIR history); composite evaluators own one
child evaluator per child block.  Nothing is shared between evaluators, so
two evaluators bound from the same descriptor run independently.

Each ``eval`` call consumes exactly one :class:`~sigblocks.frame.Frame` and
returns one.  Evaluators are not thread-safe.  The only allocation that is
not bounded per call is the growth of a variable delay buffer, which
happens when a larger delay than ever before is requested; settle the
largest delay before handing an evaluator to an audio callback.
"""

from __future__ import annotations

import copy
import math
from typing import Callable, Dict

import numpy as np

from .blocks import (
    Block,
    Cut,
    Delay,
    Divide,
    FIRFilter,
    FunBlock,
    Ident,
    Literal,
    Mem,
    Merge,
    Minus,
    Parallel,
    Partial,
    Plus,
    Recursive,
    Ref,
    Sequential,
    Split,
    StatefulFunc,
    Times,
    as_block,
)
from .diagnostics import log_trace, trace_logging_enabled
from .frame import Frame, ShapeError, as_frame, concat
from .state import RAW_DTYPE

_EMPTY = Frame()


class Evaluator:
    """Stateful runtime realisation of one block."""

    __slots__ = ("ins", "outs")

    def __init__(self, ins: int, outs: int) -> None:
        self.ins = ins
        self.outs = outs

    @property
    def kind(self) -> str:
        return type(self).__name__

    def eval(self, frame: Frame) -> Frame:
        raise NotImplementedError

    def __call__(self, *values) -> Frame:
        """Coerce ``values`` into an input frame and evaluate it.

        ``e()`` for sources, ``e(0.5)`` or ``e(1, 2)`` for scalars and
        ``e([1, 2])`` or ``e(frame)`` for sequences.
        """

        if len(values) == 1:
            frame = as_frame(values[0], self.ins)
        else:
            frame = as_frame(Frame(*values), self.ins)
        return self.eval(frame)


EvaluatorFactory = Callable[[Block], Evaluator]
_EVALUATORS: Dict[type, EvaluatorFactory] = {}


def register_evaluator(block_type: type) -> Callable[[EvaluatorFactory], EvaluatorFactory]:
    """Register the evaluator factory used to bind ``block_type``."""

    def _decorator(factory: EvaluatorFactory) -> EvaluatorFactory:
        if block_type in _EVALUATORS:
            raise ValueError(f"Duplicate evaluator registration for {block_type.__name__}")
        _EVALUATORS[block_type] = factory
        return factory

    return _decorator


def _bind(block: Block) -> Evaluator:
    for klass in type(block).__mro__:
        factory = _EVALUATORS.get(klass)
        if factory is not None:
            return factory(block)
    raise TypeError(f"No evaluator registered for {type(block).__name__}")


def make_evaluator(block) -> Evaluator:
    """Bind ``block`` (or anything :func:`as_block` accepts) to a new evaluator."""

    root = as_block(block)
    evaluator = _bind(root)
    if trace_logging_enabled():
        nodes = sum(1 for _ in root.walk())
        log_trace(f"[bind] {root.kind} ins={root.ins} outs={root.outs} nodes={nodes}")
    return evaluator


def evaluate(block, frame) -> Frame:
    """Bind ``block`` and evaluate a single ``frame`` with fresh state."""

    evaluator = make_evaluator(block)
    return evaluator(frame)


# =========================
# Sources and wiring
# =========================


@register_evaluator(Literal)
class LiteralEvaluator(Evaluator):
    __slots__ = ("_frame",)

    def __init__(self, block: Literal) -> None:
        super().__init__(0, 1)
        self._frame = Frame(block.value)

    def eval(self, frame: Frame) -> Frame:
        return self._frame


@register_evaluator(Ref)
class RefEvaluator(Evaluator):
    """Reads the referenced cell on every call; the cell is never checked."""

    __slots__ = ("_cell",)

    def __init__(self, block: Ref) -> None:
        super().__init__(0, 1)
        self._cell = block.cell

    def eval(self, frame: Frame) -> Frame:
        return Frame(self._cell.value)


@register_evaluator(Ident)
class IdentEvaluator(Evaluator):
    __slots__ = ()

    def __init__(self, block: Ident) -> None:
        super().__init__(block.n, block.n)

    def eval(self, frame: Frame) -> Frame:
        return frame


@register_evaluator(Cut)
class CutEvaluator(Evaluator):
    __slots__ = ()

    def __init__(self, block: Cut) -> None:
        super().__init__(block.n, 0)

    def eval(self, frame: Frame) -> Frame:
        return _EMPTY


# =========================
# Arithmetic
# =========================


class _BinaryOpEvaluator(Evaluator):
    __slots__ = ("_op",)

    def __init__(self, op: Callable[[np.ndarray, np.ndarray], np.ndarray]) -> None:
        super().__init__(2, 1)
        self._op = op

    def eval(self, frame: Frame) -> Frame:
        data = frame.to_numpy()
        return Frame._wrap(self._op(data[0:1], data[1:2]))


@register_evaluator(Plus)
def _bind_plus(block: Plus) -> Evaluator:
    return _BinaryOpEvaluator(np.add)


@register_evaluator(Minus)
def _bind_minus(block: Minus) -> Evaluator:
    return _BinaryOpEvaluator(np.subtract)


@register_evaluator(Times)
def _bind_times(block: Times) -> Evaluator:
    return _BinaryOpEvaluator(np.multiply)


def _divide(lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    # Division by zero yields inf/nan like any other float operation.
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.divide(lhs, rhs)


@register_evaluator(Divide)
def _bind_divide(block: Divide) -> Evaluator:
    return _BinaryOpEvaluator(_divide)


# =========================
# Memory
# =========================


class PassthroughMemEvaluator(Evaluator):
    __slots__ = ()

    def __init__(self) -> None:
        super().__init__(1, 1)

    def eval(self, frame: Frame) -> Frame:
        return frame


class RegisterEvaluator(Evaluator):
    """One-sample memory: returns the stored frame and keeps the new one."""

    __slots__ = ("_memory",)

    def __init__(self) -> None:
        super().__init__(1, 1)
        self._memory = Frame.zeros(1)

    def eval(self, frame: Frame) -> Frame:
        result = self._memory
        self._memory = frame
        return result


class RingBufferEvaluator(Evaluator):
    """Fixed-depth delay line backed by a ring buffer of ``depth`` samples."""

    __slots__ = ("_buffer", "_index", "_depth")

    def __init__(self, depth: int) -> None:
        super().__init__(1, 1)
        self._depth = int(depth)
        self._buffer = np.zeros(self._depth, dtype=RAW_DTYPE)
        self._index = 0

    def eval(self, frame: Frame) -> Frame:
        index = self._index
        result = float(self._buffer[index])
        self._buffer[index] = frame[0]
        self._index = (index + 1) % self._depth
        return Frame(result)


@register_evaluator(Mem)
def _bind_mem(block: Mem) -> Evaluator:
    if block.depth == 0:
        return PassthroughMemEvaluator()
    if block.depth == 1:
        return RegisterEvaluator()
    return RingBufferEvaluator(block.depth)


@register_evaluator(Delay)
class DelayEvaluator(Evaluator):
    """Variable delay over a ring buffer that grows on demand and never shrinks.

    Input is ``(delay, sample)``.  The delay is truncated toward zero and a
    non-finite amount (nan or inf) is read as 0.  When a delay larger than
    the current capacity is requested the buffer grows to exactly that size,
    and the samples between the write index and the old end move to the new
    end so they keep their distance from "now".
    """

    __slots__ = ("_buffer", "_index")

    def __init__(self, block: Delay) -> None:
        super().__init__(2, 1)
        self._buffer = np.zeros(0, dtype=RAW_DTYPE)
        self._index = 0

    @property
    def capacity(self) -> int:
        return int(self._buffer.shape[0])

    def _grow(self, size: int) -> None:
        old_size = self._buffer.shape[0]
        buffer = np.zeros(size, dtype=RAW_DTYPE)
        buffer[:old_size] = self._buffer
        moved = old_size - self._index
        if moved > 0:
            tail = buffer[self._index:old_size].copy()
            buffer[self._index:old_size] = 0.0
            buffer[size - moved:size] = tail
        self._buffer = buffer

    def eval(self, frame: Frame) -> Frame:
        amount = frame[0]
        delay = int(amount) if math.isfinite(amount) else 0
        size = self._buffer.shape[0]
        if size < delay:
            self._grow(delay)
            size = delay
        if size == 0:
            # Nothing has ever been buffered: a zero delay is a passthrough.
            return Frame(frame[1])
        index = self._index
        result = float(self._buffer[(size + index - delay) % size])
        self._buffer[index] = frame[1]
        self._index = (index + 1) % size
        return Frame(result)


# =========================
# Functions and filters
# =========================


@register_evaluator(FunBlock)
class FunEvaluator(Evaluator):
    __slots__ = ("_func",)

    def __init__(self, block: FunBlock) -> None:
        super().__init__(block.n_ins, block.n_outs)
        self._func = block.func

    def eval(self, frame: Frame) -> Frame:
        return as_frame(self._func(frame), self.outs)


@register_evaluator(StatefulFunc)
class StatefulFunEvaluator(Evaluator):
    """Function evaluator owning private copies of the block's states."""

    __slots__ = ("_func", "states")

    def __init__(self, block: StatefulFunc) -> None:
        super().__init__(block.n_ins, block.n_outs)
        self._func = block.func
        self.states = copy.deepcopy(block.states)

    def eval(self, frame: Frame) -> Frame:
        return as_frame(self._func(frame, *self.states), self.outs)


@register_evaluator(FIRFilter)
class FIREvaluator(Evaluator):
    """FIR convolution with a doubled kernel and a circular history.

    The newest sample is written one slot *before* the previous one, so the
    history read from the write offset forwards runs newest to oldest.
    Repeating the kernel twice means the coefficients that line up with
    ``history[0:N]`` are always the contiguous window
    ``kernel2[N - offset : 2N - offset]``.
    """

    __slots__ = ("_kernel", "_history", "_offset", "_taps")

    def __init__(self, block: FIRFilter) -> None:
        super().__init__(1, 1)
        kernel = np.asarray(block.kernel, dtype=RAW_DTYPE)
        self._taps = int(kernel.shape[0])
        self._kernel = np.concatenate([kernel, kernel])
        self._history = np.zeros(self._taps, dtype=RAW_DTYPE)
        self._offset = 0

    def eval(self, frame: Frame) -> Frame:
        taps = self._taps
        offset = (self._offset - 1) % taps
        self._history[offset] = frame[0]
        self._offset = offset
        start = (taps - offset) % taps
        return Frame(float(np.dot(self._history, self._kernel[start:start + taps])))


# =========================
# Composition
# =========================


@register_evaluator(Parallel)
class ParallelEvaluator(Evaluator):
    __slots__ = ("_lhs", "_rhs", "_split")

    def __init__(self, block: Parallel) -> None:
        super().__init__(block.ins, block.outs)
        self._lhs = _bind(block.lhs)
        self._rhs = _bind(block.rhs)
        self._split = block.lhs.ins

    def eval(self, frame: Frame) -> Frame:
        left = self._lhs.eval(frame.slice(0, self._split))
        right = self._rhs.eval(frame.slice(self._split))
        return concat(left, right)


@register_evaluator(Sequential)
class SequentialEvaluator(Evaluator):
    __slots__ = ("_lhs", "_rhs")

    def __init__(self, block: Sequential) -> None:
        super().__init__(block.ins, block.outs)
        self._lhs = _bind(block.lhs)
        self._rhs = _bind(block.rhs)

    def eval(self, frame: Frame) -> Frame:
        return self._rhs.eval(self._lhs.eval(frame))


@register_evaluator(Split)
class SplitEvaluator(Evaluator):
    """Tiles ``lhs`` outputs: ``rhs_in[i] = lhs_out[i % lhs.outs]``."""

    __slots__ = ("_lhs", "_rhs", "_tile")

    def __init__(self, block: Split) -> None:
        super().__init__(block.ins, block.outs)
        self._lhs = _bind(block.lhs)
        self._rhs = _bind(block.rhs)
        self._tile = np.arange(block.rhs.ins) % block.lhs.outs

    def eval(self, frame: Frame) -> Frame:
        left = self._lhs.eval(frame).to_numpy()
        return self._rhs.eval(Frame._wrap(left[self._tile]))


@register_evaluator(Merge)
class MergeEvaluator(Evaluator):
    """Folds ``lhs`` outputs: ``rhs_in[i % rhs.ins] += lhs_out[i]``."""

    __slots__ = ("_lhs", "_rhs", "_width")

    def __init__(self, block: Merge) -> None:
        super().__init__(block.ins, block.outs)
        self._lhs = _bind(block.lhs)
        self._rhs = _bind(block.rhs)
        self._width = block.rhs.ins

    def eval(self, frame: Frame) -> Frame:
        left = self._lhs.eval(frame).to_numpy()
        folded = left.reshape(-1, self._width).sum(axis=0)
        return self._rhs.eval(Frame._wrap(folded))


@register_evaluator(Recursive)
class RecursiveEvaluator(Evaluator):
    """One-sample feedback loop.

    ``lhs`` sees ``concat(feedback, input)``; the first ``rhs.ins`` outputs of
    ``lhs`` go through ``rhs`` and become the feedback for the next call.
    """

    __slots__ = ("_lhs", "_rhs", "_memory", "_tap")

    def __init__(self, block: Recursive) -> None:
        super().__init__(block.ins, block.outs)
        self._lhs = _bind(block.lhs)
        self._rhs = _bind(block.rhs)
        self._memory = Frame.zeros(block.rhs.outs)
        self._tap = block.rhs.ins

    def eval(self, frame: Frame) -> Frame:
        out = self._lhs.eval(concat(self._memory, frame))
        self._memory = self._rhs.eval(out.slice(0, self._tap))
        return out


@register_evaluator(Partial)
class PartialEvaluator(Evaluator):
    """Feeds argument outputs, then the unconsumed input, into the wrapped block."""

    __slots__ = ("_block", "_args")

    def __init__(self, block: Partial) -> None:
        super().__init__(block.ins, block.outs)
        self._block = _bind(block.block)
        self._args = tuple((_bind(arg), arg.ins) for arg in block.inputs)

    def eval(self, frame: Frame) -> Frame:
        pieces = []
        offset = 0
        for evaluator, width in self._args:
            pieces.append(evaluator.eval(frame.slice(offset, offset + width)))
            offset += width
        pieces.append(frame.slice(offset))
        return self._block.eval(concat(*pieces))


# =========================
# Type-erased wrapper
# =========================


class DynEvaluator(Evaluator):
    """Fixed-arity wrapper around any evaluator with matching ``ins``/``outs``.

    Lets a topology chosen at run time live in a field typed only by its
    arity.  Each call is a single indirection to the wrapped ``eval``.
    """

    __slots__ = ("_eval", "_inner")

    def __init__(self, ins: int, outs: int, evaluator: Evaluator) -> None:
        if (evaluator.ins, evaluator.outs) != (ins, outs):
            raise ShapeError(
                f"DynEvaluator({ins}, {outs}) cannot hold a {evaluator.ins}->{evaluator.outs} evaluator"
            )
        super().__init__(ins, outs)
        self._inner = evaluator
        self._eval = evaluator.eval

    @classmethod
    def from_block(cls, ins: int, outs: int, block) -> "DynEvaluator":
        return cls(ins, outs, make_evaluator(block))

    @property
    def wrapped_kind(self) -> str:
        return self._inner.kind

    def eval(self, frame: Frame) -> Frame:
        return self._eval(frame)


# =========================
# Bulk helpers
# =========================


def process(evaluator: Evaluator, samples, out: np.ndarray | None = None) -> np.ndarray:
    """Run a 1-in/1-out evaluator over a buffer, one ``eval`` per sample."""

    if evaluator.ins != 1 or evaluator.outs != 1:
        raise ShapeError(
            f"process() needs a 1->1 evaluator, got {evaluator.ins}->{evaluator.outs}"
        )
    source = np.asarray(samples, dtype=RAW_DTYPE)
    if source.ndim != 1:
        raise ShapeError(f"process() expects a 1-D buffer, got rank {source.ndim}")
    if out is None:
        out = np.empty(source.shape[0], dtype=RAW_DTYPE)
    elif out.shape != source.shape:
        raise ShapeError(f"output buffer {out.shape} does not match input {source.shape}")
    step = evaluator.eval
    for i, sample in enumerate(source.tolist()):
        out[i] = step(Frame(sample))[0]
    return out


def process_frames(evaluator: Evaluator, frames) -> np.ndarray:
    """Run any evaluator over ``(F, ins)`` input rows, returning ``(F, outs)``."""

    source = np.asarray(frames, dtype=RAW_DTYPE)
    if source.ndim == 1 and evaluator.ins == 1:
        source = source[:, None]
    if source.ndim != 2 or source.shape[1] != evaluator.ins:
        raise ShapeError(
            f"expected input rows of {evaluator.ins} samples, got shape {source.shape}"
        )
    out = np.empty((source.shape[0], evaluator.outs), dtype=RAW_DTYPE)
    step = evaluator.eval
    for i in range(source.shape[0]):
        out[i] = step(Frame.from_iterable(source[i])).to_numpy()
    return out


def render(evaluator: Evaluator, frames: int) -> np.ndarray:
    """Pull ``frames`` output rows from a source (0-input) evaluator."""

    if evaluator.ins != 0:
        raise ShapeError(f"render() needs a 0-input evaluator, got {evaluator.ins} inputs")
    return process_frames(evaluator, np.empty((int(frames), 0), dtype=RAW_DTYPE))


__all__ = [
    "DelayEvaluator",
    "DynEvaluator",
    "Evaluator",
    "FIREvaluator",
    "make_evaluator",
    "evaluate",
    "process",
    "process_frames",
    "register_evaluator",
    "render",
]
