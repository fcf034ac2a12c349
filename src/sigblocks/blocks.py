"""Block descriptors and the composition algebra.

Blocks are immutable descriptions of signal-processing units.  Each one
declares how many samples it consumes (``ins``) and produces (``outs``) per
call; combinators check those arities in their constructors and raise
:class:`~sigblocks.frame.ShapeError` for ill-shaped compositions, so an
evaluator is never bound from a topology that does not line up.

Operators give a compact notation for writing topologies::

    from sigblocks.syntax import _, cut

    lowpass = ((_ * 0.1) + (_ * 0.9)) % _      # one-pole smoother, 1 -> 1
    stereo = _ << (_, _)                        # duplicate to 2 channels
    summed = (_, _) >> _                        # 2 -> 1 mix

``|`` is sequential, ``//`` parallel, ``<<`` split, ``>>`` merge, ``%``
recursive, ``~`` a one-sample delay of every output, and calling a block
binds its leftmost inputs (currying).  Numbers, :class:`Cell` objects and
tuples of blocks are converted with :func:`as_block` on either side of an
operator.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Sequence

import numpy as np

from .frame import Frame, ShapeError


@dataclass(eq=False)
class Cell:
    """Externally owned scalar read by :class:`Ref` blocks on every call.

    The integration layer owns cells and writes ``value`` between (or
    during) render calls; blocks only ever hold a link to them.
    """

    value: float = 0.0


class Block:
    """Base class of every block descriptor."""

    in_channels = 0
    out_channels = 0

    @property
    def ins(self) -> int:
        return self.in_channels

    @property
    def outs(self) -> int:
        return self.out_channels

    @property
    def arity(self) -> tuple[int, int]:
        return (self.ins, self.outs)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def children(self) -> tuple["Block", ...]:
        return ()

    def walk(self) -> Iterator["Block"]:
        """Yield this block and every nested block, depth first."""

        stack: list[Block] = [self]
        while stack:
            block = stack.pop()
            yield block
            stack.extend(reversed(block.children()))

    # ------------------------------------------------------------------
    # Currying

    def __call__(self, *inputs: Any) -> "Partial":
        if len(inputs) > self.ins:
            raise ShapeError(
                f"{self.kind} takes {self.ins} inputs but was called with {len(inputs)} arguments"
            )
        return Partial(self, tuple(as_block(value) for value in inputs))

    # ------------------------------------------------------------------
    # Structural operators

    def __or__(self, other):
        rhs = _coerce(other)
        return NotImplemented if rhs is None else Sequential(self, rhs)

    def __ror__(self, other):
        lhs = _coerce(other)
        return NotImplemented if lhs is None else Sequential(lhs, self)

    def __floordiv__(self, other):
        rhs = _coerce(other)
        return NotImplemented if rhs is None else Parallel(self, rhs)

    def __rfloordiv__(self, other):
        lhs = _coerce(other)
        return NotImplemented if lhs is None else Parallel(lhs, self)

    def __lshift__(self, other):
        rhs = _coerce(other)
        return NotImplemented if rhs is None else Split(self, rhs)

    def __rlshift__(self, other):
        lhs = _coerce(other)
        return NotImplemented if lhs is None else Split(lhs, self)

    def __rshift__(self, other):
        rhs = _coerce(other)
        return NotImplemented if rhs is None else Merge(self, rhs)

    def __rrshift__(self, other):
        lhs = _coerce(other)
        return NotImplemented if lhs is None else Merge(lhs, self)

    def __mod__(self, other):
        rhs = _coerce(other)
        return NotImplemented if rhs is None else Recursive(self, rhs)

    def __rmod__(self, other):
        lhs = _coerce(other)
        return NotImplemented if lhs is None else Recursive(lhs, self)

    def __invert__(self) -> "Sequential":
        return unit_delay(self)

    # ------------------------------------------------------------------
    # Arithmetic (curried binary blocks)

    def __add__(self, other):
        return _arith(PLUS, self, other)

    def __radd__(self, other):
        return _arith(PLUS, other, self)

    def __sub__(self, other):
        return _arith(MINUS, self, other)

    def __rsub__(self, other):
        return _arith(MINUS, other, self)

    def __mul__(self, other):
        return _arith(TIMES, self, other)

    def __rmul__(self, other):
        return _arith(TIMES, other, self)

    def __truediv__(self, other):
        return _arith(DIVIDE, self, other)

    def __rtruediv__(self, other):
        return _arith(DIVIDE, other, self)


# =========================
# Leaf blocks
# =========================


@dataclass(frozen=True)
class Literal(Block):
    """Constant baked in when the topology is written."""

    value: float
    out_channels = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))


@dataclass(frozen=True)
class Ref(Block):
    """Reads ``cell.value`` on every call; the cell is not owned."""

    cell: Cell | None = None
    out_channels = 1


@dataclass(frozen=True)
class Ident(Block):
    """Passes ``n`` samples through unchanged."""

    n: int = 1

    def __post_init__(self) -> None:
        if self.n < 0:
            raise ShapeError("Ident width must be non-negative")

    @property
    def ins(self) -> int:
        return self.n

    @property
    def outs(self) -> int:
        return self.n


@dataclass(frozen=True)
class Cut(Block):
    """Ends ``n`` signal paths, discarding their samples."""

    n: int = 1

    def __post_init__(self) -> None:
        if self.n < 0:
            raise ShapeError("Cut width must be non-negative")

    @property
    def ins(self) -> int:
        return self.n


@dataclass(frozen=True)
class Plus(Block):
    in_channels = 2
    out_channels = 1


@dataclass(frozen=True)
class Minus(Block):
    in_channels = 2
    out_channels = 1


@dataclass(frozen=True)
class Times(Block):
    in_channels = 2
    out_channels = 1


@dataclass(frozen=True)
class Divide(Block):
    in_channels = 2
    out_channels = 1


@dataclass(frozen=True)
class Mem(Block):
    """Outputs its input delayed by a fixed number of samples."""

    depth: int = 1
    in_channels = 1
    out_channels = 1

    def __post_init__(self) -> None:
        if self.depth < 0:
            raise ShapeError("Mem depth must be non-negative")


@dataclass(frozen=True)
class Delay(Block):
    """Given ``(d, x)``, outputs ``x`` delayed by ``d`` samples."""

    in_channels = 2
    out_channels = 1


@dataclass(frozen=True)
class FunBlock(Block):
    """Adapts a pure ``Frame -> Frame`` function with fixed arity."""

    n_ins: int
    n_outs: int
    func: Callable[[Frame], Any]

    def __post_init__(self) -> None:
        if self.n_ins < 0 or self.n_outs < 0:
            raise ShapeError("function block arities must be non-negative")

    @property
    def ins(self) -> int:
        return self.n_ins

    @property
    def outs(self) -> int:
        return self.n_outs


_IMMUTABLE_STATES = (numbers.Number, str, bytes, tuple, frozenset)


@dataclass(frozen=True)
class StatefulFunc(Block):
    """Function block that threads private state objects through each call.

    ``func(frame, *states)`` is expected to update its state objects in
    place (lists, dicts, numpy arrays, small mutable classes).  Every bound
    evaluator receives deep copies of ``states``.  Immutable values such as
    numbers, strings and tuples cannot be updated in place and are rejected
    with ``TypeError``; wrap a scalar accumulator in a list instead.
    """

    n_ins: int
    n_outs: int
    func: Callable[..., Any]
    states: tuple = ()

    def __post_init__(self) -> None:
        if self.n_ins < 0 or self.n_outs < 0:
            raise ShapeError("function block arities must be non-negative")
        object.__setattr__(self, "states", tuple(self.states))
        for state in self.states:
            if state is None or isinstance(state, _IMMUTABLE_STATES):
                raise TypeError(
                    f"stateful block state must be mutable, got {type(state).__name__}"
                )

    @property
    def ins(self) -> int:
        return self.n_ins

    @property
    def outs(self) -> int:
        return self.n_outs


@dataclass(frozen=True)
class FIRFilter(Block):
    """Convolves its input with a fixed kernel."""

    kernel: tuple
    in_channels = 1
    out_channels = 1

    def __post_init__(self) -> None:
        kernel = tuple(float(tap) for tap in np.asarray(self.kernel, dtype=float).ravel())
        if not kernel:
            raise ShapeError("FIR kernel must contain at least one tap")
        object.__setattr__(self, "kernel", kernel)

    @property
    def taps(self) -> int:
        return len(self.kernel)


# =========================
# Combinators
# =========================


@dataclass(frozen=True)
class BinaryBlock(Block):
    lhs: Block
    rhs: Block

    def __post_init__(self) -> None:
        if not isinstance(self.lhs, Block) or not isinstance(self.rhs, Block):
            raise TypeError(f"{self.kind} composes blocks; use as_block() to convert values")
        self._check(self.lhs, self.rhs)

    def _check(self, lhs: Block, rhs: Block) -> None:
        pass

    def children(self) -> tuple[Block, ...]:
        return (self.lhs, self.rhs)

    @property
    def ins(self) -> int:
        return self.lhs.ins

    @property
    def outs(self) -> int:
        return self.rhs.outs


@dataclass(frozen=True)
class Parallel(BinaryBlock):
    """Runs ``lhs`` and ``rhs`` on disjoint input slices; outputs are joined."""

    @property
    def ins(self) -> int:
        return self.lhs.ins + self.rhs.ins

    @property
    def outs(self) -> int:
        return self.lhs.outs + self.rhs.outs


@dataclass(frozen=True)
class Sequential(BinaryBlock):
    """Feeds the output of ``lhs`` into ``rhs``."""

    def _check(self, lhs: Block, rhs: Block) -> None:
        if lhs.outs != rhs.ins:
            raise ShapeError(
                f"Sequential: {lhs.kind} produces {lhs.outs} outputs but {rhs.kind} takes {rhs.ins} inputs"
            )


@dataclass(frozen=True)
class Split(BinaryBlock):
    """Tiles the outputs of ``lhs`` across the inputs of ``rhs``."""

    def _check(self, lhs: Block, rhs: Block) -> None:
        if lhs.outs == 0 or rhs.ins % lhs.outs != 0:
            raise ShapeError(
                f"Split: {rhs.kind} inputs ({rhs.ins}) must be a multiple of {lhs.kind} outputs ({lhs.outs})"
            )


@dataclass(frozen=True)
class Merge(BinaryBlock):
    """Sums the outputs of ``lhs`` modulo the input count of ``rhs``."""

    def _check(self, lhs: Block, rhs: Block) -> None:
        if rhs.ins == 0 or lhs.outs % rhs.ins != 0:
            raise ShapeError(
                f"Merge: {lhs.kind} outputs ({lhs.outs}) must be a multiple of {rhs.kind} inputs ({rhs.ins})"
            )


@dataclass(frozen=True)
class Recursive(BinaryBlock):
    """Feeds ``rhs`` of the previous ``lhs`` output back into ``lhs``.

    The first ``rhs.outs`` inputs of ``lhs`` receive the feedback signal and
    the remaining inputs are exposed as the inputs of the composition.
    """

    def _check(self, lhs: Block, rhs: Block) -> None:
        if rhs.ins > lhs.outs:
            raise ShapeError(
                f"Recursive: feedback {rhs.kind} takes {rhs.ins} inputs but {lhs.kind} only produces {lhs.outs}"
            )
        if rhs.outs > lhs.ins:
            raise ShapeError(
                f"Recursive: feedback {rhs.kind} produces {rhs.outs} outputs but {lhs.kind} only takes {lhs.ins}"
            )

    @property
    def ins(self) -> int:
        return self.lhs.ins - self.rhs.outs

    @property
    def outs(self) -> int:
        return self.lhs.outs


@dataclass(frozen=True)
class Partial(Block):
    """``block`` with its leftmost inputs bound to sub-topologies."""

    block: Block
    inputs: tuple = ()

    def __post_init__(self) -> None:
        if not isinstance(self.block, Block):
            raise TypeError("Partial wraps a block; use as_block() to convert values")
        inputs = tuple(as_block(arg) for arg in self.inputs)
        object.__setattr__(self, "inputs", inputs)
        bound = sum(arg.outs for arg in inputs)
        if bound > self.block.ins:
            raise ShapeError(
                f"Partial: arguments produce {bound} signals but {self.block.kind} takes {self.block.ins}"
            )

    def children(self) -> tuple[Block, ...]:
        return (self.block,) + self.inputs

    @property
    def ins(self) -> int:
        return self.block.ins + sum(arg.ins - arg.outs for arg in self.inputs)

    @property
    def outs(self) -> int:
        return self.block.outs


# =========================
# Construction helpers
# =========================

PLUS = Plus()
MINUS = Minus()
TIMES = Times()
DIVIDE = Divide()
DELAY = Delay()


def _coerce(value) -> Block | None:
    try:
        return as_block(value)
    except TypeError:
        return None


def _arith(op: Block, lhs, rhs):
    left = _coerce(lhs)
    right = _coerce(rhs)
    if left is None or right is None:
        return NotImplemented
    return op(left, right)


def as_block(value) -> Block:
    """Convert ``value`` into a block.

    Blocks pass through, numbers become :class:`Literal`, cells become
    :class:`Ref` and tuples or lists become a right-nested parallel stack.
    """

    if isinstance(value, Block):
        return value
    if isinstance(value, Cell):
        return Ref(value)
    if isinstance(value, bool):
        raise TypeError("booleans are not signal values")
    if isinstance(value, numbers.Real):
        return Literal(float(value))
    if isinstance(value, (tuple, list)):
        return par(*value)
    raise TypeError(f"cannot convert {type(value).__name__} to a block")


def literal(value: float) -> Literal:
    return Literal(float(value))


def ref(cell: Cell) -> Ref:
    return Ref(cell)


def ident(n: int = 1) -> Ident:
    return Ident(n)


def cut(n: int = 1) -> Cut:
    return Cut(n)


def mem(depth: int = 1) -> Mem:
    return Mem(depth)


def fun(ins: int, outs: int, func: Callable[[Frame], Any]) -> FunBlock:
    return FunBlock(ins, outs, func)


def stateful(ins: int, outs: int, func: Callable[..., Any], *states: Any) -> StatefulFunc:
    return StatefulFunc(ins, outs, func, states)


def fir(kernel: Sequence[float]) -> FIRFilter:
    return FIRFilter(tuple(kernel))


def par(*blocks) -> Block:
    """Parallel composition of any number of blocks, nested to the right."""

    if not blocks:
        return Ident(0)
    converted = [as_block(block) for block in blocks]
    result = converted[-1]
    for block in reversed(converted[:-1]):
        result = Parallel(block, result)
    return result


def seq(*blocks) -> Block:
    """Sequential composition of any number of blocks, nested to the right."""

    if not blocks:
        raise ShapeError("seq() needs at least one block")
    converted = [as_block(block) for block in blocks]
    result = converted[-1]
    for block in reversed(converted[:-1]):
        result = Sequential(block, result)
    return result


def split(lhs, rhs) -> Split:
    return Split(as_block(lhs), as_block(rhs))


def merge(lhs, rhs) -> Merge:
    return Merge(as_block(lhs), as_block(rhs))


def rec(lhs, rhs) -> Recursive:
    return Recursive(as_block(lhs), as_block(rhs))


_COMBINATORS: dict[str, Callable[[Block, Block], Block]] = {
    "seq": Sequential,
    "sequential": Sequential,
    "par": Parallel,
    "parallel": Parallel,
}


def repeat(block, n: int, combinator: str | Callable[[Block, Block], Block] = "seq") -> Block:
    """Fold ``block`` ``n`` times through ``combinator``.

    ``repeat(b, 3, par)`` is ``par(b, par(b, b))``.  ``n == 0`` yields the
    empty identity and ``n == 1`` the block itself.
    """

    if n < 0:
        raise ShapeError("repeat count must be non-negative")
    if isinstance(combinator, str):
        try:
            combinator = _COMBINATORS[combinator.lower()]
        except KeyError:
            raise ValueError(
                f"Unknown combinator '{combinator}'. Available: {', '.join(sorted(_COMBINATORS))}"
            ) from None
    base = as_block(block)
    if n == 0:
        return Ident(0)
    result = base
    for _ in range(n - 1):
        result = combinator(base, result)
    return result


def repeat_seq(block, n: int) -> Block:
    return repeat(block, n, Sequential)


def repeat_par(block, n: int) -> Block:
    return repeat(block, n, Parallel)


def unit_delay(block) -> Sequential:
    """Delay every output of ``block`` by one sample."""

    base = as_block(block)
    return Sequential(base, repeat_par(Mem(1), base.outs))


# =========================
# Built-in function blocks
# =========================


def _unary(func: Callable[[np.ndarray], np.ndarray]) -> Callable[[Frame], np.ndarray]:
    def apply(frame: Frame) -> np.ndarray:
        return func(frame.to_numpy())

    apply.__name__ = getattr(func, "__name__", "apply")
    return apply


def _fmod(frame: Frame) -> float:
    with np.errstate(invalid="ignore", divide="ignore"):
        return float(np.fmod(frame[0], frame[1]))


sin = FunBlock(1, 1, _unary(np.sin))
cos = FunBlock(1, 1, _unary(np.cos))
tan = FunBlock(1, 1, _unary(np.tan))
tanh = FunBlock(1, 1, _unary(np.tanh))
mod = FunBlock(2, 1, _fmod)


__all__ = [
    "BinaryBlock",
    "Block",
    "Cell",
    "Cut",
    "DELAY",
    "DIVIDE",
    "Delay",
    "Divide",
    "FIRFilter",
    "FunBlock",
    "Ident",
    "Literal",
    "MINUS",
    "Mem",
    "Merge",
    "Minus",
    "PLUS",
    "Parallel",
    "Partial",
    "Plus",
    "Recursive",
    "Ref",
    "Sequential",
    "Split",
    "StatefulFunc",
    "TIMES",
    "Times",
    "as_block",
    "cos",
    "cut",
    "fir",
    "fun",
    "ident",
    "literal",
    "mem",
    "merge",
    "mod",
    "par",
    "rec",
    "ref",
    "repeat",
    "repeat_par",
    "repeat_seq",
    "seq",
    "sin",
    "split",
    "stateful",
    "tan",
    "tanh",
    "unit_delay",
]
