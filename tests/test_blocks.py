import dataclasses

import pytest

from sigblocks.blocks import (
    DELAY,
    PLUS,
    Block,
    Cell,
    Cut,
    FIRFilter,
    FunBlock,
    Ident,
    Literal,
    Mem,
    Merge,
    Parallel,
    Partial,
    Recursive,
    Ref,
    Sequential,
    Split,
    StatefulFunc,
    as_block,
    fir,
    merge,
    par,
    rec,
    repeat,
    repeat_par,
    repeat_seq,
    seq,
    split,
)
from sigblocks.frame import ShapeError
from sigblocks.syntax import _, cut


def _noop(frame):
    return frame


@pytest.mark.parametrize(
    "block,arity",
    [
        (Literal(1.0), (0, 1)),
        (Ref(Cell()), (0, 1)),
        (Ident(3), (3, 3)),
        (Cut(2), (2, 0)),
        (PLUS, (2, 1)),
        (Mem(4), (1, 1)),
        (DELAY, (2, 1)),
        (FunBlock(2, 3, _noop), (2, 3)),
        (StatefulFunc(1, 2, _noop), (1, 2)),
        (fir([0.5, 0.5]), (1, 1)),
        (Parallel(Ident(2), Cut(1)), (3, 2)),
        (Sequential(Ident(2), Cut(2)), (2, 0)),
        (Split(Ident(2), Ident(6)), (2, 6)),
        (Merge(Ident(6), Ident(3)), (6, 3)),
        (Recursive(Ident(2), Ident(1)), (1, 2)),
    ],
)
def test_arity_table(block, arity):
    assert block.arity == arity


@pytest.mark.parametrize(
    "build",
    [
        lambda: seq(Ident(2), Ident(1)),
        lambda: split(Ident(2), Ident(3)),
        lambda: split(Cut(1), Ident(2)),
        lambda: merge(Ident(3), Ident(2)),
        lambda: merge(Ident(2), Literal(1.0)),
        lambda: rec(Ident(1), Ident(2)),
        lambda: rec(Ident(1), par(1.0, 2.0)),
        lambda: Ident(-1),
        lambda: Cut(-1),
        lambda: Mem(-1),
        lambda: FunBlock(-1, 1, _noop),
        lambda: FIRFilter(()),
        lambda: PLUS(1, 2, 3),
        lambda: Ident(1)((_, _)),
    ],
)
def test_ill_shaped_compositions_are_rejected(build):
    with pytest.raises(ShapeError):
        build()


def test_shape_error_is_value_error():
    assert issubclass(ShapeError, ValueError)


def test_partial_arity():
    assert PLUS(1).arity == (1, 1)
    assert PLUS(1, 2).arity == (0, 1)
    curried = par(_, _, _, _)(_ + 1, _ - _)
    assert isinstance(curried, Partial)
    assert curried.arity == (5, 4)


def test_as_block_conversions():
    assert as_block(2) == Literal(2.0)
    cell = Cell(1.5)
    assert as_block(cell) == Ref(cell)
    assert as_block((1, _)).arity == (1, 2)
    assert as_block(_) is _
    with pytest.raises(TypeError):
        as_block("x")
    with pytest.raises(TypeError):
        as_block(True)


def test_operators_build_combinators():
    assert isinstance(_ | _, Sequential)
    assert isinstance(_ // _, Parallel)
    assert isinstance(_ << (_, _), Split)
    assert isinstance((_, _) >> _, Merge)
    assert isinstance(par(_, _) % _, Recursive)
    assert (_ // 1).arity == (1, 2)
    assert (1 - _).arity == (1, 1)
    assert ((_, _) | PLUS).arity == (2, 1)
    with pytest.raises(TypeError):
        _ | "x"


def test_arithmetic_operators_curry_binary_blocks():
    block = _ * 0.5
    assert isinstance(block, Partial)
    assert block.block.kind == "Times"
    assert block.inputs == (_, Literal(0.5))


def test_repeat_builds_nested_trees():
    assert repeat(_, 0) == Ident(0)
    assert repeat(_, 1) is _
    assert repeat(_, 3, "par").arity == (3, 3)
    assert repeat_par(Cut(1), 2).arity == (2, 0)
    assert repeat_seq(_ * 2, 4).arity == (1, 1)
    nested = repeat(_, 3, "par")
    assert nested == Parallel(_, Parallel(_, _))
    with pytest.raises(ShapeError):
        repeat(_, -1)
    with pytest.raises(ValueError):
        repeat(_, 2, "bogus")


def test_unit_delay_keeps_arity():
    delayed = ~par(_, _)
    assert delayed.arity == (2, 2)
    assert isinstance(delayed.rhs, Parallel)


def test_par_and_seq_helpers():
    assert par() == Ident(0)
    assert par(_, cut, 2).arity == (2, 2)
    assert seq(_, _ + 1, _ * 2).arity == (1, 1)
    with pytest.raises(ShapeError):
        seq()


def test_descriptors_are_frozen():
    literal = Literal(1.0)
    with pytest.raises(dataclasses.FrozenInstanceError):
        literal.value = 2.0


def test_walk_visits_every_block_depth_first():
    block = seq(_, _ * 2)
    kinds = [node.kind for node in block.walk()]
    assert kinds[0] == "Sequential"
    assert kinds[1] == "Ident"
    assert kinds.count("Literal") == 1
    assert "Times" in kinds


def test_fir_kernel_is_normalised_to_floats():
    block = fir([1, 0, 0])
    assert block.kernel == (1.0, 0.0, 0.0)
    assert block.taps == 3


def test_composition_requires_blocks():
    with pytest.raises(TypeError):
        Sequential(_, 1.0)
    with pytest.raises(TypeError):
        Partial(1.0)


def test_shared_subtrees_are_safe():
    gain = _ * 2
    both = par(gain, gain)
    assert both.arity == (2, 2)
    assert isinstance(both.lhs, Block)
    assert both.lhs is both.rhs
