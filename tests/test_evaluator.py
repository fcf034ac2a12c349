import numpy as np
import pytest

from sigblocks import diagnostics
from sigblocks.blocks import (
    DELAY,
    Block,
    Cell,
    Cut,
    Ident,
    Literal,
    Mem,
    Plus,
    Ref,
    cos,
    fir,
    fun,
    mod,
    par,
    repeat_par,
    seq,
    sin,
    stateful,
    tanh,
)
from sigblocks.evaluator import (
    DelayEvaluator,
    DynEvaluator,
    evaluate,
    make_evaluator,
    process,
    process_frames,
    register_evaluator,
    render,
)
from sigblocks.frame import Frame, ShapeError, concat
from sigblocks.syntax import _, cut, mem


def _run(block, inputs):
    evaluator = make_evaluator(block)
    return [evaluator(value) for value in inputs]


@pytest.mark.parametrize(
    "block,given,expected",
    [
        (_ - _, (1, 2), (-1,)),
        (_ + 0.5, (2,), (2.5,)),
        (par(_, _), (1, 2), (1, 2)),
        (par(par(_, _), par(_, _)), (1, 2, 3, 4), (1, 2, 3, 4)),
        (par(_, 2), (1,), (1, 2)),
        (_ | (_ + 1) | (_, 10), (1,), (2, 10)),
        (_ << (_, _), (1,), (1, 1)),
        (par(_, _) << (_, _, _, _), (1, 2), (1, 2, 1, 2)),
        (par(_, _) << (_, _, _, _, _, _), (1, 2), (1, 2, 1, 2, 1, 2)),
        ((_, _) >> _, (1, 2), (3,)),
        (repeat_par(_, 4) >> (_, _), (1, 2, 3, 4), (4, 6)),
        (cut, (10,), ()),
        (par(_, cut), (1, 2), (1,)),
        (par(Literal(1), 2), (), (1, 2)),
        (_ * 3 / 2, (4,), (6,)),
    ],
)
def test_expression_evaluates(block, given, expected):
    assert evaluate(block, given) == Frame(*expected)


def test_curried_sub_blocks_feed_leftmost_inputs():
    curried = par(_, _, _, _)(_ + 1, _ - _)
    assert evaluate(curried, (1, 2, 3, 4, 5)) == Frame(2, -1, 4, 5)


def test_fully_curried_block_becomes_source():
    block = (_ + 0.5)(2)
    assert block.ins == 0
    assert evaluate(block, ()) == Frame(2.5)


@pytest.mark.parametrize("n", [0, 1, 3, 8])
def test_identity_returns_input(n):
    rng = np.random.default_rng(n)
    evaluator = make_evaluator(Ident(n))
    for _iteration in range(5):
        frame = Frame.from_iterable(rng.normal(size=n))
        assert evaluator.eval(frame) == frame


@pytest.mark.parametrize("n", [0, 1, 4])
def test_cut_returns_empty_frame(n):
    assert evaluate(Cut(n), [1.0] * n) == Frame()


def test_output_width_matches_declared_arity():
    blocks = [
        par(_, _) % par(cut, _),
        _ << (_, _, _),
        par(_ * 2, Literal(1), Cut(1)),
        seq(_, tanh, ~_),
        fir([0.25, 0.25, 0.25, 0.25]),
    ]
    rng = np.random.default_rng(7)
    for block in blocks:
        evaluator = make_evaluator(block)
        for _iteration in range(4):
            out = evaluator.eval(Frame.from_iterable(rng.normal(size=block.ins)))
            assert out.size == block.outs


def test_sequential_law():
    left = par(_ * 2, _ + 1)
    right = (_, _) >> _
    rng = np.random.default_rng(1)
    for _iteration in range(5):
        x = Frame.from_iterable(rng.normal(size=2))
        assert evaluate(seq(left, right), x) == evaluate(right, evaluate(left, x))


def test_parallel_law():
    left = _ * 2
    right = par(_, _) >> _
    a = Frame(1.5)
    b = Frame(2.0, 3.0)
    assert evaluate(par(left, right), concat(a, b)) == concat(evaluate(left, a), evaluate(right, b))


def test_sequential_identity_is_identity():
    for n in (1, 3):
        frame = Frame.from_iterable(range(n))
        assert evaluate(seq(Ident(n), Ident(n)), frame) == evaluate(Ident(n), frame)


def test_register_memory():
    assert [float(out) for out in _run(mem, [1, 2, 3])] == [0.0, 1.0, 2.0]


def test_zero_depth_memory_passes_through():
    assert [float(out) for out in _run(Mem(0), [1, 2, 3])] == [1.0, 2.0, 3.0]


def test_ring_memory_delays_by_depth():
    outputs = [float(out) for out in _run(Mem(3), [1, 2, 3, 4, 5, 6])]
    assert outputs == [0.0, 0.0, 0.0, 1.0, 2.0, 3.0]


@pytest.mark.parametrize("d", [1, 2, 5])
def test_variable_delay_matches_fixed_memory(d):
    stream = list(range(1, 16))
    delayed = make_evaluator(DELAY)
    fixed = make_evaluator(Mem(d))
    for x in stream:
        assert delayed(d, x) == fixed(x)


def test_variable_delay_keeps_distance_when_growing():
    evaluator = make_evaluator(DELAY)
    outputs = [float(evaluator(2, x)) for x in (1, 2, 3)]
    outputs += [float(evaluator(4, x)) for x in (4, 5, 6, 7)]
    assert outputs == [0.0, 0.0, 1.0, 0.0, 0.0, 2.0, 3.0]
    assert isinstance(evaluator, DelayEvaluator)
    assert evaluator.capacity == 4


def test_variable_delay_never_shrinks():
    evaluator = make_evaluator(DELAY)
    evaluator(8, 1.0)
    evaluator(2, 1.0)
    assert evaluator.capacity == 8


def test_variable_delay_truncates_fractional_amounts():
    evaluator = make_evaluator(DELAY)
    outputs = [float(evaluator(1.9, x)) for x in (1, 2, 3)]
    assert outputs == [0.0, 1.0, 2.0]


@pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
def test_variable_delay_reads_non_finite_amounts_as_zero(amount):
    evaluator = make_evaluator(DELAY)
    assert evaluator(amount, 0.5) == Frame(0.5)
    assert evaluator.capacity == 0
    evaluator(4, 1.0)
    outputs = [float(evaluator(amount, x)) for x in (2.0, 3.0, 4.0)]
    assert outputs == [0.0, 0.0, 0.0]
    assert evaluator.capacity == 4


def test_zero_delay_on_empty_buffer_passes_through():
    evaluator = make_evaluator(DELAY)
    assert evaluator(0, 0.75) == Frame(0.75)
    assert evaluator(-3, 0.25) == Frame(0.25)
    assert evaluator.capacity == 0


def test_recursive_feeds_back_previous_output():
    evaluator = make_evaluator(par(_, _) % par(cut, _))
    assert evaluator(1) == Frame(0, 1)
    assert evaluator(2) == Frame(1, 2)
    assert evaluator(3) == Frame(2, 3)


def test_one_pole_feedback():
    evaluator = make_evaluator(((_ * 0.5) + (_ * 0.5)) % _)
    outputs = [float(evaluator(1.0)) for _iteration in range(3)]
    assert outputs == pytest.approx([0.5, 0.75, 0.875])


def test_unit_delay_operator():
    evaluator = make_evaluator(~par(_, _))
    assert evaluator(1, 2) == Frame(0, 0)
    assert evaluator(3, 4) == Frame(1, 2)


def test_fir_identity_kernel():
    signal = np.random.default_rng(3).normal(size=12)
    out = process(make_evaluator(fir([1, 0, 0, 0])), signal)
    np.testing.assert_allclose(out, signal)


def test_fir_last_tap_delays_by_taps_minus_one():
    taps = 5
    kernel = [0.0] * (taps - 1) + [1.0]
    signal = np.arange(1.0, 13.0)
    out = process(make_evaluator(fir(kernel)), signal)
    expected = np.concatenate([np.zeros(taps - 1), signal[: -(taps - 1)]])
    np.testing.assert_allclose(out, expected)


def test_fir_matches_numpy_convolution():
    kernel = np.array([0.5, -0.25, 0.125])
    signal = np.random.default_rng(11).normal(size=20)
    out = process(make_evaluator(fir(kernel)), signal)
    np.testing.assert_allclose(out, np.convolve(signal, kernel)[: signal.size], atol=1e-12)


def test_ref_reads_cell_on_every_call():
    cell = Cell(2.0)
    evaluator = make_evaluator(_ * cell)
    assert evaluator(3) == Frame(6)
    cell.value = 4.0
    assert evaluator(3) == Frame(12)


def test_unset_ref_fails_on_first_eval():
    evaluator = make_evaluator(Ref())
    with pytest.raises(AttributeError):
        evaluator()


def test_division_by_zero_follows_float_semantics():
    assert np.isinf(float(evaluate(_ / 0, 1.0)))
    assert np.isnan(float(evaluate(_ / 0, 0.0)))


def test_builtin_function_blocks():
    assert float(evaluate(sin, 0.0)) == 0.0
    assert float(evaluate(cos, 0.0)) == 1.0
    assert float(evaluate(tanh, 0.5)) == pytest.approx(np.tanh(0.5))
    assert evaluate(mod, (7, 3)) == Frame(1)


def test_function_block_results_are_coerced():
    pair = fun(1, 2, lambda frame: (frame[0], -frame[0]))
    assert evaluate(pair, 2.0) == Frame(2, -2)
    wrong = fun(1, 2, lambda frame: frame[0])
    with pytest.raises(ShapeError):
        evaluate(wrong, 1.0)


def test_stateful_function_owns_copied_state():
    def accumulate(frame, total):
        total[0] += frame[0]
        return total[0]

    initial = [0.0]
    block = stateful(1, 1, accumulate, initial)
    first = make_evaluator(block)
    second = make_evaluator(block)
    assert [float(first(x)) for x in (1, 2, 3)] == [1.0, 3.0, 6.0]
    assert float(second(10)) == 10.0
    assert initial == [0.0]


@pytest.mark.parametrize("state", [0.0, 3, np.float64(1.5), "label", (0.0,), None])
def test_stateful_function_rejects_immutable_state(state):
    def accumulate(frame, total):
        total += frame[0]
        return total

    with pytest.raises(TypeError):
        stateful(1, 1, accumulate, state)


def test_evaluators_bound_from_one_descriptor_are_independent():
    block = _ | mem
    first = make_evaluator(block)
    second = make_evaluator(block)
    first(5)
    assert second(1) == Frame(0)
    assert first(2) == Frame(5)


def test_call_coerces_boundary_values():
    evaluator = make_evaluator(par(_, _))
    assert evaluator(1, 2) == Frame(1, 2)
    assert evaluator([1, 2]) == Frame(1, 2)
    assert evaluator(Frame(1, 2)) == Frame(1, 2)
    with pytest.raises(ShapeError):
        evaluator(1)


def test_dyn_evaluator_wraps_matching_arity():
    wrapped = DynEvaluator(1, 1, make_evaluator(_ * 2))
    assert wrapped(3) == Frame(6)
    assert wrapped.wrapped_kind == "PartialEvaluator"
    with pytest.raises(ShapeError):
        DynEvaluator(2, 1, make_evaluator(_))


def test_dyn_evaluator_swaps_topologies():
    slot = DynEvaluator.from_block(1, 1, _ + 1)
    assert slot(1) == Frame(2)
    slot = DynEvaluator.from_block(1, 1, ((_ * 0.5) + (_ * 0.5)) % _)
    assert slot(1) == Frame(0.5)


def test_process_runs_one_eval_per_sample():
    out = process(make_evaluator(mem), [1.0, 2.0, 3.0])
    np.testing.assert_array_equal(out, [0.0, 1.0, 2.0])
    buffer = np.empty(3)
    result = process(make_evaluator(_ * 2), [1.0, 2.0, 3.0], out=buffer)
    assert result is buffer
    np.testing.assert_array_equal(buffer, [2.0, 4.0, 6.0])


def test_process_rejects_mismatched_shapes():
    with pytest.raises(ShapeError):
        process(make_evaluator(par(_, _)), [1.0, 2.0])
    with pytest.raises(ShapeError):
        process(make_evaluator(_), [1.0, 2.0], out=np.empty(3))
    with pytest.raises(ShapeError):
        process(make_evaluator(_), np.zeros((2, 2)))


def test_process_frames_handles_any_arity():
    out = process_frames(make_evaluator((_, _) >> _), [[1, 2], [3, 4]])
    assert out.shape == (2, 1)
    np.testing.assert_array_equal(out[:, 0], [3.0, 7.0])
    with pytest.raises(ShapeError):
        process_frames(make_evaluator((_, _) >> _), [[1, 2, 3]])


def test_render_pulls_from_sources():
    out = render(make_evaluator(par(1, 2)), 3)
    np.testing.assert_array_equal(out, [[1.0, 2.0]] * 3)
    with pytest.raises(ShapeError):
        render(make_evaluator(_), 3)


def test_unregistered_block_type_cannot_bind():
    class Orphan(Block):
        in_channels = 1
        out_channels = 1

    with pytest.raises(TypeError):
        make_evaluator(Orphan())


def test_duplicate_evaluator_registration_is_rejected():
    with pytest.raises(ValueError):
        register_evaluator(Plus)(lambda block: None)


def test_binding_is_traced_when_enabled(tmp_path, monkeypatch):
    log_path = tmp_path / "trace.log"
    monkeypatch.setattr(diagnostics, "_LOG_PATH", log_path)
    monkeypatch.setattr(diagnostics, "_TRACE_ENABLED", True)
    make_evaluator(par(_, _) >> _)
    text = log_path.read_text()
    assert "[bind] Merge" in text
    assert "ins=2 outs=1" in text
