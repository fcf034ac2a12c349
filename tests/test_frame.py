import numpy as np
import pytest

from sigblocks.frame import Frame, ShapeError, as_frame, concat


def test_empty_frame_is_unit():
    frame = Frame()
    assert frame.size == 0
    assert len(frame) == 0
    assert list(frame) == []


def test_slice_with_positive_and_negative_end():
    frame = Frame(1, 2, 3, 4)
    assert frame.slice(1) == Frame(2, 3, 4)
    assert frame.slice(0, -2) == Frame(1, 2, 3)
    assert frame.slice(1, 3) == Frame(2, 3)
    assert frame.slice(2, 2) == Frame()


@pytest.mark.parametrize("begin,end", [(-1, 2), (3, 2), (0, 5), (0, -6)])
def test_slice_rejects_out_of_range(begin, end):
    with pytest.raises(ShapeError):
        Frame(1, 2, 3, 4).slice(begin, end)


def test_concat_joins_in_order():
    assert concat(Frame(1), Frame(), Frame(2, 3)) == Frame(1, 2, 3)
    assert concat() == Frame()


def test_single_sample_converts_to_float():
    assert float(Frame(2.5)) == 2.5
    with pytest.raises(TypeError):
        float(Frame(1, 2))


def test_equality_and_hash():
    assert Frame(1, 2) == Frame(1.0, 2.0)
    assert Frame(1, 2) != Frame(1, 2, 3)
    assert Frame(1, 2) == (1, 2)
    assert hash(Frame(1, 2)) == hash(Frame(1.0, 2.0))


def test_equal_values_hash_alike():
    assert Frame(3) != 3
    assert Frame(3) == (3,)
    assert hash(Frame(3)) == hash((3,))
    assert hash(Frame(1, 2)) == hash((1, 2))
    assert {Frame(1, 2): "pair"}[(1.0, 2.0)] == "pair"


def test_samples_are_read_only():
    frame = Frame(1, 2)
    with pytest.raises(ValueError):
        frame.to_numpy()[0] = 5.0


def test_from_iterable_copies_arrays():
    source = np.array([1.0, 2.0])
    frame = Frame.from_iterable(source)
    source[0] = 9.0
    assert frame == Frame(1, 2)
    with pytest.raises(ShapeError):
        Frame.from_iterable(np.zeros((2, 2)))


def test_as_frame_coerces_and_checks_size():
    assert as_frame(3.0) == Frame(3.0)
    assert as_frame(np.float64(2.0)) == Frame(2.0)
    assert as_frame(None) == Frame()
    assert as_frame([1, 2], size=2) == Frame(1, 2)
    with pytest.raises(ShapeError):
        as_frame([1, 2], size=3)


def test_repr_lists_samples():
    assert repr(Frame(1, 2)) == "Frame(1.0, 2.0)"
