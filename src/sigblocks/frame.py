"""Fixed-width sample frames, the unit of data flowing between blocks."""

from __future__ import annotations

import numbers
from typing import Iterable, Iterator

import numpy as np

from .state import RAW_DTYPE


class ShapeError(ValueError):
    """Raised when block arities or frame sizes do not line up."""


class Frame:
    """Immutable, ordered tuple of ``float64`` samples for one instant.

    ``Frame()`` is the empty frame used by blocks without inputs or outputs.
    The backing numpy vector is marked read-only so frames can be shared
    between evaluators without copying.
    """

    __slots__ = ("_data",)

    def __init__(self, *values: float) -> None:
        data = np.array(values, dtype=RAW_DTYPE)
        if data.ndim != 1:
            raise ShapeError(
                "Frame() takes individual samples; use Frame.from_iterable for sequences"
            )
        data.setflags(write=False)
        self._data = data

    @classmethod
    def _wrap(cls, array: np.ndarray) -> "Frame":
        frame = cls.__new__(cls)
        array.setflags(write=False)
        frame._data = array
        return frame

    @classmethod
    def from_iterable(cls, values: Iterable[float]) -> "Frame":
        """Build a frame from any 1-D sequence, iterator or numpy vector."""

        if isinstance(values, np.ndarray):
            if values.ndim != 1:
                raise ShapeError(f"frames are 1-D; got an array of rank {values.ndim}")
            return cls._wrap(np.array(values, dtype=RAW_DTYPE, copy=True))
        return cls._wrap(np.fromiter(values, dtype=RAW_DTYPE))

    @classmethod
    def zeros(cls, size: int) -> "Frame":
        if size < 0:
            raise ShapeError("frame size must be non-negative")
        return cls._wrap(np.zeros(int(size), dtype=RAW_DTYPE))

    # ------------------------------------------------------------------
    # Sequence protocol

    @property
    def size(self) -> int:
        return int(self._data.shape[0])

    def __len__(self) -> int:
        return int(self._data.shape[0])

    def __iter__(self) -> Iterator[float]:
        return iter(self._data.tolist())

    def __getitem__(self, index):
        if isinstance(index, slice):
            return Frame._wrap(self._data[index])
        return float(self._data[index])

    def __float__(self) -> float:
        if self._data.shape[0] != 1:
            raise TypeError(f"only single-sample frames convert to float (size {self.size})")
        return float(self._data[0])

    def to_numpy(self) -> np.ndarray:
        """Return the read-only sample vector."""

        return self._data

    # ------------------------------------------------------------------
    # Value semantics

    def __eq__(self, other: object) -> bool:
        # Bare scalars never compare equal; use float(frame) for size-1 frames.
        if isinstance(other, Frame):
            return np.array_equal(self._data, other._data)
        if isinstance(other, (tuple, list, np.ndarray)):
            other_arr = np.asarray(other, dtype=RAW_DTYPE)
            return other_arr.ndim == 1 and np.array_equal(self._data, other_arr)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._data.tolist()))

    def __repr__(self) -> str:
        inner = ", ".join(repr(value) for value in self._data.tolist())
        return f"Frame({inner})"

    # ------------------------------------------------------------------
    # Shape operations

    def slice(self, begin: int, end: int = -1) -> "Frame":
        """Return samples ``[begin, end)``.

        A negative ``end`` counts from the back: ``-1`` means "through the
        last sample", ``-2`` drops the last sample, and so on.
        """

        size = self._data.shape[0]
        stop = size + end + 1 if end < 0 else end
        if begin < 0 or stop < begin or stop > size:
            raise ShapeError(f"slice({begin}, {end}) is out of range for a frame of {size} samples")
        return Frame._wrap(self._data[begin:stop])


def concat(*frames: Frame) -> Frame:
    """Join ``frames`` end to end."""

    if not frames:
        return Frame()
    if len(frames) == 1:
        return frames[0]
    return Frame._wrap(np.concatenate([frame._data for frame in frames]))


def as_frame(value, size: int | None = None) -> Frame:
    """Coerce a frame, scalar or sequence into a :class:`Frame`.

    When ``size`` is given the result must hold exactly that many samples.
    """

    if isinstance(value, Frame):
        frame = value
    elif isinstance(value, numbers.Real) or (isinstance(value, np.ndarray) and value.ndim == 0):
        frame = Frame(float(value))
    elif value is None:
        frame = Frame()
    else:
        frame = Frame.from_iterable(value)
    if size is not None and frame.size != size:
        raise ShapeError(f"expected a frame of {size} samples, got {frame.size}")
    return frame


__all__ = ["Frame", "ShapeError", "as_frame", "concat"]
