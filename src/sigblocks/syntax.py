"""Short names for writing topologies.

``from sigblocks.syntax import *`` brings in the one-letter identity ``_``,
the single-channel ``cut`` and ``mem``, the binary blocks used with
currying (``plus``, ``minus``, ``times``, ``divide``, ``delay``) and the
composition helpers.
"""

from __future__ import annotations

from .blocks import (
    DELAY,
    DIVIDE,
    MINUS,
    PLUS,
    TIMES,
    Cell,
    Cut,
    Ident,
    Mem,
    cos,
    fir,
    fun,
    literal,
    merge,
    mod,
    par,
    rec,
    ref,
    repeat,
    repeat_par,
    repeat_seq,
    seq,
    sin,
    split,
    stateful,
    tan,
    tanh,
    unit_delay,
)

_ = Ident(1)
cut = Cut(1)
mem = Mem(1)

plus = PLUS
minus = MINUS
times = TIMES
divide = DIVIDE
delay = DELAY

__all__ = [
    "_",
    "Cell",
    "cos",
    "cut",
    "delay",
    "divide",
    "fir",
    "fun",
    "literal",
    "mem",
    "merge",
    "minus",
    "mod",
    "par",
    "plus",
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
    "times",
    "unit_delay",
]
