"""Ready-made 1-in/1-out topologies with named parameter cells."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping

from .blocks import Block, Cell, as_block
from .evaluator import DynEvaluator
from .syntax import _, delay, plus, ref, tanh


@dataclass(slots=True)
class Patch:
    """A topology plus the cells that parameterise it.

    ``params`` maps parameter names to the :class:`Cell` objects the topology
    reads through ``Ref`` blocks.  Changing a cell takes effect on the next
    sample of every evaluator bound from ``block``.
    """

    name: str
    block: Block
    params: Dict[str, Cell] = field(default_factory=dict)
    description: str = ""

    def set(self, **values: float) -> None:
        for key in values:
            if key not in self.params:
                raise KeyError(
                    f"{self.name}: unknown parameter '{key}'. Available: {', '.join(sorted(self.params))}"
                )
        for key, value in values.items():
            self.params[key].value = float(value)

    def values(self) -> Dict[str, float]:
        return {key: cell.value for key, cell in self.params.items()}

    def bind(self) -> DynEvaluator:
        return DynEvaluator.from_block(1, 1, self.block)


PatchFactory = Callable[[], Patch]
_PATCHES: Dict[str, PatchFactory] = {}


def register_patch(name: str) -> Callable[[PatchFactory], PatchFactory]:
    """Register a factory building a fresh :class:`Patch` under ``name``."""

    def _decorator(factory: PatchFactory) -> PatchFactory:
        if name in _PATCHES:
            raise ValueError(f"Duplicate patch registration for {name}")
        _PATCHES[name] = factory
        return factory

    return _decorator


def available_patches() -> tuple[str, ...]:
    return tuple(sorted(_PATCHES))


def build_patch(name: str, params: Mapping[str, float] | None = None) -> Patch:
    """Build a new patch with its own cells, optionally overriding defaults."""

    try:
        factory = _PATCHES[name]
    except KeyError:
        raise KeyError(
            f"Unknown patch '{name}'. Available: {', '.join(available_patches())}"
        ) from None
    patch = factory()
    if params:
        patch.set(**dict(params))
    return patch


def one_pole(coeff) -> Block:
    """``y = y[-1] * a + x * (1 - a)`` with ``a`` read from ``coeff``.

    ``coeff`` is anything :func:`~sigblocks.blocks.as_block` accepts, so a
    number, a cell or a 0-input block.
    """

    coeff = as_block(coeff)
    return ((_ * coeff) + (_ * (1 - coeff))) % _


def lowpass_filter() -> Block:
    """2 -> 1 one-pole low-pass taking ``(a, x)``."""

    return (_ << (_, _), _) | (((_ * _, (1 - _) * _) | plus) % _)


@register_patch("echo")
def echo_patch() -> Patch:
    time_samples = Cell(11025.0)
    filter_a = Cell(0.9)
    feedback = Cell(1.0)
    dry_wet_mix = Cell(0.5)

    echo = (plus | delay(ref(time_samples))) % (lowpass_filter()(ref(filter_a)) * ref(feedback))
    block = _ << (echo * ref(dry_wet_mix)) + (_ * (1 - ref(dry_wet_mix)))
    return Patch(
        name="echo",
        block=block,
        params={
            "time_samples": time_samples,
            "filter_a": filter_a,
            "feedback": feedback,
            "dry_wet_mix": dry_wet_mix,
        },
        description="feedback echo with a low-passed repeat path",
    )


@register_patch("saturator")
def saturator_patch() -> Patch:
    gain = Cell(1.0)
    block = _ * ref(gain) | tanh | _ / ref(gain)
    return Patch(
        name="saturator",
        block=block,
        params={"gain": gain},
        description="tanh soft clipper with matched input and output gain",
    )


@register_patch("smoother")
def smoother_patch() -> Patch:
    coeff = Cell(0.99)
    return Patch(
        name="smoother",
        block=one_pole(ref(coeff)),
        params={"coeff": coeff},
        description="one-pole low-pass smoother",
    )


__all__ = [
    "Patch",
    "available_patches",
    "build_patch",
    "lowpass_filter",
    "one_pole",
    "register_patch",
]
