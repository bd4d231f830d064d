"""Particle hypotheses and PID gating.

Named hypothesis builders can be used directly in the combiner API. A
`PidGate` combines the TPC and (when present) TOF deviation scores of a track
into an accept/reject decision; its thresholds live in `ThresholdTable`
objects that may depend on transverse momentum.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Sequence

from .models import DecayChannel, ParticleHypothesis, Track

_PION = ParticleHypothesis(name="pi", mass=0.13957039, pdg_id=211)
_KAON = ParticleHypothesis(name="K", mass=0.493677, pdg_id=321)
_PROTON = ParticleHypothesis(name="p", mass=0.93827208816, pdg_id=2212)
_K892 = ParticleHypothesis(name="K892", mass=0.89555, pdg_id=313)
_K1 = ParticleHypothesis(name="K1", mass=1.253, pdg_id=10323)

_NAME_TO_HYPOTHESIS: dict[str, ParticleHypothesis] = {
    "pi": _PION,
    "pion": _PION,
    "k": _KAON,
    "kaon": _KAON,
    "p": _PROTON,
    "proton": _PROTON,
    "k892": _K892,
    "kstar": _K892,
    "k1": _K1,
}


def make_pion() -> ParticleHypothesis:
    """Return the standard charged-pion mass hypothesis."""
    return _PION


def make_kaon() -> ParticleHypothesis:
    """Return the standard charged-kaon mass hypothesis."""
    return _KAON


def make_proton() -> ParticleHypothesis:
    """Return the proton mass hypothesis."""
    return _PROTON


def make_k892() -> ParticleHypothesis:
    """Return the neutral K*(892) resonance hypothesis."""
    return _K892


def make_k1() -> ParticleHypothesis:
    """Return the charged K1(1270) resonance hypothesis."""
    return _K1


def make_k1_channel() -> DecayChannel:
    """Default chain: K1(1270) -> K*(892)0 pi, K*(892)0 -> pi K."""
    return DecayChannel(
        primary=_PION,
        companion=_KAON,
        bachelor=_PION,
        intermediate=_K892,
        final_state=_K1,
    )


def particle_hypothesis_from_name(name: str) -> ParticleHypothesis:
    """Resolve a short particle name (e.g. `pi`, `kaon`) into a hypothesis."""
    key = name.strip().lower()
    try:
        return _NAME_TO_HYPOTHESIS[key]
    except KeyError as exc:
        supported = ", ".join(sorted(_NAME_TO_HYPOTHESIS))
        raise ValueError(
            f"Unknown particle hypothesis name '{name}'. Supported names: {supported}"
        ) from exc


@dataclass(frozen=True, init=False)
class ThresholdTable:
    """Sorted `(pt breakpoint, max |n-sigma|)` table.

    The active threshold for a track is the one paired with the first
    breakpoint strictly above its pt; at or above the last breakpoint the last
    threshold applies. An empty table disables the check.
    """

    breakpoints: tuple[float, ...]
    thresholds: tuple[float, ...]

    def __init__(self, breakpoints: Sequence[float] = (), thresholds: Sequence[float] = ()) -> None:
        if len(breakpoints) != len(thresholds):
            raise ValueError(
                f"PID breakpoint/threshold arrays differ in length: "
                f"{len(breakpoints)} breakpoints vs {len(thresholds)} thresholds."
            )
        rows = sorted(zip((float(b) for b in breakpoints), (float(t) for t in thresholds)))
        object.__setattr__(self, "breakpoints", tuple(b for b, _ in rows))
        object.__setattr__(self, "thresholds", tuple(t for _, t in rows))

    @classmethod
    def fixed(cls, threshold: float) -> "ThresholdTable":
        """Momentum-independent threshold."""
        return cls((math.inf,), (threshold,))

    def __bool__(self) -> bool:
        return bool(self.breakpoints)

    def threshold_for(self, pt: float) -> float | None:
        """Return the active threshold at `pt`, or None for an empty table."""
        if not self.breakpoints:
            return None
        idx = bisect_right(self.breakpoints, pt)
        return self.thresholds[min(idx, len(self.thresholds) - 1)]

    def accepts(self, pt: float, nsigma: float) -> bool:
        limit = self.threshold_for(pt)
        return limit is None or abs(nsigma) <= limit


@dataclass(frozen=True)
class PidGate:
    """TPC gate plus an optional conjunctive TOF gate.

    The TOF sub-check runs only when `use_tof` is set and the track carries a
    TOF response; a missing response is not a rejection.
    """

    tpc: ThresholdTable = field(default_factory=lambda: ThresholdTable.fixed(2.0))
    tof: ThresholdTable = field(default_factory=lambda: ThresholdTable.fixed(2.0))
    use_tof: bool = True

    @classmethod
    def fixed(cls, max_tpc: float = 2.0, max_tof: float = 2.0, use_tof: bool = True) -> "PidGate":
        return cls(ThresholdTable.fixed(max_tpc), ThresholdTable.fixed(max_tof), use_tof)

    @classmethod
    def momentum_dependent(
        cls,
        tpc_breakpoints: Sequence[float],
        tpc_thresholds: Sequence[float],
        tof_breakpoints: Sequence[float],
        tof_thresholds: Sequence[float],
        use_tof: bool = True,
    ) -> "PidGate":
        return cls(
            ThresholdTable(tpc_breakpoints, tpc_thresholds),
            ThresholdTable(tof_breakpoints, tof_thresholds),
            use_tof,
        )

    def accepts(self, track: Track, species: ParticleHypothesis | str) -> bool:
        name = species.name if isinstance(species, ParticleHypothesis) else species
        pt = track.pt
        if self.tpc and not self.tpc.accepts(pt, track.nsigma_tpc(name)):
            return False
        if self.use_tof and track.has_tof and self.tof:
            if not self.tof.accepts(pt, track.nsigma_tof(name)):
                return False
        return True
