"""Core data models used by the resonance reconstruction framework.

This module defines:
- immutable event inputs (`TrackId`, `Track`, `McInfo`, `McParticle`, `EventInput`)
- kinematics (`LorentzVector`) and mass assignments (`ParticleHypothesis`, `DecayChannel`)
- reconstructed candidates (`PairCandidate`, `TripletCandidate`)
- category labels and sink records (`PairCategory`, `TripletCategory`, `CandidateRecord`, ...)
- configurable selections (`TrackSelection`, `ResonanceCuts`, `MixingConfig`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Mapping, Sequence

HAS_TOF = 0x1


@dataclass(frozen=True, order=True)
class TrackId:
    """Stable track identity: event identifier plus index inside that event."""

    event_id: str
    index: int

    def __str__(self) -> str:
        return f"{self.event_id}:{self.index}"


@dataclass(frozen=True)
class McInfo:
    """Generator-level truth attached to a reconstructed track."""

    pdg_code: int
    mother_id: int | None = None
    mother_pdg: int | None = None


@dataclass(frozen=True)
class Track:
    """Single reconstructed track with momentum, impact parameters, and PID scores.

    `tpc_nsigma` and `tof_nsigma` map a species name (e.g. `pi`, `K`) to the
    detector deviation score for that hypothesis. `pid_flags` is a bitmask;
    the `HAS_TOF` bit marks a valid TOF response.
    """

    track_id: TrackId
    px: float
    py: float
    pz: float
    charge: int
    dca_xy: float = 0.0
    dca_z: float = 0.0
    tpc_nsigma: Mapping[str, float] = field(default_factory=dict)
    tof_nsigma: Mapping[str, float] = field(default_factory=dict)
    pid_flags: int = 0
    mc: McInfo | None = None

    def __post_init__(self) -> None:
        if not all(math.isfinite(v) for v in (self.px, self.py, self.pz)):
            raise ValueError(
                f"Track {self.track_id} has non-finite momentum ({self.px}, {self.py}, {self.pz})."
            )

    @property
    def pt(self) -> float:
        """Transverse momentum."""
        return math.hypot(self.px, self.py)

    @property
    def has_tof(self) -> bool:
        return (self.pid_flags & HAS_TOF) == HAS_TOF

    def nsigma_tpc(self, species: str) -> float:
        """Return the TPC deviation score for one species."""
        try:
            return self.tpc_nsigma[species]
        except KeyError as exc:
            raise ValueError(f"Track {self.track_id} has no TPC n-sigma for species '{species}'.") from exc

    def nsigma_tof(self, species: str) -> float:
        """Return the TOF deviation score for one species."""
        try:
            return self.tof_nsigma[species]
        except KeyError as exc:
            raise ValueError(f"Track {self.track_id} has TOF flag but no TOF n-sigma for '{species}'.") from exc


@dataclass(frozen=True)
class McParticle:
    """Generator-level particle, used for the input (generated) spectrum."""

    pdg_code: int
    pt: float
    rapidity: float
    daughter_pdg_codes: tuple[int, ...] = ()


@dataclass(frozen=True)
class EventInput:
    """One collision: vertex z, multiplicity estimator, and its track list."""

    event_id: str
    vertex_z: float
    multiplicity: float
    tracks: tuple[Track, ...]
    mc_particles: tuple[McParticle, ...] = ()


@dataclass(frozen=True)
class ParticleHypothesis:
    """Named particle hypothesis used to derive mass-dependent observables."""

    name: str
    mass: float
    pdg_id: int | None = None


@dataclass(frozen=True)
class DecayChannel:
    """Species roles of the two-stage decay chain.

    `final_state -> intermediate bachelor`, `intermediate -> primary companion`.
    """

    primary: ParticleHypothesis
    companion: ParticleHypothesis
    bachelor: ParticleHypothesis
    intermediate: ParticleHypothesis
    final_state: ParticleHypothesis


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties and addition."""

    px: float
    py: float
    pz: float
    e: float

    @classmethod
    def from_track(cls, track: Track, mass: float) -> "LorentzVector":
        """Build a 4-vector from track momentum and an assumed rest mass."""
        energy = math.sqrt(track.px * track.px + track.py * track.py + track.pz * track.pz + mass * mass)
        return cls(track.px, track.py, track.pz, energy)

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)

    @property
    def pt(self) -> float:
        return math.hypot(self.px, self.py)

    @property
    def rapidity(self) -> float:
        """Longitudinal rapidity `0.5 ln((E + pz) / (E - pz))`."""
        if self.e <= abs(self.pz):
            return math.copysign(1e9, self.pz)
        return 0.5 * math.log((self.e + self.pz) / (self.e - self.pz))


class EventMode(Enum):
    """Origin of the tracks being combined."""

    SAME_EVENT = "same"
    MIXED = "mixed"


class PairCategory(IntEnum):
    """Two-body categories; values are the category axis codes of the output histograms."""

    MATTER = 1
    ANTI = 2
    MATTER_MIXED = 3
    ANTI_MIXED = 4

    @classmethod
    def classify(cls, anti: bool, mode: EventMode) -> "PairCategory":
        if mode is EventMode.MIXED:
            return cls.ANTI_MIXED if anti else cls.MATTER_MIXED
        return cls.ANTI if anti else cls.MATTER


class TripletCategory(IntEnum):
    """Three-body categories: {matter, anti} x {bachelor +, -} x {same, mixed}."""

    MATTER_POS = 1
    MATTER_NEG = 2
    ANTI_POS = 3
    ANTI_NEG = 4
    MATTER_POS_MIXED = 5
    MATTER_NEG_MIXED = 6
    ANTI_POS_MIXED = 7
    ANTI_NEG_MIXED = 8

    @classmethod
    def classify(cls, anti: bool, bachelor_charge: int, mode: EventMode) -> "TripletCategory":
        value = 1 + (2 if anti else 0) + (0 if bachelor_charge > 0 else 1)
        if mode is EventMode.MIXED:
            value += 4
        return cls(value)

    @property
    def is_mixed(self) -> bool:
        return self.value > 4


class TruthCategory(IntEnum):
    """Simulation-only categories."""

    GENERATED = 1
    RECONSTRUCTED = 2


class Spectrum(Enum):
    """Output streams written to the sink."""

    PAIR = "pair"
    TRIPLET = "triplet"
    TRIPLET_TRUE = "triplet_true"
    GENERATED = "generated"  # generator level, no reconstructed mass


@dataclass(frozen=True)
class PairCandidate:
    """Two-body candidate: primary and companion tracks with their 4-vectors."""

    primary: Track
    companion: Track
    primary_p4: LorentzVector
    p4: LorentzVector
    category: PairCategory

    @property
    def mass(self) -> float:
        return self.p4.mass

    @property
    def pt(self) -> float:
        return self.p4.pt

    @property
    def is_anti(self) -> bool:
        return self.category in (PairCategory.ANTI, PairCategory.ANTI_MIXED)

    @property
    def track_ids(self) -> tuple[TrackId, TrackId]:
        return self.primary.track_id, self.companion.track_id


@dataclass(frozen=True)
class TripletCandidate:
    """Three-body candidate built from an accepted pair plus a bachelor track."""

    pair: PairCandidate
    bachelor: Track
    p4: LorentzVector
    sub_mass: float
    category: TripletCategory
    is_true: bool | None = None

    @property
    def mass(self) -> float:
        return self.p4.mass

    @property
    def pt(self) -> float:
        return self.p4.pt

    @property
    def rapidity(self) -> float:
        return self.p4.rapidity

    @property
    def track_ids(self) -> tuple[TrackId, TrackId, TrackId]:
        return (*self.pair.track_ids, self.bachelor.track_id)


@dataclass(frozen=True)
class CandidateRecord:
    """One categorized spectrum entry written to the output sink."""

    spectrum: Spectrum
    category: int
    multiplicity: float
    pt: float
    mass: float
    event_id: str | None = None


@dataclass(frozen=True)
class TrackQARecord:
    """Per-track PID monitoring entry (same-event processing only)."""

    stage: str  # "before" or "after" the PID selection
    role: str  # "primary", "companion" or "bachelor"
    pt: float
    tpc_nsigma: float
    tof_nsigma: float | None = None


@dataclass(frozen=True)
class TrackSelection:
    """Track-level cuts applied before any combinatorics.

    `min_dca_z` defaults to 0, which excludes tracks with negative
    longitudinal DCA; keep it configurable as is.
    """

    min_pt: float = 0.15
    max_dca_xy: float = 0.5
    min_dca_z: float = 0.0
    max_dca_z: float = 2.0

    def accepts(self, track: Track) -> bool:
        if track.pt < self.min_pt:
            return False
        if abs(track.dca_xy) > self.max_dca_xy:
            return False
        if track.dca_z < self.min_dca_z or track.dca_z > self.max_dca_z:
            return False
        return True

    def select(self, tracks: Sequence[Track]) -> list[Track]:
        """Return the tracks passing `accepts`, in input order."""
        return [t for t in tracks if self.accepts(t)]


@dataclass(frozen=True)
class ResonanceCuts:
    """Candidate-level cuts of the pair and triplet stages."""

    mass_window: float = 0.1
    min_sub_mass: float = 0.0
    max_sub_mass: float = 999.0
    min_rapidity: float = -0.5
    max_rapidity: float = 0.5

    def __post_init__(self) -> None:
        if self.mass_window < 0.0:
            raise ValueError("mass_window must be non-negative.")
        if self.min_sub_mass > self.max_sub_mass:
            raise ValueError("min_sub_mass must not exceed max_sub_mass.")
        if self.min_rapidity > self.max_rapidity:
            raise ValueError("min_rapidity must not exceed max_rapidity.")


DEFAULT_VERTEX_Z_EDGES = (-10.0, -8.0, -6.0, -4.0, -2.0, 0.0, 2.0, 4.0, 6.0, 8.0, 10.0)
DEFAULT_MULTIPLICITY_EDGES = (0.0, 20.0, 40.0, 60.0, 80.0, 100.0, 200.0, 99999.0)
MIXED_STAGES = ("pair", "bachelor")


def check_mixing_count(name: str, value: int, minimum: int) -> None:
    """Reject non-integer (including bool) or too small mixing depth/tolerance values."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Mixing {name} must be an integer, got {value!r}.")
    if value < minimum:
        raise ValueError(f"Mixing {name} must be at least {minimum}, got {value}.")


@dataclass(frozen=True)
class MixingConfig:
    """Event-mixing controls.

    `mixed_stage="pair"` takes one pair member from each event, in both role
    assignments (primary from the first event and companion from the second,
    then the reverse), and the bachelor from the first event.
    `mixed_stage="bachelor"` builds the pair inside the second event and takes
    the bachelor from the first one.
    """

    depth: int = 5
    vertex_z_edges: tuple[float, ...] = DEFAULT_VERTEX_Z_EDGES
    multiplicity_edges: tuple[float, ...] = DEFAULT_MULTIPLICITY_EDGES
    tolerance: int = 0
    mixed_stage: str = "pair"

    def __post_init__(self) -> None:
        check_mixing_count("depth", self.depth, minimum=1)
        check_mixing_count("tolerance", self.tolerance, minimum=0)
        if self.mixed_stage not in MIXED_STAGES:
            raise ValueError(
                f"Unknown mixed_stage '{self.mixed_stage}'. Use one of: {', '.join(MIXED_STAGES)}"
            )
