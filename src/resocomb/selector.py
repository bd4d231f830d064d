"""Cut-based selection of precomputed B+ -> D0bar pi+ candidates.

Every quantity used here (decay length, cosine of pointing angle, impact
parameters, D0 masses) is computed upstream; this module only compares them
against per-pt-bin thresholds and a pion PID status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Sequence

from .mixing import find_bin
from .models import Track

logger = logging.getLogger(__name__)

MASS_D0 = 1.86484


class PidStatus(IntEnum):
    NOT_APPLICABLE = 0
    ACCEPTED = 1
    CONDITIONAL = 2
    REJECTED = 3


class SelectionStep(IntEnum):
    RECO_SKIMS = 0
    RECO_TOPOL = 1
    RECO_PID = 2


def _inside(value: float, bounds: tuple[float, float]) -> bool:
    return bounds[0] <= value <= bounds[1]


@dataclass(frozen=True)
class TrackPidSelector:
    """Per-detector PID status for one species with pt validity ranges.

    A detector outside its pt range (or TOF without a response) is not
    applicable. Inside the range the n-sigma either passes, passes only the
    looser range conditional on the other detector, or fails.
    """

    species: str = "pi"
    pt_range_tpc: tuple[float, float] = (999.0, 9999.0)
    nsigma_tpc: tuple[float, float] = (-5.0, 5.0)
    nsigma_tpc_cond_tof: tuple[float, float] = (-5.0, 5.0)
    pt_range_tof: tuple[float, float] = (0.15, 50.0)
    nsigma_tof: tuple[float, float] = (-5.0, 5.0)
    nsigma_tof_cond_tpc: tuple[float, float] = (-999.0, 999.0)

    def status_tpc(self, track: Track) -> PidStatus:
        if not _inside(track.pt, self.pt_range_tpc):
            return PidStatus.NOT_APPLICABLE
        return self._status(track.nsigma_tpc(self.species), self.nsigma_tpc, self.nsigma_tpc_cond_tof)

    def status_tof(self, track: Track) -> PidStatus:
        if not track.has_tof or not _inside(track.pt, self.pt_range_tof):
            return PidStatus.NOT_APPLICABLE
        return self._status(track.nsigma_tof(self.species), self.nsigma_tof, self.nsigma_tof_cond_tpc)

    def status_tpc_and_tof(self, track: Track) -> PidStatus:
        """Combined status: any accepted detector, or both conditional, accepts."""
        tpc = self.status_tpc(track)
        tof = self.status_tof(track)
        if tpc is PidStatus.ACCEPTED or tof is PidStatus.ACCEPTED:
            return PidStatus.ACCEPTED
        if tpc is PidStatus.CONDITIONAL and tof is PidStatus.CONDITIONAL:
            return PidStatus.ACCEPTED
        if tpc is PidStatus.REJECTED or tof is PidStatus.REJECTED:
            return PidStatus.REJECTED
        # not applicable for one detector, not applicable or conditional for the other
        return PidStatus.NOT_APPLICABLE

    @staticmethod
    def _status(nsigma: float, bounds: tuple[float, float], cond: tuple[float, float]) -> PidStatus:
        if _inside(nsigma, bounds):
            return PidStatus.ACCEPTED
        if cond[0] < cond[1] and _inside(nsigma, cond):
            return PidStatus.CONDITIONAL
        return PidStatus.REJECTED


@dataclass(frozen=True)
class TopologicalCuts:
    """Thresholds of one pt bin."""

    pion_pt_min: float
    ip_product_max: float
    delta_mass_d0_max: float
    decay_length_min: float
    decay_length_xy_min: float
    cpa_min: float
    d0_d0_min: float
    d0_pion_min: float


@dataclass(frozen=True)
class PtBinnedCuts:
    """Candidate-pt binning with one `TopologicalCuts` row per bin."""

    bins_pt: tuple[float, ...]
    rows: tuple[TopologicalCuts, ...]

    def __post_init__(self) -> None:
        if len(self.bins_pt) < 2:
            raise ValueError("bins_pt needs at least two edges.")
        if any(b <= a for a, b in zip(self.bins_pt, self.bins_pt[1:])):
            raise ValueError(f"bins_pt must be strictly increasing: {list(self.bins_pt)!r}")
        if len(self.rows) != len(self.bins_pt) - 1:
            raise ValueError(
                f"Got {len(self.rows)} cut rows for {len(self.bins_pt) - 1} pt bins."
            )

    def cuts_for(self, pt: float) -> TopologicalCuts | None:
        idx = find_bin(self.bins_pt, pt)
        return None if idx < 0 else self.rows[idx]


@dataclass(frozen=True)
class BplusCandidate:
    """Precomputed B+ candidate quantities; prong 0 is the D0, prong 1 the pion."""

    pt: float
    pion: Track
    is_bplus_to_d0pi: bool
    impact_parameter_product: float
    mass_d0_to_pik: float
    mass_d0bar_to_kpi: float
    decay_length: float
    decay_length_xy: float
    cpa: float
    impact_parameter0: float
    impact_parameter1: float


@dataclass
class TopologicalSelector:
    """Assign a selection status bitmask to each B+ candidate.

    `d_pid_flags` are the PID selection flags (D0, D0bar) the upstream D0
    selection ran with; they must agree with `use_pid`.
    """

    cuts: PtBinnedCuts
    pion_pid: TrackPidSelector = field(default_factory=TrackPidSelector)
    use_pid: bool = True
    accept_pid_not_applicable: bool = True
    d_pid_flags: tuple[bool, bool] = (True, True)

    def __post_init__(self) -> None:
        flag_d0, flag_d0bar = self.d_pid_flags
        self.pid_in_sync = True
        if self.use_pid and not (flag_d0 and flag_d0bar):
            self.pid_in_sync = False
            logger.warning(
                "PID selections required on B+ daughters (use_pid=True) but no PID selections "
                "on D candidates were required a priori."
            )
        if not self.use_pid and (flag_d0 or flag_d0bar):
            self.pid_in_sync = False
            logger.warning(
                "No PID selections required on B+ daughters (use_pid=False) but PID selections "
                "on D candidates were required a priori."
            )

    def passes_topology(self, cand: BplusCandidate) -> bool:
        cuts = self.cuts.cuts_for(cand.pt)
        if cuts is None:
            return False
        if cand.pion.pt < cuts.pion_pt_min:
            return False
        if cand.impact_parameter_product > cuts.ip_product_max:
            return False
        # D0bar hypothesis for a positive pion, D0 otherwise.
        d_mass = cand.mass_d0bar_to_kpi if cand.pion.charge > 0 else cand.mass_d0_to_pik
        if abs(d_mass - MASS_D0) > cuts.delta_mass_d0_max:
            return False
        if cand.decay_length < cuts.decay_length_min:
            return False
        if cand.decay_length_xy < cuts.decay_length_xy_min:
            return False
        if cand.cpa < cuts.cpa_min:
            return False
        if abs(cand.impact_parameter0) < cuts.d0_d0_min:
            return False
        if abs(cand.impact_parameter1) < cuts.d0_pion_min:
            return False
        return True

    def passes_pid(self, status: PidStatus) -> bool:
        if self.accept_pid_not_applicable:
            return status is not PidStatus.REJECTED
        return status is PidStatus.ACCEPTED

    def select(self, cand: BplusCandidate) -> int:
        """Return the bitmask of `SelectionStep` values the candidate passed."""
        status = 0
        if not cand.is_bplus_to_d0pi:
            return status
        status |= 1 << SelectionStep.RECO_SKIMS
        if not self.passes_topology(cand):
            return status
        status |= 1 << SelectionStep.RECO_TOPOL
        if not self.pid_in_sync:
            return status
        if self.use_pid:
            if not self.passes_pid(self.pion_pid.status_tpc_and_tof(cand.pion)):
                return status
            status |= 1 << SelectionStep.RECO_PID
        return status

    def select_all(self, candidates: Sequence[BplusCandidate]) -> list[int]:
        return [self.select(c) for c in candidates]
