"""Two-stage resonance reconstruction engine for event tracks."""

from __future__ import annotations
__author__ = "resocomb developers"


import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

from .mixing import EventMixer, MixedEventPair, MixingBinning
from .models import (
    CandidateRecord,
    DecayChannel,
    EventInput,
    EventMode,
    LorentzVector,
    MixingConfig,
    PairCandidate,
    PairCategory,
    ParticleHypothesis,
    ResonanceCuts,
    Spectrum,
    Track,
    TrackQARecord,
    TrackSelection,
    TripletCandidate,
    TripletCategory,
    TruthCategory,
)
from .pid import PidGate, make_k1_channel
from .sink import OutputSink
from .truth import TruthMatcher

logger = logging.getLogger(__name__)


def _default_companion_pid() -> PidGate:
    return PidGate.momentum_dependent((999.0,), (2.0,), (999.0,), (2.0,))


@dataclass(frozen=True)
class AnalysisConfig:
    """Complete selection configuration of one analysis pass."""

    channel: DecayChannel = field(default_factory=make_k1_channel)
    track_selection: TrackSelection = field(default_factory=TrackSelection)
    primary_pid: PidGate = field(default_factory=PidGate.fixed)
    companion_pid: PidGate = field(default_factory=_default_companion_pid)
    bachelor_pid: PidGate = field(default_factory=PidGate.fixed)
    cuts: ResonanceCuts = field(default_factory=ResonanceCuts)
    mixing: MixingConfig = field(default_factory=MixingConfig)


def within_mass_window(mass: float, reference: float, half_width: float) -> bool:
    """Inclusive symmetric window `|mass - reference| <= half_width`."""
    return abs(mass - reference) <= half_width


@dataclass
class ResonanceCombiner:
    """Build pair and triplet candidates from track inputs.

    The combiner holds configuration only; every call works on the tracks it
    is given and writes results to the sink passed in, so repeated calls on
    the same input produce the same candidates.
    """

    config: AnalysisConfig = field(default_factory=AnalysisConfig)

    @property
    def channel(self) -> DecayChannel:
        return self.config.channel

    def truth_matcher(self) -> TruthMatcher:
        """Truth matcher for the configured decay channel."""
        return TruthMatcher(self.config.channel)

    def reconstruct_pairs(
        self,
        tracks_a: Sequence[Track],
        tracks_b: Sequence[Track],
        mode: EventMode = EventMode.SAME_EVENT,
        sink: OutputSink | None = None,
        multiplicity: float = 0.0,
        event_id: str | None = None,
    ) -> list[PairCandidate]:
        """Build two-body candidates over the ordered cross product `tracks_a x tracks_b`.

        Workflow per ordered pair:
        1. Skip identical tracks and pairs that are not opposite-sign.
        2. Track selection on both members.
        3. PID: member 1 as primary species, member 2 as companion species.
        4. Write the pair to the sink as a monitoring record.
        5. Keep it only inside the resonance mass window.
        """
        cfg = self.config
        ch = cfg.channel
        selection = cfg.track_selection
        with_qa = sink is not None and mode is EventMode.SAME_EVENT
        out: list[PairCandidate] = []
        for trk1 in tracks_a:
            for trk2 in tracks_b:
                # (i, j) and (j, i) are both visited: the role assignment differs.
                if trk1.track_id == trk2.track_id:
                    continue
                if trk1.charge * trk2.charge >= 0:
                    continue
                if not selection.accepts(trk1) or not selection.accepts(trk2):
                    continue

                primary_ok = cfg.primary_pid.accepts(trk1, ch.primary)
                companion_ok = cfg.companion_pid.accepts(trk2, ch.companion)
                if with_qa:
                    _write_track_qa(sink, "before", "primary", trk1, ch.primary)
                    _write_track_qa(sink, "before", "companion", trk2, ch.companion)
                if not (primary_ok and companion_ok):
                    continue
                if with_qa:
                    _write_track_qa(sink, "after", "primary", trk1, ch.primary)
                    _write_track_qa(sink, "after", "companion", trk2, ch.companion)

                primary_p4 = LorentzVector.from_track(trk1, ch.primary.mass)
                p4 = primary_p4 + LorentzVector.from_track(trk2, ch.companion.mass)
                category = PairCategory.classify(anti=trk2.charge > 0, mode=mode)
                if sink is not None:
                    sink.write(
                        CandidateRecord(
                            spectrum=Spectrum.PAIR,
                            category=int(category),
                            multiplicity=multiplicity,
                            pt=p4.pt,
                            mass=p4.mass,
                            event_id=event_id,
                        )
                    )
                if not within_mass_window(p4.mass, ch.intermediate.mass, cfg.cuts.mass_window):
                    continue
                out.append(
                    PairCandidate(
                        primary=trk1,
                        companion=trk2,
                        primary_p4=primary_p4,
                        p4=p4,
                        category=category,
                    )
                )
        return out

    def extend(
        self,
        pair: PairCandidate,
        tracks: Sequence[Track],
        mode: EventMode = EventMode.SAME_EVENT,
        sink: OutputSink | None = None,
        multiplicity: float = 0.0,
        event_id: str | None = None,
        truth: TruthMatcher | None = None,
    ) -> list[TripletCandidate]:
        """Add a bachelor track to an accepted pair and apply triplet-level cuts."""
        cfg = self.config
        ch = cfg.channel
        cuts = cfg.cuts
        with_qa = sink is not None and mode is EventMode.SAME_EVENT
        out: list[TripletCandidate] = []
        for bach in tracks:
            if bach.track_id in pair.track_ids:
                continue
            if not cfg.track_selection.accepts(bach):
                continue

            bachelor_ok = cfg.bachelor_pid.accepts(bach, ch.bachelor)
            if with_qa:
                _write_track_qa(sink, "before", "bachelor", bach, ch.bachelor)
            if not bachelor_ok:
                continue
            if with_qa:
                _write_track_qa(sink, "after", "bachelor", bach, ch.bachelor)

            bach_p4 = LorentzVector.from_track(bach, ch.bachelor.mass)
            p4 = pair.p4 + bach_p4
            rapidity = p4.rapidity
            if rapidity > cuts.max_rapidity or rapidity < cuts.min_rapidity:
                continue
            sub_mass = (pair.primary_p4 + bach_p4).mass
            if sub_mass < cuts.min_sub_mass or sub_mass > cuts.max_sub_mass:
                continue

            category = TripletCategory.classify(pair.is_anti, bach.charge, mode)
            is_true: bool | None = None
            if truth is not None and mode is EventMode.SAME_EVENT:
                is_true = truth.is_true_decay(pair.primary, pair.companion, bach)
            if sink is not None:
                sink.write(
                    CandidateRecord(
                        spectrum=Spectrum.TRIPLET,
                        category=int(category),
                        multiplicity=multiplicity,
                        pt=p4.pt,
                        mass=p4.mass,
                        event_id=event_id,
                    )
                )
                if is_true:
                    sink.write(
                        CandidateRecord(
                            spectrum=Spectrum.TRIPLET_TRUE,
                            category=int(TruthCategory.RECONSTRUCTED),
                            multiplicity=multiplicity,
                            pt=p4.pt,
                            mass=p4.mass,
                            event_id=event_id,
                        )
                    )
            out.append(
                TripletCandidate(
                    pair=pair,
                    bachelor=bach,
                    p4=p4,
                    sub_mass=sub_mass,
                    category=category,
                    is_true=is_true,
                )
            )
        return out

    def process_event(
        self,
        event: EventInput,
        sink: OutputSink | None = None,
        truth: TruthMatcher | None = None,
    ) -> list[TripletCandidate]:
        """Run the pair and triplet stages on one collision."""
        tracks = self.config.track_selection.select(event.tracks)
        pairs = self.reconstruct_pairs(
            tracks,
            tracks,
            EventMode.SAME_EVENT,
            sink=sink,
            multiplicity=event.multiplicity,
            event_id=event.event_id,
        )
        out: list[TripletCandidate] = []
        for pair in pairs:
            out.extend(
                self.extend(
                    pair,
                    tracks,
                    EventMode.SAME_EVENT,
                    sink=sink,
                    multiplicity=event.multiplicity,
                    event_id=event.event_id,
                    truth=truth,
                )
            )
        if truth is not None and sink is not None and event.mc_particles:
            cuts = self.config.cuts
            for part in truth.generated(event.mc_particles, cuts.min_rapidity, cuts.max_rapidity):
                sink.write(
                    CandidateRecord(
                        spectrum=Spectrum.GENERATED,
                        category=int(TruthCategory.GENERATED),
                        multiplicity=event.multiplicity,
                        pt=part.pt,
                        mass=math.nan,
                        event_id=event.event_id,
                    )
                )
        return out

    def process_mixed(
        self,
        mixed: MixedEventPair,
        sink: OutputSink | None = None,
    ) -> list[TripletCandidate]:
        """Run both stages on one mixed event pair; multiplicity is taken from event1."""
        event1, tracks1, _, tracks2 = mixed
        if self.config.mixing.mixed_stage == "bachelor":
            sources = [(tracks2, tracks2)]
        else:
            # each unordered event pair is visited once: sample both role assignments
            sources = [(tracks1, tracks2), (tracks2, tracks1)]
        pairs: list[PairCandidate] = []
        for pair_a, pair_b in sources:
            pairs.extend(
                self.reconstruct_pairs(
                    pair_a,
                    pair_b,
                    EventMode.MIXED,
                    sink=sink,
                    multiplicity=event1.multiplicity,
                    event_id=event1.event_id,
                )
            )
        out: list[TripletCandidate] = []
        for pair in pairs:
            out.extend(
                self.extend(
                    pair,
                    tracks1,
                    EventMode.MIXED,
                    sink=sink,
                    multiplicity=event1.multiplicity,
                    event_id=event1.event_id,
                )
            )
        return out

    def mixer(self) -> EventMixer:
        """Event mixer built from the mixing configuration."""
        mixing = self.config.mixing
        return EventMixer(
            binning=MixingBinning.from_config(mixing),
            depth=mixing.depth,
            track_selection=self.config.track_selection,
        )

    def process_events(
        self,
        events: Sequence[EventInput],
        sink: OutputSink | None = None,
        mix: bool = False,
        truth: TruthMatcher | None = None,
    ) -> list[TripletCandidate]:
        """Run `process_event` on every event, then optionally the mixed pass."""
        logger.debug("Processing %d collisions", len(events))
        out: list[TripletCandidate] = []
        for event in events:
            out.extend(self.process_event(event, sink=sink, truth=truth))
        if mix:
            logger.debug("Event mixing started")
            for mixed in self.mixer().pairs(events):
                out.extend(self.process_mixed(mixed, sink=sink))
        return out


def _write_track_qa(
    sink: OutputSink,
    stage: str,
    role: str,
    track: Track,
    species: ParticleHypothesis,
) -> None:
    sink.write(
        TrackQARecord(
            stage=stage,
            role=role,
            pt=track.pt,
            tpc_nsigma=track.tpc_nsigma.get(species.name, math.nan),
            tof_nsigma=track.tof_nsigma.get(species.name) if track.has_tof else None,
        )
    )
