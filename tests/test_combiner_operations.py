"""Unit tests for pair reconstruction, triplet extension, and truth tagging."""

from __future__ import annotations

import math
import unittest
from dataclasses import replace
from unittest import mock

from resocomb import (
    AnalysisConfig,
    EventInput,
    EventMode,
    McInfo,
    McParticle,
    PairCategory,
    PidGate,
    RecordSink,
    ResonanceCombiner,
    ResonanceCuts,
    Spectrum,
    Track,
    TrackId,
    TripletCategory,
    TruthCategory,
    make_kaon,
    make_pion,
    within_mass_window,
)
from resocomb.models import HAS_TOF

M_PI = make_pion().mass
M_K = make_kaon().mass
TARGET_MASS = 0.896


def _opening_cos(target: float) -> float:
    """cos(angle) between a pt=1 pion and a pt=1 kaon giving the target mass."""
    e_pi = math.sqrt(1.0 + M_PI * M_PI)
    e_k = math.sqrt(1.0 + M_K * M_K)
    return e_pi * e_k - (target * target - M_PI * M_PI - M_K * M_K) / 2.0


class TestCombinerOperations(unittest.TestCase):
    """Validate the pair stage, triplet stage, categories, and truth matching."""

    @staticmethod
    def _track(
        index: int,
        px: float,
        py: float,
        pz: float,
        charge: int,
        nsigma_pi: float,
        nsigma_k: float,
        event_id: str = "evt0",
        mc: McInfo | None = None,
        tof: dict[str, float] | None = None,
    ) -> Track:
        """Build a track with TPC scores for both species."""
        return Track(
            track_id=TrackId(event_id, index),
            px=px,
            py=py,
            pz=pz,
            charge=charge,
            tpc_nsigma={"pi": nsigma_pi, "K": nsigma_k},
            tof_nsigma=tof or {},
            pid_flags=HAS_TOF if tof else 0,
            mc=mc,
        )

    @classmethod
    def _scenario_tracks(cls, rapidity: float = 0.0, mothers: tuple[int, int] = (5, 5)):
        """pi+ and K- forming a K*(892) candidate, plus a pi+ bachelor.

        With `rapidity` != 0 all tracks are boosted along z, which leaves the
        invariant masses unchanged and moves the triplet rapidity.
        """
        cos_t = _opening_cos(TARGET_MASS)
        sin_t = math.sqrt(1.0 - cos_t * cos_t)
        boost = math.sinh(rapidity)

        def pz(mass: float) -> float:
            return boost * math.sqrt(1.0 + mass * mass)

        primary = cls._track(
            0, 1.0, 0.0, pz(M_PI), +1, 1.0, 5.0,
            mc=McInfo(pdg_code=211, mother_id=mothers[0], mother_pdg=313),
        )
        companion = cls._track(
            1, cos_t, sin_t, pz(M_K), -1, 5.0, 1.0,
            mc=McInfo(pdg_code=-321, mother_id=mothers[1], mother_pdg=313),
        )
        bachelor = cls._track(
            2, cos_t, sin_t, pz(M_PI), +1, 0.5, 5.0,
            mc=McInfo(pdg_code=211, mother_id=9, mother_pdg=10323),
        )
        return primary, companion, bachelor

    def test_scenario_a_pair_retained_with_companion_sign_category(self) -> None:
        """Opposite-sign pi/K pair at 0.896 GeV survives a 0.1 GeV window."""
        primary, companion, _ = self._scenario_tracks()
        tracks = [primary, companion]
        [pair] = ResonanceCombiner().reconstruct_pairs(tracks, tracks)
        self.assertAlmostEqual(pair.mass, TARGET_MASS, places=9)
        self.assertEqual(pair.primary.track_id, primary.track_id)
        self.assertEqual(pair.category, PairCategory.MATTER)
        self.assertFalse(pair.is_anti)

    def test_pair_category_follows_companion_charge(self) -> None:
        """A positive companion kaon marks the antimatter category."""
        primary, companion, _ = self._scenario_tracks()
        tracks = [replace(primary, charge=-1), replace(companion, charge=+1)]
        [pair] = ResonanceCombiner().reconstruct_pairs(tracks, tracks)
        self.assertEqual(pair.category, PairCategory.ANTI)
        self.assertEqual(int(pair.category), 2)
        _, _, bachelor = self._scenario_tracks()
        [triplet] = ResonanceCombiner().extend(pair, [replace(bachelor, charge=-1)])
        self.assertEqual(triplet.category, TripletCategory.ANTI_NEG)
        self.assertEqual(int(triplet.category), 4)

    def test_scenario_b_companion_above_breakpoints_rejected(self) -> None:
        """Companion pt beyond all breakpoints uses the last 2-sigma threshold."""
        primary, companion, bachelor = self._scenario_tracks()
        companion = replace(companion, tpc_nsigma={"pi": 5.0, "K": 3.0})
        config = AnalysisConfig(
            companion_pid=PidGate.momentum_dependent((0.3, 0.6), (3.5, 2.0), (0.6,), (2.0,))
        )
        combiner = ResonanceCombiner(config)
        event = EventInput("evt0", vertex_z=0.0, multiplicity=10.0, tracks=(primary, companion, bachelor))
        self.assertEqual(combiner.reconstruct_pairs(event.tracks, event.tracks), [])
        with mock.patch.object(combiner, "extend", wraps=combiner.extend) as extend:
            self.assertEqual(combiner.process_event(event, sink=RecordSink()), [])
        extend.assert_not_called()

    def test_same_sign_pairs_never_emitted(self) -> None:
        """No candidate or monitoring record for like-sign tracks."""
        primary, companion, bachelor = self._scenario_tracks()
        tracks = [primary, replace(companion, charge=+1), bachelor]
        sink = RecordSink()
        pairs = ResonanceCombiner().reconstruct_pairs(tracks, tracks, sink=sink)
        self.assertEqual(pairs, [])
        self.assertEqual(sink.candidates(spectrum=Spectrum.PAIR), [])

    def test_both_orderings_visited_with_swapped_roles(self) -> None:
        """A track pair passing both role assignments yields two candidates."""
        a = self._track(0, 1.0, 0.0, 0.0, +1, 0.0, 0.0)
        b = self._track(1, 0.9, 0.3, 0.0, -1, 0.0, 0.0)
        config = AnalysisConfig(cuts=ResonanceCuts(mass_window=10.0))
        pairs = ResonanceCombiner(config).reconstruct_pairs([a, b], [a, b])
        self.assertEqual(
            sorted((p.primary.track_id.index, p.companion.track_id.index) for p in pairs),
            [(0, 1), (1, 0)],
        )

    def test_pair_reconstruction_is_idempotent(self) -> None:
        """Two calls on the same input give identical candidates and records."""
        tracks = list(self._scenario_tracks())
        combiner = ResonanceCombiner()
        sink1, sink2 = RecordSink(), RecordSink()
        first = combiner.reconstruct_pairs(tracks, tracks, sink=sink1)
        second = combiner.reconstruct_pairs(tracks, tracks, sink=sink2)
        self.assertEqual(first, second)
        self.assertEqual(sink1.records, sink2.records)

    def test_mass_window_is_inclusive_and_symmetric(self) -> None:
        """Masses exactly at reference +/- half-width pass, anything beyond fails."""
        self.assertTrue(within_mass_window(1.0, 0.875, 0.125))
        self.assertTrue(within_mass_window(0.75, 0.875, 0.125))
        self.assertFalse(within_mass_window(1.0 + 1e-12, 0.875, 0.125))
        self.assertFalse(within_mass_window(0.75 - 1e-12, 0.875, 0.125))

    def test_pair_outside_window_still_monitored(self) -> None:
        """Monitoring records are written before the mass-window cut."""
        primary, companion, _ = self._scenario_tracks()
        config = AnalysisConfig(cuts=ResonanceCuts(mass_window=1e-4))
        sink = RecordSink()
        pairs = ResonanceCombiner(config).reconstruct_pairs([primary, companion], [primary, companion], sink=sink)
        self.assertEqual(pairs, [])
        [record] = sink.candidates(spectrum=Spectrum.PAIR)
        self.assertEqual(record.category, PairCategory.MATTER)
        self.assertAlmostEqual(record.mass, TARGET_MASS, places=9)

    def test_primary_tof_checked_only_when_present(self) -> None:
        """A bad TOF score rejects the primary only if the TOF flag is set."""
        primary, companion, _ = self._scenario_tracks()
        with_tof = replace(primary, tof_nsigma={"pi": 4.0}, pid_flags=HAS_TOF)
        without_flag = replace(primary, tof_nsigma={"pi": 4.0}, pid_flags=0)
        combiner = ResonanceCombiner()
        self.assertEqual(combiner.reconstruct_pairs([with_tof, companion], [with_tof, companion]), [])
        self.assertEqual(len(combiner.reconstruct_pairs([without_flag, companion], [without_flag, companion])), 1)

    def test_triplet_built_and_classified(self) -> None:
        """Bachelor pi+ on a matter pair gives the MATTER_POS category at y = 0."""
        primary, companion, bachelor = self._scenario_tracks()
        event = EventInput("evt0", vertex_z=1.0, multiplicity=25.0, tracks=(primary, companion, bachelor))
        sink = RecordSink()
        [triplet] = ResonanceCombiner().process_event(event, sink=sink)
        self.assertEqual(triplet.category, TripletCategory.MATTER_POS)
        self.assertAlmostEqual(triplet.rapidity, 0.0, places=12)
        self.assertIsNone(triplet.is_true)
        [record] = sink.candidates(spectrum=Spectrum.TRIPLET)
        self.assertEqual(record.multiplicity, 25.0)
        self.assertEqual(record.event_id, "evt0")
        self.assertAlmostEqual(record.mass, triplet.mass, places=12)

    def test_scenario_c_bachelor_sharing_identity_skipped(self) -> None:
        """A bachelor with the companion's identity never forms a triplet."""
        primary, companion, bachelor = self._scenario_tracks()
        [pair] = ResonanceCombiner().reconstruct_pairs([primary, companion], [primary, companion])
        clone = replace(bachelor, track_id=companion.track_id)
        self.assertEqual(ResonanceCombiner().extend(pair, [primary, companion, clone]), [])
        self.assertEqual(len(ResonanceCombiner().extend(pair, [bachelor])), 1)

    def test_scenario_d_rapidity_outside_window_rejected(self) -> None:
        """Triplet boosted to y = 0.6 fails a [-0.5, 0.5] window."""
        primary, companion, bachelor = self._scenario_tracks(rapidity=0.6)
        combiner = ResonanceCombiner()
        [pair] = combiner.reconstruct_pairs([primary, companion], [primary, companion])
        self.assertAlmostEqual(pair.mass, TARGET_MASS, places=9)
        self.assertAlmostEqual(pair.p4.rapidity, 0.6, places=9)
        self.assertEqual(combiner.extend(pair, [bachelor]), [])
        wide = ResonanceCombiner(AnalysisConfig(cuts=ResonanceCuts(min_rapidity=-1.0, max_rapidity=1.0)))
        [triplet] = wide.extend(pair, [bachelor])
        self.assertAlmostEqual(triplet.rapidity, 0.6, places=9)

    def test_sub_mass_window_applied(self) -> None:
        """Primary + bachelor mass outside [min, max] drops the triplet."""
        primary, companion, bachelor = self._scenario_tracks()
        combiner = ResonanceCombiner()
        [pair] = combiner.reconstruct_pairs([primary, companion], [primary, companion])
        [triplet] = combiner.extend(pair, [bachelor])
        narrow = ResonanceCombiner(
            AnalysisConfig(cuts=ResonanceCuts(min_sub_mass=triplet.sub_mass + 0.01, max_sub_mass=2.0))
        )
        self.assertEqual(narrow.extend(pair, [bachelor]), [])

    def test_bachelor_tof_toggle(self) -> None:
        """Bachelor TOF is ignored when the gate's TOF switch is off."""
        primary, companion, bachelor = self._scenario_tracks()
        bad_tof = replace(bachelor, tof_nsigma={"pi": 3.0}, pid_flags=HAS_TOF)
        [pair] = ResonanceCombiner().reconstruct_pairs([primary, companion], [primary, companion])
        self.assertEqual(ResonanceCombiner().extend(pair, [bad_tof]), [])
        lenient = ResonanceCombiner(AnalysisConfig(bachelor_pid=PidGate.fixed(use_tof=False)))
        self.assertEqual(len(lenient.extend(pair, [bad_tof])), 1)

    def test_qa_records_written_for_same_event_only(self) -> None:
        """Per-track QA is filled in same-event mode and suppressed when mixed."""
        primary, companion, bachelor = self._scenario_tracks()
        tracks = [primary, companion, bachelor]
        combiner = ResonanceCombiner()
        same, mixed = RecordSink(), RecordSink()
        combiner.reconstruct_pairs(tracks, tracks, EventMode.SAME_EVENT, sink=same)
        combiner.reconstruct_pairs(tracks, tracks, EventMode.MIXED, sink=mixed)
        self.assertTrue(same.track_qa(stage="before", role="companion"))
        self.assertTrue(same.track_qa(stage="after", role="primary"))
        self.assertEqual(mixed.track_qa(), [])
        pair_records = mixed.candidates(spectrum=Spectrum.PAIR)
        self.assertTrue(pair_records)
        self.assertTrue(all(r.category == PairCategory.MATTER_MIXED for r in pair_records))

    def test_scenario_e_different_mothers_not_truth_tagged(self) -> None:
        """Differing mother ids: triplet kept in the spectrum, not truth-tagged."""
        tracks = self._scenario_tracks(mothers=(5, 6))
        event = EventInput("evt0", vertex_z=0.0, multiplicity=3.0, tracks=tracks)
        combiner = ResonanceCombiner()
        truth = combiner.truth_matcher()
        self.assertFalse(truth.is_true_decay(*tracks))
        sink = RecordSink()
        [triplet] = combiner.process_event(event, sink=sink, truth=truth)
        self.assertFalse(triplet.is_true)
        self.assertEqual(len(sink.candidates(spectrum=Spectrum.TRIPLET)), 1)
        self.assertEqual(sink.candidates(spectrum=Spectrum.TRIPLET_TRUE), [])

    def test_true_decay_truth_tagged(self) -> None:
        """Matching chain produces a reconstructed-truth record."""
        tracks = self._scenario_tracks(mothers=(5, 5))
        event = EventInput("evt0", vertex_z=0.0, multiplicity=3.0, tracks=tracks)
        combiner = ResonanceCombiner()
        sink = RecordSink()
        [triplet] = combiner.process_event(event, sink=sink, truth=combiner.truth_matcher())
        self.assertTrue(triplet.is_true)
        [record] = sink.candidates(spectrum=Spectrum.TRIPLET_TRUE)
        self.assertEqual(record.category, TruthCategory.RECONSTRUCTED)

    def test_truth_matcher_missing_mother_is_untrue(self) -> None:
        """Tracks without generator info or mother are treated as background."""
        primary, companion, bachelor = self._scenario_tracks()
        truth = ResonanceCombiner().truth_matcher()
        orphan = replace(primary, mc=McInfo(pdg_code=211))
        self.assertFalse(truth.is_true_decay(orphan, replace(companion, mc=McInfo(pdg_code=321)), bachelor))
        self.assertFalse(truth.is_true_decay(replace(primary, mc=None), companion, bachelor))
        wrong_bachelor_mother = replace(bachelor, mc=McInfo(pdg_code=211, mother_id=9, mother_pdg=313))
        self.assertFalse(truth.is_true_decay(primary, companion, wrong_bachelor_mother))

    def test_generated_spectrum_from_mc_particles(self) -> None:
        """Generated K1 inside |y| < 0.5 with K* and pi daughters are counted."""
        particles = (
            McParticle(pdg_code=10323, pt=1.2, rapidity=0.1, daughter_pdg_codes=(313, 211)),
            McParticle(pdg_code=-10323, pt=2.0, rapidity=-0.3, daughter_pdg_codes=(-313, -211)),
            McParticle(pdg_code=10323, pt=0.8, rapidity=0.7, daughter_pdg_codes=(313, 211)),
            McParticle(pdg_code=10323, pt=0.9, rapidity=0.0, daughter_pdg_codes=(323, 111)),
            McParticle(pdg_code=313, pt=1.0, rapidity=0.0, daughter_pdg_codes=(321, 211)),
        )
        event = EventInput("evt0", vertex_z=0.0, multiplicity=3.0, tracks=(), mc_particles=particles)
        combiner = ResonanceCombiner()
        sink = RecordSink()
        combiner.process_event(event, sink=sink, truth=combiner.truth_matcher())
        generated = sink.candidates(spectrum=Spectrum.GENERATED, category=TruthCategory.GENERATED)
        self.assertEqual(sorted(r.pt for r in generated), [1.2, 2.0])

    def test_non_finite_momentum_raises(self) -> None:
        """Malformed tracks fail at construction."""
        with self.assertRaises(ValueError):
            self._track(0, math.nan, 0.0, 0.0, +1, 0.0, 0.0)
        with self.assertRaises(ValueError):
            self._track(0, 1.0, math.inf, 0.0, +1, 0.0, 0.0)


if __name__ == "__main__":
    unittest.main()
