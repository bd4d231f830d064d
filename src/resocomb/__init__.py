"""Public package exports for the resonance reconstruction framework."""
__author__ = "resocomb developers"


from .combiner import AnalysisConfig, ResonanceCombiner, within_mass_window
from .mixing import EventMixer, MixedEventPair, MixingBinning, mix_events
from .models import (
    CandidateRecord,
    DecayChannel,
    EventInput,
    EventMode,
    LorentzVector,
    McInfo,
    McParticle,
    MixingConfig,
    PairCandidate,
    PairCategory,
    ParticleHypothesis,
    ResonanceCuts,
    Spectrum,
    Track,
    TrackId,
    TrackQARecord,
    TrackSelection,
    TripletCandidate,
    TripletCategory,
    TruthCategory,
)
from .pid import (
    PidGate,
    ThresholdTable,
    make_k1,
    make_k1_channel,
    make_k892,
    make_kaon,
    make_pion,
    make_proton,
    particle_hypothesis_from_name,
)
from .sink import OutputSink, RecordSink
from .truth import TruthMatcher

__all__ = [
    "ResonanceCombiner",
    "AnalysisConfig",
    "within_mass_window",
    "EventMixer",
    "MixedEventPair",
    "MixingBinning",
    "mix_events",
    "Track",
    "TrackId",
    "McInfo",
    "McParticle",
    "EventInput",
    "LorentzVector",
    "ParticleHypothesis",
    "DecayChannel",
    "EventMode",
    "PairCandidate",
    "TripletCandidate",
    "PairCategory",
    "TripletCategory",
    "TruthCategory",
    "Spectrum",
    "CandidateRecord",
    "TrackQARecord",
    "TrackSelection",
    "ResonanceCuts",
    "MixingConfig",
    "PidGate",
    "ThresholdTable",
    "make_pion",
    "make_kaon",
    "make_proton",
    "make_k892",
    "make_k1",
    "make_k1_channel",
    "particle_hypothesis_from_name",
    "OutputSink",
    "RecordSink",
    "TruthMatcher",
]
