"""Event mixing: pair distinct, kinematically similar events for background."""

from __future__ import annotations
__author__ = "resocomb developers"


import logging
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterator, NamedTuple, Sequence

from .models import EventInput, MixingConfig, Track, TrackSelection, check_mixing_count

logger = logging.getLogger(__name__)

BinKey = tuple[int, int]


class MixedEventPair(NamedTuple):
    """Two distinct events and their (filtered) track lists."""

    event1: EventInput
    tracks1: tuple[Track, ...]
    event2: EventInput
    tracks2: tuple[Track, ...]


def find_bin(edges: Sequence[float], value: float) -> int:
    """Return the bin index of `value` in `[edges[i], edges[i+1])`, or -1 outside."""
    idx = bisect_right(edges, value) - 1
    if idx < 0 or idx >= len(edges) - 1:
        return -1
    return idx


def _validate_edges(name: str, edges: Sequence[float]) -> None:
    if len(edges) < 2:
        raise ValueError(f"{name} needs at least two bin edges, got {len(edges)}.")
    if any(b <= a for a, b in zip(edges, edges[1:])):
        raise ValueError(f"{name} must be strictly increasing: {list(edges)!r}")


@dataclass(frozen=True)
class MixingBinning:
    """Discretization of (vertex z, multiplicity) into mixing bins.

    Two events are compatible when both bin indices differ by at most
    `tolerance`. Events outside the edges belong to no bin and never mix.
    """

    vertex_z_edges: tuple[float, ...]
    multiplicity_edges: tuple[float, ...]
    tolerance: int = 0

    def __post_init__(self) -> None:
        _validate_edges("vertex_z_edges", self.vertex_z_edges)
        _validate_edges("multiplicity_edges", self.multiplicity_edges)
        check_mixing_count("tolerance", self.tolerance, minimum=0)

    @classmethod
    def from_config(cls, config: MixingConfig) -> "MixingBinning":
        return cls(
            vertex_z_edges=tuple(config.vertex_z_edges),
            multiplicity_edges=tuple(config.multiplicity_edges),
            tolerance=config.tolerance,
        )

    def bin_of(self, event: EventInput) -> BinKey | None:
        vz_bin = find_bin(self.vertex_z_edges, event.vertex_z)
        mult_bin = find_bin(self.multiplicity_edges, event.multiplicity)
        if vz_bin < 0 or mult_bin < 0:
            return None
        return vz_bin, mult_bin

    def neighbours(self, key: BinKey) -> list[BinKey]:
        """Bins within tolerance of `key`, including `key` itself."""
        tol = self.tolerance
        n_vz = len(self.vertex_z_edges) - 1
        n_mult = len(self.multiplicity_edges) - 1
        return [
            (vz, mult)
            for vz in range(max(0, key[0] - tol), min(n_vz, key[0] + tol + 1))
            for mult in range(max(0, key[1] - tol), min(n_mult, key[1] + tol + 1))
        ]


@dataclass(frozen=True)
class EventMixer:
    """Pair each event with up to `depth` later events from compatible bins."""

    binning: MixingBinning
    depth: int = 5
    track_selection: TrackSelection | None = None

    def __post_init__(self) -> None:
        check_mixing_count("depth", self.depth, minimum=1)

    def pairs(self, events: Sequence[EventInput]) -> Iterator[MixedEventPair]:
        """Yield mixed event pairs in input order of the first event.

        Partners are drawn without replacement: each unordered event pair
        appears at most once, and never an event with itself.
        """
        positions_by_bin: dict[BinKey, list[int]] = {}
        keys: list[BinKey | None] = []
        for pos, event in enumerate(events):
            key = self.binning.bin_of(event)
            keys.append(key)
            if key is None:
                logger.debug("Event %s lies outside the mixing binning", event.event_id)
                continue
            positions_by_bin.setdefault(key, []).append(pos)

        n_pairs = 0
        for pos, event in enumerate(events):
            key = keys[pos]
            if key is None:
                continue
            partners = sorted(
                other
                for neighbour in self.binning.neighbours(key)
                for other in positions_by_bin.get(neighbour, ())
                if other > pos
            )[: self.depth]
            tracks1 = self._filter(event)
            for other in partners:
                n_pairs += 1
                yield MixedEventPair(event, tracks1, events[other], self._filter(events[other]))
        logger.debug("Built %d mixed event pairs from %d events", n_pairs, len(events))

    def _filter(self, event: EventInput) -> tuple[Track, ...]:
        if self.track_selection is None:
            return tuple(event.tracks)
        return tuple(self.track_selection.select(event.tracks))


def mix_events(
    events: Sequence[EventInput],
    depth: int,
    binning: MixingBinning,
    track_selection: TrackSelection | None = None,
) -> list[MixedEventPair]:
    """Functional form of `EventMixer.pairs`."""
    return list(EventMixer(binning=binning, depth=depth, track_selection=track_selection).pairs(events))
