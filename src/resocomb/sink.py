"""Append-only output sinks receiving categorized candidate records."""

from __future__ import annotations

from typing import Protocol, Union

from .models import CandidateRecord, Spectrum, TrackQARecord

Record = Union[CandidateRecord, TrackQARecord]


class OutputSink(Protocol):
    """Write-only destination for records produced by the combiner."""

    def write(self, record: Record) -> None:
        ...


class RecordSink:
    """In-memory sink keeping records in arrival order."""

    def __init__(self) -> None:
        self._records: list[Record] = []

    def write(self, record: Record) -> None:
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple[Record, ...]:
        return tuple(self._records)

    def candidates(
        self,
        spectrum: Spectrum | None = None,
        category: int | None = None,
    ) -> list[CandidateRecord]:
        """Return candidate records, optionally restricted to one spectrum/category."""
        out: list[CandidateRecord] = []
        for rec in self._records:
            if not isinstance(rec, CandidateRecord):
                continue
            if spectrum is not None and rec.spectrum is not spectrum:
                continue
            if category is not None and rec.category != category:
                continue
            out.append(rec)
        return out

    def track_qa(self, stage: str | None = None, role: str | None = None) -> list[TrackQARecord]:
        """Return per-track QA records, optionally filtered by stage and role."""
        return [
            rec
            for rec in self._records
            if isinstance(rec, TrackQARecord)
            and (stage is None or rec.stage == stage)
            and (role is None or rec.role == role)
        ]
