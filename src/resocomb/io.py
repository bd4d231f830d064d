"""Input/output helpers for JSON inputs and tabular record export."""

from __future__ import annotations
__author__ = "resocomb developers"


import json
from dataclasses import fields
from pathlib import Path
from typing import Any, Iterable

from .combiner import AnalysisConfig
from .models import (
    HAS_TOF,
    CandidateRecord,
    DecayChannel,
    EventInput,
    McInfo,
    McParticle,
    MixingConfig,
    ResonanceCuts,
    Track,
    TrackId,
    TrackQARecord,
    TrackSelection,
)
from .pid import PidGate, ThresholdTable, make_k1_channel, particle_hypothesis_from_name
from .sink import Record


def load_events_json(path: str | Path) -> list[EventInput]:
    """Load multi-event input JSON into `EventInput` objects.

    Expected shape:
    {
      "events": [
        {"event_id": "...", "vertex_z": 0.3, "multiplicity": 42.0,
         "tracks": [...], "mc_particles": [...]},
        ...
      ]
    }
    """
    data = _load_json(path)
    events_data = data.get("events")
    if not isinstance(events_data, list):
        raise ValueError("Events JSON must contain a list under key 'events'.")
    out: list[EventInput] = []
    seen_events: set[str] = set()
    for idx, event in enumerate(events_data):
        if not isinstance(event, dict):
            raise ValueError(f"Event entry at index {idx} must be an object.")
        event_id = str(event.get("event_id", f"evt{idx}"))
        if event_id in seen_events:
            raise ValueError(f"Duplicate event_id '{event_id}' at index {idx}.")
        seen_events.add(event_id)
        tracks_data = event.get("tracks")
        if not isinstance(tracks_data, list):
            raise ValueError(f"Event '{event_id}' must contain a list under key 'tracks'.")
        tracks = tuple(
            _parse_track_item(item=track_item, idx=tidx, event_id=event_id)
            for tidx, track_item in enumerate(tracks_data)
        )
        indices = [t.track_id.index for t in tracks]
        duplicates = sorted({i for i in indices if indices.count(i) > 1})
        if duplicates:
            raise ValueError(f"Event '{event_id}' has duplicate track indices: {duplicates}")
        mc_data = event.get("mc_particles", [])
        if not isinstance(mc_data, list):
            raise ValueError(f"Event '{event_id}' key 'mc_particles' must be a list.")
        out.append(
            EventInput(
                event_id=event_id,
                vertex_z=float(event["vertex_z"]),
                multiplicity=float(event["multiplicity"]),
                tracks=tracks,
                mc_particles=tuple(_parse_mc_particle(item) for item in mc_data),
            )
        )
    return out


def load_config_json(path: str | Path) -> AnalysisConfig:
    """Load an analysis configuration JSON document.

    Every top-level section is optional; missing sections keep their defaults.
    PID sections accept either fixed thresholds
    (`{"max_tpc": 2, "max_tof": 2, "use_tof": true}`) or parallel pt arrays
    (`tpc_breakpoints`/`tpc_thresholds`, `tof_breakpoints`/`tof_thresholds`).
    """
    data = _load_json(path)
    return parse_config(data)


def parse_config(data: dict[str, Any]) -> AnalysisConfig:
    """Build an `AnalysisConfig` from an already-decoded JSON object."""
    known = {f.name for f in fields(AnalysisConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")
    defaults = AnalysisConfig()
    kwargs: dict[str, Any] = {}
    if "channel" in data:
        kwargs["channel"] = _parse_channel(data["channel"])
    if "track_selection" in data:
        kwargs["track_selection"] = _parse_section(TrackSelection, data["track_selection"], "track_selection")
    for key in ("primary_pid", "companion_pid", "bachelor_pid"):
        if key in data:
            kwargs[key] = _parse_pid_gate(data[key], getattr(defaults, key), key)
    if "cuts" in data:
        kwargs["cuts"] = _parse_section(ResonanceCuts, data["cuts"], "cuts")
    if "mixing" in data:
        mixing = dict(_require_object(data["mixing"], "mixing"))
        for edges in ("vertex_z_edges", "multiplicity_edges"):
            if edges in mixing:
                mixing[edges] = tuple(float(x) for x in mixing[edges])
        kwargs["mixing"] = _parse_section(MixingConfig, mixing, "mixing")
    return AnalysisConfig(**kwargs)


def write_records_table(path: str | Path, records: Iterable[Record]) -> None:
    """Write sink records into Parquet/CSV/Pickle table."""
    df = records_frame(records)
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def records_frame(records: Iterable[Record]):
    """Flatten candidate records into a pandas DataFrame (QA records are skipped)."""
    pd = _require_pandas()
    columns = ["spectrum", "category", "multiplicity", "pt", "mass", "event_id"]
    return pd.DataFrame(_record_rows(records), columns=columns)


def qa_frame(records: Iterable[Record]):
    """Flatten per-track QA records into a pandas DataFrame."""
    pd = _require_pandas()
    rows = [
        {
            "stage": rec.stage,
            "role": rec.role,
            "pt": rec.pt,
            "tpc_nsigma": rec.tpc_nsigma,
            "tof_nsigma": rec.tof_nsigma,
        }
        for rec in records
        if isinstance(rec, TrackQARecord)
    ]
    return pd.DataFrame(rows, columns=["stage", "role", "pt", "tpc_nsigma", "tof_nsigma"])


def _record_rows(records: Iterable[Record]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for rec in records:
        if not isinstance(rec, CandidateRecord):
            continue
        rows.append(
            {
                "spectrum": rec.spectrum.value,
                "category": rec.category,
                "multiplicity": rec.multiplicity,
                "pt": rec.pt,
                "mass": rec.mass,
                "event_id": rec.event_id,
            }
        )
    return rows


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to build output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_track_item(item: Any, idx: int, event_id: str) -> Track:
    """Parse one track dictionary into a `Track`."""
    if not isinstance(item, dict):
        raise ValueError(f"Track entry at index {idx} in event '{event_id}' must be an object.")
    pid_flags = int(item.get("pid_flags", 0))
    if item.get("has_tof", False):
        pid_flags |= HAS_TOF
    mc_raw = item.get("mc")
    mc = None
    if mc_raw is not None:
        mc_obj = _require_object(mc_raw, f"track {idx} mc")
        mother_id = mc_obj.get("mother_id")
        mother_pdg = mc_obj.get("mother_pdg")
        mc = McInfo(
            pdg_code=int(mc_obj["pdg_code"]),
            mother_id=None if mother_id is None else int(mother_id),
            mother_pdg=None if mother_pdg is None else int(mother_pdg),
        )
    return Track(
        track_id=TrackId(event_id, int(item.get("index", idx))),
        px=float(item["px"]),
        py=float(item["py"]),
        pz=float(item["pz"]),
        charge=int(item["charge"]),
        dca_xy=float(item.get("dca_xy", 0.0)),
        dca_z=float(item.get("dca_z", 0.0)),
        tpc_nsigma=_parse_nsigma(item.get("tpc_nsigma", {}), "tpc_nsigma"),
        tof_nsigma=_parse_nsigma(item.get("tof_nsigma", {}), "tof_nsigma"),
        pid_flags=pid_flags,
        mc=mc,
    )


def _parse_mc_particle(item: Any) -> McParticle:
    obj = _require_object(item, "mc_particles entry")
    return McParticle(
        pdg_code=int(obj["pdg_code"]),
        pt=float(obj["pt"]),
        rapidity=float(obj["rapidity"]),
        daughter_pdg_codes=tuple(int(x) for x in obj.get("daughters", [])),
    )


def _parse_nsigma(value: Any, name: str) -> dict[str, float]:
    obj = _require_object(value, name)
    return {str(species): float(score) for species, score in obj.items()}


def _parse_channel(value: Any) -> DecayChannel:
    obj = _require_object(value, "channel")
    default = make_k1_channel()
    roles = {f.name for f in fields(DecayChannel)}
    unknown = sorted(set(obj) - roles)
    if unknown:
        raise ValueError(f"Unknown channel roles: {', '.join(unknown)}")
    kwargs = {
        role: particle_hypothesis_from_name(str(obj[role])) if role in obj else getattr(default, role)
        for role in roles
    }
    return DecayChannel(**kwargs)


def _parse_pid_gate(value: Any, default: PidGate, name: str) -> PidGate:
    obj = _require_object(value, name)
    allowed = {
        "max_tpc",
        "max_tof",
        "use_tof",
        "tpc_breakpoints",
        "tpc_thresholds",
        "tof_breakpoints",
        "tof_thresholds",
    }
    unknown = sorted(set(obj) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {', '.join(unknown)}")
    tpc = _parse_table(obj, "tpc", default.tpc)
    tof = _parse_table(obj, "tof", default.tof)
    return PidGate(tpc=tpc, tof=tof, use_tof=bool(obj.get("use_tof", default.use_tof)))


def _parse_table(obj: dict[str, Any], detector: str, default: ThresholdTable) -> ThresholdTable:
    fixed_key = f"max_{detector}"
    bp_key = f"{detector}_breakpoints"
    th_key = f"{detector}_thresholds"
    if fixed_key in obj:
        if bp_key in obj or th_key in obj:
            raise ValueError(f"Use either '{fixed_key}' or '{bp_key}'/'{th_key}', not both.")
        return ThresholdTable.fixed(float(obj[fixed_key]))
    if bp_key in obj or th_key in obj:
        return ThresholdTable(obj.get(bp_key, []), obj.get(th_key, []))
    return default


def _parse_section(cls, value: Any, name: str):
    obj = _require_object(value, name)
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(obj) - known)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {', '.join(unknown)}")
    return cls(**obj)


def _require_object(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a JSON object.")
    return value


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
