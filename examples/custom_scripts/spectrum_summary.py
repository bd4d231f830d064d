"""Example custom callback: count candidates per spectrum and category."""

from __future__ import annotations
__author__ = "resocomb developers"


import json
from collections import Counter
from pathlib import Path

from resocomb import CandidateRecord


def process(records, context):
    """Save per-(spectrum, category) counts next to the output table."""
    counts = Counter(
        (r.spectrum.value, r.category) for r in records if isinstance(r, CandidateRecord)
    )
    payload = {
        "n_records": len(records),
        "mixing": context["mix"],
        "counts": [
            {"spectrum": spectrum, "category": category, "n": n}
            for (spectrum, category), n in sorted(counts.items())
        ],
    }
    out = Path(context["output_path"]).with_name("spectrum_summary.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
