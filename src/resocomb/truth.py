"""Generator-level truth matching for simulated inputs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import DecayChannel, McParticle, Track


def _code(hypothesis_pdg: int | None) -> int | None:
    return None if hypothesis_pdg is None else abs(hypothesis_pdg)


@dataclass(frozen=True)
class TruthMatcher:
    """Check reconstructed tracks against the expected decay chain.

    PDG codes are compared in absolute value so that charge conjugates match.
    """

    channel: DecayChannel

    def is_true_decay(self, primary: Track, companion: Track, bachelor: Track) -> bool:
        """Return True when all three tracks come from the expected chain.

        Tracks without generator information, or without a resolvable mother,
        are untrue.
        """
        if primary.mc is None or companion.mc is None or bachelor.mc is None:
            return False
        ch = self.channel
        if abs(primary.mc.pdg_code) != _code(ch.primary.pdg_id):
            return False
        if abs(companion.mc.pdg_code) != _code(ch.companion.pdg_id):
            return False
        if primary.mc.mother_id is None or primary.mc.mother_id != companion.mc.mother_id:
            return False
        if primary.mc.mother_pdg is None or abs(primary.mc.mother_pdg) != _code(ch.intermediate.pdg_id):
            return False
        if abs(bachelor.mc.pdg_code) != _code(ch.bachelor.pdg_id):
            return False
        if bachelor.mc.mother_pdg is None or abs(bachelor.mc.mother_pdg) != _code(ch.final_state.pdg_id):
            return False
        return True

    def generated(
        self,
        particles: Iterable[McParticle],
        min_rapidity: float,
        max_rapidity: float,
    ) -> list[McParticle]:
        """Select generated final-state resonances decaying into the channel.

        A particle counts when its rapidity lies in `[min_rapidity, max_rapidity]`
        and it has both an intermediate-resonance and a bachelor daughter.
        """
        final_code = _code(self.channel.final_state.pdg_id)
        intermediate_code = _code(self.channel.intermediate.pdg_id)
        bachelor_code = _code(self.channel.bachelor.pdg_id)
        out: list[McParticle] = []
        for part in particles:
            if abs(part.pdg_code) != final_code:
                continue
            if part.rapidity > max_rapidity or part.rapidity < min_rapidity:
                continue
            daughters = {abs(code) for code in part.daughter_pdg_codes}
            if intermediate_code not in daughters or bachelor_code not in daughters:
                continue
            out.append(part)
        return out
