"""
Pipeline Stage 2: INVESTIGATION - pick which listings are worth enriching.

One scoring call for the whole batch. Whatever the service says, at most
min(ceil(0.4 * N), 10) listings advance: results are ranked by score and
everything past the cap is rejected. Listings the service did not score (or
every listing, when the call fails) get the description-length heuristic.
"""
import logging
import math
from typing import Any, Dict, List

from scout.models.items import ADVANCE, INVESTIGATION, REJECT, GateDecision
from scout.pipeline.base import match_verdicts
from scout.pipeline.funnel_config import load_funnel_config

logger = logging.getLogger('pipeline.investigation')

LIMIT_NOTE = '[exceeded investigation limit]'


def enrichment_cap(n: int, ratio: float = 0.4, cap_max: int = 10) -> int:
    """How many of n listings may advance to enrichment."""
    if n <= 0:
        return 0
    # round() first so 0.4 * 15 == 6.000000000000001 doesn't ceil to 7
    return min(math.ceil(round(ratio * n, 9)), cap_max)


class InvestigationGate:

    def __init__(self, scoring, config: Dict[str, Any] = None):
        self.scoring = scoring
        self.config = (config or load_funnel_config())['investigation']
        self.used_fallback = False

    def fallback_decision(self, listing) -> GateDecision:
        """Deterministic verdict from the listing alone."""
        fb = self.config['fallback']
        described = len((listing.description or '').strip()) > fb['min_description_chars']
        return GateDecision(
            stage=INVESTIGATION,
            item_key=listing.key,
            item_title=listing.title,
            verdict=ADVANCE if described else REJECT,
            score=fb['advance_score'] if described else fb['reject_score'],
            rationale=('Fallback: listing has a usable description' if described
                       else 'Fallback: listing description missing or too short'),
            fallback=True,
        )

    def select_for_enrichment(self, mission, listings: List[Any]) -> List[GateDecision]:
        """Exactly one decision per listing, ranked by score descending."""
        self.used_fallback = False
        if not listings:
            return []

        cap = enrichment_cap(len(listings), self.config['cap_ratio'], self.config['cap_max'])

        try:
            verdicts = self.scoring.score_listings(mission, listings)
        except Exception as e:
            logger.warning("Scoring service failed for %d listings, using fallback: %s", len(listings), e)
            verdicts = []

        matched = match_verdicts(verdicts, listings)
        missing = len(listings) - len(matched)
        if missing:
            self.used_fallback = True
            logger.warning("No verdict for %d/%d listings, fallback applied to those", missing, len(listings))

        decisions = []
        for listing in listings:
            v = matched.get(listing.key)
            if v is None:
                decisions.append(self.fallback_decision(listing))
                continue
            decisions.append(GateDecision(
                stage=INVESTIGATION,
                item_key=listing.key,
                item_title=listing.title,
                verdict=ADVANCE if v.advance else REJECT,
                score=v.score,
                rationale=v.rationale,
            ))

        # sorted() is stable: equal scores keep listing order
        ranked = sorted(decisions, key=lambda d: d.score, reverse=True)
        for rank, d in enumerate(ranked):
            if rank >= cap:
                d.verdict = REJECT
                d.rationale = f"{d.rationale} {LIMIT_NOTE}".strip()

        advanced = sum(1 for d in ranked if d.advanced)
        logger.info("Investigation: %d/%d listings advance (cap=%d, fallback=%s)",
                    advanced, len(listings), cap, self.used_fallback)
        return ranked
