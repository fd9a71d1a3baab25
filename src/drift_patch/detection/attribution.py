"""
Attribution of aggregate drift to individual features.
"""
from dataclasses import replace
from typing import List, Sequence, Tuple

from ..config import get_logger
from ..models import AttributionEntry, DriftResult, FeatureDrift

logger = get_logger(__name__)


class AttributionRanker:
    """
    Rank features by their share of the total PSI.
    """

    def rank(
        self,
        feature_drifts: Sequence[FeatureDrift]
    ) -> Tuple[List[FeatureDrift], List[AttributionEntry]]:
        """
        Order features by contribution to drift.

        contribution_i = psi_i / sum(psi), 0 for every feature when the sum is 0.
        Sorted descending by contribution; ties broken by feature name.

        Args:
            feature_drifts: Per-feature results

        Returns:
            (ordered_feature_drifts, attribution_entries) in the same order
        """
        total_psi = sum(fd.psi_score for fd in feature_drifts)
        scored = [
            (fd, fd.psi_score / total_psi if total_psi > 0 else 0.0)
            for fd in feature_drifts
        ]
        scored.sort(key=lambda item: (-item[1], item[0].feature_name))

        ordered = [fd for fd, _ in scored]
        entries = [AttributionEntry(fd.feature_name, contribution) for fd, contribution in scored]
        return ordered, entries

    def rank_result(self, drift_result: DriftResult) -> DriftResult:
        """Return a copy of drift_result with ranked features and attribution."""
        ordered, entries = self.rank(drift_result.feature_drifts)
        ranked = replace(drift_result, feature_drifts=tuple(ordered), attribution=tuple(entries))
        if entries and entries[0].contribution > 0:
            logger.debug(
                "drift_attributed",
                model_id=drift_result.model_id,
                top_feature=entries[0].feature_name,
                top_contribution=entries[0].contribution,
            )
        return ranked
