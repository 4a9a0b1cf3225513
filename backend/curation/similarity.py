"""
String Similarity Metrics

Fast string similarity calculations using RapidFuzz, on the 0-100 scale
used for match scores:
- Weighted ratio: the matcher's scoring function
- Token sort / token set: word reordering and extra words
- Levenshtein: edit distance based
"""

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein


class SimilarityMetrics:
    """
    Thin interface over the RapidFuzz scorers used in entity matching.

    All inputs are expected to be normalized already.

    Example:
        >>> metrics = SimilarityMetrics()
        >>> metrics.token_sort("maduro moros nicolas", "nicolas maduro moros")
        100.0
    """

    def __init__(self, score_cutoff: float = 0.0):
        """
        Args:
            score_cutoff: Minimum score to return (returns 0 if below).
                          Scores at or above the cutoff are exact.
        """
        self.score_cutoff = score_cutoff

    def weighted_ratio(self, s1: str, s2: str, score_cutoff: float | None = None) -> float:
        """
        Weighted Ratio (0-100).

        RapidFuzz's combination of ratio, partial and token ratios, scaled by
        the length difference of the two strings. Only identical strings
        reach 100; a full-token subset of similar length lands on 95.
        """
        if not s1 or not s2:
            return 0.0

        cutoff = self.score_cutoff if score_cutoff is None else score_cutoff
        return float(fuzz.WRatio(s1, s2, score_cutoff=cutoff))

    def token_sort(self, s1: str, s2: str) -> float:
        """Token Sort Ratio (0-100). Sorts tokens before comparing."""
        if not s1 or not s2:
            return 0.0

        return float(fuzz.token_sort_ratio(s1, s2, score_cutoff=self.score_cutoff))

    def token_set(self, s1: str, s2: str) -> float:
        """
        Token Set Ratio (0-100).

        Compares token sets, ignoring order and duplicates.
        Very permissive - use with caution.
        """
        if not s1 or not s2:
            return 0.0

        return float(fuzz.token_set_ratio(s1, s2, score_cutoff=self.score_cutoff))

    def levenshtein_ratio(self, s1: str, s2: str) -> float:
        """Normalized Levenshtein similarity (0-100)."""
        if not s1 or not s2:
            return 0.0

        return Levenshtein.normalized_similarity(s1, s2) * 100.0

    def breakdown(self, s1: str, s2: str) -> dict[str, float]:
        """All metrics for one pair, rounded for display."""
        return {
            'weighted_ratio': round(self.weighted_ratio(s1, s2), 2),
            'token_sort': round(self.token_sort(s1, s2), 2),
            'token_set': round(self.token_set(s1, s2), 2),
            'levenshtein': round(self.levenshtein_ratio(s1, s2), 2),
        }
