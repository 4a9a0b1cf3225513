"""
Tests for name normalization and similarity metrics.
"""
import pytest

from curation.errors import InvalidInputError
from curation.normalizer import NameNormalizer, normalize_name
from curation.similarity import SimilarityMetrics


@pytest.fixture
def normalizer():
    return NameNormalizer()


class TestNormalize:
    """Canonical form of names."""

    def test_accents_and_case(self, normalizer):
        assert normalizer.normalize("Nicolás Maduro Moros") == "nicolas maduro moros"

    def test_enye(self, normalizer):
        assert normalizer.normalize("Pedro Carreño") == "pedro carreno"

    def test_honorific_and_punctuation(self, normalizer):
        assert normalizer.normalize("Sr. Nicolás  Maduro-Moros") == "nicolas maduro moros"

    def test_military_rank(self, normalizer):
        assert normalizer.normalize("Gral. Vladimir Padrino López") == "vladimir padrino lopez"

    def test_organization_name(self, normalizer):
        assert normalizer.normalize("Petróleos de Venezuela, S.A.") == "petroleos de venezuela s a"

    def test_idempotent(self, normalizer):
        once = normalizer.normalize("Dra. Delcy Eloína RODRÍGUEZ Gómez")
        assert normalizer.normalize(once) == once

    def test_module_function(self):
        assert normalize_name("  Diosdado   Cabello ") == "diosdado cabello"


class TestHonorifics:
    """Language specific honorific stripping."""

    def test_removed_honorifics_reported(self, normalizer):
        result = normalizer.analyze("Dra. Delcy Rodríguez")
        assert result.normalized == "delcy rodriguez"
        assert result.removed_honorifics == ["dra"]
        assert result.tokens == ["delcy", "rodriguez"]

    def test_english_honorific(self, normalizer):
        assert normalizer.normalize("Mr. John Smith", language="en") == "john smith"

    def test_english_honorific_kept_in_spanish(self, normalizer):
        assert normalizer.normalize("Mr. John Smith", language="es") == "mr john smith"

    def test_unknown_language_uses_every_list(self, normalizer):
        assert normalizer.normalize("Mr. Juan Pérez", language="fr") == "juan perez"


class TestInvalidNames:
    """Names that normalize to nothing are rejected."""

    @pytest.mark.parametrize("name", ["", "   ", "\t\n"])
    def test_blank(self, normalizer, name):
        with pytest.raises(InvalidInputError):
            normalizer.normalize(name)

    def test_only_honorifics(self, normalizer):
        with pytest.raises(InvalidInputError):
            normalizer.normalize("Sr. Dr.")

    def test_only_punctuation(self, normalizer):
        with pytest.raises(InvalidInputError):
            normalizer.normalize("-- ,. --")


class TestNicknameVariants:
    """Spanish nickname expansion."""

    def test_single_nickname(self, normalizer):
        assert normalizer.nickname_variants("nico maduro") == ["nicolas maduro"]

    def test_no_nickname(self, normalizer):
        assert normalizer.nickname_variants("nicolas maduro") == []

    def test_accented_nickname(self, normalizer):
        assert normalizer.nickname_variants("tono lopez") == ["antonio lopez"]

    def test_two_nicknames(self, normalizer):
        assert normalizer.nickname_variants("pepe nico") == [
            "jose nico",
            "pepe nicolas",
            "jose nicolas",
        ]


class TestSimilarityMetrics:
    """RapidFuzz scorers on the 0-100 scale."""

    def test_identical(self):
        assert SimilarityMetrics().weighted_ratio("nicolas maduro", "nicolas maduro") == 100.0

    def test_one_substitution(self):
        score = SimilarityMetrics().weighted_ratio("nicolas madura", "nicolas maduro")
        assert score == pytest.approx(92.857, abs=0.01)

    def test_empty(self):
        assert SimilarityMetrics().weighted_ratio("", "nicolas") == 0.0

    def test_cutoff(self):
        assert SimilarityMetrics().weighted_ratio("nicolas madura", "nicolas maduro", score_cutoff=95) == 0.0

    def test_token_sort_ignores_order(self):
        assert SimilarityMetrics().token_sort("maduro moros nicolas", "nicolas maduro moros") == 100.0

    def test_breakdown_keys(self):
        breakdown = SimilarityMetrics().breakdown("nicolas madura", "nicolas maduro")
        assert set(breakdown) == {"weighted_ratio", "token_sort", "token_set", "levenshtein"}
