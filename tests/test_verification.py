"""Unit tests for verification scoring."""

import pytest

from sourcesheet.quality.verification import is_accepted, normalize_text, trigrams, verification_score

GENESIS = "בראשית ברא אלהים את השמים ואת הארץ"


class TestNormalizeText:
    """Test text normalization."""

    def test_strips_vowel_points_and_cantillation(self):
        """Nikud and cantillation marks are removed."""
        assert normalize_text("בְּרֵאשִׁ֖ית בָּרָ֣א") == "בראשית ברא"

    def test_strips_markup_and_punctuation(self):
        """HTML tags and punctuation are removed."""
        assert normalize_text("<b>שלום,</b> עולם!") == "שלום עולם"

    def test_restricts_to_script(self):
        """Only Hebrew letters are kept by default."""
        assert normalize_text("Genesis 1:1 בראשית") == "בראשית"

    def test_latin_script_lowercases_and_drops_accents(self):
        """Latin text is lower-cased without accents."""
        assert normalize_text("Café  Noir!", script="latin") == "cafe noir"

    def test_any_script(self):
        """With no script any letter or digit is kept."""
        assert normalize_text("Psalm 23, שיר", script=None) == "psalm 23 שיר"

    def test_empty(self):
        """Empty text stays empty."""
        assert normalize_text("") == ""

    def test_unknown_script(self):
        """Unknown scripts raise ValueError."""
        with pytest.raises(ValueError):
            normalize_text("abc", script="klingon")


def test_trigrams():
    """Character trigrams in order."""
    assert trigrams("abcd") == ["abc", "bcd"]
    assert trigrams("ab") == []


class TestVerificationScore:
    """Test score properties."""

    def test_identical_text_scores_one(self):
        """Identical text scores 1.0."""
        assert verification_score(GENESIS, GENESIS) == 1.0

    def test_identical_after_normalization_scores_one(self):
        """Text equal after normalization scores 1.0."""
        assert verification_score("בְּרֵאשִׁית בָּרָא", "<p>בראשית ברא אלהים</p>") == 1.0

    def test_disjoint_text_scores_zero(self):
        """Disjoint text scores 0.0."""
        assert verification_score("אבגדה", "ופצקר שת") == 0.0

    def test_empty_input_scores_zero(self):
        """Input with no script letters scores 0.0."""
        assert verification_score("", GENESIS) == 0.0
        assert verification_score("Genesis", GENESIS) == 0.0

    def test_trigram_fraction(self):
        """Score is the fraction of shared trigrams."""
        # 8 input trigrams, 3 of them (אבג, בגד, גדה) in the canonical text
        assert verification_score("אבגדהסעפצק", "אבגדהוזחטי") == pytest.approx(3 / 8)

    def test_monotonic_in_overlap(self):
        """More overlap gives a higher score."""
        canonical = "אבגדהוזחטי"
        low = verification_score("אבגסעפצקרש", canonical)
        mid = verification_score("אבגדהסעפצק", canonical)
        high = verification_score("אבגדהוזחצק", canonical)
        assert 0.0 < low < mid < high < 1.0

    def test_score_in_unit_interval(self):
        """Scores stay within [0, 1]."""
        score = verification_score("ברא אלהים ויאמר", GENESIS)
        assert 0.0 <= score <= 1.0


def test_is_accepted_threshold():
    """The 0.3 threshold is inclusive."""
    assert is_accepted(0.3)
    assert not is_accepted(0.29)
    assert is_accepted(0.5, threshold=0.5)
