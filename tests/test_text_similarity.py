import pytest

from core.similarity import (
    CONTAINMENT_SCORE,
    containment_overlap_score,
    get_scorer,
    jaccard_score,
)
from core.text_utils import normalize_company_name, normalize_text, strip_accents

AMOSTRAS = [
    "",
    "   ",
    "Mineração Vale Verde LTDA",
    "  MINERAÇÃO\tvale   verde ",
    "Construtora São João S/A",
    "ÁÉÍÓÚ àèìòù ç ñ",
    "Em Análise pelo Órgão",
    "Ramos\nEngenharia Ambiental",
]


@pytest.mark.parametrize("texto", AMOSTRAS)
def test_normalize_text_is_idempotent(texto):
    uma_vez = normalize_text(texto)
    assert normalize_text(uma_vez) == uma_vez


def test_normalize_text_lowercases_strips_accents_and_collapses_spaces():
    assert normalize_text("  MINERAÇÃO\tvale   verde ") == "mineracao vale verde"
    assert normalize_text(None) == ""
    assert strip_accents("Órgão") == "Orgao"


def test_normalize_company_name_drops_legal_forms_and_punctuation():
    assert normalize_company_name("Mineração Vale Verde LTDA") == "mineracao vale verde"
    assert normalize_company_name("Construtora São João S/A") == "construtora sao joao"
    assert normalize_company_name("Ramos-Engenharia EIRELI") == "ramos engenharia"
    # só forma jurídica: mantém o texto normalizado
    assert normalize_company_name("LTDA") == "ltda"


class TestContainmentOverlapScore:
    def test_equal_after_normalization_is_exact(self):
        assert containment_overlap_score("Mineração Vale Verde LTDA", "mineracao vale verde") == 1.0

    def test_substring_scores_containment(self):
        assert containment_overlap_score("Grupo Ramos", "Ramos") == CONTAINMENT_SCORE

    def test_token_overlap_tolerates_partial_tokens(self):
        # "miner" casa com "mineracao"; "vale" não casa com nada
        assert containment_overlap_score("Miner Vale", "Mineracao Serra") == pytest.approx(0.5)

    def test_token_overlap_uses_longest_token_count(self):
        assert containment_overlap_score("Alfa Construções", "Beta Construções") == pytest.approx(0.5)

    def test_permutation_never_reaches_exact(self):
        score = containment_overlap_score("Vale Verde Mineração", "Mineração Vale Verde")
        assert score == CONTAINMENT_SCORE
        assert score < 1.0

    def test_one_side_empty_scores_zero(self):
        assert containment_overlap_score("", "Vale Verde") == 0.0
        assert containment_overlap_score("Vale Verde", "   ") == 0.0

    @pytest.mark.parametrize("a", AMOSTRAS)
    @pytest.mark.parametrize("b", AMOSTRAS)
    def test_score_is_bounded_and_exact_only_for_equal_keys(self, a, b):
        score = containment_overlap_score(a, b)
        assert 0.0 <= score <= 1.0
        assert (score == 1.0) == (normalize_company_name(a) == normalize_company_name(b))


class TestJaccardScore:
    def test_word_set_ratio(self):
        assert jaccard_score("Alfa Beta", "Alfa Gama") == pytest.approx(1 / 3)

    def test_partial_tokens_do_not_count(self):
        assert jaccard_score("Miner Vale", "Mineracao Serra") == 0.0

    def test_shares_exact_and_containment_rules(self):
        assert jaccard_score("Vale Verde LTDA", "vale verde") == 1.0
        assert jaccard_score("Grupo Ramos", "Ramos") == CONTAINMENT_SCORE


def test_get_scorer_by_name():
    assert get_scorer("containment") is containment_overlap_score
    assert get_scorer("jaccard") is jaccard_score
    with pytest.raises(ValueError):
        get_scorer("levenshtein")
