import pytest

from core.aggregator import group_by_company
from core.client_matcher import match_all, match_client, rank_clients
from core.domains import get_domain
from core.models import CanonicalClient, ImportRecord, MatchType
from core.similarity import jaccard_score
from services.import_service import InMemoryAliasStore

REGISTRY = [
    CanonicalClient(id="c1", name="Mineração Vale Verde"),
    CanonicalClient(id="c2", name="Ramos Engenharia"),
    CanonicalClient(id="c3", name="Construtora Horizonte"),
]


def test_exact_match_binds_single_client():
    result = match_client("MINERAÇÃO VALE VERDE", REGISTRY)
    assert result.match_type is MatchType.EXACT
    assert result.score == 1.0
    assert result.cliente_id == "c1"
    assert len(result.sugestoes) == 1


def test_suggested_match_ranks_candidates_above_threshold():
    registry = [
        CanonicalClient(id="a", name="Alfa Construções"),
        CanonicalClient(id="b", name="Alfa Construções e Serviços"),
        CanonicalClient(id="c", name="Beta Transportes"),
    ]
    result = match_client("Alfa Construções Norte", registry)
    assert result.match_type is MatchType.SUGGESTED
    # "a" está contido no nome bruto (0.8); "b" casa 3 de 4 tokens (0.75)
    assert [s.cliente_id for s in result.sugestoes] == ["a", "b"]
    assert [s.score for s in result.sugestoes] == pytest.approx([0.8, 0.75])
    assert result.cliente_id == "a"


def test_suggestions_are_capped():
    registry = [CanonicalClient(id=str(i), name=f"Grupo Ramos {i}") for i in range(6)]
    result = match_client("Ramos", registry)
    assert result.match_type is MatchType.SUGGESTED
    assert len(result.sugestoes) == 3


def test_ties_keep_registry_order():
    registry = [
        CanonicalClient(id="x", name="Grupo Ramos Norte"),
        CanonicalClient(id="y", name="Grupo Ramos Sul"),
    ]
    ranked = rank_clients("Ramos", registry)
    assert [s.cliente_id for s in ranked] == ["x", "y"]
    assert match_client("Ramos", registry).cliente_id == "x"


def test_no_match_below_threshold_has_no_suggestions():
    result = match_client("Padaria Pão Quente", REGISTRY)
    assert result.match_type is MatchType.NONE
    assert result.sugestoes == ()
    assert result.cliente_id is None


def test_empty_registry_is_always_none():
    result = match_client("Mineração Vale Verde", [])
    assert result.match_type is MatchType.NONE
    assert result.score == 0.0


def test_duplicate_registry_names_never_give_two_exact_matches():
    registry = [
        CanonicalClient(id="c1", name="Ramos Engenharia"),
        CanonicalClient(id="c9", name="RAMOS ENGENHARIA"),
    ]
    result = match_client("ramos engenharia", registry)
    assert result.match_type is MatchType.EXACT
    assert result.cliente_id == "c1"
    assert [s.cliente_id for s in result.sugestoes] == ["c1"]


def test_pluggable_scorer_changes_classification():
    # Jaccard não aceita "miner" como "mineracao"
    registry = [CanonicalClient(id="m", name="Mineracao Serra Azul")]
    assert match_client("Miner Serra Azul", registry).match_type is MatchType.SUGGESTED
    assert match_client("Miner Serra Azul", registry, scorer=jaccard_score).match_type is MatchType.SUGGESTED
    assert match_client("Miner Vale", registry, scorer=jaccard_score).match_type is MatchType.NONE


def test_match_all_preserves_first_seen_order():
    results = match_all(["Ramos Engenharia", "Mineração Vale Verde", "Ramos Engenharia"], REGISTRY)
    assert list(results) == ["Ramos Engenharia", "Mineração Vale Verde"]


class TestValeVerdeScenario:
    """Duas grafias da mesma empresa: dois resumos, um cliente."""

    @pytest.fixture
    def records(self):
        normalizer = get_domain("demanda").normalizer
        rows = [("Mineração Vale Verde LTDA", "CONCLUÍDA"), ("mineracao vale verde", "em andamento")]
        return [
            ImportRecord(dominio="demanda", empresa=empresa, status=normalizer.normalize(status), status_raw=status)
            for empresa, status in rows
        ]

    def test_grouping_is_literal(self, records):
        groups = group_by_company(records)
        assert list(groups) == ["Mineração Vale Verde LTDA", "mineracao vale verde"]

    def test_both_names_resolve_to_same_client(self, records):
        for record in records:
            result = match_client(record.empresa, REGISTRY)
            assert result.match_type is MatchType.EXACT
            assert result.cliente_id == "c1"
            assert result.score == 1.0

    def test_statuses_are_normalized(self, records):
        assert [r.status for r in records] == ["CONCLUIDO", "EM_EXECUCAO"]


class TestLearnedAliases:
    @pytest.fixture
    def aliases(self):
        return InMemoryAliasStore({"VV Mineração LTDA": "c1", "Horizonte Antiga": "c99"})

    def test_alias_is_checked_before_similarity(self, aliases):
        assert match_client("VV Mineração", REGISTRY).match_type is MatchType.NONE

        result = match_client("VV Mineração", REGISTRY, aliases=aliases)
        assert result.match_type is MatchType.EXACT
        assert (result.cliente_id, result.cliente_nome, result.score) == ("c1", "Mineração Vale Verde", 1.0)

    def test_alias_to_removed_client_falls_back_to_similarity(self, aliases):
        result = match_client("Horizonte Antiga", REGISTRY, aliases=aliases)
        assert result.match_type is not MatchType.EXACT
        assert result.cliente_id != "c99"

    def test_match_all_uses_aliases(self, aliases):
        results = match_all(["VV Mineração", "Ramos Engenharia"], REGISTRY, aliases=aliases)
        assert [r.cliente_id for r in results.values()] == ["c1", "c2"]
