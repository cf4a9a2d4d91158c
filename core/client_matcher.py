from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from config import settings
from core.interfaces import ClientAliasStore
from core.models import CanonicalClient, MatchResult, MatchType, Suggestion
from core.similarity import EXACT_SCORE, SimilarityScorer, get_scorer
from core.text_utils import normalize_company_name

logger = logging.getLogger(__name__)


def _default_scorer() -> SimilarityScorer:
    return get_scorer(settings.SIMILARITY_STRATEGY)


def rank_clients(
    raw_name: str,
    registry: Sequence[CanonicalClient],
    scorer: Optional[SimilarityScorer] = None,
) -> List[Suggestion]:
    """Calcula o score contra todo o cadastro, do maior para o menor.

    sorted() é estável: empates mantêm a ordem de inserção do cadastro.
    """
    scorer = scorer or _default_scorer()
    scored = [Suggestion(cliente_id=c.id, nome=c.name, score=scorer(raw_name, c.name)) for c in registry]
    return sorted(scored, key=lambda s: s.score, reverse=True)


def _alias_match(
    raw_name: str,
    registry: Sequence[CanonicalClient],
    aliases: Optional[ClientAliasStore],
) -> Optional[MatchResult]:
    """Apelido aprendido para o nome; ignorado se o cliente saiu do cadastro."""
    if aliases is None:
        return None
    cliente_id = aliases.lookup(normalize_company_name(raw_name))
    if cliente_id is None:
        return None
    client = find_client(registry, cliente_id)
    if client is None:
        logger.warning(f"Apelido de '{raw_name}' aponta para cliente inexistente: {cliente_id}")
        return None
    best = Suggestion(cliente_id=client.id, nome=client.name, score=EXACT_SCORE)
    return MatchResult(
        empresa=raw_name,
        match_type=MatchType.EXACT,
        score=EXACT_SCORE,
        cliente_id=client.id,
        cliente_nome=client.name,
        sugestoes=(best,),
    )


def match_client(
    raw_name: str,
    registry: Sequence[CanonicalClient],
    scorer: Optional[SimilarityScorer] = None,
    threshold: Optional[float] = None,
    max_suggestions: Optional[int] = None,
    aliases: Optional[ClientAliasStore] = None,
) -> MatchResult:
    """Classifica a associação de um nome bruto com o cadastro.

    Regras:
    - apelido aprendido (aliases) -> EXACT, sem calcular similaridade
    - melhor score == 1.0 -> EXACT, ligado ao primeiro cliente com 1.0 (um único candidato)
    - limiar <= melhor score < 1.0 -> SUGGESTED, até N candidatos acima do limiar
    - caso contrário (ou cadastro vazio) -> NONE, sem candidatos
    """
    threshold = settings.SUGGESTION_THRESHOLD if threshold is None else threshold
    max_suggestions = settings.MAX_SUGGESTIONS if max_suggestions is None else max_suggestions

    if not registry:
        return MatchResult(empresa=raw_name, match_type=MatchType.NONE)

    by_alias = _alias_match(raw_name, registry, aliases)
    if by_alias is not None:
        return by_alias

    ranked = rank_clients(raw_name, registry, scorer)
    best = ranked[0]

    if best.score >= EXACT_SCORE:
        return MatchResult(
            empresa=raw_name,
            match_type=MatchType.EXACT,
            score=EXACT_SCORE,
            cliente_id=best.cliente_id,
            cliente_nome=best.nome,
            sugestoes=(best,),
        )

    if best.score >= threshold:
        sugestoes = tuple(s for s in ranked if s.score >= threshold)[:max_suggestions]
        return MatchResult(
            empresa=raw_name,
            match_type=MatchType.SUGGESTED,
            score=best.score,
            cliente_id=best.cliente_id,
            cliente_nome=best.nome,
            sugestoes=sugestoes,
        )

    return MatchResult(empresa=raw_name, match_type=MatchType.NONE, score=best.score)


def match_all(
    raw_names: Iterable[str],
    registry: Sequence[CanonicalClient],
    scorer: Optional[SimilarityScorer] = None,
    aliases: Optional[ClientAliasStore] = None,
) -> Dict[str, MatchResult]:
    """Correlaciona cada nome distinto, preservando a ordem em que apareceram."""
    scorer = scorer or _default_scorer()
    results: Dict[str, MatchResult] = {}
    for name in raw_names:
        if name in results:
            continue
        results[name] = match_client(name, registry, scorer=scorer, aliases=aliases)
    return results


def find_client(registry: Sequence[CanonicalClient], cliente_id: str) -> Optional[CanonicalClient]:
    for client in registry:
        if client.id == cliente_id:
            return client
    return None
