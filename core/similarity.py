"""
Similaridade entre nomes de empresa.

Duas estratégias convivem no histórico do sistema:

- containment (padrão): igualdade → 1.0; um nome contido no outro → 0.8;
  senão sobreposição de tokens tolerante a contenção: cada token da lista
  menor conta como casado se existir token igual na outra lista, ou se um
  dos dois contém o outro. Score = casados / max(qtd1, qtd2).
  NÃO é um índice de Jaccard: um token "miner" casa com "mineracao", e
  tokens repetidos contam individualmente.
- jaccard: mesma regra de igualdade/contenção, seguida de Jaccard estrito
  sobre o conjunto de palavras.

Os nomes são comparados pela chave de normalize_company_name() (texto
normalizado sem pontuação e sem forma jurídica), então
"Mineração Vale Verde LTDA" e "mineracao vale verde" são iguais.

Nas duas, somente chaves iguais chegam a 1.0. Permutações
("vale verde" x "verde vale") teriam sobreposição total, então o ramo de
tokens é limitado ao score de contenção.
"""

from typing import Callable, Dict

from core.text_utils import normalize_company_name

EXACT_SCORE = 1.0
CONTAINMENT_SCORE = 0.8

SimilarityScorer = Callable[[str, str], float]


def _prelude(s1: str, s2: str):
    """Regras comuns às estratégias. Retorna None quando cabe o ramo de tokens."""
    if s1 == s2:
        return EXACT_SCORE
    if not s1 or not s2:
        return 0.0
    if s1 in s2 or s2 in s1:
        return CONTAINMENT_SCORE
    return None


def containment_overlap_score(str1: str, str2: str) -> float:
    """
    Score de similaridade tolerante a contenção (estratégia padrão).

    Args:
        str1: Primeiro nome (bruto)
        str2: Segundo nome (bruto)

    Returns:
        Score em [0, 1]; 1.0 somente se os textos normalizados forem iguais

    Examples:
        >>> containment_overlap_score("Mineração Vale Verde", "mineracao vale verde")
        1.0
        >>> containment_overlap_score("Grupo Vale Verde", "Vale Verde")
        0.8
    """
    s1 = normalize_company_name(str1)
    s2 = normalize_company_name(str2)

    early = _prelude(s1, s2)
    if early is not None:
        return early

    tokens1 = s1.split(" ")
    tokens2 = s2.split(" ")
    shorter, longer = (tokens1, tokens2) if len(tokens1) <= len(tokens2) else (tokens2, tokens1)

    matched = 0
    for token in shorter:
        if any(token == other or token in other or other in token for other in longer):
            matched += 1

    score = matched / max(len(tokens1), len(tokens2))
    return min(score, CONTAINMENT_SCORE)


def jaccard_score(str1: str, str2: str) -> float:
    """
    Score de similaridade com Jaccard estrito sobre conjuntos de palavras.

    Examples:
        >>> jaccard_score("Alfa Beta", "Alfa Gama")
        0.3333333333333333
    """
    s1 = normalize_company_name(str1)
    s2 = normalize_company_name(str2)

    early = _prelude(s1, s2)
    if early is not None:
        return early

    words1 = set(s1.split(" "))
    words2 = set(s2.split(" "))
    union = words1 | words2
    if not union:
        return 0.0
    score = len(words1 & words2) / len(union)
    return min(score, CONTAINMENT_SCORE)


SIMILARITY_STRATEGIES: Dict[str, SimilarityScorer] = {
    "containment": containment_overlap_score,
    "jaccard": jaccard_score,
}


def get_scorer(name: str = "containment") -> SimilarityScorer:
    """
    Retorna a estratégia de similaridade registrada com o nome informado.

    Raises:
        ValueError: Se o nome não estiver registrado
    """
    try:
        return SIMILARITY_STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Estratégia de similaridade desconhecida: {name!r}. "
            f"Opções: {', '.join(sorted(SIMILARITY_STRATEGIES))}"
        ) from None
