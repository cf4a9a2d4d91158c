"""
Normalização de status por domínio.

Cada domínio exporta os status em vocabulário próprio ("CONCLUÍDA",
"em andamento", "Em análise pelo órgão", ...). O StatusNormalizer mapeia
qualquer texto para um valor do enum fechado do domínio:

1. Tabela direta: texto normalizado igual a uma chave conhecida.
2. Regras de palavra-chave, em ordem fixa de prioridade (substring).
3. Valor padrão do domínio.

A função é total: nunca levanta exceção e nunca devolve valor fora do enum.

Licenças também derivam o status da data de vencimento
(classify_license), sempre com `today` injetado.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from core.text_utils import normalize_text


@dataclass(frozen=True)
class KeywordRule:
    """Regra de fallback: se o texto normalizado contém alguma palavra-chave, vira `status`."""
    keywords: Tuple[str, ...]
    status: str

    def matches(self, normalized: str) -> bool:
        return any(k in normalized for k in self.keywords)


def rule(status: str, *keywords: str) -> KeywordRule:
    """Atalho para declarar regras: rule('CONCLUIDO', 'conclu')."""
    return KeywordRule(keywords=tuple(normalize_text(k) for k in keywords), status=status)


@dataclass
class StatusNormalizer:
    """
    Classificador de status de um domínio.

    Attributes:
        statuses: Enum fechado do domínio, na ordem de exibição
        default: Valor quando nada casa
        lookup: Texto conhecido -> status (chaves normalizadas na construção)
        rules: Regras de palavra-chave em ordem de prioridade
    """
    statuses: Tuple[str, ...]
    default: str
    lookup: Mapping[str, str] = field(default_factory=dict)
    rules: Sequence[KeywordRule] = ()

    def __post_init__(self):
        if self.default not in self.statuses:
            raise ValueError(f"Status padrão {self.default!r} fora do enum {self.statuses}")
        for status in list(self.lookup.values()) + [r.status for r in self.rules]:
            if status not in self.statuses:
                raise ValueError(f"Status {status!r} fora do enum {self.statuses}")
        self._table: Dict[str, str] = {normalize_text(k): v for k, v in self.lookup.items()}

    def normalize(self, value: Optional[str]) -> str:
        """Mapeia texto livre para o enum do domínio. Nunca falha."""
        if value is None:
            return self.default
        normalized = normalize_text(str(value))
        if not normalized:
            return self.default

        direct = self._table.get(normalized)
        if direct is not None:
            return direct

        # Variante com underscore (ex: "EM_EXECUCAO" exportado como chave)
        direct = self._table.get(normalized.replace("_", " "))
        if direct is not None:
            return direct

        for r in self.rules:
            if r.matches(normalized):
                return r.status

        return self.default

    def empty_counts(self) -> Dict[str, int]:
        return {status: 0 for status in self.statuses}


# =============================================================================
# LICENÇAS: STATUS PELA DATA DE VENCIMENTO
# =============================================================================

LICENSE_VALID = "VALIDA"
LICENSE_NEAR_EXPIRY = "PROXIMO_VENCIMENTO"
LICENSE_EXPIRED = "FORA_VALIDADE"


def _as_date(value: Union[date, datetime, None]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def classify_license(
    vencimento: Union[date, datetime, None],
    today: Union[date, datetime],
    near_expiry_days: int = 30,
) -> str:
    """
    Classifica uma licença pela data de vencimento.

    - sem data ou vencimento < hoje -> FORA_VALIDADE
    - hoje <= vencimento <= hoje + janela -> PROXIMO_VENCIMENTO
    - vencimento > hoje + janela -> VALIDA

    Args:
        vencimento: Data de vencimento (None quando ausente/inválida)
        today: Data de referência (injetada; nunca lida do relógio aqui)
        near_expiry_days: Tamanho da janela de "próximo do vencimento"

    Example:
        >>> classify_license(date(2025, 1, 11), today=date(2025, 1, 1))
        'PROXIMO_VENCIMENTO'
    """
    venc = _as_date(vencimento)
    hoje = _as_date(today)
    if venc is None or venc < hoje:
        return LICENSE_EXPIRED
    if venc <= hoje + timedelta(days=near_expiry_days):
        return LICENSE_NEAR_EXPIRY
    return LICENSE_VALID


def count_by_status(statuses: Iterable[str], normalizer: StatusNormalizer) -> Dict[str, int]:
    """Conta ocorrências com todas as chaves do enum inicializadas em zero."""
    counts = normalizer.empty_counts()
    for status in statuses:
        counts[status] = counts.get(status, 0) + 1
    return counts
