"""
Agregação de registros por empresa.

O agrupamento usa o nome LITERAL do relatório: "Mineração Vale Verde LTDA"
e "mineracao vale verde" viram dois resumos distintos, mesmo que a
correlação resolva os dois para o mesmo cliente. Quem normaliza é o
matcher, não o agregador.
"""
from collections import OrderedDict
from datetime import date
from typing import Dict, Iterable, List, Optional

from core.domains import DomainDescriptor
from core.models import CompanySummary, ImportRecord
from core.status_normalizer import count_by_status


def group_by_company(records: Iterable[ImportRecord]) -> "OrderedDict[str, List[ImportRecord]]":
    """Agrupa pelo nome bruto da empresa, na ordem da primeira aparição."""
    groups: "OrderedDict[str, List[ImportRecord]]" = OrderedDict()
    for record in records:
        groups.setdefault(record.empresa, []).append(record)
    return groups


def summarize(
    empresa: str,
    records: List[ImportRecord],
    descriptor: DomainDescriptor,
    today: Optional[date] = None,
) -> CompanySummary:
    """
    Monta o resumo de uma empresa.

    Todos os status do domínio começam em zero; a soma das contagens
    é sempre igual ao total.

    Args:
        empresa: Nome bruto da empresa
        records: Registros da empresa (mesmo domínio)
        descriptor: Domínio dos registros
        today: Data de referência para campos derivados de data

    Returns:
        CompanySummary com contagens e campos derivados do domínio
    """
    today = today or date.today()
    por_status = count_by_status((r.status for r in records), descriptor.normalizer)
    extras = descriptor.summary_extras(records, today) if descriptor.summary_extras else {}
    return CompanySummary(
        empresa=empresa,
        dominio=descriptor.key,
        total=len(records),
        por_status=por_status,
        extras=extras,
    )


def summarize_all(
    records: Iterable[ImportRecord],
    descriptor: DomainDescriptor,
    today: Optional[date] = None,
) -> Dict[str, CompanySummary]:
    """Resumo de cada empresa do lote, na ordem da primeira aparição."""
    return OrderedDict(
        (empresa, summarize(empresa, grupo, descriptor, today))
        for empresa, grupo in group_by_company(records).items()
    )
