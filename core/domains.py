"""
Descritores de domínio.

Os relatórios (demandas, licenças, processos, notificações, itens de
notificação, condicionantes e o boletim mensal em PDF) compartilham o
mesmo pipeline:

    planilha -> RowParser -> ImportRecord -> correlação + agregação -> wizard

O que muda entre eles é declarativo e fica aqui: aliases de colunas,
tabela de status, regras de palavra-chave, status padrão, filtros de linha
e campos derivados do resumo. Um domínio novo é um DomainDescriptor novo
registrado em DOMAINS; nenhum código do pipeline precisa mudar.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from config import settings
from core.models import ImportRecord
from core.status_normalizer import (
    LICENSE_EXPIRED,
    LICENSE_NEAR_EXPIRY,
    LICENSE_VALID,
    StatusNormalizer,
    classify_license,
    rule,
)
from core.text_utils import normalize_text

TEXT = "text"
DATE = "date"
NUMBER = "number"

HEADER_EXACT = "exact"
HEADER_CONTAINS = "contains"

PDF_TABELA = "tabela"
PDF_TEXTO = "texto"


@dataclass(frozen=True)
class ColumnSpec:
    """
    Coluna lógica de um domínio.

    Attributes:
        name: Chave lógica usada em ImportRecord.campos
        aliases: Cabeçalhos aceitos, em ordem de preferência
        kind: TEXT, DATE ou NUMBER
        required: Se True, a ausência da coluna aborta o arquivo inteiro
    """
    name: str
    aliases: Tuple[str, ...]
    kind: str = TEXT
    required: bool = False


@dataclass
class DomainDescriptor:
    """
    Configuração declarativa de um domínio de importação.

    Attributes:
        key: Identificador do domínio
        label: Nome para exibição
        columns: Colunas lógicas (a coluna 'empresa' é sempre obrigatória)
        normalizer: Classificador de status do domínio
        status_column: Coluna lógica que traz o texto do status
        sheet_names: Nomes preferidos de planilha (senão, a primeira)
        header_match: HEADER_EXACT ou HEADER_CONTAINS
        required_values: Colunas que precisam de valor na linha (senão a linha é descartada)
        row_filter: Descarta a linha quando retorna False
        status_resolver: Calcula o status a partir da linha inteira (ex: licença pela data)
        finalize: Completa campos da linha (ex: código gerado)
        summary_extras: Campos derivados do resumo por empresa
        pdf_layout: PDF_TABELA (tabelas com bordas) ou PDF_TEXTO (boletim em linhas de texto)
    """
    key: str
    label: str
    columns: Tuple[ColumnSpec, ...]
    normalizer: StatusNormalizer
    status_column: str = "status"
    sheet_names: Tuple[str, ...] = ()
    header_match: str = HEADER_EXACT
    required_values: Tuple[str, ...] = ()
    row_filter: Optional[Callable[[Dict[str, Any]], bool]] = None
    status_resolver: Optional[Callable[[Optional[str], Dict[str, Any], date], str]] = None
    finalize: Optional[Callable[[Dict[str, Any], int, str], None]] = None
    summary_extras: Optional[Callable[[Sequence[ImportRecord], date], Dict[str, Any]]] = None
    pdf_layout: str = PDF_TABELA

    @property
    def statuses(self) -> Tuple[str, ...]:
        return self.normalizer.statuses

    def column(self, name: str) -> Optional[ColumnSpec]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def resolve_status(self, status_raw: Optional[str], campos: Dict[str, Any], today: date) -> str:
        if self.status_resolver is not None:
            return self.status_resolver(status_raw, campos, today)
        return self.normalizer.normalize(status_raw)


EMPRESA = ColumnSpec("empresa", ("Empresa", "EMPRESA", "Cliente", "CLIENTE"), required=True)
STATUS = ColumnSpec("status", ("Status", "STATUS", "Situação", "Estado"))
STATUS_OBRIGATORIO = ColumnSpec("status", ("Status", "STATUS", "Situação", "Estado"), required=True)


# =============================================================================
# DEMANDAS
# =============================================================================

DEMANDA_NORMALIZER = StatusNormalizer(
    statuses=("CONCLUIDO", "EM_EXECUCAO", "NAO_FEITO", "CANCELADO"),
    default="NAO_FEITO",
    lookup={
        "CONCLUIDO": "CONCLUIDO",
        "CONCLUÍDO": "CONCLUIDO",
        "CONCLUÍDA": "CONCLUIDO",
        "CONCLUIDA": "CONCLUIDO",
        "EM_EXECUCAO": "EM_EXECUCAO",
        "EM EXECUÇÃO": "EM_EXECUCAO",
        "EM EXECUCAO": "EM_EXECUCAO",
        "NAO_FEITO": "NAO_FEITO",
        "NÃO FEITO": "NAO_FEITO",
        "NAO FEITO": "NAO_FEITO",
        "CANCELADO": "CANCELADO",
        "CANCELADA": "CANCELADO",
    },
    rules=(
        rule("CONCLUIDO", "conclu"),
        rule("EM_EXECUCAO", "execu", "andamento"),
        rule("CANCELADO", "cancel"),
    ),
)


def _demanda_codigo(campos: Dict[str, Any], index: int, batch_id: str) -> None:
    if not campos.get("codigo"):
        campos["codigo"] = f"IMP-{batch_id}-{index}"


def extract_collaborators(responsavel: Optional[str], known: Optional[Sequence[str]] = None) -> List[str]:
    """
    Colaboradores conhecidos citados no campo responsável.

    Example:
        >>> extract_collaborators("Gabi / Darley", ["celine", "gabi", "darley"])
        ['gabi', 'darley']
    """
    if not responsavel:
        return []
    known = settings.KNOWN_COLLABORATORS if known is None else known
    normalized = normalize_text(responsavel)
    return [c for c in known if normalize_text(c) in normalized]


def _demanda_extras(records: Sequence[ImportRecord], today: date) -> Dict[str, Any]:
    colaboradores = set()
    por_responsavel: Dict[str, int] = {}
    for record in records:
        responsavel = record.get("responsavel")
        colaboradores.update(extract_collaborators(responsavel))
        if responsavel:
            por_responsavel[responsavel] = por_responsavel.get(responsavel, 0) + 1
    ordem = [c for c in settings.KNOWN_COLLABORATORS if c in colaboradores]
    return {"colaboradores": ordem, "por_responsavel": por_responsavel}


DEMANDA = DomainDescriptor(
    key="demanda",
    label="Demandas",
    columns=(
        ColumnSpec("codigo", ("Código", "Codigo")),
        ColumnSpec("data", ("Data",), kind=DATE),
        ColumnSpec("ano", ("Ano",), kind=NUMBER),
        ColumnSpec("mes", ("Mês", "Mes"), kind=NUMBER),
        EMPRESA,
        ColumnSpec("origem", ("Origem",)),
        ColumnSpec("descricao", ("Descrição", "Descricao")),
        ColumnSpec("responsavel", ("Responsável", "Responsavel")),
        ColumnSpec("plano", ("Plano",)),
        STATUS,
        ColumnSpec("comentario", ("Comentário", "Comentario")),
        ColumnSpec("topico", ("Tópico", "Topico")),
        ColumnSpec("subtopico", ("Subtópico", "Subtopico")),
    ),
    normalizer=DEMANDA_NORMALIZER,
    required_values=("descricao",),
    finalize=_demanda_codigo,
    summary_extras=_demanda_extras,
)


# =============================================================================
# LICENÇAS
# =============================================================================

LICENCA_NORMALIZER = StatusNormalizer(
    statuses=(LICENSE_VALID, LICENSE_NEAR_EXPIRY, LICENSE_EXPIRED),
    default=LICENSE_EXPIRED,
    lookup={
        "VÁLIDA": LICENSE_VALID,
        "VIGENTE": LICENSE_VALID,
        "PRÓXIMO DO VENCIMENTO": LICENSE_NEAR_EXPIRY,
        "FORA DA VALIDADE": LICENSE_EXPIRED,
        "VENCIDA": LICENSE_EXPIRED,
    },
    rules=(
        rule(LICENSE_NEAR_EXPIRY, "proxim", "a vencer"),
        rule(LICENSE_EXPIRED, "vencid", "fora", "expir"),
        rule(LICENSE_VALID, "valid", "vigente"),
    ),
)


def _licenca_ativa(campos: Dict[str, Any]) -> bool:
    ativo = (campos.get("ativo") or "").strip().upper()
    return not ativo or ativo == "SIM"


def _licenca_status(status_raw: Optional[str], campos: Dict[str, Any], today: date) -> str:
    return classify_license(campos.get("vencimento"), today, settings.NEAR_EXPIRY_DAYS)


def _licenca_extras(records: Sequence[ImportRecord], today: date) -> Dict[str, Any]:
    proxima: Optional[date] = None
    for record in records:
        venc = record.get("vencimento")
        if venc is not None and venc >= today and (proxima is None or venc < proxima):
            proxima = venc
    return {"proxima_data_vencimento": proxima}


LICENCA = DomainDescriptor(
    key="licenca",
    label="Licenças",
    columns=(
        ColumnSpec("ativo", ("Ativo",)),
        EMPRESA,
        ColumnSpec("tipo_licenca", ("Tipo de Licença", "Tipo Licença", "TipoLicenca")),
        ColumnSpec("licenca", ("Licença", "Licenca", "Código", "Numero")),
        ColumnSpec("num_processo", ("Nº Processo", "N° Processo", "Num Processo", "NumProcesso", "Processo")),
        ColumnSpec("data_emissao", ("Data de Emissão", "Data Emissão", "Emissão", "DataEmissao"), kind=DATE),
        ColumnSpec("vencimento", ("Vencimento", "Data Vencimento", "Validade"), kind=DATE),
        STATUS,
    ),
    normalizer=LICENCA_NORMALIZER,
    sheet_names=("data", "dados"),
    row_filter=_licenca_ativa,
    status_resolver=_licenca_status,
    summary_extras=_licenca_extras,
)


# =============================================================================
# PROCESSOS
# =============================================================================

PROCESSO_NORMALIZER = StatusNormalizer(
    statuses=("DEFERIDO", "EM_ANALISE_ORGAO", "EM_ANALISE_RAMOS", "NOTIFICADO", "REPROVADO", "OUTROS"),
    default="OUTROS",
    lookup={
        "DEFERIDO": "DEFERIDO",
        "EM ANÁLISE PELO ÓRGÃO": "EM_ANALISE_ORGAO",
        "EM ANÁLISE PELA RAMOS": "EM_ANALISE_RAMOS",
        "NOTIFICADO": "NOTIFICADO",
        "REPROVADO": "REPROVADO",
        "INDEFERIDO": "REPROVADO",
    },
    rules=(
        # "indeferido" contém "deferido": precisa vir antes
        rule("REPROVADO", "indeferido", "reprovado"),
        rule("DEFERIDO", "deferido"),
        rule("EM_ANALISE_ORGAO", "em analise pelo orgao"),
        rule("EM_ANALISE_RAMOS", "em analise pela ramos"),
        rule("NOTIFICADO", "notificado"),
    ),
)


def _processo_extras(records: Sequence[ImportRecord], today: date) -> Dict[str, Any]:
    counts = PROCESSO_NORMALIZER.empty_counts()
    for record in records:
        counts[record.status] += 1
    return {
        "criticos": counts["NOTIFICADO"] + counts["REPROVADO"],
        "em_andamento": counts["EM_ANALISE_ORGAO"] + counts["EM_ANALISE_RAMOS"] + counts["NOTIFICADO"],
    }


PROCESSO = DomainDescriptor(
    key="processo",
    label="Processos",
    columns=(
        EMPRESA,
        ColumnSpec("tipo_processo", ("Tipo de Processo", "tipo_processo")),
        ColumnSpec("nome", ("Nome",)),
        ColumnSpec("numero_processo", ("Nº do Processo", "Nº Processo", "N do Processo", "numero_processo")),
        ColumnSpec("data_protocolo", ("Data do Protocolo", "data_protocolo"), kind=DATE),
        STATUS,
    ),
    normalizer=PROCESSO_NORMALIZER,
    sheet_names=("data",),
    summary_extras=_processo_extras,
)


# =============================================================================
# NOTIFICAÇÕES
# =============================================================================

NOTIFICACAO_NORMALIZER = StatusNormalizer(
    statuses=("PENDENTE", "ATENDIDA"),
    default="PENDENTE",
    lookup={"ATENDIDA": "ATENDIDA", "PENDENTE": "PENDENTE"},
    rules=(rule("ATENDIDA", "atend"),),
)

NOTIFICACAO = DomainDescriptor(
    key="notificacao",
    label="Notificações",
    columns=(
        EMPRESA,
        ColumnSpec("numero_processo", ("Processo", "Nº Processo", "N° Processo", "Num Processo")),
        ColumnSpec(
            "numero_notificacao",
            ("Nº da notificação", "N° da notificação", "Notificação", "Numero Notificação"),
            required=True,
        ),
        ColumnSpec("descricao", ("descricao", "Descrição")),
        ColumnSpec("data_recebimento", ("Data de recebimento", "Data recebimento", "Recebimento", "Data"), kind=DATE),
        STATUS,
    ),
    normalizer=NOTIFICACAO_NORMALIZER,
    header_match=HEADER_CONTAINS,
    required_values=("numero_notificacao",),
)


# =============================================================================
# ITENS DE NOTIFICAÇÃO
# =============================================================================

ITEM_NOTIFICACAO_NORMALIZER = StatusNormalizer(
    statuses=("ATENDIDO", "PENDENTE", "VENCIDO"),
    default="PENDENTE",
    lookup={
        "ATENDIDA": "ATENDIDO",
        "ATENDIDO": "ATENDIDO",
        "VENCIDA": "VENCIDO",
        "VENCIDO": "VENCIDO",
        "A FAZER": "PENDENTE",
        "PENDENTE": "PENDENTE",
    },
    rules=(
        rule("ATENDIDO", "atend"),
        rule("VENCIDO", "venc"),
    ),
)

ITEM_NOTIFICACAO = DomainDescriptor(
    key="item_notificacao",
    label="Itens de Notificação",
    columns=(EMPRESA, STATUS_OBRIGATORIO),
    normalizer=ITEM_NOTIFICACAO_NORMALIZER,
    header_match=HEADER_CONTAINS,
)


# =============================================================================
# CONDICIONANTES
# =============================================================================

CONDICIONANTE_NORMALIZER = StatusNormalizer(
    statuses=("ATENDIDA", "A_VENCER", "VENCIDA", "A_FAZER"),
    default="A_FAZER",
    lookup={"ATENDIDA": "ATENDIDA", "VENCIDA": "VENCIDA", "A VENCER": "A_VENCER"},
    rules=(
        rule("ATENDIDA", "atendida", "conclu"),
        rule("VENCIDA", "vencida"),
        rule("A_VENCER", "vencer", "fazer"),
    ),
)


def _condicionante_extras(records: Sequence[ImportRecord], today: date) -> Dict[str, Any]:
    return {"a_vencer_total": sum(1 for r in records if r.status in ("A_VENCER", "A_FAZER"))}


CONDICIONANTE = DomainDescriptor(
    key="condicionante",
    label="Condicionantes",
    columns=(
        EMPRESA,
        ColumnSpec("licenca", ("Licença", "Licenca")),
        ColumnSpec("numero_item", ("Nº item", "N° item", "Num item", "NumItem", "Numero", "Item")),
        ColumnSpec("descricao", ("Descrição", "Descricao")),
        ColumnSpec("protocolo", ("Protocolo",)),
        ColumnSpec("vencimento", ("Vencimento", "Data Vencimento", "Validade"), kind=DATE),
        ColumnSpec("dias_restantes", ("Dias restantes", "DiasRestantes"), kind=NUMBER),
        ColumnSpec("data_atendimento", ("Data de atendimento", "Data Atendimento", "DataAtendimento"), kind=DATE),
        STATUS_OBRIGATORIO,
    ),
    normalizer=CONDICIONANTE_NORMALIZER,
    required_values=("status",),
    summary_extras=_condicionante_extras,
)


# =============================================================================
# BOLETIM MENSAL (PDF)
# =============================================================================

# Colunas numéricas do boletim, na ordem em que aparecem depois do nome
BOLETIM_METRICAS: Tuple[Tuple[str, str], ...] = (
    ("cancelado", "Cancelado"),
    ("em_execucao", "Em Execução"),
    ("nao_feito", "Não Feito"),
    ("concluido", "Concluído"),
    ("total", "Total"),
    ("licencas", "Licenças"),
    ("protocolos", "Protocolos"),
    ("projetos", "Projetos"),
    ("taxas", "Taxas"),
    ("contatos", "Contatos"),
)

# O boletim traz contagens, não status; todo registro tem o mesmo status
BOLETIM_NORMALIZER = StatusNormalizer(statuses=("REGISTRADO",), default="REGISTRADO")


def _boletim_extras(records: Sequence[ImportRecord], today: date) -> Dict[str, Any]:
    extras: Dict[str, Any] = {chave: 0 for chave, _ in BOLETIM_METRICAS}
    periodo = None
    for record in records:
        for chave, _ in BOLETIM_METRICAS:
            extras[chave] += record.get(chave) or 0
        if periodo is None and record.get("ano") and record.get("mes"):
            periodo = f"{record.get('ano'):04d}-{record.get('mes'):02d}"
    extras["periodo"] = periodo
    return extras


BOLETIM = DomainDescriptor(
    key="boletim",
    label="Boletim mensal",
    columns=(
        ColumnSpec("ano", ("Ano",), kind=NUMBER),
        ColumnSpec("mes", ("Mês", "Mes"), kind=NUMBER),
        EMPRESA,
        ColumnSpec("pagina", ("Página", "Pagina"), kind=NUMBER),
    ) + tuple(ColumnSpec(chave, (rotulo,), kind=NUMBER) for chave, rotulo in BOLETIM_METRICAS),
    normalizer=BOLETIM_NORMALIZER,
    summary_extras=_boletim_extras,
    pdf_layout=PDF_TEXTO,
)


DOMAINS: Dict[str, DomainDescriptor] = {
    d.key: d for d in (DEMANDA, LICENCA, PROCESSO, NOTIFICACAO, ITEM_NOTIFICACAO, CONDICIONANTE, BOLETIM)
}


def get_domain(key: str) -> DomainDescriptor:
    """
    Retorna o descritor registrado para a chave.

    Raises:
        ValueError: Se o domínio não existir
    """
    try:
        return DOMAINS[key]
    except KeyError:
        raise ValueError(
            f"Domínio desconhecido: {key!r}. Opções: {', '.join(DOMAINS)}"
        ) from None
