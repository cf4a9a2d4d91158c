"""
Modelos de dados do conciliador.

Define os tipos que circulam entre parser, correlação, agregação e wizard:

- CanonicalClient: cliente do cadastro interno (somente leitura)
- ImportRecord: uma linha do relatório já convertida (qualquer domínio)
- MatchResult / Suggestion: resultado da correlação de um nome bruto
- CompanySummary: contagens por empresa e por status
- CommitInstruction: o que é entregue ao colaborador de persistência

Tipos-soma (match type, decisão do operador, status de envio) são Enums.
"""
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


class MatchType(str, Enum):
    """Confiança da associação entre o nome do relatório e o cadastro."""
    EXACT = "exact"
    SUGGESTED = "suggested"
    NONE = "none"


class Decision(str, Enum):
    """
    Decisão do operador para uma empresa do lote.

    IGNORED prevalece sobre as demais: uma empresa ignorada nunca gera
    instrução de gravação.
    """
    PENDING = "pending"
    SELECTED = "selected"
    CREATE_NEW = "create_new"
    IGNORED = "ignored"


class CommitStatus(str, Enum):
    """Situação da gravação de uma empresa na etapa de commit."""
    NOT_SENT = "not_sent"
    CONFIRMED = "confirmed"
    PENDING_RETRY = "pending_retry"


@dataclass(frozen=True)
class CanonicalClient:
    """Cliente do cadastro interno, fornecido pelo colaborador de registro."""
    id: str
    name: str


@dataclass(frozen=True)
class Suggestion:
    """Candidato do cadastro com o score de similaridade calculado."""
    cliente_id: str
    nome: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.cliente_id, "name": self.nome, "score": round(self.score, 4)}


@dataclass(frozen=True)
class MatchResult:
    """
    Resultado da correlação de um nome de empresa bruto com o cadastro.

    Attributes:
        empresa: Nome exatamente como veio no relatório
        match_type: EXACT, SUGGESTED ou NONE
        score: Melhor score encontrado (0.0 quando não há candidatos)
        cliente_id: Cliente associado (melhor candidato), se houver
        cliente_nome: Nome do cliente associado, se houver
        sugestoes: Candidatos acima do limiar, do maior para o menor score
    """
    empresa: str
    match_type: MatchType
    score: float = 0.0
    cliente_id: Optional[str] = None
    cliente_nome: Optional[str] = None
    sugestoes: Tuple[Suggestion, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "empresa": self.empresa,
            "match_type": self.match_type.value,
            "score": round(self.score, 4),
            "cliente_id": self.cliente_id,
            "cliente_nome": self.cliente_nome,
            "sugestoes": [s.to_dict() for s in self.sugestoes],
        }


@dataclass(frozen=True)
class ImportRecord:
    """
    Registro extraído de uma linha do relatório.

    Um único tipo atende os sete domínios; os campos específicos de cada
    domínio ficam em `campos`, com as chaves lógicas do descritor.

    Attributes:
        dominio: Chave do domínio (ex: 'demanda', 'licenca')
        empresa: Nome da empresa como veio no relatório (nunca vazio)
        status: Valor canônico do enum de status do domínio
        status_raw: Texto original da coluna de status (ou None)
        campos: Demais colunas lógicas já convertidas (texto, data ou número)
        linha: Número da linha na planilha (1 = cabeçalho), para auditoria
    """
    dominio: str
    empresa: str
    status: str
    status_raw: Optional[str] = None
    campos: Mapping[str, Any] = field(default_factory=dict, hash=False)
    linha: int = 0

    def __post_init__(self):
        # campos somente leitura; o registro é compartilhado com a persistência
        object.__setattr__(self, "campos", MappingProxyType(dict(self.campos)))

    def get(self, campo: str, default: Any = None) -> Any:
        return self.campos.get(campo, default)

    def to_dict(self) -> Dict[str, Any]:
        """Converte o registro para dicionário plano (datas em ISO). Usado para exportação."""
        data = {
            "dominio": self.dominio,
            "empresa": self.empresa,
            "status": self.status,
            "status_raw": self.status_raw,
            "linha": self.linha,
        }
        for chave, valor in self.campos.items():
            if isinstance(valor, (date, datetime)):
                valor = valor.isoformat()
            data[chave] = valor
        return data


@dataclass
class CompanySummary:
    """
    Resumo de uma empresa em um domínio.

    Invariante: sum(por_status.values()) == total.
    """
    empresa: str
    dominio: str
    total: int = 0
    por_status: Dict[str, int] = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_consistent(self) -> bool:
        return sum(self.por_status.values()) == self.total

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for chave, valor in list(data["extras"].items()):
            if isinstance(valor, (date, datetime)):
                data["extras"][chave] = valor.isoformat()
        return data


@dataclass(frozen=True)
class OperatorContext:
    """Operador que conduz o wizard; registrado como autor das gravações."""
    nome: str


@dataclass(frozen=True)
class CommitInstruction:
    """
    Instrução de gravação de uma empresa, entregue à persistência.

    Exatamente um entre cliente_id e criar_com_nome é preenchido.
    """
    batch_id: str
    dominio: str
    empresa: str
    records: Tuple[ImportRecord, ...]
    operador: str
    cliente_id: Optional[str] = None
    criar_com_nome: Optional[str] = None

    @property
    def creates_client(self) -> bool:
        return self.criar_com_nome is not None


@dataclass
class ParseReport:
    """
    Auditoria do parsing de um arquivo.

    Defeitos de linha não interrompem o parsing; ficam contados aqui.
    """
    arquivo: str = ""
    planilha: str = ""
    total_linhas: int = 0
    aceitas: int = 0
    descartadas_sem_empresa: int = 0
    descartadas_por_filtro: int = 0
    datas_invalidas: int = 0
    numeros_invalidos: int = 0
    colunas: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ParseResult:
    """Registros aceitos e o relatório de auditoria do arquivo."""
    records: List[ImportRecord] = field(default_factory=list)
    report: ParseReport = field(default_factory=ParseReport)
