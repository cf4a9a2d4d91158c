"""
Fonte tabular para o boletim mensal em PDF.

O boletim não tem tabelas com bordas: cada cliente é uma linha de texto
no formato

    2025 9 4 ELEMENTOS 7 1 3 11 22 3 0 1 1 37
    ^ano ^mês ^empresa  ^métricas (ordem de BOLETIM_METRICAS)

O texto de cada página é extraído com pdfplumber. A linha "Totais:" é
ignorada, o período (ano/mês) vem da primeira linha reconhecida e cada
empresa entra uma única vez (pela chave de normalize_company_name).

O resultado é exposto como uma planilha "boletim" para o RowParser.

Example:
    >>> source = PdfBulletinSource.from_bytes(conteudo, "boletim_set.pdf")
    >>> source.bulletin.periodo
    '2025-09'
"""
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import pdfplumber

from core.domains import BOLETIM_METRICAS
from core.exceptions import StructuralParseError
from core.text_utils import normalize_company_name
from strategies.planilha import SpreadsheetSource

logger = logging.getLogger(__name__)

SHEET_NAME = "boletim"
HEADER = ["Ano", "Mês", "Empresa", "Página"] + [rotulo for _, rotulo in BOLETIM_METRICAS]

_LINHA_RE = re.compile(
    r"^\s*(?P<ano>\d{4})\s+(?P<mes>\d{1,2})\s+(?P<empresa>.+?)(?P<valores>(?:\s+\d+)+)\s*$"
)
_LETRA_RE = re.compile(r"[^\W\d_]")
# Último recurso: nome em maiúsculas seguido de pelo menos três números
_NOME_COM_NUMEROS_RE = re.compile(
    r"([A-ZÁÉÍÓÚÀÂÊÔÃÕÜÇ][A-ZÁÉÍÓÚÀÂÊÔÃÕÜÇ\s\-/.]{3,40})\s+(?:\d+\s+){3,}",
    re.IGNORECASE,
)


@dataclass
class BulletinClient:
    nome: str
    nome_normalizado: str
    metricas: Dict[str, int] = field(default_factory=dict)
    pagina: int = 1


@dataclass
class Bulletin:
    """
    Conteúdo reconhecido de um boletim.

    Attributes:
        ano: Ano do período (primeira linha reconhecida), se houver
        mes: Mês do período, se houver
        clientes: Empresas na ordem do arquivo, sem repetição
        tamanho_texto: Tamanho do texto extraído (auditoria)
    """
    ano: Optional[int] = None
    mes: Optional[int] = None
    clientes: List[BulletinClient] = field(default_factory=list)
    tamanho_texto: int = 0

    @property
    def periodo(self) -> Optional[str]:
        if self.ano is None or self.mes is None:
            return None
        return f"{self.ano:04d}-{self.mes:02d}"


def parse_bulletin_line(linha: str) -> Optional[Dict]:
    """
    Reconhece uma linha "ANO MÊS EMPRESA n n n...".

    Returns:
        Dict com ano, mes, empresa e valores; None se a linha não for de cliente

    Examples:
        >>> parse_bulletin_line("2025 9 4 ELEMENTOS 7 1 3 11 22")["empresa"]
        '4 ELEMENTOS'
        >>> parse_bulletin_line("Ano Mês Cliente Cancelado") is None
        True
    """
    match = _LINHA_RE.match(linha)
    if not match:
        return None
    mes = int(match.group("mes"))
    empresa = match.group("empresa").strip()
    if not 1 <= mes <= 12 or len(empresa) <= 2 or not _LETRA_RE.search(empresa):
        return None
    return {
        "ano": int(match.group("ano")),
        "mes": mes,
        "empresa": empresa,
        "valores": [int(v) for v in match.group("valores").split()],
    }


def parse_bulletin_text(pages: Sequence[str]) -> Bulletin:
    """Monta o boletim a partir do texto de cada página (na ordem do arquivo)."""
    bulletin = Bulletin(tamanho_texto=sum(len(p) for p in pages))
    vistos = set()

    def _add(nome: str, metricas: Dict[str, int], pagina: int) -> None:
        chave = normalize_company_name(nome)
        if not chave or chave in vistos:
            return
        vistos.add(chave)
        bulletin.clientes.append(BulletinClient(nome, chave, metricas, pagina))

    for pagina, texto in enumerate(pages, start=1):
        for linha in texto.splitlines():
            if "Totais:" in linha:
                continue
            parsed = parse_bulletin_line(linha)
            if parsed is None:
                continue
            if bulletin.ano is None:
                bulletin.ano, bulletin.mes = parsed["ano"], parsed["mes"]
            metricas = {
                chave: valor
                for (chave, _), valor in zip(BOLETIM_METRICAS, parsed["valores"])
            }
            _add(parsed["empresa"], metricas, pagina)

    if not bulletin.clientes:
        texto = "\n\n".join(pages) + "\n"
        for match in _NOME_COM_NUMEROS_RE.finditer(texto):
            nome = match.group(1).strip()
            if len(nome) > 3:
                _add(nome, {}, 1)
        if bulletin.clientes:
            logger.info(f"Boletim sem linhas de período; {len(bulletin.clientes)} empresa(s) pelo último recurso")

    return bulletin


class PdfBulletinSource(SpreadsheetSource):
    """Boletim mensal exposto como uma planilha."""

    def __init__(self, bulletin: Bulletin):
        rows = [list(HEADER)]
        for cliente in bulletin.clientes:
            rows.append(
                [bulletin.ano, bulletin.mes, cliente.nome, cliente.pagina]
                + [cliente.metricas.get(chave) for chave, _ in BOLETIM_METRICAS]
            )
        super().__init__({SHEET_NAME: rows})
        self.bulletin = bulletin

    @classmethod
    def from_bytes(cls, conteudo: bytes, nome_arquivo: str = "") -> "PdfBulletinSource":
        """
        Extrai o texto do PDF e reconhece as linhas de cliente.

        Raises:
            StructuralParseError: Se o PDF não abrir ou nenhuma empresa for reconhecida
        """
        try:
            with pdfplumber.open(io.BytesIO(conteudo)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as e:
            logger.warning(f"Falha ao ler PDF '{nome_arquivo}': {e}")
            raise StructuralParseError(
                f"Não foi possível ler o PDF '{nome_arquivo}': {e}",
                arquivo=nome_arquivo,
            ) from e

        bulletin = parse_bulletin_text(pages)
        if not bulletin.clientes:
            raise StructuralParseError(
                f"Nenhuma empresa reconhecida no boletim '{nome_arquivo}'",
                arquivo=nome_arquivo,
            )
        logger.info(
            f"Boletim '{nome_arquivo}': {len(bulletin.clientes)} empresa(s), "
            f"período {bulletin.periodo or 'não identificado'}"
        )
        return cls(bulletin)
