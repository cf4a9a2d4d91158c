"""
Fonte tabular para boletins em PDF.

Alguns sistemas de origem publicam os relatórios como PDF com tabelas
(bordas visíveis). As tabelas são lidas com pdfplumber e cada página com
tabela vira uma "planilha" ("pagina_1", "pagina_2", ...).

Tabelas que continuam na página seguinte costumam repetir o cabeçalho;
quando isso acontece a repetição é descartada e as linhas são somadas à
primeira página com aquele cabeçalho.

Example:
    >>> from strategies.pdf_tabela import PdfTableSource
    >>> source = PdfTableSource.from_bytes(conteudo, "boletim.pdf")
    >>> source.sheet_names()
    ['pagina_1']
"""
import io
import logging
from typing import Any, List, Optional

import pdfplumber

from core.exceptions import StructuralParseError
from strategies.planilha import SpreadsheetSource

logger = logging.getLogger(__name__)


def _clean_cell(cell: Optional[str]) -> Optional[str]:
    """Células de PDF trazem quebras de linha no meio do texto."""
    if cell is None:
        return None
    text = " ".join(str(cell).split())
    return text or None


class PdfTableSource(SpreadsheetSource):
    """Tabelas de um PDF expostas como planilhas."""

    @classmethod
    def from_bytes(cls, conteudo: bytes, nome_arquivo: str = "") -> "PdfTableSource":
        """
        Extrai as tabelas do PDF.

        Raises:
            StructuralParseError: Se o PDF não abrir ou não tiver nenhuma tabela
        """
        sheets = {}
        header_owner = {}
        try:
            with pdfplumber.open(io.BytesIO(conteudo)) as pdf:
                for page_number, page in enumerate(pdf.pages, start=1):
                    for table in page.extract_tables() or []:
                        rows: List[List[Any]] = [
                            [_clean_cell(c) for c in row] for row in table if row
                        ]
                        # Assume primeira linha como cabeçalho
                        if len(rows) < 2:
                            continue
                        header = tuple(rows[0])
                        if header in header_owner:
                            sheets[header_owner[header]].extend(rows[1:])
                            continue
                        name = f"pagina_{page_number}"
                        if name in sheets:
                            name = f"{name}_{len(sheets) + 1}"
                        header_owner[header] = name
                        sheets[name] = rows
        except Exception as e:
            logger.warning(f"Falha ao ler PDF '{nome_arquivo}': {e}")
            raise StructuralParseError(
                f"Não foi possível ler o PDF '{nome_arquivo}': {e}",
                arquivo=nome_arquivo,
            ) from e

        if not sheets:
            raise StructuralParseError(
                f"Nenhuma tabela encontrada no PDF '{nome_arquivo}'",
                arquivo=nome_arquivo,
            )
        logger.info(f"PDF '{nome_arquivo}': {len(sheets)} tabela(s) extraída(s)")
        return cls(sheets)
