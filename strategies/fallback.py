"""
Abertura de arquivos de relatório com detecção de formato.

Os arquivos chegam como bytes, às vezes com extensão errada (planilha
salva como .csv, PDF sem extensão). A detecção olha primeiro a
assinatura do arquivo e só depois a extensão; se nenhuma bater, tenta
os leitores em ordem até um funcionar.

PDFs têm dois leitores: tabelas com bordas (PdfTableSource) e boletim em
linhas de texto (PdfBulletinSource). Por padrão tenta as tabelas e, sem
nenhuma tabela, o boletim.
"""
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from core.exceptions import StructuralParseError
from core.interfaces import TabularSource
from strategies.boletim_pdf import PdfBulletinSource
from strategies.pdf_tabela import PdfTableSource
from strategies.planilha import CsvSource, SpreadsheetSource

logger = logging.getLogger(__name__)

Loader = Callable[[bytes, str], TabularSource]

_PDF = "pdf"

_SIGNATURES: List[Tuple[bytes, object]] = [
    (b"%PDF", _PDF),
    (b"PK\x03\x04", SpreadsheetSource.from_bytes),          # xlsx (zip)
    (b"\xd0\xcf\x11\xe0", SpreadsheetSource.from_bytes),    # xls (OLE2)
]

_EXTENSIONS = {
    ".pdf": _PDF,
    ".xlsx": SpreadsheetSource.from_bytes,
    ".xlsm": SpreadsheetSource.from_bytes,
    ".xls": SpreadsheetSource.from_bytes,
    ".csv": CsvSource.from_bytes,
    ".txt": CsvSource.from_bytes,
}

DEFAULT_PDF_LOADERS: Tuple[Loader, ...] = (
    PdfTableSource.from_bytes,
    PdfBulletinSource.from_bytes,
)


def _first_that_reads(loaders: Sequence[Loader], conteudo: bytes, nome_arquivo: str) -> TabularSource:
    last_error: Optional[StructuralParseError] = None
    for candidate in loaders:
        try:
            return candidate(conteudo, nome_arquivo)
        except StructuralParseError as e:
            logger.debug(f"Leitor {candidate.__qualname__} não abriu '{nome_arquivo}'")
            last_error = e
    if last_error is not None:
        raise last_error
    raise StructuralParseError(f"Nenhum leitor para {nome_arquivo}", arquivo=nome_arquivo)


class SmartSourceLoader:
    """
    Estratégia composta que escolhe o leitor do arquivo.

    Implementa um padrão de **Fallback**:
    1.  Assinatura dos bytes (%PDF, zip, OLE2).
    2.  Extensão do nome do arquivo.
    3.  Planilha e depois CSV, o primeiro que conseguir ler.

    Args:
        pdf_loaders: Leitores de PDF em ordem de prioridade
    """

    def __init__(self, pdf_loaders: Optional[Sequence[Loader]] = None):
        self.pdf_loaders: List[Loader] = list(pdf_loaders or DEFAULT_PDF_LOADERS)
        # Define a ordem de prioridade do último recurso
        self.loaders: List[Loader] = [
            SpreadsheetSource.from_bytes,
            CsvSource.from_bytes,
        ]

    def detect(self, conteudo: bytes, nome_arquivo: str = "") -> Optional[Loader]:
        loader = None
        for signature, candidate in _SIGNATURES:
            if conteudo.startswith(signature):
                loader = candidate
                break
        else:
            loader = _EXTENSIONS.get(Path(nome_arquivo).suffix.lower())
        if loader == _PDF:
            return self._load_pdf
        return loader

    def _load_pdf(self, conteudo: bytes, nome_arquivo: str = "") -> TabularSource:
        return _first_that_reads(self.pdf_loaders, conteudo, nome_arquivo)

    def load(self, conteudo: bytes, nome_arquivo: str = "") -> TabularSource:
        """
        Abre o arquivo com o leitor adequado.

        Args:
            conteudo: Bytes do arquivo
            nome_arquivo: Nome original (para extensão e mensagens)

        Returns:
            TabularSource pronta para o RowParser

        Raises:
            StructuralParseError: Se o arquivo estiver vazio ou nenhum leitor conseguir abri-lo
        """
        if not conteudo:
            raise StructuralParseError(f"Arquivo vazio: {nome_arquivo}", arquivo=nome_arquivo)

        loader = self.detect(conteudo, nome_arquivo)
        if loader is not None:
            return loader(conteudo, nome_arquivo)

        try:
            return _first_that_reads(self.loaders, conteudo, nome_arquivo)
        except StructuralParseError:
            raise StructuralParseError(
                f"Formato de arquivo não reconhecido: {nome_arquivo}", arquivo=nome_arquivo
            ) from None
