"""
Fontes tabulares a partir de planilhas (xlsx, xls) e CSV.

A leitura é feita com pandas sem cabeçalho (header=None) e com
dtype=object, para que o RowParser receba as células como vieram do
arquivo: datetime para células de data, números seriais quando a
planilha guardou a data como número, e texto no resto.

Example:
    >>> from strategies.planilha import SpreadsheetSource
    >>> source = SpreadsheetSource.from_bytes(conteudo, "licencas.xlsx")
    >>> source.sheet_names()
    ['data']
"""
import io
import logging
from typing import Any, Dict, List

import pandas as pd

from core.exceptions import StructuralParseError
from core.interfaces import TabularSource

logger = logging.getLogger(__name__)

CSV_SHEET = "csv"


def _frame_to_rows(df: pd.DataFrame) -> List[List[Any]]:
    """Converte o DataFrame em lista de linhas, trocando NaN/NaT por None."""
    df = df.astype(object).where(pd.notna(df), None)
    return [list(row) for row in df.itertuples(index=False, name=None)]


class SpreadsheetSource(TabularSource):
    """
    Planilha já carregada em memória.

    Attributes:
        sheets: Nome da planilha -> linhas brutas (cabeçalho incluído)
    """

    def __init__(self, sheets: Dict[str, List[List[Any]]]):
        self.sheets = sheets

    def sheet_names(self) -> List[str]:
        return list(self.sheets.keys())

    def rows(self, sheet: str) -> List[List[Any]]:
        return self.sheets.get(sheet, [])

    @classmethod
    def from_bytes(cls, conteudo: bytes, nome_arquivo: str = "") -> "SpreadsheetSource":
        """
        Lê todas as planilhas de um arquivo Excel.

        Raises:
            StructuralParseError: Se o arquivo não puder ser lido como planilha
        """
        try:
            frames = pd.read_excel(
                io.BytesIO(conteudo), sheet_name=None, header=None, dtype=object
            )
        except Exception as e:
            logger.warning(f"Falha ao ler planilha '{nome_arquivo}': {e}")
            raise StructuralParseError(
                f"Não foi possível ler a planilha '{nome_arquivo}': {e}",
                arquivo=nome_arquivo,
            ) from e
        return cls({str(name): _frame_to_rows(df) for name, df in frames.items()})


class CsvSource(SpreadsheetSource):
    """CSV exportado pelos sistemas de origem; vira uma única planilha 'csv'."""

    @classmethod
    def from_bytes(cls, conteudo: bytes, nome_arquivo: str = "") -> "CsvSource":
        """
        Lê um CSV detectando o separador (';' ou ',').

        Tenta utf-8-sig primeiro e cai para latin-1, formato comum das
        exportações de sistemas legados.

        Raises:
            StructuralParseError: Se o CSV não puder ser lido
        """
        ultimo_erro = None
        for encoding in ("utf-8-sig", "latin-1"):
            try:
                df = pd.read_csv(
                    io.BytesIO(conteudo),
                    sep=None,
                    engine="python",
                    header=None,
                    dtype=object,
                    encoding=encoding,
                    skip_blank_lines=True,
                )
                return cls({CSV_SHEET: _frame_to_rows(df)})
            except UnicodeDecodeError as e:
                ultimo_erro = e
                continue
            except Exception as e:
                ultimo_erro = e
                break
        logger.warning(f"Falha ao ler CSV '{nome_arquivo}': {ultimo_erro}")
        raise StructuralParseError(
            f"Não foi possível ler o CSV '{nome_arquivo}': {ultimo_erro}",
            arquivo=nome_arquivo,
        )
