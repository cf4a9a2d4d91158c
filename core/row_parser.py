"""
Parser genérico de linhas de relatório.

Um único RowParser atende os sete domínios; o que muda vem do
DomainDescriptor (aliases de colunas, tipos, filtros, status).

Defeitos de linha nunca levantam exceção:
- empresa em branco -> linha descartada (contada)
- data/número inválido -> campo None (contado)

Só erros estruturais (arquivo ilegível, coluna obrigatória ausente)
abortam o arquivo, com StructuralParseError.
"""
import logging
import re
from datetime import date, datetime, timedelta
from numbers import Number
from typing import Any, Dict, List, Optional, Tuple

from core.domains import DATE, HEADER_CONTAINS, NUMBER, DomainDescriptor
from core.exceptions import StructuralParseError
from core.interfaces import TabularSource
from core.models import ImportRecord, ParseReport, ParseResult
from core.text_utils import normalize_text

logger = logging.getLogger(__name__)

# Época das datas seriais de planilha (compatível com o bug de 1900 do Excel)
EXCEL_EPOCH = date(1899, 12, 30)
# Serial de 31/12/9999; acima disso não é data
_MAX_EXCEL_SERIAL = 2958465

_BR_DATE_RE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_SERIAL_TEXT_RE = re.compile(r"^\d+(?:\.\d+)?$")
_BR_THOUSANDS_RE = re.compile(r"^-?\d{1,3}(?:\.\d{3})+$")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN
        return True
    return isinstance(value, str) and not value.strip()


def _from_serial(serial: float) -> Optional[date]:
    if not 0 < serial <= _MAX_EXCEL_SERIAL:
        return None
    return EXCEL_EPOCH + timedelta(days=int(serial))


def parse_date_cell(value: Any) -> Optional[date]:
    """
    Converte uma célula de data para `date`.

    Formatos aceitos:
    - datetime/date (células já tipadas pela planilha)
    - número serial de planilha (dias desde 30/12/1899)
    - "DD/MM/YYYY" (também com '-' ou '.')
    - ISO "YYYY-MM-DD", com ou sem hora

    Returns:
        date ou None se a célula estiver vazia ou não for uma data

    Examples:
        >>> parse_date_cell(45658)
        datetime.date(2025, 1, 1)
        >>> parse_date_cell("05/02/2025")
        datetime.date(2025, 2, 5)
        >>> parse_date_cell("amanhã") is None
        True
    """
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, Number) and not isinstance(value, bool):
        return _from_serial(float(value))

    text = str(value).strip()

    # CSV traz o serial como texto ("45668" ou "45668.5")
    if _SERIAL_TEXT_RE.match(text):
        return _from_serial(float(text))

    match = _BR_DATE_RE.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    match = _ISO_DATE_RE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    return None


def parse_number_cell(value: Any) -> Optional[float]:
    """
    Converte uma célula numérica. Aceita números e texto no formato brasileiro.

    Valores inteiros voltam como int.

    Examples:
        >>> parse_number_cell("1.234,56")
        1234.56
        >>> parse_number_cell("15")
        15
        >>> parse_number_cell("n/a") is None
        True
    """
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, Number):
        number = float(value)
    else:
        text = str(value).strip().replace(" ", "")
        if "," in text:
            # Remove pontos de milhar e troca vírgula decimal por ponto
            text = text.replace(".", "").replace(",", ".")
        elif _BR_THOUSANDS_RE.match(text):
            # "1.234" é milhar, não decimal
            text = text.replace(".", "")
        try:
            number = float(text)
        except ValueError:
            return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return int(number) if number.is_integer() else number


def coerce_text(value: Any) -> Optional[str]:
    """Texto aparado; vazio vira None. Números inteiros perdem o '.0' do Excel."""
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


class RowParser:
    """
    Extrai ImportRecords de uma fonte tabular conforme um DomainDescriptor.

    Usage:
        parser = RowParser(get_domain("licenca"))
        result = parser.parse(source, arquivo="licencas.xlsx", today=date(2025, 1, 1))
        for record in result.records:
            print(record.empresa, record.status)
    """

    def __init__(self, descriptor: DomainDescriptor):
        self.descriptor = descriptor

    def select_sheet(self, source: TabularSource, arquivo: str = "") -> str:
        """Planilha cujo nome está na lista preferida do domínio, senão a primeira."""
        names = source.sheet_names()
        if not names:
            raise StructuralParseError(f"Arquivo sem planilhas: {arquivo}", arquivo=arquivo)
        preferred = {n.lower() for n in self.descriptor.sheet_names}
        for name in names:
            if name.strip().lower() in preferred:
                return name
        return names[0]

    def resolve_columns(self, header: List[Any], arquivo: str = "") -> Dict[str, Tuple[int, str]]:
        """
        Localiza cada coluna lógica no cabeçalho.

        Para cada coluna, os aliases são testados em ordem; o primeiro que
        casar com algum cabeçalho vence. A comparação ignora caixa e acentos.

        Returns:
            Mapa nome lógico -> (índice, cabeçalho original)

        Raises:
            StructuralParseError: Se uma coluna obrigatória não for encontrada
        """
        originals = ["" if _is_blank(h) else str(h).strip() for h in header]
        normalized = [normalize_text(h) for h in originals]
        contains = self.descriptor.header_match == HEADER_CONTAINS

        resolved: Dict[str, Tuple[int, str]] = {}
        for col in self.descriptor.columns:
            index = self._find_header(col.aliases, normalized, contains)
            if index is not None:
                resolved[col.name] = (index, originals[index])
            elif col.required:
                raise StructuralParseError(
                    f"Coluna obrigatória '{col.name}' não encontrada em {arquivo or 'arquivo'} "
                    f"(aceitos: {', '.join(col.aliases)})",
                    arquivo=arquivo,
                    coluna=col.name,
                )
        return resolved

    @staticmethod
    def _find_header(aliases, headers: List[str], contains: bool) -> Optional[int]:
        for alias in aliases:
            target = normalize_text(alias)
            for index, header in enumerate(headers):
                if not header:
                    continue
                if header == target or (contains and target in header):
                    return index
        return None

    def parse(
        self,
        source: TabularSource,
        arquivo: str = "",
        today: Optional[date] = None,
        batch_id: str = "",
    ) -> ParseResult:
        """
        Lê a planilha do domínio e devolve os registros aceitos.

        Args:
            source: Fonte tabular já aberta
            arquivo: Nome do arquivo (usado nas mensagens de erro)
            today: Data de referência para status derivados de data
            batch_id: Lote atual (usado em códigos gerados)

        Returns:
            ParseResult com registros e relatório de auditoria

        Raises:
            StructuralParseError: Arquivo sem planilhas ou sem coluna obrigatória
        """
        today = today or date.today()
        descriptor = self.descriptor

        sheet = self.select_sheet(source, arquivo)
        rows = source.rows(sheet)
        header = rows[0] if rows else []
        columns = self.resolve_columns(header, arquivo)

        report = ParseReport(
            arquivo=arquivo,
            planilha=sheet,
            colunas={name: original for name, (_, original) in columns.items()},
        )
        records: List[ImportRecord] = []

        for linha, row in enumerate(rows[1:], start=2):
            if all(_is_blank(cell) for cell in row):
                continue
            report.total_linhas += 1

            values = self._coerce_row(row, columns, report)
            empresa = values.get("empresa")
            if not empresa:
                report.descartadas_sem_empresa += 1
                continue

            if descriptor.row_filter is not None and not descriptor.row_filter(values):
                report.descartadas_por_filtro += 1
                continue
            if any(not values.get(name) for name in descriptor.required_values):
                report.descartadas_por_filtro += 1
                continue

            status_raw = values.get(descriptor.status_column)
            campos = {
                k: v for k, v in values.items()
                if k not in ("empresa", descriptor.status_column)
            }
            if descriptor.finalize is not None:
                descriptor.finalize(campos, len(records) + 1, batch_id)

            records.append(ImportRecord(
                dominio=descriptor.key,
                empresa=empresa,
                status=descriptor.resolve_status(status_raw, values, today),
                status_raw=status_raw,
                campos=campos,
                linha=linha,
            ))

        report.aceitas = len(records)
        logger.info(
            f"{descriptor.label}: {report.aceitas}/{report.total_linhas} linhas aceitas "
            f"de '{arquivo or sheet}' (sem empresa: {report.descartadas_sem_empresa}, "
            f"filtradas: {report.descartadas_por_filtro}, datas inválidas: {report.datas_invalidas})"
        )
        return ParseResult(records=records, report=report)

    def _coerce_row(
        self,
        row: List[Any],
        columns: Dict[str, Tuple[int, str]],
        report: ParseReport,
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for col in self.descriptor.columns:
            if col.name not in columns:
                values[col.name] = None
                continue
            index = columns[col.name][0]
            cell = row[index] if index < len(row) else None

            if col.kind == DATE:
                value = parse_date_cell(cell)
                if value is None and not _is_blank(cell):
                    report.datas_invalidas += 1
            elif col.kind == NUMBER:
                value = parse_number_cell(cell)
                if value is None and not _is_blank(cell):
                    report.numeros_invalidos += 1
            else:
                value = coerce_text(cell)
            values[col.name] = value
        return values
