"""
Testes para o boletim mensal em PDF.

Testa:
    - Reconhecimento das linhas "ANO MÊS EMPRESA n n n"
    - Período, linha de totais e empresas repetidas
    - Leitura via pdfplumber (mock) e escolha do leitor de PDF
    - Domínio 'boletim' no wizard, com apelidos aprendidos
"""
import hashlib
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from core.domains import get_domain
from core.exceptions import StructuralParseError
from core.models import CanonicalClient, Decision, MatchType, OperatorContext
from core.row_parser import RowParser
from core.wizard import ImportWizard, WizardStep
from services.import_service import InMemoryAliasStore, InMemoryClientRegistry
from strategies.boletim_pdf import (
    PdfBulletinSource,
    parse_bulletin_line,
    parse_bulletin_text,
)
from strategies.fallback import SmartSourceLoader

TODAY = date(2025, 10, 1)

PAGINA_1 = (
    "Relatório Mensal de Demandas\n"
    "Ano Mês Cliente Cancelado Em Execução Não Feito Concluído Total\n"
    "2025 9 4 ELEMENTOS 7 1 3 11 22 3 0 1 1 37\n"
    "2025 9 MINERAÇÃO VALE VERDE LTDA 0 2 1 5 8 1 1 0 0 4\n"
)
PAGINA_2 = (
    "2025 9 Mineração Vale Verde 0 2 1 5 8 1 1 0 0 4\n"
    "2025 9 PADARIA CENTRAL 1 0 0 2 3\n"
    "Totais: 8 3 4 18 33\n"
)


def _mock_pdf(mock_pdf_open, *textos, tabelas=None):
    pages = []
    for texto in textos:
        page = MagicMock()
        page.extract_text.return_value = texto
        page.extract_tables.return_value = tabelas or []
        pages.append(page)
    mock_pdf = MagicMock()
    mock_pdf.pages = pages
    mock_pdf_open.return_value.__enter__.return_value = mock_pdf


class TestBulletinText:
    def test_line_with_numeric_company_name(self):
        parsed = parse_bulletin_line("2025 9 4 ELEMENTOS 7 1 3 11 22 3 0 1 1 37")
        assert parsed["ano"] == 2025
        assert parsed["mes"] == 9
        assert parsed["empresa"] == "4 ELEMENTOS"
        assert parsed["valores"] == [7, 1, 3, 11, 22, 3, 0, 1, 1, 37]

    @pytest.mark.parametrize("linha", [
        "Ano Mês Cliente Cancelado",
        "2025 13 EMPRESA X 1 2 3",
        "2025 9 AB 1 2",
        "2025 9 12 34 56",
        "",
    ])
    def test_lines_that_are_not_clients(self, linha):
        assert parse_bulletin_line(linha) is None

    def test_period_totals_and_repeated_companies(self):
        bulletin = parse_bulletin_text([PAGINA_1, PAGINA_2])

        assert bulletin.periodo == "2025-09"
        assert [c.nome for c in bulletin.clientes] == [
            "4 ELEMENTOS", "MINERAÇÃO VALE VERDE LTDA", "PADARIA CENTRAL",
        ]
        assert [c.pagina for c in bulletin.clientes] == [1, 1, 2]
        assert bulletin.clientes[1].nome_normalizado == "mineracao vale verde"

    def test_metrics_follow_column_order(self):
        elementos, _, padaria = parse_bulletin_text([PAGINA_1, PAGINA_2]).clientes
        assert elementos.metricas == {
            "cancelado": 7, "em_execucao": 1, "nao_feito": 3, "concluido": 11, "total": 22,
            "licencas": 3, "protocolos": 0, "projetos": 1, "taxas": 1, "contatos": 37,
        }
        # linha curta: só as primeiras métricas
        assert padaria.metricas == {"cancelado": 1, "em_execucao": 0, "nao_feito": 0, "concluido": 2, "total": 3}

    def test_last_resort_finds_names_without_period(self):
        bulletin = parse_bulletin_text(["CONSTRUTORA HORIZONTE 4 5 6 7\nRAMOS ENGENHARIA 1 2 3 4\n"])

        assert bulletin.periodo is None
        assert [c.nome for c in bulletin.clientes] == ["CONSTRUTORA HORIZONTE", "RAMOS ENGENHARIA"]
        assert all(c.metricas == {} for c in bulletin.clientes)


class TestBulletinSource:
    @patch("strategies.boletim_pdf.pdfplumber.open")
    def test_from_bytes_builds_single_sheet(self, mock_pdf_open):
        _mock_pdf(mock_pdf_open, PAGINA_1, PAGINA_2)

        source = PdfBulletinSource.from_bytes(b"%PDF-1.7 fake", "boletim.pdf")

        assert source.sheet_names() == ["boletim"]
        rows = source.rows("boletim")
        assert rows[0][:4] == ["Ano", "Mês", "Empresa", "Página"]
        assert rows[3][:9] == [2025, 9, "PADARIA CENTRAL", 2, 1, 0, 0, 2, 3]
        assert rows[3][9:] == [None] * 5

    @patch("strategies.boletim_pdf.pdfplumber.open")
    def test_pdf_without_clients_is_structural(self, mock_pdf_open):
        _mock_pdf(mock_pdf_open, "Relatório vazio\n")

        with pytest.raises(StructuralParseError):
            PdfBulletinSource.from_bytes(b"%PDF-1.7 fake", "boletim.pdf")

    @patch("strategies.pdf_tabela.pdfplumber.open")
    def test_loader_falls_back_to_bulletin_without_tables(self, mock_pdf_open):
        _mock_pdf(mock_pdf_open, PAGINA_1)

        source = SmartSourceLoader().load(b"%PDF-1.7 fake", "boletim.pdf")

        assert isinstance(source, PdfBulletinSource)
        assert source.bulletin.periodo == "2025-09"


class TestBulletinDomain:
    @pytest.fixture
    def source(self):
        return PdfBulletinSource(parse_bulletin_text([PAGINA_1, PAGINA_2]))

    @pytest.fixture
    def registry(self):
        return InMemoryClientRegistry([
            CanonicalClient(id="c1", name="Mineração Vale Verde"),
            CanonicalClient(id="c2", name="Quatro Elementos Consultoria"),
        ])

    def test_rows_become_records(self, source):
        result = RowParser(get_domain("boletim")).parse(source, arquivo="boletim.pdf", today=TODAY)

        assert result.report.aceitas == 3
        assert result.report.numeros_invalidos == 0
        assert {r.status for r in result.records} == {"REGISTRADO"}
        assert result.records[0].get("contatos") == 37

    def test_wizard_uses_learned_aliases(self, source, registry):
        aliases = InMemoryAliasStore({"4 Elementos": "c2"})
        wizard = ImportWizard(get_domain("boletim"), registry, today=TODAY, aliases=aliases)

        assert wizard.upload_source(source, "boletim.pdf") is WizardStep.CORRELATION

        elementos = wizard.entry("4 ELEMENTOS")
        assert elementos.match.match_type is MatchType.EXACT
        assert elementos.cliente_id == "c2"
        assert elementos.summary.extras["total"] == 22
        assert elementos.summary.extras["periodo"] == "2025-09"
        assert wizard.entry("PADARIA CENTRAL").decisao is Decision.PENDING

    def test_select_can_remember_alias_for_next_batch(self, registry):
        aliases = InMemoryAliasStore()
        primeiro = ImportWizard(get_domain("boletim"), registry, today=TODAY, aliases=aliases)
        primeiro.upload_source(PdfBulletinSource(parse_bulletin_text([PAGINA_1, PAGINA_2])), "set.pdf")

        primeiro.select("4 ELEMENTOS", "c2", lembrar=True, operador=OperatorContext("gabi"))

        assert aliases.lookup("4 elementos") == "c2"
        assert aliases.criado_por["4 elementos"] == "gabi"

        segundo = ImportWizard(get_domain("boletim"), registry, today=TODAY, aliases=aliases)
        segundo.upload_source(PdfBulletinSource(parse_bulletin_text([PAGINA_1])), "out.pdf")
        assert segundo.entry("4 ELEMENTOS").match.match_type is MatchType.EXACT

    @patch("strategies.boletim_pdf.pdfplumber.open")
    def test_upload_records_content_hash(self, mock_pdf_open, registry):
        _mock_pdf(mock_pdf_open, PAGINA_1, PAGINA_2, tabelas=[[["Empresa", "Status"], ["X", "ok"]]])
        conteudo = b"%PDF-1.7 boletim de setembro"
        wizard = ImportWizard(get_domain("boletim"), registry, today=TODAY)

        # o domínio lê o PDF como texto mesmo quando há tabelas
        assert wizard.upload(conteudo, "boletim.pdf") is WizardStep.CORRELATION
        assert wizard.snapshot()["arquivo_hash"] == hashlib.sha256(conteudo).hexdigest()
        assert len(wizard.entries) == 3
