import hashlib
import io
import unittest
from datetime import date
from pathlib import Path
from tempfile import TemporaryDirectory

import pandas as pd

from core.exceptions import DuplicateImportError
from core.exporters import CsvExporter, SummaryCsvExporter
from core.models import CanonicalClient, OperatorContext
from core.wizard import WizardStep
from services.import_service import (
    CsvClientRegistry,
    ImportService,
    InMemoryAliasStore,
    InMemoryClientRegistry,
    RecordingPersistence,
)

TODAY = date(2025, 1, 1)


def _xlsx_bytes(rows, sheet_name="data"):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, index=False)
    return buffer.getvalue()


LICENCAS = _xlsx_bytes([
    {"Ativo": "SIM", "Empresa": "Mineração Vale Verde LTDA", "Licença": "LO-1", "Vencimento": "11/01/2025"},
    {"Ativo": "SIM", "Empresa": "Mineração Vale Verde LTDA", "Licença": "LO-2", "Vencimento": "01/06/2026"},
    {"Ativo": "SIM", "Empresa": "Padaria Central", "Licença": "LO-3", "Vencimento": "01/12/2024"},
])


class TestCsvClientRegistry(unittest.TestCase):
    def test_reads_id_and_name_columns(self):
        conteudo = "id;Nome\nc1;Mineração Vale Verde\nc2;Ramos Engenharia\n".encode("utf-8")
        registry = CsvClientRegistry.from_bytes(conteudo)
        self.assertEqual(
            registry.list_clients(),
            [CanonicalClient("c1", "Mineração Vale Verde"), CanonicalClient("c2", "Ramos Engenharia")],
        )

    def test_missing_columns(self):
        with self.assertRaises(ValueError):
            CsvClientRegistry.from_bytes("codigo_x;razao\n1;A\n".encode("utf-8"))


class TestImportService(unittest.TestCase):
    def setUp(self):
        self.tmp = TemporaryDirectory()
        self.registry = InMemoryClientRegistry([CanonicalClient("c1", "Mineração Vale Verde")])
        self.persistence = RecordingPersistence()
        self.service = ImportService(self.registry, self.persistence, output_dir=self.tmp.name)
        self.operador = OperatorContext("vanessa")

    def tearDown(self):
        self.tmp.cleanup()

    def test_unmatched_companies_stay_pending(self):
        wizard = self.service.import_file("licenca", LICENCAS, "licencas.xlsx", self.operador, today=TODAY)

        self.assertEqual(wizard.step, WizardStep.COMPLETE)
        self.assertEqual([i.empresa for i in self.persistence.instructions], ["Mineração Vale Verde LTDA"])
        instrucao = self.persistence.instructions[0]
        self.assertEqual(instrucao.cliente_id, "c1")
        self.assertEqual(instrucao.operador, "vanessa")
        self.assertEqual(
            [r.status for r in instrucao.records], ["PROXIMO_VENCIMENTO", "VALIDA"]
        )

    def test_create_missing(self):
        wizard = self.service.import_file(
            "licenca", LICENCAS, "licencas.xlsx", self.operador, create_missing=True, today=TODAY
        )
        self.assertEqual(wizard.step, WizardStep.COMPLETE)
        novos = [i for i in self.persistence.instructions if i.creates_client]
        self.assertEqual([i.criar_com_nome for i in novos], ["Padaria Central"])
        self.assertTrue(wizard.entry("Padaria Central").cliente_id.startswith("novo_"))

    def test_dry_run_stops_at_preview(self):
        wizard = self.service.import_file(
            "licenca", LICENCAS, "licencas.xlsx", self.operador, dry_run=True, today=TODAY
        )
        self.assertEqual(wizard.step, WizardStep.PREVIEW)
        self.assertEqual(self.persistence.instructions, [])

    def test_same_file_cannot_be_imported_twice(self):
        primeiro = self.service.import_file("licenca", LICENCAS, "licencas.xlsx", self.operador, today=TODAY)
        self.assertEqual(primeiro.step, WizardStep.COMPLETE)

        with self.assertRaises(DuplicateImportError) as ctx:
            self.service.import_file("licenca", LICENCAS, "licencas_copia.xlsx", self.operador, today=TODAY)
        self.assertEqual(ctx.exception.batch_id, primeiro.batch_id)
        self.assertEqual(ctx.exception.arquivo_hash, hashlib.sha256(LICENCAS).hexdigest())
        self.assertEqual(len(self.persistence.instructions), 1)

    def test_dry_run_does_not_mark_file_as_imported(self):
        self.service.import_file("licenca", LICENCAS, "licencas.xlsx", self.operador, dry_run=True, today=TODAY)
        wizard = self.service.import_file("licenca", LICENCAS, "licencas.xlsx", self.operador, today=TODAY)
        self.assertEqual(wizard.step, WizardStep.COMPLETE)

    def test_aliases_reach_the_wizard(self):
        aliases = InMemoryAliasStore({"Padaria Central": "c1"})
        service = ImportService(self.registry, self.persistence, output_dir=self.tmp.name, aliases=aliases)

        wizard = service.import_file("licenca", LICENCAS, "licencas.xlsx", self.operador, today=TODAY)

        self.assertEqual(wizard.entry("Padaria Central").cliente_id, "c1")
        self.assertEqual(len(self.persistence.instructions), 2)

    def test_structural_error_is_reported(self):
        wizard = self.service.import_file("licenca", b"", "vazio.xlsx", self.operador, today=TODAY)
        self.assertEqual(wizard.step, WizardStep.ERROR)
        self.assertEqual(self.service.export_reports(wizard), {})

    def test_export_reports(self):
        wizard = self.service.import_file(
            "licenca", LICENCAS, "licencas.xlsx", self.operador, dry_run=True, today=TODAY
        )
        paths = self.service.export_reports(wizard)

        resumo = pd.read_csv(paths["resumo"], sep=";", encoding="utf-8-sig")
        self.assertEqual(list(resumo["empresa"]), ["Mineração Vale Verde LTDA", "Padaria Central"])
        self.assertEqual(list(resumo["match_type"]), ["exact", "none"])
        self.assertEqual(list(resumo["status_PROXIMO_VENCIMENTO"]), [1, 0])
        self.assertEqual(list(resumo["extra_proxima_data_vencimento"].fillna("")), ["2025-01-11", ""])

        registros = pd.read_csv(paths["registros"], sep=";", encoding="utf-8-sig")
        self.assertEqual(len(registros), 3)
        self.assertEqual(Path(paths["registros"]).parent.name, wizard.batch_id)


class TestInMemoryAliasStore(unittest.TestCase):
    def test_reads_csv_and_normalizes_alias(self):
        conteudo = "apelido;cliente_id\nVV Mineração LTDA;c1\n".encode("utf-8")
        store = InMemoryAliasStore.from_bytes(conteudo)
        self.assertEqual(len(store), 1)
        self.assertEqual(store.lookup("vv mineracao"), "c1")
        self.assertIsNone(store.lookup("vv mineracao ltda"))

    def test_missing_columns(self):
        with self.assertRaises(ValueError):
            InMemoryAliasStore.from_bytes("x;y\n1;2\n".encode("utf-8"))


class TestExporters(unittest.TestCase):
    def test_empty_data_is_rejected(self):
        with self.assertRaises(ValueError):
            CsvExporter().export([], "nada.csv")
        with self.assertRaises(ValueError):
            SummaryCsvExporter().export([], "nada.csv")


if __name__ == "__main__":
    unittest.main()
