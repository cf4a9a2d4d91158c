"""
Serviço de Importação de Relatórios.

Orquestra o ImportWizard com um cadastro de clientes e um colaborador de
persistência, e gera os relatórios de conferência do lote.

Estrutura de saída:
    output/
    └── licenca_20251231_143052_a1b2c3d4/
        ├── resumo_empresas.csv
        └── registros.csv

Também fornece implementações simples das portas externas, usadas pela
linha de comando e pelos testes:
- InMemoryClientRegistry / CsvClientRegistry: cadastro de clientes
- InMemoryAliasStore: apelidos aprendidos de clientes
- RecordingPersistence: guarda as instruções recebidas (simulação)

Princípios SOLID aplicados:
- SRP: O serviço só orquestra; regras ficam no wizard e nos descritores
- DIP: Depende de abstrações (ClientRegistry, PersistenceGateway)
"""
import hashlib
import io
import logging
import threading
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from config import settings
from core.domains import get_domain
from core.exporters import CsvExporter, SummaryCsvExporter
from core.exceptions import DuplicateImportError
from core.interfaces import ClientAliasStore, ClientRegistry, PersistenceGateway
from core.models import CanonicalClient, CommitInstruction, Decision, OperatorContext
from core.similarity import get_scorer
from core.text_utils import normalize_company_name, normalize_text
from core.wizard import ImportWizard, WizardStep

logger = logging.getLogger(__name__)


class InMemoryClientRegistry(ClientRegistry):
    """Cadastro mantido em memória, na ordem de inserção."""

    def __init__(self, clients: Optional[Iterable[CanonicalClient]] = None):
        self._clients: List[CanonicalClient] = list(clients or [])

    def list_clients(self) -> List[CanonicalClient]:
        return list(self._clients)

    def add(self, client: CanonicalClient) -> None:
        self._clients.append(client)


class CsvClientRegistry(InMemoryClientRegistry):
    """
    Cadastro lido de um CSV com as colunas 'id' e 'nome' (ou 'name').

    Usage:
        registry = CsvClientRegistry.from_path("clientes.csv")
    """

    ID_ALIASES = ("id", "codigo", "cliente_id")
    NAME_ALIASES = ("nome", "name", "razao social", "cliente", "empresa")

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "CsvClientRegistry":
        return cls.from_bytes(Path(path).read_bytes())

    @classmethod
    def from_bytes(cls, conteudo: bytes) -> "CsvClientRegistry":
        """
        Raises:
            ValueError: Se as colunas de id e nome não forem encontradas
        """
        df = pd.read_csv(io.BytesIO(conteudo), sep=None, engine="python", dtype=str, encoding="utf-8-sig")
        columns = {normalize_text(c): c for c in df.columns}
        id_col = next((columns[a] for a in cls.ID_ALIASES if a in columns), None)
        name_col = next((columns[a] for a in cls.NAME_ALIASES if a in columns), None)
        if id_col is None or name_col is None:
            raise ValueError(f"CSV de clientes precisa das colunas id e nome (encontradas: {list(df.columns)})")

        df = df.dropna(subset=[id_col, name_col])
        clients = [
            CanonicalClient(id=str(row[id_col]).strip(), name=str(row[name_col]).strip())
            for _, row in df.iterrows()
        ]
        logger.info(f"Cadastro carregado: {len(clients)} clientes")
        return cls(clients)


class InMemoryAliasStore(ClientAliasStore):
    """
    Apelidos de clientes em memória.

    Pode ser carregado de um CSV com as colunas 'apelido' e 'cliente_id';
    o apelido é normalizado na carga, então o CSV pode trazer o nome como
    aparece no relatório.

    Usage:
        aliases = InMemoryAliasStore.from_path("apelidos.csv")
    """

    ALIAS_ALIASES = ("apelido", "alias", "nome")
    ID_ALIASES = ("cliente_id", "id", "codigo")

    def __init__(self, aliases: Optional[Dict[str, str]] = None):
        self._aliases: Dict[str, str] = {}
        self.criado_por: Dict[str, str] = {}
        self._lock = threading.Lock()
        for apelido, cliente_id in (aliases or {}).items():
            self.save(normalize_company_name(apelido), cliente_id)

    def lookup(self, nome_normalizado: str) -> Optional[str]:
        return self._aliases.get(nome_normalizado)

    def save(self, nome_normalizado: str, cliente_id: str, criado_por: str = "") -> None:
        with self._lock:
            self._aliases[nome_normalizado] = cliente_id
            self.criado_por[nome_normalizado] = criado_por or "Sistema"

    def __len__(self) -> int:
        return len(self._aliases)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "InMemoryAliasStore":
        return cls.from_bytes(Path(path).read_bytes())

    @classmethod
    def from_bytes(cls, conteudo: bytes) -> "InMemoryAliasStore":
        """
        Raises:
            ValueError: Se as colunas de apelido e cliente não forem encontradas
        """
        df = pd.read_csv(io.BytesIO(conteudo), sep=None, engine="python", dtype=str, encoding="utf-8-sig")
        columns = {normalize_text(c): c for c in df.columns}
        alias_col = next((columns[a] for a in cls.ALIAS_ALIASES if a in columns), None)
        id_col = next((columns[a] for a in cls.ID_ALIASES if a in columns), None)
        if alias_col is None or id_col is None:
            raise ValueError(f"CSV de apelidos precisa das colunas apelido e cliente_id (encontradas: {list(df.columns)})")

        df = df.dropna(subset=[alias_col, id_col])
        store = cls({str(row[alias_col]).strip(): str(row[id_col]).strip() for _, row in df.iterrows()})
        logger.info(f"Apelidos carregados: {len(store)}")
        return store


class RecordingPersistence(PersistenceGateway):
    """
    Persistência de simulação: guarda as instruções e devolve o id do cliente.

    Clientes novos recebem um id 'novo_<uuid8>'. Útil para conferir o lote
    antes de ligar a gravação real.
    """

    def __init__(self):
        self.instructions: List[CommitInstruction] = []
        self._lock = threading.Lock()

    def commit(self, instruction: CommitInstruction) -> Optional[str]:
        with self._lock:
            self.instructions.append(instruction)
        if instruction.creates_client:
            return f"novo_{uuid.uuid4().hex[:8]}"
        return instruction.cliente_id


class ImportService:
    """
    Serviço de importação de relatórios operacionais.

    Responsável por:
    1. Criar o wizard do domínio com o cadastro, os apelidos e a estratégia de similaridade
    2. Recusar arquivos já importados (hash SHA-256 do conteúdo)
    3. Conduzir o lote até a gravação (modo não interativo)
    4. Exportar resumo e registros para conferência

    Attributes:
        registry: Cadastro de clientes
        persistence: Colaborador de gravação
        output_dir: Diretório dos relatórios
        aliases: Apelidos de clientes consultados antes da similaridade
        imported: Arquivos já gravados (hash -> lote, data)

    Usage:
        service = ImportService(registry, persistence)
        wizard = service.import_file("licenca", conteudo, "licencas.xlsx", OperatorContext("gabi"))
        service.export_reports(wizard)
    """

    def __init__(
        self,
        registry: ClientRegistry,
        persistence: PersistenceGateway,
        output_dir: Optional[Union[str, Path]] = None,
        similarity: Optional[str] = None,
        aliases: Optional[ClientAliasStore] = None,
    ):
        self.registry = registry
        self.aliases = aliases
        # hash do arquivo -> (lote, data da importação)
        self.imported: Dict[str, Tuple[str, datetime]] = {}
        self.persistence = persistence
        self.output_dir = Path(output_dir or settings.DIR_SAIDA)
        self.scorer = get_scorer(similarity or settings.SIMILARITY_STRATEGY)

    def start(self, dominio: str, today: Optional[date] = None) -> ImportWizard:
        """Abre um wizard novo para o domínio."""
        return ImportWizard(
            get_domain(dominio), self.registry, scorer=self.scorer, today=today, aliases=self.aliases
        )

    def check_duplicate(self, conteudo: bytes, nome_arquivo: str = "") -> str:
        """
        Calcula o hash do arquivo e recusa conteúdo já importado.

        Returns:
            Hash SHA-256 (hex) do conteúdo

        Raises:
            DuplicateImportError: Se o mesmo conteúdo já foi gravado por este serviço
        """
        arquivo_hash = hashlib.sha256(conteudo).hexdigest()
        anterior = self.imported.get(arquivo_hash)
        if anterior is not None:
            batch_id, quando = anterior
            raise DuplicateImportError(
                f"Este arquivo já foi importado anteriormente em {quando.strftime('%d/%m/%Y')} "
                f"(lote {batch_id}): {nome_arquivo}",
                arquivo_hash=arquivo_hash,
                batch_id=batch_id,
            )
        return arquivo_hash

    def import_file(
        self,
        dominio: str,
        conteudo: bytes,
        nome_arquivo: str,
        operador: OperatorContext,
        create_missing: bool = False,
        dry_run: bool = False,
        today: Optional[date] = None,
    ) -> ImportWizard:
        """
        Conduz um arquivo pelo wizard sem interação.

        Empresas sem correspondência ficam pendentes (não são gravadas), a
        menos que create_missing seja True.

        Args:
            dominio: Chave do domínio
            conteudo: Bytes do arquivo
            nome_arquivo: Nome original do arquivo
            operador: Operador responsável pela importação
            create_missing: Cria clientes para empresas sem correspondência
            dry_run: Para na pré-visualização, sem gravar
            today: Data de referência

        Returns:
            O wizard na etapa em que parou (ERROR, CORRELATION, PREVIEW, COMMITTING ou COMPLETE)

        Raises:
            DuplicateImportError: Se o arquivo já foi importado
        """
        self.check_duplicate(conteudo, nome_arquivo)
        wizard = self.start(dominio, today=today)
        if wizard.upload(conteudo, nome_arquivo) is not WizardStep.CORRELATION:
            return wizard

        if create_missing:
            for entry in wizard.entries:
                if entry.decisao is Decision.PENDING:
                    wizard.create_new(entry.empresa)

        if not wizard.eligible_entries():
            logger.warning(f"⚠️ [{wizard.batch_id}] Nenhuma empresa para gravar em '{nome_arquivo}'")
            return wizard

        wizard.to_preview()
        if dry_run:
            return wizard

        # Uma nova tentativa automática para falhas transitórias
        if wizard.commit(self.persistence, operador) is WizardStep.COMMITTING:
            wizard.retry_failed(self.persistence, operador)
        if wizard.step is WizardStep.COMPLETE:
            self.imported[wizard.state.arquivo_hash] = (wizard.batch_id, datetime.now())
        return wizard

    def export_reports(self, wizard: ImportWizard) -> Dict[str, Path]:
        """
        Exporta resumo por empresa e registros do lote em CSV.

        Returns:
            Mapa tipo de relatório -> caminho gerado (vazio se o lote não tiver empresas)
        """
        entries = wizard.entries
        if not entries:
            return {}
        folder = self.output_dir / wizard.batch_id
        paths = {
            "resumo": folder / "resumo_empresas.csv",
            "registros": folder / "registros.csv",
        }
        SummaryCsvExporter().export(entries, str(paths["resumo"]))
        CsvExporter().export(wizard.state.records, str(paths["registros"]))
        logger.info(f"📁 Relatórios salvos em {folder}")
        return paths
