"""
Wizard de importação (máquina de estados).

Fluxo:

    UPLOAD -> PARSING -> CORRELATION <-> PREVIEW -> COMMITTING -> COMPLETE
                 |            |                         |
                 +-> ERROR ---+---> (retry_upload) UPLOAD
    Qualquer etapa (menos COMPLETE) -> CANCELLED

- PARSING e CORRELATION são síncronas e puras.
- Na CORRELATION o operador decide por empresa: selecionar cliente,
  criar cliente novo ou ignorar.
- COMMITTING grava cada empresa de forma independente, em paralelo
  (ThreadPoolExecutor). Falhas ficam pendentes para retry_failed() sem
  desfazer as empresas já gravadas.
- cancel() é cooperativo: gravações em andamento terminam, nenhuma nova
  é disparada e os resultados que chegarem depois são ignorados.

Uma instância por sessão de importação; o estado não é compartilhado
entre threads além do cancelamento.
"""
import hashlib
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from config import settings
from core.aggregator import group_by_company, summarize
from core.client_matcher import find_client, match_client
from core.domains import PDF_TEXTO, DomainDescriptor
from core.exceptions import (
    InvalidTransitionError,
    NothingToCommitError,
    StructuralParseError,
    UnknownCompanyError,
)
from core.interfaces import ClientAliasStore, ClientRegistry, PersistenceGateway, TabularSource
from core.models import (
    CanonicalClient,
    CommitInstruction,
    CommitStatus,
    CompanySummary,
    Decision,
    ImportRecord,
    MatchResult,
    MatchType,
    OperatorContext,
    ParseReport,
)
from core.row_parser import RowParser
from core.similarity import SimilarityScorer, get_scorer
from core.text_utils import normalize_company_name
from strategies.boletim_pdf import PdfBulletinSource
from strategies.fallback import SmartSourceLoader

logger = logging.getLogger(__name__)

# Resultado de uma gravação descartada por cancelamento antes de começar
_SKIPPED = object()


class WizardStep(str, Enum):
    UPLOAD = "upload"
    PARSING = "parsing"
    CORRELATION = "correlation"
    PREVIEW = "preview"
    COMMITTING = "committing"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class WizardError:
    """Erro exibido ao operador, sempre com o arquivo ou a empresa envolvida."""
    etapa: WizardStep
    mensagem: str
    empresa: Optional[str] = None
    arquivo: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "etapa": self.etapa.value,
            "mensagem": self.mensagem,
            "empresa": self.empresa,
            "arquivo": self.arquivo,
            "timestamp": self.timestamp,
        }


@dataclass
class CompanyEntry:
    """
    Linha do wizard para uma empresa (nome bruto) do lote.

    Attributes:
        empresa: Nome exatamente como veio no relatório
        match: Resultado da correlação com o cadastro
        summary: Contagens por status
        records: Registros da empresa
        decisao: Decisão atual (automática ou do operador)
        cliente_id: Cliente escolhido quando decisao == SELECTED
        nome_novo: Nome do cliente a criar quando decisao == CREATE_NEW
        manual: True quando o operador alterou a decisão
        commit_status: Situação da gravação
    """
    empresa: str
    match: MatchResult
    summary: CompanySummary
    records: List[ImportRecord]
    decisao: Decision = Decision.PENDING
    cliente_id: Optional[str] = None
    nome_novo: Optional[str] = None
    manual: bool = False
    commit_status: CommitStatus = CommitStatus.NOT_SENT

    @property
    def is_eligible(self) -> bool:
        """Gera instrução de gravação (SELECTED ou CREATE_NEW)."""
        return self.decisao in (Decision.SELECTED, Decision.CREATE_NEW)

    def apply_automatic_decision(self) -> None:
        """Decisão inicial: com match (exato ou sugerido) já vem selecionada."""
        self.manual = False
        self.nome_novo = None
        if self.match.match_type is MatchType.NONE:
            self.decisao = Decision.PENDING
            self.cliente_id = None
        else:
            self.decisao = Decision.SELECTED
            self.cliente_id = self.match.cliente_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "empresa": self.empresa,
            "match": self.match.to_dict(),
            "resumo": self.summary.to_dict(),
            "decisao": self.decisao.value,
            "cliente_id": self.cliente_id,
            "nome_novo": self.nome_novo,
            "manual": self.manual,
            "commit_status": self.commit_status.value,
        }


@dataclass
class WizardState:
    step: WizardStep
    batch_id: str
    dominio: str
    arquivo: str = ""
    arquivo_hash: Optional[str] = None
    records: List[ImportRecord] = field(default_factory=list)
    entries: Dict[str, CompanyEntry] = field(default_factory=dict)
    errors: List[WizardError] = field(default_factory=list)
    parse_report: Optional[ParseReport] = None


def generate_batch_id(prefix: str = "import") -> str:
    """
    Gera ID único para o lote.

    Formato: <prefixo>_YYYYMMDD_HHMMSS_shortUUID
    Exemplo: licenca_20251231_143052_a1b2c3d4
    """
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    short_uuid = uuid.uuid4().hex[:8]
    return f"{prefix}_{timestamp}_{short_uuid}"


class ImportWizard:
    """
    Conduz um lote de importação de um domínio do arquivo até a gravação.

    Usage:
        wizard = ImportWizard(get_domain("demanda"), registry)
        wizard.upload(conteudo, "demandas.xlsx")
        wizard.create_new("Empresa Nova SA")
        wizard.to_preview()
        wizard.commit(persistence, OperatorContext("celine"))
        if wizard.step is WizardStep.COMMITTING:
            wizard.retry_failed(persistence, OperatorContext("celine"))
    """

    def __init__(
        self,
        descriptor: DomainDescriptor,
        registry: ClientRegistry,
        scorer: Optional[SimilarityScorer] = None,
        batch_id: Optional[str] = None,
        today: Optional[date] = None,
        loader: Optional[SmartSourceLoader] = None,
        aliases: Optional[ClientAliasStore] = None,
    ):
        self.descriptor = descriptor
        self.registry = registry
        self.scorer = scorer or get_scorer(settings.SIMILARITY_STRATEGY)
        self.today = today
        self.loader = loader or self._default_loader(descriptor)
        self.aliases = aliases
        self._clients: List[CanonicalClient] = []
        self._cancel_event = threading.Event()
        self._lock = threading.RLock()
        self.state = WizardState(
            step=WizardStep.UPLOAD,
            batch_id=batch_id or generate_batch_id(descriptor.key),
            dominio=descriptor.key,
        )

    @staticmethod
    def _default_loader(descriptor: DomainDescriptor) -> SmartSourceLoader:
        if descriptor.pdf_layout == PDF_TEXTO:
            return SmartSourceLoader(pdf_loaders=[PdfBulletinSource.from_bytes])
        return SmartSourceLoader()

    # ------------------------------------------------------------------
    # Acesso ao estado
    # ------------------------------------------------------------------

    @property
    def step(self) -> WizardStep:
        return self.state.step

    @property
    def batch_id(self) -> str:
        return self.state.batch_id

    @property
    def entries(self) -> List[CompanyEntry]:
        return list(self.state.entries.values())

    @property
    def errors(self) -> List[WizardError]:
        return list(self.state.errors)

    def entry(self, empresa: str) -> CompanyEntry:
        """
        Raises:
            UnknownCompanyError: Se a empresa não estiver no lote
        """
        try:
            return self.state.entries[empresa]
        except KeyError:
            raise UnknownCompanyError(f"Empresa '{empresa}' não está no lote {self.batch_id}") from None

    def _require(self, action: str, *steps: WizardStep) -> None:
        if self.state.step not in steps:
            raise InvalidTransitionError(
                f"Ação '{action}' não permitida na etapa '{self.state.step.value}' "
                f"(esperado: {', '.join(s.value for s in steps)})"
            )

    def _fail(self, mensagem: str, arquivo: Optional[str] = None) -> None:
        self.state.errors.append(WizardError(etapa=self.state.step, mensagem=mensagem, arquivo=arquivo))
        self.state.step = WizardStep.ERROR

    # ------------------------------------------------------------------
    # UPLOAD -> PARSING -> CORRELATION
    # ------------------------------------------------------------------

    def upload(self, conteudo: bytes, nome_arquivo: str) -> WizardStep:
        """
        Recebe o arquivo, faz o parsing e a correlação.

        Erros estruturais (arquivo ilegível, coluna obrigatória ausente)
        levam à etapa ERROR com o nome do arquivo; o operador pode
        reenviar com retry_upload().

        Returns:
            A nova etapa (CORRELATION ou ERROR)
        """
        self._require("upload", WizardStep.UPLOAD)
        self.state.step = WizardStep.PARSING
        self.state.arquivo = nome_arquivo
        self.state.arquivo_hash = hashlib.sha256(conteudo or b"").hexdigest()
        try:
            source = self.loader.load(conteudo, nome_arquivo)
        except StructuralParseError as e:
            logger.warning(f"❌ [{self.batch_id}] {e}")
            self._fail(str(e), arquivo=e.arquivo or nome_arquivo)
            return self.state.step
        except Exception as e:
            logger.exception(f"❌ [{self.batch_id}] Erro inesperado ao abrir '{nome_arquivo}'")
            self._fail(f"Erro inesperado ao abrir o arquivo: {e}", arquivo=nome_arquivo)
            return self.state.step
        return self._parse_and_correlate(source, nome_arquivo)

    def upload_source(self, source: TabularSource, nome_arquivo: str = "") -> WizardStep:
        """Igual a upload(), para fontes já abertas pelo chamador."""
        self._require("upload", WizardStep.UPLOAD)
        self.state.step = WizardStep.PARSING
        self.state.arquivo = nome_arquivo
        return self._parse_and_correlate(source, nome_arquivo)

    def _parse_and_correlate(self, source: TabularSource, nome_arquivo: str) -> WizardStep:
        try:
            result = RowParser(self.descriptor).parse(
                source, arquivo=nome_arquivo, today=self._today(), batch_id=self.batch_id
            )
        except StructuralParseError as e:
            logger.warning(f"❌ [{self.batch_id}] {e}")
            self._fail(str(e), arquivo=e.arquivo or nome_arquivo)
            return self.state.step
        except Exception as e:
            logger.exception(f"❌ [{self.batch_id}] Erro inesperado no parsing de '{nome_arquivo}'")
            self._fail(f"Erro inesperado no parsing: {e}", arquivo=nome_arquivo)
            return self.state.step

        self.state.records = result.records
        self.state.parse_report = result.report

        try:
            self._clients = list(self.registry.list_clients())
            self._build_entries()
        except Exception as e:
            logger.exception(f"❌ [{self.batch_id}] Erro inesperado na correlação")
            self._fail(f"Erro inesperado na correlação: {e}", arquivo=nome_arquivo)
            return self.state.step

        self.state.step = WizardStep.CORRELATION
        resumo = self._match_counts()
        logger.info(
            f"📋 [{self.batch_id}] {len(self.state.records)} registros, "
            f"{len(self.state.entries)} empresas (exatas: {resumo[MatchType.EXACT]}, "
            f"sugeridas: {resumo[MatchType.SUGGESTED]}, sem match: {resumo[MatchType.NONE]})"
        )
        return self.state.step

    def _build_entries(self) -> None:
        entries: Dict[str, CompanyEntry] = {}
        today = self._today()
        for empresa, records in group_by_company(self.state.records).items():
            entry = CompanyEntry(
                empresa=empresa,
                match=self._match(empresa),
                summary=summarize(empresa, records, self.descriptor, today),
                records=records,
            )
            entry.apply_automatic_decision()
            entries[empresa] = entry
        self.state.entries = entries

    def _match(self, empresa: str) -> MatchResult:
        return match_client(empresa, self._clients, scorer=self.scorer, aliases=self.aliases)

    def _match_counts(self) -> Dict[MatchType, int]:
        counts = {t: 0 for t in MatchType}
        for entry in self.state.entries.values():
            counts[entry.match.match_type] += 1
        return counts

    def _today(self) -> date:
        return self.today or date.today()

    def retry_upload(self) -> WizardStep:
        """ERROR -> UPLOAD, descartando o arquivo anterior."""
        self._require("retry_upload", WizardStep.ERROR)
        self.state = WizardState(
            step=WizardStep.UPLOAD,
            batch_id=self.state.batch_id,
            dominio=self.descriptor.key,
            errors=self.state.errors,
        )
        return self.state.step

    # ------------------------------------------------------------------
    # Decisões do operador (CORRELATION)
    # ------------------------------------------------------------------

    def select(
        self,
        empresa: str,
        cliente_id: Optional[str] = None,
        lembrar: bool = False,
        operador: Optional[OperatorContext] = None,
    ) -> CompanyEntry:
        """
        Associa a empresa a um cliente do cadastro.

        Sem cliente_id, usa o melhor candidato da correlação. Com lembrar=True
        a associação vira apelido e vale nos próximos lotes.

        Raises:
            UnknownCompanyError: Empresa fora do lote ou cliente fora do cadastro
        """
        self._require("select", WizardStep.CORRELATION)
        entry = self.entry(empresa)
        cliente_id = cliente_id or entry.match.cliente_id
        if cliente_id is None or find_client(self._clients, cliente_id) is None:
            raise UnknownCompanyError(
                f"Cliente '{cliente_id}' não encontrado no cadastro para a empresa '{empresa}'"
            )
        entry.decisao = Decision.SELECTED
        entry.cliente_id = cliente_id
        entry.nome_novo = None
        entry.manual = True
        if lembrar:
            self._remember_alias(entry, cliente_id, operador)
        return entry

    def _remember_alias(
        self, entry: CompanyEntry, cliente_id: str, operador: Optional[OperatorContext]
    ) -> None:
        if self.aliases is None:
            logger.warning(f"⚠️ [{self.batch_id}] Sem cadastro de apelidos; '{entry.empresa}' não será lembrada")
            return
        chave = normalize_company_name(entry.empresa)
        if not chave:
            return
        self.aliases.save(chave, cliente_id, operador.nome if operador else "")
        logger.info(f"🔗 [{self.batch_id}] Apelido '{chave}' -> {cliente_id}")

    def create_new(self, empresa: str, nome: Optional[str] = None) -> CompanyEntry:
        """Marca a empresa para criação de um cliente novo (nome padrão: o do relatório)."""
        self._require("create_new", WizardStep.CORRELATION)
        entry = self.entry(empresa)
        entry.decisao = Decision.CREATE_NEW
        entry.cliente_id = None
        entry.nome_novo = (nome or empresa).strip()
        entry.manual = True
        return entry

    def ignore(self, empresa: str) -> CompanyEntry:
        self._require("ignore", WizardStep.CORRELATION)
        entry = self.entry(empresa)
        entry.decisao = Decision.IGNORED
        entry.cliente_id = None
        entry.nome_novo = None
        entry.manual = True
        return entry

    def reset_decision(self, empresa: str) -> CompanyEntry:
        """Volta a empresa para a decisão automática da correlação."""
        self._require("reset_decision", WizardStep.CORRELATION)
        entry = self.entry(empresa)
        entry.apply_automatic_decision()
        return entry

    def refresh_registry(self, registry: Optional[ClientRegistry] = None) -> WizardStep:
        """
        Recarrega o cadastro e refaz a correlação.

        Decisões manuais do operador são preservadas; as automáticas são
        recalculadas com o novo cadastro.
        """
        self._require("refresh_registry", WizardStep.CORRELATION)
        if registry is not None:
            self.registry = registry
        try:
            self._clients = list(self.registry.list_clients())
            for entry in self.state.entries.values():
                entry.match = self._match(entry.empresa)
                if not entry.manual:
                    entry.apply_automatic_decision()
        except Exception as e:
            logger.exception(f"❌ [{self.batch_id}] Erro ao recarregar cadastro")
            self._fail(f"Erro ao recarregar cadastro: {e}", arquivo=self.state.arquivo)
            return self.state.step
        logger.info(f"🔄 [{self.batch_id}] Cadastro recarregado: {len(self._clients)} clientes")
        return self.state.step

    # ------------------------------------------------------------------
    # CORRELATION <-> PREVIEW
    # ------------------------------------------------------------------

    def eligible_entries(self) -> List[CompanyEntry]:
        return [e for e in self.state.entries.values() if e.is_eligible]

    def to_preview(self) -> WizardStep:
        """
        Raises:
            NothingToCommitError: Se nenhuma empresa estiver selecionada ou marcada para criação
        """
        self._require("to_preview", WizardStep.CORRELATION)
        if not self.eligible_entries():
            raise NothingToCommitError(
                f"Nenhuma empresa selecionada ou marcada para criação no lote {self.batch_id}"
            )
        self.state.step = WizardStep.PREVIEW
        return self.state.step

    def back_to_correlation(self) -> WizardStep:
        self._require("back_to_correlation", WizardStep.PREVIEW)
        self.state.step = WizardStep.CORRELATION
        return self.state.step

    # ------------------------------------------------------------------
    # PREVIEW -> COMMITTING -> COMPLETE
    # ------------------------------------------------------------------

    def build_instruction(self, entry: CompanyEntry, operador: OperatorContext) -> CommitInstruction:
        return CommitInstruction(
            batch_id=self.batch_id,
            dominio=self.descriptor.key,
            empresa=entry.empresa,
            records=tuple(entry.records),
            operador=operador.nome,
            cliente_id=entry.cliente_id if entry.decisao is Decision.SELECTED else None,
            criar_com_nome=entry.nome_novo if entry.decisao is Decision.CREATE_NEW else None,
        )

    def commit(
        self,
        persistence: PersistenceGateway,
        operador: OperatorContext,
        max_workers: Optional[int] = None,
    ) -> WizardStep:
        """
        Grava todas as empresas elegíveis.

        Cada empresa é gravada de forma independente; uma falha não impede
        as demais. Se todas forem confirmadas, vai para COMPLETE; senão
        permanece em COMMITTING com as falhas em PENDING_RETRY.

        Args:
            persistence: Colaborador que grava os dados
            operador: Operador responsável (autor das gravações)
            max_workers: Gravações simultâneas (padrão: settings.COMMIT_MAX_WORKERS)

        Returns:
            A nova etapa (COMPLETE, COMMITTING ou CANCELLED)
        """
        self._require("commit", WizardStep.PREVIEW)
        self.state.step = WizardStep.COMMITTING
        targets = self.eligible_entries()
        logger.info(
            f"⏳ [{self.batch_id}] {operador.nome} iniciou a gravação de {len(targets)} empresa(s)"
        )
        return self._dispatch(targets, persistence, operador, max_workers)

    def retry_failed(
        self,
        persistence: PersistenceGateway,
        operador: OperatorContext,
        max_workers: Optional[int] = None,
    ) -> WizardStep:
        """Regrava apenas as empresas com falha (PENDING_RETRY)."""
        self._require("retry_failed", WizardStep.COMMITTING)
        targets = [
            e for e in self.eligible_entries() if e.commit_status is CommitStatus.PENDING_RETRY
        ]
        logger.info(f"🔁 [{self.batch_id}] {operador.nome} reenviando {len(targets)} empresa(s)")
        return self._dispatch(targets, persistence, operador, max_workers)

    def _dispatch(
        self,
        targets: List[CompanyEntry],
        persistence: PersistenceGateway,
        operador: OperatorContext,
        max_workers: Optional[int],
    ) -> WizardStep:
        workers = max(1, min(max_workers or settings.COMMIT_MAX_WORKERS, len(targets) or 1))
        cancel_event = self._cancel_event

        def _run(instruction: CommitInstruction):
            # Tarefas ainda na fila quando o cancelamento chega não são enviadas
            if cancel_event.is_set():
                return _SKIPPED
            return persistence.commit(instruction)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {}
            for entry in targets:
                if cancel_event.is_set():
                    break
                instruction = self.build_instruction(entry, operador)
                futures[executor.submit(_run, instruction)] = entry

            for future in as_completed(futures):
                entry = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    self._apply_failure(entry, e)
                else:
                    self._apply_success(entry, result, operador)

        with self._lock:
            if cancel_event.is_set():
                return self.state.step
            pendentes = [e for e in self.eligible_entries() if e.commit_status is not CommitStatus.CONFIRMED]
            if not pendentes:
                self.state.step = WizardStep.COMPLETE
                logger.info(f"✅ [{self.batch_id}] Importação concluída por {operador.nome}")
            else:
                logger.warning(
                    f"⚠️ [{self.batch_id}] {len(pendentes)} empresa(s) aguardando nova tentativa"
                )
            return self.state.step

    def _apply_success(self, entry: CompanyEntry, result: Any, operador: OperatorContext) -> None:
        with self._lock:
            if self._cancel_event.is_set() or result is _SKIPPED:
                return
            entry.commit_status = CommitStatus.CONFIRMED
            if entry.decisao is Decision.CREATE_NEW and result:
                entry.cliente_id = str(result)
            logger.info(
                f"{operador.nome} importou {len(entry.records)} registros de {entry.empresa} "
                f"({self.descriptor.label}, lote {self.batch_id})"
            )

    def _apply_failure(self, entry: CompanyEntry, error: Exception) -> None:
        with self._lock:
            if self._cancel_event.is_set():
                return
            entry.commit_status = CommitStatus.PENDING_RETRY
            self.state.errors.append(WizardError(
                etapa=WizardStep.COMMITTING,
                mensagem=f"Falha ao gravar '{entry.empresa}': {error}",
                empresa=entry.empresa,
                arquivo=self.state.arquivo,
            ))
            logger.error(f"❌ [{self.batch_id}] Falha ao gravar '{entry.empresa}': {error}")

    # ------------------------------------------------------------------
    # Cancelamento e snapshot
    # ------------------------------------------------------------------

    def cancel(self) -> WizardStep:
        """
        Cancela a sessão e descarta o estado em memória.

        Permitido em qualquer etapa menos COMPLETE; repetir em CANCELLED
        não tem efeito.
        """
        with self._lock:
            if self.state.step is WizardStep.CANCELLED:
                return self.state.step
            if self.state.step is WizardStep.COMPLETE:
                raise InvalidTransitionError(f"Lote {self.batch_id} já concluído; não pode ser cancelado")
            self._cancel_event.set()
            self.state = WizardState(
                step=WizardStep.CANCELLED,
                batch_id=self.state.batch_id,
                dominio=self.descriptor.key,
            )
            logger.info(f"🚫 [{self.batch_id}] Importação cancelada")
            return self.state.step

    def snapshot(self) -> Dict[str, Any]:
        """Estado atual para exibição: etapa, contagens, empresas, erros e auditoria do parsing."""
        with self._lock:
            entries = list(self.state.entries.values())
            report = self.state.parse_report
            return {
                "step": self.state.step.value,
                "batch_id": self.state.batch_id,
                "dominio": self.state.dominio,
                "arquivo": self.state.arquivo,
                "arquivo_hash": self.state.arquivo_hash,
                "totais": {
                    "registros": len(self.state.records),
                    "empresas": len(entries),
                    "elegiveis": sum(1 for e in entries if e.is_eligible),
                    "ignoradas": sum(1 for e in entries if e.decisao is Decision.IGNORED),
                    "pendentes": sum(1 for e in entries if e.decisao is Decision.PENDING),
                    "confirmadas": sum(1 for e in entries if e.commit_status is CommitStatus.CONFIRMED),
                    "aguardando_retry": sum(
                        1 for e in entries if e.commit_status is CommitStatus.PENDING_RETRY
                    ),
                },
                "empresas": [e.to_dict() for e in entries],
                "errors": [err.to_dict() for err in self.state.errors],
                "parse_report": report.to_dict() if report else None,
            }
