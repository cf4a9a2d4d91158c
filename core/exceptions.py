class ConciliadorException(Exception):
    """Exceção base para o projeto Conciliador de Relatórios."""
    pass

class StructuralParseError(ConciliadorException):
    """Levantada quando o arquivo não pode ser lido ou falta uma coluna obrigatória."""

    def __init__(self, message: str, arquivo: str = "", coluna: str = ""):
        super().__init__(message)
        self.arquivo = arquivo
        self.coluna = coluna

class InvalidTransitionError(ConciliadorException):
    """Levantada quando o wizard recebe uma ação que não cabe na etapa atual."""
    pass

class NothingToCommitError(InvalidTransitionError):
    """Levantada ao avançar sem nenhuma empresa selecionada ou marcada para criação."""
    pass

class UnknownCompanyError(ConciliadorException):
    """Levantada quando uma decisão cita uma empresa (ou cliente) que não está no lote."""
    pass

class CommitError(ConciliadorException):
    """Levantada pelo colaborador de persistência quando a gravação de uma empresa falha."""
    pass

class DuplicateImportError(ConciliadorException):
    """Levantada quando o mesmo arquivo (mesmo hash de conteúdo) já foi importado."""

    def __init__(self, message: str, arquivo_hash: str = "", batch_id: str = ""):
        super().__init__(message)
        self.arquivo_hash = arquivo_hash
        self.batch_id = batch_id
