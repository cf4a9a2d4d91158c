from abc import ABC, abstractmethod
from typing import Any, List, Optional
from core.models import CanonicalClient, CommitInstruction

class TabularSource(ABC):
    """
    Contrato (Interface) para qualquer fonte tabular (planilha, CSV, PDF com tabelas).

    Uma fonte é endereçável por planilha/página e por linha; a primeira
    linha de cada planilha é o cabeçalho.
    """

    @abstractmethod
    def sheet_names(self) -> List[str]:
        """
        Lista as planilhas (ou páginas) disponíveis, na ordem do arquivo.

        Returns:
            List[str]: Nomes das planilhas. Vazio se o arquivo não tiver dados.
        """
        pass

    @abstractmethod
    def rows(self, sheet: str) -> List[List[Any]]:
        """
        Retorna as linhas brutas de uma planilha, cabeçalho incluído.

        Células vazias vêm como None; datas podem vir como datetime,
        número serial ou texto.

        Args:
            sheet (str): Nome da planilha retornado por sheet_names().

        Returns:
            List[List[Any]]: Linhas da planilha.
        """
        pass


class ClientRegistry(ABC):
    """
    Contrato (Interface) para o cadastro de clientes.

    A correlação trabalha sobre um snapshot; refresh é responsabilidade
    de quem implementa.
    """

    @abstractmethod
    def list_clients(self) -> List[CanonicalClient]:
        """
        Retorna o snapshot atual do cadastro, na ordem de inserção.

        Returns:
            List[CanonicalClient]: Clientes cadastrados.
        """
        pass


class PersistenceGateway(ABC):
    """
    Contrato (Interface) para o colaborador que grava os dados importados.

    Cada chamada grava UMA empresa. Timeouts e retentativas internas são
    responsabilidade da implementação.
    """

    @abstractmethod
    def commit(self, instruction: CommitInstruction) -> Optional[str]:
        """
        Grava os registros de uma empresa.

        Args:
            instruction (CommitInstruction): Empresa, cliente (ou nome a criar) e registros.

        Returns:
            Optional[str]: Id do cliente gravado (útil quando um cliente novo é criado).

        Raises:
            CommitError: Se a gravação falhar.
        """
        pass


class ClientAliasStore(ABC):
    """
    Contrato (Interface) para apelidos aprendidos de clientes.

    Um apelido liga um nome de empresa já normalizado (chave de
    normalize_company_name) a um cliente do cadastro. É consultado antes
    da similaridade.
    """

    @abstractmethod
    def lookup(self, nome_normalizado: str) -> Optional[str]:
        """
        Args:
            nome_normalizado (str): Chave do nome da empresa.

        Returns:
            Optional[str]: Id do cliente associado, ou None.
        """
        pass

    @abstractmethod
    def save(self, nome_normalizado: str, cliente_id: str, criado_por: str = "") -> None:
        """
        Grava (ou substitui) o apelido.

        Args:
            nome_normalizado (str): Chave do nome da empresa.
            cliente_id (str): Cliente do cadastro.
            criado_por (str): Operador que confirmou a associação.
        """
        pass
