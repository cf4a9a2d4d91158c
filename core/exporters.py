"""
Módulo de exportação dos resultados da importação.

Implementa o padrão Strategy para exportação, permitindo adicionar novos
formatos sem modificar o wizard nem o serviço (OCP).
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence

import pandas as pd


class DataExporter(ABC):
    """
    Interface abstrata para exportadores de dados.

    Permite trocar a implementação de exportação sem afetar o código cliente,
    seguindo o Dependency Inversion Principle (DIP).
    """

    @abstractmethod
    def export(self, data: Sequence[Any], destination: str) -> None:
        """
        Exporta uma lista de objetos para um destino.

        Args:
            data: Objetos com to_dict() (registros, entradas do wizard)
            destination: Caminho ou identificador do destino

        Raises:
            ValueError: Se não houver nada para exportar
        """
        pass


def _to_csv(rows: List[Dict[str, Any]], destination: str) -> None:
    df = pd.DataFrame(rows)
    Path(destination).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(
        destination,
        index=False,
        encoding='utf-8-sig',  # BOM para Excel no Windows
        sep=';',
        decimal=','
    )


class CsvExporter(DataExporter):
    """
    Exportador genérico para CSV usando pandas.

    Converte cada objeto via to_dict() e salva com o separador ';'.
    """

    def export(self, data: Sequence[Any], destination: str) -> None:
        if not data:
            raise ValueError("Lista de dados vazia. Nada para exportar.")
        _to_csv([item.to_dict() for item in data], destination)


class SummaryCsvExporter(DataExporter):
    """
    Resumo por empresa para conferência do operador.

    Uma linha por empresa com a correlação, a decisão, o total e uma
    coluna por status do domínio (prefixo 'status_'). Campos derivados
    do domínio entram com o prefixo 'extra_'.
    """

    def export(self, data: Sequence[Any], destination: str) -> None:
        """
        Args:
            data: Entradas do wizard (CompanyEntry)
            destination: Caminho do arquivo CSV de saída
        """
        if not data:
            raise ValueError("Lista de dados vazia. Nada para exportar.")
        _to_csv([self.flatten(entry) for entry in data], destination)

    @staticmethod
    def flatten(entry: Any) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "empresa": entry.empresa,
            "match_type": entry.match.match_type.value,
            "score": round(entry.match.score, 4),
            "cliente_id": entry.cliente_id,
            "cliente_nome": entry.match.cliente_nome,
            "sugestoes": " | ".join(f"{s.nome} ({s.score:.2f})" for s in entry.match.sugestoes),
            "decisao": entry.decisao.value,
            "nome_novo": entry.nome_novo,
            "commit_status": entry.commit_status.value,
            "total": entry.summary.total,
        }
        for status, count in entry.summary.por_status.items():
            row[f"status_{status}"] = count
        for chave, valor in entry.summary.extras.items():
            if isinstance(valor, (date, datetime)):
                valor = valor.isoformat()
            elif isinstance(valor, dict):
                valor = ", ".join(f"{k}: {v}" for k, v in valor.items())
            elif isinstance(valor, (list, tuple)):
                valor = ", ".join(str(v) for v in valor)
            row[f"extra_{chave}"] = valor
        return row
