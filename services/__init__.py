"""
Camada de Serviços.

Este módulo agrupa serviços de alto nível que orquestram
funcionalidades do sistema.

Serviços disponíveis:
- ImportService: Condução de lotes de importação e relatórios
"""

from services.import_service import (
    CsvClientRegistry,
    ImportService,
    InMemoryAliasStore,
    InMemoryClientRegistry,
    RecordingPersistence,
)

__all__ = [
    'ImportService',
    'CsvClientRegistry',
    'InMemoryAliasStore',
    'InMemoryClientRegistry',
    'RecordingPersistence',
]
