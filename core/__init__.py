"""
Core module for report reconciliation.

This module provides the main classes and interfaces for:
- Text normalization and name similarity
- Client matching against the registry
- Per-domain status normalization and row parsing
- Per-company aggregation
- The import wizard state machine

SOLID Principles applied:
- SRP: Each module has a single responsibility
- OCP: New domains are new descriptors, not new pipelines
- DIP: Depends on abstractions (interfaces)
"""

from .aggregator import group_by_company, summarize, summarize_all
from .client_matcher import match_all, match_client, rank_clients
from .domains import DOMAINS, DomainDescriptor, get_domain
from .exceptions import (
    CommitError,
    ConciliadorException,
    DuplicateImportError,
    InvalidTransitionError,
    NothingToCommitError,
    StructuralParseError,
    UnknownCompanyError,
)
from .interfaces import ClientAliasStore, ClientRegistry, PersistenceGateway, TabularSource
from .models import (
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
    Suggestion,
)
from .row_parser import RowParser
from .similarity import containment_overlap_score, get_scorer, jaccard_score
from .status_normalizer import StatusNormalizer, classify_license
from .text_utils import normalize_text
from .wizard import CompanyEntry, ImportWizard, WizardStep

__all__ = [
    # Models
    "CanonicalClient",
    "ImportRecord",
    "MatchResult",
    "MatchType",
    "Suggestion",
    "CompanySummary",
    "Decision",
    "CommitStatus",
    "CommitInstruction",
    "OperatorContext",
    "ParseReport",
    # Interfaces
    "TabularSource",
    "ClientRegistry",
    "ClientAliasStore",
    "PersistenceGateway",
    # Text / similarity / matching
    "normalize_text",
    "containment_overlap_score",
    "jaccard_score",
    "get_scorer",
    "match_client",
    "match_all",
    "rank_clients",
    # Domains
    "DOMAINS",
    "DomainDescriptor",
    "get_domain",
    "StatusNormalizer",
    "classify_license",
    "RowParser",
    # Aggregation
    "group_by_company",
    "summarize",
    "summarize_all",
    # Wizard
    "ImportWizard",
    "WizardStep",
    "CompanyEntry",
    # Exceptions
    "ConciliadorException",
    "StructuralParseError",
    "InvalidTransitionError",
    "NothingToCommitError",
    "UnknownCompanyError",
    "CommitError",
    "DuplicateImportError",
]
