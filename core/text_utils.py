"""
Normalização de texto para comparação.

Nomes de empresa e rótulos de status chegam dos relatórios externos como
texto livre: caixa misturada, acentos, espaços duplicados. Todas as
comparações do sistema passam por normalize_text() antes.

Propriedade garantida: normalize_text é idempotente,
normalize_text(normalize_text(s)) == normalize_text(s).
"""

import re
import unicodedata
from functools import lru_cache
from typing import Optional

_WHITESPACE_RE = re.compile(r"\s+")


def strip_accents(value: Optional[str]) -> str:
    """
    Remove acentos de uma string.

    Usa decomposição canônica (NFD) e descarta as marcas combinantes.

    Example:
        >>> strip_accents("Mineração")
        'Mineracao'
    """
    if not value:
        return ""
    normalized = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalize_whitespace(text: Optional[str]) -> str:
    """
    Colapsa qualquer sequência de espaços (tabs, nbsp, quebras) em um espaço.

    Example:
        >>> normalize_whitespace("  Vale    Verde ")
        'Vale Verde'
    """
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


@lru_cache(maxsize=4096)
def _normalize_cached(text: str) -> str:
    return normalize_whitespace(strip_accents(text.lower()))


def normalize_text(text: Optional[str]) -> str:
    """
    Canonicaliza texto livre para comparação.

    Passos: caixa baixa, remoção de acentos, trim e colapso de espaços.

    Args:
        text: Texto original (None é tratado como vazio)

    Returns:
        Texto normalizado ("" para entrada vazia)

    Examples:
        >>> normalize_text("  Mineração   Vale Verde LTDA ")
        'mineracao vale verde ltda'
        >>> normalize_text("")
        ''
    """
    if not text:
        return ""
    return _normalize_cached(str(text))


# Formas jurídicas que não identificam a empresa
LEGAL_FORMS = frozenset({"ltda", "me", "epp", "eireli", "sa"})

_SA_RE = re.compile(r"\bs\s*[/.]\s*a\b\.?")
_SEPARATOR_RE = re.compile(r"\s*[-/]\s*")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def normalize_company_name(name: Optional[str]) -> str:
    """
    Chave de comparação de nomes de empresa.

    Aplica normalize_text(), troca hífens e barras por espaço, remove
    pontuação e descarta formas jurídicas (LTDA, ME, EPP, EIRELI, S/A).
    Se só sobrar forma jurídica, devolve o texto normalizado.

    Examples:
        >>> normalize_company_name("Mineração Vale Verde LTDA")
        'mineracao vale verde'
        >>> normalize_company_name("Ramos Engenharia S/A.")
        'ramos engenharia'
    """
    text = normalize_text(name)
    if not text:
        return ""
    key = _SA_RE.sub(" ", text)
    key = _SEPARATOR_RE.sub(" ", key)
    key = _PUNCTUATION_RE.sub("", key)
    tokens = [t for t in key.split() if t not in LEGAL_FORMS]
    return " ".join(tokens) or text
