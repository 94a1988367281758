"""Helpers to keep the secret word out of participant-written text."""
import re
import unicodedata
from typing import Optional

_NON_WORD = re.compile(r"[\W_]+", re.UNICODE)
_TOKEN_SPLIT = re.compile(r"(\s+|[.,;:!?\-_])")


def normalize_text(text: str) -> str:
    """Lowercase, strip accents, drop whitespace and punctuation."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return _NON_WORD.sub("", stripped)


def contains_secret_word(message: str, secret_word: Optional[str]) -> bool:
    if not secret_word:
        return False
    secret = normalize_text(secret_word)
    return bool(secret) and secret in normalize_text(message)


def filter_secret_word(message: str, secret_word: Optional[str]) -> str:
    """Mask every token that contains the secret word with asterisks."""
    if not secret_word:
        return message
    secret = normalize_text(secret_word)
    if not secret:
        return message
    parts = _TOKEN_SPLIT.split(message)
    return "".join(
        "*" * len(part) if secret in normalize_text(part) else part
        for part in parts
    )
