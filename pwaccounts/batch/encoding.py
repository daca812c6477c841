"""Text encoding corruption detection and best-effort repair.

Legacy launcher scripts were written either as UTF-8 or in the Windows
Cyrillic code page (cp1251). Reading one with the wrong codec produces a few
recognizable kinds of mojibake:

* cp1251 bytes shown as Latin-1: runs of accented Latin letters
  (``ëó÷íèê`` instead of ``лучник``);
* UTF-8 bytes shown through the DOS code page 437: ``╨`` / ``╤`` pairs
  (``╨╗╤â╤ç╨╜╨╕╨║``);
* UTF-8 punctuation shown as Windows-1252 (``â€™``);
* undecodable bytes replaced with ``?`` or U+FFFD.

Repair never produces a result worse than its input: when no strategy yields
valid Cyrillic without corruption markers, the text is returned unchanged.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from pwaccounts.contracts import LEGACY_CODEC

logger = logging.getLogger("pwaccounts.batch.encoding")

DEFAULT_CODEC = "utf-8-sig"

_LATIN1_RUN = re.compile(r"[À-ÿ]{2,}")
_MOJIBAKE_PUNCTUATION = re.compile(r"â€[™œ\u009d¦“”]|Ã[\u0080-¿]")
_CP437_CYRILLIC = re.compile(r"(?:[╨╤]\S){2,}")
_REPLACEMENT_RUN = re.compile(r"\?{2,}|�{2,}")
_CP1251_AS_LATIN1 = re.compile(r"[à-ÿ]{3,}")
_LATIN1_LETTER = re.compile(r"[À-ÿ]")
_CYRILLIC = re.compile(r"[Ѐ-ӿ]")

# UTF-8 Cyrillic words as they appear when read through code page 437.
KNOWN_GARBLED_SEQUENCES: tuple[tuple[str, str], ...] = (
    ("╨╗╤â╤ç╨╜╨╕╨║", "лучник"),
    ("╨▓╨╛╨╕╨╜", "воин"),
    ("╨╢╤Ç╨╡╤å", "жрец"),
    ("╨╝╨░╨│", "маг"),
)


def has_double_encoding(text: str) -> bool:
    return bool(
        _LATIN1_RUN.search(text)
        or _MOJIBAKE_PUNCTUATION.search(text)
        or _CP437_CYRILLIC.search(text)
    )


def has_replacement_markers(text: str) -> bool:
    return bool(_REPLACEMENT_RUN.search(text))


def has_legacy_misread(text: str) -> bool:
    return bool(_CP1251_AS_LATIN1.search(text))


def is_corrupted(text: str | None) -> bool:
    """Return True when any corruption heuristic matches."""
    if not text:
        return False
    return has_double_encoding(text) or has_replacement_markers(text) or has_legacy_misread(text)


def has_target_script(text: str | None) -> bool:
    """Return True when the text contains at least one Cyrillic character."""
    return bool(text) and bool(_CYRILLIC.search(text))


def _reinterpret_legacy(text: str) -> str | None:
    if not _LATIN1_LETTER.search(text):
        return None
    try:
        decoded = text.encode("latin-1").decode(LEGACY_CODEC)
    except UnicodeError:
        return None
    if has_target_script(decoded) and not is_corrupted(decoded):
        return decoded
    return None


def _apply_known_sequences(text: str) -> str:
    fixed = text
    for garbled, correct in KNOWN_GARBLED_SEQUENCES:
        if garbled in fixed:
            fixed = fixed.replace(garbled, correct)
    return fixed


def repair(text: str | None) -> str | None:
    """Best-effort repair of corrupted text; clean text is returned unchanged."""
    if not text or not is_corrupted(text):
        return text

    reinterpreted = _reinterpret_legacy(text)
    if reinterpreted is not None:
        logger.info("Repaired %s corruption: %r -> %r", LEGACY_CODEC, text, reinterpreted)
        return reinterpreted

    substituted = _apply_known_sequences(text)
    if substituted != text:
        logger.info("Applied known sequence fix: %r -> %r", text, substituted)
        return substituted

    return text


def validate_character_name(character_name: str | None) -> bool:
    if not character_name:
        return True
    if is_corrupted(character_name):
        logger.warning("Character name %r appears to have encoding corruption", character_name)
        return False
    return True


def decode_with_fallback(raw: bytes, *, label: str = "<bytes>") -> str:
    """Decode as UTF-8 and fall back to the legacy codec only when it improves quality.

    Only bytes that are not valid UTF-8 are re-read with the legacy codec.
    Valid UTF-8 that still looks garbled was garbled before it was saved, and
    re-decoding it would turn every multibyte sequence into plausible but
    wrong Cyrillic; such text is left for ``repair``.
    """
    try:
        return raw.decode(DEFAULT_CODEC)
    except UnicodeDecodeError:
        primary = raw.decode(DEFAULT_CODEC, errors="replace")
    if not is_corrupted(primary) or has_target_script(primary):
        return primary

    logger.info("%s: UTF-8 corruption detected, trying %s", label, LEGACY_CODEC)
    legacy = raw.decode(LEGACY_CODEC, errors="replace")
    if has_target_script(legacy) and not is_corrupted(legacy):
        logger.info("%s: decoded with %s", label, LEGACY_CODEC)
        return legacy

    logger.warning("%s: %s decoding did not improve content, keeping UTF-8", label, LEGACY_CODEC)
    return primary


def read_text_with_fallback(path: str | os.PathLike) -> str:
    """Read a text file with two-pass encoding detection."""
    file_path = Path(path)
    return decode_with_fallback(file_path.read_bytes(), label=str(file_path))
