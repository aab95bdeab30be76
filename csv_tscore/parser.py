"""
Delimited-text parsing.

Responsibilities:
- encoding detection + decoding
- header / row splitting (no quoted-delimiter support)
- advisory column guesses for entity and period fields
- entity listing helpers
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from charset_normalizer import from_bytes

from .errors import ParseError
from .rules import DELIMITER, ENTITY_KEYWORDS, PERIOD_KEYWORDS, QUOTE_CHAR

logger = logging.getLogger(__name__)

BOM = "\ufeff"


@dataclass(frozen=True)
class Table:
    fields: Tuple[str, ...]
    rows: Tuple[Mapping[str, str], ...]

    def column(self, field: str) -> List[str]:
        return [row.get(field, "") for row in self.rows]


@dataclass(frozen=True)
class ColumnGuess:
    entity_field: Optional[str] = None
    period_field: Optional[str] = None


def decode_bytes(raw: bytes) -> str:
    """
    Decode uploaded bytes to text.

    Rules:
    - Detect encoding best-effort via charset-normalizer.
    - A UTF-8 BOM is consumed rather than kept as a character.
    - If decode fails, fall back to UTF-8 with replacement characters.
    """
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw.decode("utf-8-sig", errors="replace")

    match = from_bytes(raw).best()
    decode_used = match.encoding if match is not None else "utf-8"

    try:
        return raw.decode(decode_used)
    except (LookupError, UnicodeDecodeError):
        logger.warning("decode with %s failed, falling back to utf-8", decode_used)
        return raw.decode("utf-8", errors="replace")


def _split_line(line: str) -> List[str]:
    return [token.replace(QUOTE_CHAR, "").strip() for token in line.split(DELIMITER)]


def parse_table(text: str) -> Table:
    """
    Parse comma-delimited text into a Table.

    The first line is the header. Every token has its quote characters
    removed and is trimmed; a delimiter inside quotes is not supported.
    Blank body lines are skipped, short rows are padded with empty strings
    and extra tokens are dropped.
    """
    if text.startswith(BOM):
        text = text[len(BOM):]
    if not text:
        raise ParseError("input has no header line")

    lines = text.split("\n")
    fields = _split_line(lines[0])

    seen = set()
    for name in fields:
        if name in seen:
            raise ParseError(f"duplicate header field: {name!r}")
        seen.add(name)

    rows = []
    for line in lines[1:]:
        if not line.strip():
            continue
        values = _split_line(line)
        values += [""] * (len(fields) - len(values))
        rows.append(MappingProxyType(dict(zip(fields, values))))

    logger.debug("parsed table: %d fields, %d rows", len(fields), len(rows))
    return Table(fields=tuple(fields), rows=tuple(rows))


def _first_match(fields: Sequence[str], keywords: Iterable[str]) -> Optional[str]:
    lowered = [k.lower() for k in keywords]
    for name in fields:
        candidate = name.lower()
        if any(k in candidate for k in lowered):
            return name
    return None


def guess_columns(fields: Sequence[str]) -> ColumnGuess:
    return ColumnGuess(
        entity_field=_first_match(fields, ENTITY_KEYWORDS),
        period_field=_first_match(fields, PERIOD_KEYWORDS),
    )


def default_entity_field(fields: Sequence[str]) -> Optional[str]:
    """Guessed entity field, or the first header when nothing matches."""
    guess = guess_columns(fields).entity_field
    if guess is not None:
        return guess
    return fields[0] if fields else None


def list_entities(table: Table, field: str) -> List[str]:
    out: List[str] = []
    seen = set()
    for value in table.column(field):
        if not value.strip() or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def search_entities(entities: Iterable[str], term: str) -> List[str]:
    if not term:
        return []
    needle = term.lower()
    return [e for e in entities if needle in e.lower()]


def split_entity_list(text: str, existing: Iterable[str] = ()) -> List[str]:
    """Split comma-separated entity names, skipping blanks and ones already chosen."""
    taken = set(existing)
    out: List[str] = []
    for name in (part.strip() for part in text.split(DELIMITER)):
        if not name or name in taken:
            continue
        taken.add(name)
        out.append(name)
    return out
