"""Optional token data: unit characters, functions and keywords read from the
calculation engine's editor syntax files (auto-complete and user-language XML).

Nothing here is required. A missing directory, unreadable file or malformed
XML leaves the classifier on its seed sets.
"""

from __future__ import annotations

import logging
import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from calcsheet.syntax._seed import STRUCTURAL_CHARS

logger = logging.getLogger(__name__)

SYNTAX_DIR_ENV = "CALCSHEET_SYNTAX_DIR"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class TokenData:
    """Token sets harvested from syntax files."""

    unit_chars: frozenset[str] = frozenset()
    functions: frozenset[str] = frozenset()
    keywords: frozenset[str] = frozenset()

    def merge(self, other: TokenData) -> TokenData:
        return TokenData(
            unit_chars=self.unit_chars | other.unit_chars,
            functions=self.functions | other.functions,
            keywords=self.keywords | other.keywords,
        )

    def __bool__(self) -> bool:
        return bool(self.unit_chars or self.functions or self.keywords)


def _split_tokens(text: str) -> list[str]:
    tokens: list[str] = []
    for raw in (text or "").split():
        tok = raw.strip().strip("'\"")
        if tok:
            tokens.append(tok)
    return tokens


def _unit_chars_of(token: str) -> set[str]:
    """Non-alphanumeric characters of *token* that may appear in a unit."""
    chars: set[str] = set()
    for ch in token:
        if (ch.isascii() and ch.isalnum()) or not ch.isprintable() or ch.isspace():
            continue
        if ch in STRUCTURAL_CHARS:
            continue
        chars.add(ch)
    return chars


def parse_token_xml(root: ET.Element) -> TokenData:
    """Harvest tokens from a parsed syntax document.

    Two shapes are understood:

    * auto-complete lists, ``<AutoComplete><KeyWord name="kN"/>...``: every
      token contributes its unit characters, identifier-shaped tokens are
      also taken as function names;
    * user-language keyword groups, ``<Keywords name="Functions">sin cos</Keywords>``:
      groups whose name mentions "func" feed the functions, others the keywords.
    """
    unit_chars: set[str] = set()
    functions: set[str] = set()
    keywords: set[str] = set()

    for node in root.iter("KeyWord"):
        tok = (node.get("name") or "").strip()  # some tokens carry trailing spaces
        if not tok:
            continue
        unit_chars |= _unit_chars_of(tok)
        if _IDENTIFIER_RE.match(tok):
            functions.add(tok)

    for node in root.iter("Keywords"):
        group = node.get("name") or ""
        target = functions if "func" in group.lower() else keywords
        target.update(_split_tokens(node.text or ""))

    return TokenData(
        unit_chars=frozenset(unit_chars),
        functions=frozenset(functions),
        keywords=frozenset(keywords),
    )


def load_token_file(path: str | os.PathLike[str]) -> TokenData:
    """Read one syntax XML file; returns empty data if it cannot be used."""
    try:
        tree = ET.parse(path)
    except (OSError, ET.ParseError) as e:
        logger.debug("Skipping syntax file %s: %s", path, e)
        return TokenData()
    return parse_token_xml(tree.getroot())


def discover_token_files(directory: str | os.PathLike[str] | None = None) -> list[Path]:
    """XML files in *directory*, or in ``$CALCSHEET_SYNTAX_DIR`` when omitted."""
    if directory is None:
        directory = os.environ.get(SYNTAX_DIR_ENV)
        if not directory:
            return []
    root = Path(directory)
    if not root.is_dir():
        logger.debug("Syntax directory %s does not exist", root)
        return []
    return sorted(p for p in root.iterdir() if p.suffix.lower() == ".xml" and p.is_file())


def load_token_data(
    paths: list[str | os.PathLike[str]] | None = None,
) -> TokenData:
    """Merge token data from *paths* (default: discovered files)."""
    if paths is None:
        paths = list(discover_token_files())
    data = TokenData()
    for path in paths:
        data = data.merge(load_token_file(path))
    if data:
        logger.debug(
            "Loaded token data: %d unit chars, %d functions, %d keywords",
            len(data.unit_chars), len(data.functions), len(data.keywords),
        )
    return data
