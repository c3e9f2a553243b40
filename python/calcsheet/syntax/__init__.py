"""calcsheet.syntax - Line classification and variable extraction for sheet source."""

from calcsheet.syntax._classifier import (
    NAME,
    SEPARATOR,
    LineKind,
    ScannedLine,
    Statement,
    SyntaxClassifier,
    SyntaxConfig,
    code_end,
    collect_declarations,
    get_classifier,
    is_identifier,
    parse_variables,
    reset_classifier,
    strip_comments,
)
from calcsheet.syntax._seed import SEED_FUNCTIONS, SEED_KEYWORDS, SEED_UNIT_CHARS
from calcsheet.syntax._tokens import (
    SYNTAX_DIR_ENV,
    TokenData,
    discover_token_files,
    load_token_data,
    load_token_file,
    parse_token_xml,
)

__all__ = [
    "LineKind",
    "NAME",
    "SEED_FUNCTIONS",
    "SEED_KEYWORDS",
    "SEED_UNIT_CHARS",
    "SEPARATOR",
    "SYNTAX_DIR_ENV",
    "ScannedLine",
    "Statement",
    "SyntaxClassifier",
    "SyntaxConfig",
    "TokenData",
    "code_end",
    "collect_declarations",
    "discover_token_files",
    "get_classifier",
    "is_identifier",
    "load_token_data",
    "load_token_file",
    "parse_token_xml",
    "parse_variables",
    "reset_classifier",
    "strip_comments",
]
