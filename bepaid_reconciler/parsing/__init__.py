"""Export parsing package."""

from bepaid_reconciler.parsing.errors import (
    EmptyFileError,
    NoTransactionsError,
    ParseError,
    UnsupportedFileError,
)
from bepaid_reconciler.parsing.normalizer import (
    is_fee_transaction,
    normalize_status,
    parse_date,
    parse_number,
    parse_row,
    parse_rows,
)
from bepaid_reconciler.parsing.reader import read_csv, read_export, read_xlsx

__all__ = [
    "EmptyFileError",
    "NoTransactionsError",
    "ParseError",
    "UnsupportedFileError",
    "is_fee_transaction",
    "normalize_status",
    "parse_date",
    "parse_number",
    "parse_row",
    "parse_rows",
    "read_csv",
    "read_export",
    "read_xlsx",
]
