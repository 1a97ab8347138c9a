"""Parsing exceptions."""


class ParseError(Exception):
    """Base exception for export parsing."""
    pass


class UnsupportedFileError(ParseError):
    """File type is not CSV or Excel."""
    pass


class EmptyFileError(ParseError):
    """File has no data rows."""
    pass


class NoTransactionsError(ParseError):
    """No row could be recognised as a bePaid transaction."""
    pass
