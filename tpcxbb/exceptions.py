"""
Exception types for the TPCx-BB benchmark driver.

Configuration errors (unknown query, bad format) stop the driver before any
query runs. ResultMismatchError is raised by result comparison only.
"""


class TpcxbbError(Exception):
    """Base class for benchmark driver errors."""
    pass


class UnknownQueryError(TpcxbbError, ValueError):
    """Query identifier does not name one of the 30 TPCx-BB queries."""

    def __init__(self, query_index):
        super().__init__(f"Unknown TPCx-BB query number: {query_index}")
        self.query_index = query_index


class UnsupportedQueryError(TpcxbbError, NotImplementedError):
    """Query exists but depends on logic this driver does not provide.

    Raised when the query function is invoked, so the benchmark records the
    failure like any other execution error.
    """

    def __init__(self, query_name: str, reason: str):
        super().__init__(f"{query_name} is not supported: {reason}")
        self.query_name = query_name


class InvalidFormatError(TpcxbbError, ValueError):
    """Input or output format is not one of the supported file formats."""

    def __init__(self, fmt, supported):
        super().__init__(
            f"Invalid format: {fmt} (expected one of {', '.join(supported)})"
        )
        self.fmt = fmt


class ResultMismatchError(TpcxbbError):
    """Two result sets cannot be compared row by row.

    Raised when row counts or column counts differ. Value differences are
    reported as a mismatch count instead.
    """

    def __init__(self, message: str, left_count: int = None, right_count: int = None):
        super().__init__(message)
        self.left_count = left_count
        self.right_count = right_count
