"""
Exceptions raised by the block invalidation workflow.
"""


class IndexerError(Exception):

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EnumerationError(IndexerError):
    """Candidate enumeration failed for a reason other than a missing control table"""

    pass


class RetriesExhaustedError(IndexerError):

    def __init__(self, message: str, block_numbers=None):
        self.block_numbers = list(block_numbers or [])
        super().__init__(message)
