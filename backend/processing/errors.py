"""
Processing errors.

Fatal (batch-level): RuleLoadError, PagePersistError.
Soft (post-hoc): PropagationError.
Row-level failures are not raised; they are recorded on the row.
"""


class ProcessingError(Exception):
    """Base class for processing failures"""
    pass


class SessionNotFoundError(ProcessingError):
    """The session id does not exist"""

    def __init__(self, session_id: int):
        super().__init__(f"Upload session {session_id} not found")
        self.session_id = session_id


class RuleLoadError(ProcessingError):
    """One of the rule/account reads failed; there is no partial rule set"""
    pass


class PagePersistError(ProcessingError):
    """Fetching or bulk-writing a page failed"""

    def __init__(self, message: str, page: int):
        super().__init__(message)
        self.page = page


class PropagationError(ProcessingError):
    """The document-number propagation pass failed"""
    pass
