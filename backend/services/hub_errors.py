"""
Bank Correspondence Hub - Engine Errors

Error taxonomy for the dispatch & state engine. The pure workflow engine raises
these; the CorrespondenceHub absorbs them into CommandResult objects so nothing
in the core is fatal to the process.
"""

from typing import Dict, Optional


class HubError(Exception):
    """Base exception for engine errors."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(HubError):
    """
    Raised when a command is missing a required field (empty report,
    missing rejection comment, unknown role, ...).
    The command is refused and nothing is mutated.
    """
    pass


class NotFoundError(HubError):
    """Raised when a command references an unknown work item, user or reminder."""
    pass


class IllegalTransition(HubError):
    """Raised when a status change is requested from a source state the action does not allow."""
    def __init__(self, action: str, current_status: Optional[str], message: str = None):
        self.action = action
        self.current_status = current_status
        super().__init__(
            message or f"Action '{action}' not allowed from status '{current_status}'",
            {"action": action, "current_status": current_status},
        )


class UpstreamUnavailable(HubError):
    """Raised when the intake feed cannot be fetched. The poll cycle is skipped."""
    def __init__(self, message: str, status_code: int = None, details: Dict = None):
        self.status_code = status_code
        super().__init__(message, details)


class PersistenceError(HubError):
    """Raised when the state store rejects a write. The command is rolled back in memory."""
    def __init__(self, message: str, collection: str = None, details: Dict = None):
        self.collection = collection
        super().__init__(message, dict(details or {}, collection=collection))
