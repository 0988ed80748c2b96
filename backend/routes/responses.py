"""
Bank Correspondence Hub - Command Responses

Maps hub command outcomes onto HTTP responses.
"""

from fastapi import HTTPException

from services.correspondence_hub import CommandResult
from services.hub_errors import HubError, IllegalTransition, NotFoundError, PersistenceError, ValidationError

ERROR_STATUS_CODES = {
    NotFoundError: 404,
    IllegalTransition: 409,
    ValidationError: 422,
    PersistenceError: 503,
}


def http_error(error: HubError) -> HTTPException:
    status_code = 400
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=error.to_dict())


def command_response(result: CommandResult) -> dict:
    """Return the result body, or raise the HTTPException matching the refusal."""
    if not result.success:
        raise http_error(result.error)
    return result.to_dict()
