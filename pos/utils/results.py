"""Bridge from checkout Results to the application exceptions."""
from pos.checkout.result import Result, ErrorKind
from pos.exceptions import (
    PosError, ValidationError, BusinessLogicError, NotFoundError,
    ConflictError, BackendUnavailableError
)


def raise_for_result(result: Result, **extra):
    """
    Return the data of a successful Result, raise the matching PosError otherwise.

    The error kind is included in the JSON body as 'error', next to any
    extra fields given.
    """
    if result.ok:
        return result.data

    payload = dict(extra, error=result.kind.value)
    kind = result.kind
    if kind == ErrorKind.INVALID_INPUT:
        raise ValidationError(result.message, payload=payload)
    if kind in (ErrorKind.EMPTY_CART, ErrorKind.INSUFFICIENT_PAYMENT):
        raise BusinessLogicError(result.message, payload=payload)
    if kind in (ErrorKind.OUT_OF_STOCK, ErrorKind.INSUFFICIENT_STOCK, ErrorKind.COMMIT_REJECTED):
        raise BusinessLogicError(result.message, status_code=409, payload=payload)
    if kind == ErrorKind.NOT_FOUND:
        raise NotFoundError(result.message, payload=payload)
    if kind in (ErrorKind.CHECKOUT_IN_PROGRESS, ErrorKind.UNRESOLVED_OUTCOME):
        raise ConflictError(result.message, payload=payload)
    if kind in (ErrorKind.CATALOG_UNAVAILABLE, ErrorKind.NETWORK_OR_SERVER_ERROR):
        raise BackendUnavailableError(result.message, payload=payload)
    raise PosError(result.message, payload=payload)
