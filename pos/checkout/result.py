"""Tagged results returned by every checkout core operation."""
import enum
from dataclasses import dataclass
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    """Failure kinds surfaced by the checkout core."""
    # Local validation, detected before any backend call
    OUT_OF_STOCK = 'out_of_stock'
    INSUFFICIENT_STOCK = 'insufficient_stock'
    EMPTY_CART = 'empty_cart'
    INSUFFICIENT_PAYMENT = 'insufficient_payment'
    INVALID_INPUT = 'invalid_input'
    # Backend outcomes
    COMMIT_REJECTED = 'commit_rejected'
    NETWORK_OR_SERVER_ERROR = 'network_or_server_error'
    NOT_FOUND = 'not_found'
    CATALOG_UNAVAILABLE = 'catalog_unavailable'
    # Session guards
    CHECKOUT_IN_PROGRESS = 'checkout_in_progress'
    UNRESOLVED_OUTCOME = 'unresolved_outcome'


LOCAL_VALIDATION_KINDS = frozenset({
    ErrorKind.OUT_OF_STOCK,
    ErrorKind.INSUFFICIENT_STOCK,
    ErrorKind.EMPTY_CART,
    ErrorKind.INSUFFICIENT_PAYMENT,
    ErrorKind.INVALID_INPUT,
})


@dataclass(frozen=True)
class Result:
    """
    Success-with-data or failure-with-kind+message.

    Examples:
        Result.success(cart)
        Result.failure(ErrorKind.EMPTY_CART, 'Cart is empty')
    """
    ok: bool
    data: Any = None
    kind: Optional[ErrorKind] = None
    message: str = ''

    @classmethod
    def success(cls, data: Any = None) -> 'Result':
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, data: Any = None) -> 'Result':
        return cls(ok=False, data=data, kind=kind, message=message)

    @property
    def is_local_validation(self) -> bool:
        return not self.ok and self.kind in LOCAL_VALIDATION_KINDS

    def unwrap(self) -> Any:
        """Return the data of a successful result; raise ValueError otherwise."""
        if not self.ok:
            raise ValueError(f'{self.kind.value}: {self.message}')
        return self.data

    def to_dict(self) -> dict:
        if self.ok:
            return {'success': True}
        return {'success': False, 'error': self.kind.value, 'message': self.message}
