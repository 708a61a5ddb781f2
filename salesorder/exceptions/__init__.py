"""Custom exceptions for the sales order engine."""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

PathPart = Union[str, int]


@dataclass(frozen=True)
class Violation:
    """A single field-level problem found while validating a request."""
    path: Tuple[PathPart, ...]
    message: str

    @property
    def field(self) -> str:
        """Last named segment of the path (e.g. 'customPrice')."""
        for part in reversed(self.path):
            if isinstance(part, str):
                return part
        return ''

    @property
    def dotted_path(self) -> str:
        return '.'.join(str(part) for part in self.path)

    def to_dict(self):
        return {'path': self.dotted_path, 'message': self.message}


class OrderEngineError(Exception):
    """Base exception for all engine errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class NotFoundError(OrderEngineError):
    """Raised when a resource is not found."""
    def __init__(self, message="Data tidak ditemukan", payload=None):
        super().__init__(message, 404, payload)


class PermissionDenied(OrderEngineError):
    """
    Raised when role, activity state or ownership does not authorize an action.

    The message is always generic so that a denial does not reveal whether
    the target resource exists.
    """
    def __init__(self, message="Anda tidak memiliki izin untuk mengakses resource ini"):
        super().__init__(message, 403)


class InvalidTransition(OrderEngineError):
    """Raised for an illegal status transition or a stale current status."""

    ILLEGAL = 'illegal'
    STALE = 'stale'

    def __init__(self, current_status, new_status, reason=ILLEGAL, message=None):
        if message is None:
            if reason == self.STALE:
                message = 'Status order sudah berubah, muat ulang data sebelum mencoba lagi'
            else:
                message = 'Transisi status tidak valid'
        super().__init__(message, 409, {
            'reason': reason,
            'currentStatus': _status_value(current_status),
            'newStatus': _status_value(new_status),
        })
        self.current_status = current_status
        self.new_status = new_status
        self.reason = reason

    @property
    def is_stale(self) -> bool:
        return self.reason == self.STALE


class ValidationFailed(OrderEngineError):
    """Raised with every field-level violation collected from a request."""
    def __init__(self, violations: Iterable[Violation], message="Data order tidak valid"):
        self.violations: List[Violation] = list(violations)
        super().__init__(message, 422, {
            'violations': [v.to_dict() for v in self.violations]
        })

    @property
    def fields(self) -> List[str]:
        return [v.field for v in self.violations]

    @property
    def paths(self) -> List[str]:
        return [v.dotted_path for v in self.violations]

    def messages_for(self, field: str) -> List[str]:
        return [v.message for v in self.violations if v.field == field]


class PricingOverflow(ValidationFailed):
    """A computed monetary value exceeds the digit ceiling of its field."""
    def __init__(self, violations: Iterable[Violation], message="Nilai melebihi batas digit yang diizinkan"):
        super().__init__(violations, message)

    @classmethod
    def for_field(cls, path: Tuple[PathPart, ...], max_digits: int, decimal_places: int,
                  value=None) -> 'PricingOverflow':
        text = f'Nilai melebihi {max_digits} digit dengan {decimal_places} desimal'
        if value is not None:
            text = f'{text} ({value})'
        return cls([Violation(path, text)])


def _status_value(status: Optional[object]):
    return getattr(status, 'value', status)
