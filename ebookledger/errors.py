from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    not_found = 101
    """ The referenced record id has no record entry. """
    exists = 102
    """ An insert-only write found an entry already present. """
    invalid_title = 103
    """ Title, summary or category bounds violated. """
    invalid_size = 104
    """ Size (or another numeric field) out of bounds. """
    unauthorized = 105
    """ The caller is not the owner of the record. """
    invalid_recipient = 106
    """ The target principal of a grant, donation or revocation is not allowed. """
    admin_only = 107
    """ The operation is reserved to the registry administrator. """
    access_error = 108
    """ An access-rights lookup or guard failed, eg revoking a grant that does not exist. """
    access_denied = 109
    """ A read was attempted without a true access flag. """


@dataclass
class LedgerError(Exception):
    """Raised when an operation is rejected.

    Nothing has been written when this is raised."""

    kind: ErrorKind
    message: str
    record_id: Optional[int] = field(default=None)

    @property
    def code(self) -> int:
        return self.kind.value

    def __str__(self):
        return f"{self.kind.name}: {self.message}"


def not_found(record_id: int, what: str = "record") -> LedgerError:
    return LedgerError(
        ErrorKind.not_found, f"no {what} found for id {record_id}", record_id
    )


def exists(record_id: int, message: str) -> LedgerError:
    return LedgerError(ErrorKind.exists, message, record_id)


def invalid_title(message: str, record_id: Optional[int] = None) -> LedgerError:
    return LedgerError(ErrorKind.invalid_title, message, record_id)


def invalid_size(message: str, record_id: Optional[int] = None) -> LedgerError:
    return LedgerError(ErrorKind.invalid_size, message, record_id)


def unauthorized(record_id: int, caller: str) -> LedgerError:
    return LedgerError(
        ErrorKind.unauthorized,
        f"{caller} is not the owner of record {record_id}",
        record_id,
    )


def invalid_recipient(record_id: int, recipient: str) -> LedgerError:
    return LedgerError(
        ErrorKind.invalid_recipient,
        f"{recipient} cannot be the target of this operation",
        record_id,
    )


def admin_only(caller: str) -> LedgerError:
    return LedgerError(ErrorKind.admin_only, f"{caller} is not the administrator")


def access_error(record_id: int, message: str) -> LedgerError:
    return LedgerError(ErrorKind.access_error, message, record_id)


def access_denied(record_id: int, caller: str) -> LedgerError:
    return LedgerError(
        ErrorKind.access_denied,
        f"{caller} has no access to record {record_id}",
        record_id,
    )
