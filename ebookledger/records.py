from dataclasses import dataclass, field
from typing import NewType, Sequence

from .errors import invalid_size, invalid_title

Principal = NewType("Principal", str)
""" Opaque identity of a caller, owner or grantee. """

MAX_TITLE = 63
MAX_SUMMARY = 255
MAX_CATEGORY = 31
MAX_CATEGORIES = 8
MAX_SIZE = 999_999_999


@dataclass(frozen=True)
class CallContext:
    """What the execution environment tells an operation about itself.

    Every operation that depends on who is calling or on the current height takes one of these.
    """

    caller: Principal
    height: int = field(default=0)

    def __post_init__(self):
        check_uint("height", self.height)
        if self.height < 0:
            raise ValueError(f"height must be a non-negative integer, got {self.height!r}")


@dataclass(frozen=True)
class Record:
    title: str
    owner: Principal
    size: int
    created_at: int
    summary: str
    categories: tuple[str, ...]


@dataclass(frozen=True)
class Metadata:
    """A record together with its id and current read count."""

    record_id: int
    title: str
    owner: Principal
    size: int
    created_at: int
    summary: str
    categories: tuple[str, ...]
    read_count: int = field(default=0)

    @classmethod
    def of_record(cls, record_id: int, record: Record, read_count: int = 0):
        return cls(
            record_id=record_id,
            title=record.title,
            owner=record.owner,
            size=record.size,
            created_at=record.created_at,
            summary=record.summary,
            categories=record.categories,
            read_count=read_count,
        )


def check_title(title: str):
    if not (0 < len(title) <= MAX_TITLE):
        raise invalid_title(f"title must have 1 to {MAX_TITLE} characters")


def check_uint(name: str, value: int):
    """Unsigned fields only take true integers, bools are rejected too."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")


def check_size(size: int):
    check_uint("size", size)
    if not (0 < size <= MAX_SIZE):
        raise invalid_size(f"size must be between 1 and {MAX_SIZE}")


def check_summary(summary: str):
    # summary failures share the title error kind
    if not (0 < len(summary) <= MAX_SUMMARY):
        raise invalid_title(f"summary must have 1 to {MAX_SUMMARY} characters")


def check_categories(categories: Sequence[str]) -> tuple[str, ...]:
    """Validate the categories and return them as a tuple."""
    if isinstance(categories, str):
        raise TypeError("categories must be a sequence of strings, not a string")
    cs = tuple(categories)
    if not (0 < len(cs) <= MAX_CATEGORIES):
        raise invalid_title(f"there must be 1 to {MAX_CATEGORIES} categories")
    for c in cs:
        if not (0 < len(c) <= MAX_CATEGORY):
            raise invalid_title(
                f"category {c!r} must have 1 to {MAX_CATEGORY} characters"
            )
    return cs


def check_fields(
    title: str, size: int, summary: str, categories: Sequence[str]
) -> tuple[str, ...]:
    """Validate all record fields in order, the first failure is raised."""
    check_title(title)
    check_size(size)
    check_summary(summary)
    return check_categories(categories)
