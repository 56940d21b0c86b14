"""
Pagination and ordering specs for list queries.
"""

from typing import Dict, Iterable, Optional, Union

from pydantic import BaseModel, Field

from .exceptions import ValidationError

ACCOUNT_ORDERING_FIELDS = ("id", "iban", "amount")
TRANSACTION_ORDERING_FIELDS = ("id", "date_updated")

DIRECTIONS = ("asc", "desc")

# field -> "asc" | "desc", applied in insertion order
Orderings = Dict[str, str]


class Paginator(BaseModel):
    """1-indexed page window"""
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=20, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page


def parse_ordering(raw: Optional[str], supported_fields: Iterable[str]) -> Optional[Orderings]:
    """
    Parse a transport ordering string such as ``"amount:desc|id:asc"``.

    Returns None for an empty string so callers fall back to the default
    ordering.

    Raises:
        ValidationError: on bad format, unsupported field or direction
    """
    if not raw:
        return None

    supported = set(supported_fields)
    orderings: Orderings = {}
    for condition in raw.split("|"):
        parts = condition.split(":")
        if len(parts) != 2:
            raise ValidationError(f"Wrong ordering filter format: {condition!r}")

        field_name, direction = parts
        if field_name not in supported:
            raise ValidationError(f"Unsupported ordering field [{field_name}]")
        if direction not in DIRECTIONS:
            raise ValidationError(f"Unsupported ordering direction [{direction}]")

        orderings[field_name] = direction

    return orderings


def validate_ordering(orderings: Optional[Orderings], supported_fields: Iterable[str]) -> Orderings:
    """Check an already-built ordering spec against the allow-list; default is id ascending"""
    if not orderings:
        return {"id": "asc"}

    supported = set(supported_fields)
    normalised: Orderings = {}
    for field_name, direction in orderings.items():
        if field_name not in supported:
            raise ValidationError(f"Unsupported ordering field [{field_name}]")
        direction = str(direction).lower()
        if direction not in DIRECTIONS:
            raise ValidationError(f"Unsupported ordering direction [{direction}]")
        normalised[field_name] = direction
    return normalised


def resolve_paginator(paginator: Optional[Paginator], default_per_page: int,
                      max_per_page: int) -> Paginator:
    """Fill in the default window and reject pages larger than ``max_per_page``"""
    if paginator is None:
        return Paginator(page=1, per_page=default_per_page)
    if paginator.per_page > max_per_page:
        raise ValidationError(
            f"per_page must not exceed {max_per_page}, got {paginator.per_page}",
            per_page=paginator.per_page
        )
    return paginator


def resolve_ordering(ordering: Union[str, Orderings, None],
                     supported_fields: Iterable[str]) -> Orderings:
    """Accept either a raw transport string or an ordering dict"""
    if isinstance(ordering, str):
        ordering = parse_ordering(ordering, supported_fields)
    return validate_ordering(ordering, supported_fields)
