"""Derivation and conversion of compound booking identifiers.

Room offers are identified by ``<packageId>_<locationId>`` strings. Cancellation
policy lookups want the bare package id, and passing the whole offer id there is a
silent mismatch on the remote side, so the split lives here and nowhere else.

Hotel ids arrive as strings or numbers depending on the endpoint; ``HotelId`` keeps
one canonical value and converts on demand.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from booking_flow.core.errors import InvalidIdentifierFormat, MalformedIdentifier

OFFER_ID_SEPARATOR = "_"


def derive_package_id(offer_id: str, *, separator: str = OFFER_ID_SEPARATOR) -> str:
    """Return the package id bundled in ``offer_id``.

    Ids without the separator are rejected rather than passed through unchanged.
    """
    package_id, found, location_id = offer_id.partition(separator)
    if not found or not package_id or not location_id:
        raise MalformedIdentifier(offer_id, separator)
    return package_id


@dataclass(frozen=True, slots=True)
class HotelId:
    """Canonical hotel identifier with explicit string/number views."""

    value: str

    def as_string(self) -> str:
        return self.value

    def as_number(self) -> int:
        text = self.value.strip()
        if not text.isdigit():
            raise InvalidIdentifierFormat(f"Hotel id {self.value!r} is not numeric")
        return int(text)

    def __str__(self) -> str:
        return self.value


def normalize_hotel_id(external_id: Union[str, int, HotelId]) -> HotelId:
    if isinstance(external_id, HotelId):
        return external_id
    if isinstance(external_id, bool):
        raise InvalidIdentifierFormat(f"Hotel id {external_id!r} is not an identifier")
    if isinstance(external_id, int):
        return HotelId(str(external_id))
    if isinstance(external_id, str) and external_id.strip():
        return HotelId(external_id.strip())
    raise InvalidIdentifierFormat(f"Hotel id {external_id!r} is empty or of unsupported type")
