# src/scrapers/errors.py

"""Exceptions raised by the marketplace client.

A pattern that fails to match on a product page is not an error: the
parser leaves that field at its zero value and logs the miss.
"""


class NellisError(Exception):
    """Base class for marketplace client failures."""


class TransientFetchError(NellisError):
    """Network failure, 5xx, exhausted retries or an open circuit.

    Retryable by the caller; never aborts sibling work.
    """


class MalformedResponseError(NellisError):
    """The response body did not have the expected JSON shape."""


class ListingNotFoundError(NellisError):
    """The requested listing id does not exist upstream."""

    def __init__(self, listing_id: int) -> None:
        super().__init__(f"Listing {listing_id} not found")
        self.listing_id = listing_id
