"""
Error taxonomy for the search relay.

Every failure that can leave the package is one of these types, so the
HTTP layer (or the CLI) can map them to an outcome without inspecting
messages. ``status_code`` is the suggested HTTP-equivalent status.

Per-candidate failures (ImageDecodeError, NetworkError, FetchTimeoutError
raised while scoring a catalog product) are recovered inside the ranker
and never reach the caller.
"""


class SearchError(Exception):
    """Base class for all search relay errors."""

    status_code = 500


class UsageError(SearchError):
    """Neither or both of query text / image bytes were supplied."""

    status_code = 400


class ImageDecodeError(SearchError):
    """Image bytes or pixel data could not be decoded."""

    status_code = 400


class CatalogFetchError(SearchError):
    """Upstream catalog unreachable or returned malformed data."""

    status_code = 502


class NetworkError(SearchError):
    """Outbound image fetch failed."""

    status_code = 502


class FetchTimeoutError(NetworkError):
    """Outbound image fetch exceeded its timeout."""

    status_code = 504


class ModerationRejection(SearchError):
    """Uploaded image was classified as disallowed content."""

    status_code = 422

    def __init__(self, label: str, probability: float):
        super().__init__(
            f"Image rejected: '{label}' detected with probability {probability:.2f}"
        )
        self.label = label
        self.probability = probability


class ConfigurationError(SearchError):
    """Required process settings (e.g. storefront credentials) are missing."""

    status_code = 500
