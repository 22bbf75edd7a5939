from __future__ import annotations

from typing import Optional


class ContactInsightsError(RuntimeError):
    """Base class for pipeline errors."""


class MissingCredentialsError(ContactInsightsError):
    """No HubSpot access token available. Non-retryable."""


class HubSpotRequestError(ContactInsightsError):
    """A HubSpot call returned non-2xx, HTML, or undecodable JSON."""

    def __init__(
        self,
        message: str,
        *,
        method: str,
        path: str,
        status_code: Optional[int] = None,
        body_excerpt: str = "",
    ):
        super().__init__(message)
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body_excerpt = body_excerpt


class FeatureUnavailable(ContactInsightsError):
    """A tier-gated sub-API answered 403/404 for this account."""

    def __init__(self, feature: str, status_code: Optional[int] = None):
        super().__init__(f"{feature} unavailable (HTTP {status_code})")
        self.feature = feature
        self.status_code = status_code


class AssociationFetchError(ContactInsightsError):
    """An association batch window failed. Fatal for the page."""

    def __init__(self, to_object_type: str, window_size: int, cause: BaseException):
        super().__init__(f"Association batch read failed for contacts→{to_object_type} ({window_size} ids): {cause}")
        self.to_object_type = to_object_type
        self.window_size = window_size
        self.status_code = getattr(cause, "status_code", None)
        self.body_excerpt = getattr(cause, "body_excerpt", "")


class DetailFetchError(ContactInsightsError):
    """An object batch read failed. Fatal."""

    def __init__(self, object_type: str, window_size: int, cause: BaseException):
        super().__init__(f"Batch read failed for {object_type} ({window_size} ids): {cause}")
        self.object_type = object_type
        self.window_size = window_size
        self.status_code = getattr(cause, "status_code", None)
        self.body_excerpt = getattr(cause, "body_excerpt", "")


class PaginationStalledError(ContactInsightsError):
    """The continuation token did not advance; refetching would loop forever."""


class CacheNotFound(ContactInsightsError):
    """No submission cache on disk yet. Drives the first full fetch; not a failure."""


class CacheCorruptError(ContactInsightsError):
    """The submission cache exists but could not be read or parsed. Fatal."""
