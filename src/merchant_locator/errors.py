"""Error taxonomy for merchant discovery."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for errors raised by the discovery core."""

    status_code = 500


class InvalidCoordinateError(DiscoveryError, ValueError):
    """Latitude/longitude is malformed or out of range."""

    status_code = 400


class InvalidQueryParameterError(DiscoveryError, ValueError):
    """Pagination or filter parameter violates its contract."""

    status_code = 400


class SnapshotUnavailableError(DiscoveryError):
    """No merchant snapshot has been published yet. Retryable."""

    status_code = 503


class QueryCancelledError(DiscoveryError):
    """The caller's cancellation signal fired while candidates were being processed."""

    status_code = 503


class InvariantViolationError(DiscoveryError, RuntimeError):
    """Internal arithmetic produced a value that validated input can never produce."""

    status_code = 500
