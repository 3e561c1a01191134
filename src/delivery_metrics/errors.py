"""Custom exception types for the delivery metrics engine."""


class MetricsError(Exception):
    """Base exception for all recoverable delivery metrics errors."""


class ConfigurationError(MetricsError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(MetricsError):
    """Raised when GitHub authentication credentials are unavailable or invalid."""


class ApiError(MetricsError):
    """Raised when a GitHub API request fails or returns an unexpected response."""


class DataValidationError(MetricsError):
    """Raised when API payloads or computed metric data do not meet expected constraints."""
