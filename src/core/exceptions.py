"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Each carries the HTTP status the
API layer answers with.
"""

from typing import List, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    status_code = 400


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors, with one message per offending field."""

    status_code = 400

    def __init__(
        self,
        message: str = "Validation error",
        errors: Optional[List[str]] = None,
        details: Optional[dict] = None
    ):
        self.errors = errors or []
        super().__init__(message, details)


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class AuthenticationException(ApplicationException):
    """Missing, invalid or expired credentials."""

    status_code = 401

    def __init__(self, message: str = "Authentication required", details: Optional[dict] = None):
        super().__init__(message, details)


class AuthorizationException(ApplicationException):
    """Authenticated user lacks the role required for the operation."""

    status_code = 403

    def __init__(self, message: str = "Access denied", details: Optional[dict] = None):
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    status_code = 503

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class GeoIPException(ExternalServiceException):
    """Exception for geo-ip lookup failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Geo-IP Service", message, details)
