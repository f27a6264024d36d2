"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps. Business logic does
not go here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Optimistic locking version counter

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - NotFoundError: Resource not found
    - PermissionDeniedError: Authorization failures
    - InvalidStateError: Operation not allowed in the current state
    - GatewayError: Payment gateway failures
    - ComputationError: Fee or visit fee computation failures

Helpers (import from core.helpers):
    - parse_uuid: Parse an identifier or raise ValidationError

Views (import from core.views):
    - error_response: Map a failed ServiceResult to an HTTP response
    - health_check: Database and cache liveness endpoint

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    BaseApplicationError,
    ComputationError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

# Helpers (no Django model dependencies)
from .helpers import parse_uuid

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidStateError",
    "GatewayError",
    "ComputationError",
    # Helpers
    "parse_uuid",
]
