"""
Domain errors raised by the lifecycle engine and the messaging gateway.

Each error carries a stable code and a user-safe message. Views translate
them into HTTP responses with `error_response()`; nothing below the view
layer returns HTTP status codes directly.
"""

from enum import Enum

from rest_framework import status


class ErrorCode(Enum):
    """Machine-readable error codes."""

    VALIDATION_ERROR = 'VALIDATION_ERROR'
    PRECONDITION_FAILED = 'PRECONDITION_FAILED'
    INVALID_TRANSITION = 'INVALID_TRANSITION'
    DUPLICATE_APPLICATION = 'DUPLICATE_APPLICATION'
    DUPLICATE_REVIEW = 'DUPLICATE_REVIEW'
    TUITION_ALREADY_HIRED = 'TUITION_ALREADY_HIRED'
    INVALID_RANGE = 'INVALID_RANGE'
    IN_THE_PAST = 'IN_THE_PAST'
    EMPTY_MESSAGE = 'EMPTY_MESSAGE'
    UNAUTHORIZED = 'UNAUTHORIZED'
    NOT_FOUND = 'NOT_FOUND'
    TRANSPORT_UNAVAILABLE = 'TRANSPORT_UNAVAILABLE'


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code = ErrorCode.VALIDATION_ERROR
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = 'The request could not be processed.'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def __str__(self):
        return f"{self.code.value}: {self.message}"

    def as_dict(self):
        payload = {'code': self.code.value, 'detail': self.message}
        payload.update(self.context)
        return payload


class ValidationError(DomainError):
    """Raised when input is missing or malformed."""

    code = ErrorCode.VALIDATION_ERROR
    default_message = 'Invalid input.'

    def __init__(self, message=None, field=None, **context):
        if field is not None:
            context['field'] = field
        super().__init__(message, **context)


class PreconditionFailed(DomainError):
    """Raised when an entity is not in the state an operation requires."""

    code = ErrorCode.PRECONDITION_FAILED
    http_status = status.HTTP_409_CONFLICT
    default_message = 'This action is not available in the current state.'


class InvalidTransition(DomainError):
    """Raised when a status change is not allowed by the state machine."""

    code = ErrorCode.INVALID_TRANSITION
    http_status = status.HTTP_409_CONFLICT
    default_message = 'Invalid status transition.'

    def __init__(self, current_status, new_status, message=None):
        super().__init__(
            message or f'Invalid status transition from {current_status} to {new_status}.',
            current_status=current_status,
            requested_status=new_status,
        )


class DuplicateApplication(DomainError):
    code = ErrorCode.DUPLICATE_APPLICATION
    http_status = status.HTTP_409_CONFLICT
    default_message = 'You have already applied to this tuition.'


class DuplicateReview(DomainError):
    code = ErrorCode.DUPLICATE_REVIEW
    http_status = status.HTTP_409_CONFLICT
    default_message = 'You have already reviewed this tutor.'


class TuitionAlreadyHired(DomainError):
    code = ErrorCode.TUITION_ALREADY_HIRED
    http_status = status.HTTP_409_CONFLICT
    default_message = 'This tuition has already been filled.'


class InvalidRange(DomainError):
    code = ErrorCode.INVALID_RANGE
    default_message = 'Session end time must be after its start time.'


class InThePast(DomainError):
    code = ErrorCode.IN_THE_PAST
    default_message = 'Session cannot start in the past.'


class EmptyMessage(DomainError):
    code = ErrorCode.EMPTY_MESSAGE
    default_message = 'Message text cannot be empty.'


class Unauthorized(DomainError):
    """Raised when the caller is not the owner, counterparty or an admin."""

    code = ErrorCode.UNAUTHORIZED
    http_status = status.HTTP_403_FORBIDDEN
    default_message = 'You do not have permission to perform this action.'


class NotFound(DomainError):
    code = ErrorCode.NOT_FOUND
    http_status = status.HTTP_404_NOT_FOUND
    default_message = 'Not found.'

    def __init__(self, entity, entity_id):
        super().__init__(f'{entity} with ID {entity_id} does not exist.')
        self.entity = entity
        self.entity_id = entity_id


class TransportUnavailable(DomainError):
    """Raised when the messaging channel cannot accept a send."""

    code = ErrorCode.TRANSPORT_UNAVAILABLE
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Messaging is temporarily unavailable. Please try again.'
