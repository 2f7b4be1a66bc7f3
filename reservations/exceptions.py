import logging

from django.db import DatabaseError, IntegrityError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

log = logging.getLogger(__name__)


class BookingValidationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid booking request.'
    default_code = 'invalid'


class InvalidDateRange(BookingValidationError):
    default_detail = 'check_out_date must be after check_in_date.'
    default_code = 'invalid_date_range'


class BookingNotFound(APIException):
    # Same message whether the booking is missing or owned by someone else.
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class RoomTypeNotFound(BookingNotFound):
    pass


class StateConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The booking is not in a state that allows this action.'
    default_code = 'state_conflict'


class InvalidTransition(StateConflict):
    default_code = 'invalid_transition'

    def __init__(self, current, requested):
        super().__init__(f"Cannot move from '{current}' to '{requested}'.")
        self.current = current
        self.requested = requested


class BookingNotPending(StateConflict):
    default_code = 'booking_not_pending'

    def __init__(self, current):
        super().__init__(f'Booking is {current}; only pending bookings accept payment.')
        self.current = current


class AlreadyCancelled(StateConflict):
    default_detail = 'Booking is already cancelled.'
    default_code = 'already_cancelled'


class AlreadyCompleted(StateConflict):
    default_detail = 'Cannot cancel completed booking.'
    default_code = 'already_completed'


class RoomTypeUnavailable(StateConflict):
    default_detail = 'No rooms of this type are available for the selected dates.'
    default_code = 'room_type_unavailable'


class GatewayError(APIException):
    """
    Payment provider failure. The provider response is kept on the
    exception for the logs and never rendered to the client.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Payment could not be processed, please try again.'
    default_code = 'gateway_error'

    def __init__(self, diagnostics=None):
        super().__init__()
        self.diagnostics = diagnostics


class GatewayUnavailable(GatewayError):
    default_code = 'gateway_unavailable'


class PaymentVerificationFailed(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Payment verification failed.'
    default_code = 'verification_failed'


class SignatureMismatch(PaymentVerificationFailed):
    default_code = 'signature_mismatch'


class AvailabilityQueryFailed(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Availability could not be checked right now, please try again.'
    default_code = 'availability_query_failed'


# Postgres SQLSTATE codes -> messages safe to show a user.
DATABASE_ERROR_MESSAGES = {
    '23505': 'This record already exists. Please try again with different details.',
    '23503': 'The referenced record was not found. Please check your input.',
    '23502': 'Required information is missing. Please fill in all required fields.',
    '42501': 'You do not have permission to perform this action.',
    '42P01': 'The requested resource could not be found.',
}
GENERIC_ERROR_MESSAGE = 'An error occurred while processing your request. Please try again later.'


def safe_database_message(exc):
    cause = getattr(exc, '__cause__', None)
    code = getattr(cause, 'pgcode', None) or getattr(exc, 'pgcode', None)
    return DATABASE_ERROR_MESSAGES.get(code, GENERIC_ERROR_MESSAGE)


def custom_exception_handler(exc, context):
    if isinstance(exc, GatewayError):
        log.error('Payment gateway error in %s: %s', context.get('view').__class__.__name__, exc.diagnostics)

    response = exception_handler(exc, context)

    if response is None and isinstance(exc, IntegrityError):
        log.warning('Integrity error: %s', exc)
        return Response({'detail': safe_database_message(exc)}, status=status.HTTP_400_BAD_REQUEST)

    if response is None and isinstance(exc, DatabaseError):
        log.exception('Database error', exc_info=exc)
        return Response({'detail': safe_database_message(exc)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

    return response
