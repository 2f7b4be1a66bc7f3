import logging
import secrets
import string
import time

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .availability import room_type_has_availability
from .exceptions import (
    BookingNotFound,
    BookingValidationError,
    InvalidTransition,
    RoomTypeNotFound,
    RoomTypeUnavailable,
    StateConflict,
)
from .models import Booking, BookingGuest, Payment, RoomType
from .pricing import compute_nights, compute_totals, to_money

log = logging.getLogger(__name__)

REFERENCE_PREFIX = 'BK'
REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
BASE36_DIGITS = string.digits + string.ascii_uppercase


def _base36(number):
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return ''.join(reversed(digits)) or '0'


def generate_booking_reference():
    """e.g. BKM2Q8ZK1C-7XH3QD: millisecond timestamp in base36 plus a random suffix."""
    stamp = _base36(int(time.time() * 1000))
    suffix = ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(6))
    return f'{REFERENCE_PREFIX}{stamp}-{suffix}'


class BookingLedger:
    def __init__(self, tax_rate):
        self.tax_rate = tax_rate

    @classmethod
    def from_settings(cls):
        return cls(tax_rate=settings.BOOKING_TAX_RATE)

    def create_booking(self, user, hotel_id, room_type_id, check_in, check_out, num_guests, guest=None):
        nights = compute_nights(check_in, check_out)
        if num_guests is None or num_guests < 1:
            raise BookingValidationError('num_guests must be at least 1.')
        if check_in < timezone.localdate():
            raise BookingValidationError('check_in_date cannot be in the past.')

        with transaction.atomic():
            # Locking the room type serialises bookings competing for the same inventory.
            room_type = (
                RoomType.objects.select_for_update()
                .filter(pk=room_type_id, hotel_id=hotel_id)
                .first()
            )
            if room_type is None:
                raise RoomTypeNotFound()
            if num_guests > room_type.max_guests:
                raise BookingValidationError(
                    f'This room type accommodates at most {room_type.max_guests} guests.'
                )
            if not room_type_has_availability(room_type, check_in, check_out):
                raise RoomTypeUnavailable()

            rate = room_type.base_price_per_night
            totals = compute_totals(rate, nights, self.tax_rate)
            taxes = to_money(totals.taxes)

            booking = Booking.objects.create(
                booking_reference=generate_booking_reference(),
                user=user,
                hotel_id=room_type.hotel_id,
                room_type=room_type,
                check_in_date=check_in,
                check_out_date=check_out,
                num_guests=num_guests,
                num_nights=nights,
                room_rate=rate,
                taxes=taxes,
                total_amount=to_money(totals.subtotal) + taxes,
                status=Booking.Status.PENDING,
                payment_status=Booking.PaymentStatus.PENDING,
            )
            if guest:
                BookingGuest.objects.create(
                    booking=booking,
                    full_name=guest['full_name'],
                    email=guest['email'],
                    phone=guest.get('phone', ''),
                )

        log.info('Booking %s created for user %s (%s)', booking.pk, user.pk, booking.booking_reference)
        return booking

    def list_bookings(self, user):
        return (
            Booking.objects.filter(user=user)
            .select_related('hotel', 'room_type', 'payment', 'guest')
            .order_by('-created_at')
        )

    def get_booking(self, booking_id, user, for_update=False):
        """The booking, only if `user` owns it. Missing and foreign bookings look the same."""
        qs = Booking.objects.filter(pk=booking_id, user=user)
        if for_update:
            qs = qs.select_for_update()
        booking = qs.first()
        if booking is None:
            raise BookingNotFound()
        return booking

    def transition_status(self, booking, new_status, save=True):
        if not booking.can_transition_to(new_status):
            raise InvalidTransition(booking.status, new_status)
        log.info('Booking %s: status %s -> %s', booking.pk, booking.status, new_status)
        booking.status = new_status
        if save:
            booking.save(update_fields=['status', 'updated_at'])
        return booking

    def transition_payment_status(self, booking, new_payment_status, save=True):
        if not booking.can_transition_payment_to(new_payment_status):
            raise InvalidTransition(booking.payment_status, new_payment_status)
        log.info(
            'Booking %s: payment_status %s -> %s', booking.pk, booking.payment_status, new_payment_status
        )
        booking.payment_status = new_payment_status
        if save:
            booking.save(update_fields=['payment_status', 'updated_at'])
        return booking

    # Back-office transitions

    @transaction.atomic
    def complete_booking(self, booking_id):
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise BookingNotFound()
        return self.transition_status(booking, Booking.Status.COMPLETED)

    @transaction.atomic
    def record_cash_collected(self, booking_id):
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise BookingNotFound()
        payment = Payment.objects.select_for_update().filter(booking=booking).first()
        if payment is None or not payment.is_cash:
            raise StateConflict('Booking has no cash payment to record.')
        if payment.payment_status != Payment.Status.PENDING:
            raise InvalidTransition(payment.payment_status, Payment.Status.COMPLETED)

        self.transition_payment_status(booking, Booking.PaymentStatus.COMPLETED)
        payment.payment_status = Payment.Status.COMPLETED
        payment.save(update_fields=['payment_status', 'updated_at'])
        return booking
