import logging
from collections import namedtuple
from datetime import datetime, time
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from .exceptions import AlreadyCancelled, AlreadyCompleted, GatewayError
from .gateway import RazorpayGateway
from .ledger import BookingLedger
from .models import Booking, BookingCancellation, Payment
from .pricing import to_minor_units, to_money

log = logging.getLogger(__name__)

DEFAULT_REASON = 'Customer cancellation'

CancellationResult = namedtuple(
    'CancellationResult',
    ['booking', 'refund_amount', 'refund_percentage', 'refund_status', 'refund_id'],
)


def hours_until_check_in(check_in_date, now):
    """Hours from `now` to midnight of the check-in day, in the current time zone."""
    check_in = timezone.make_aware(datetime.combine(check_in_date, time.min))
    return Decimal((check_in - now).total_seconds()) / 3600


def refund_percentage(hours):
    if hours > 24:
        return 100
    if hours > 0:
        return 50
    return 0


class CancellationPolicy:
    def __init__(self, ledger, gateway, clock=timezone.now):
        self.ledger = ledger
        self.gateway = gateway
        self.clock = clock

    @classmethod
    def from_settings(cls):
        return cls(ledger=BookingLedger.from_settings(), gateway=RazorpayGateway.from_settings())

    def _refund(self, booking, payment, amount, reason):
        """Returns (refund_status, refund_id). Gateway trouble is reported, not raised."""
        if payment.is_cash or not payment.transaction_id:
            return BookingCancellation.RefundStatus.PENDING_MANUAL, ''

        try:
            refund = self.gateway.refund(
                payment.transaction_id,
                amount=to_minor_units(amount),
                notes={'booking_id': str(booking.pk), 'reason': reason},
            )
        except GatewayError as exc:
            log.error('Refund for booking %s failed: %s', booking.pk, exc.diagnostics)
            return BookingCancellation.RefundStatus.FAILED, ''

        payment.payment_status = Payment.Status.REFUNDED
        payment.save(update_fields=['payment_status', 'updated_at'])
        return BookingCancellation.RefundStatus.INITIATED, refund.get('id', '')

    def cancel_booking(self, booking_id, user, reason=''):
        reason = reason or DEFAULT_REASON

        with transaction.atomic():
            booking = self.ledger.get_booking(booking_id, user, for_update=True)
            if booking.status == Booking.Status.CANCELLED:
                raise AlreadyCancelled()
            if booking.status == Booking.Status.COMPLETED:
                raise AlreadyCompleted()

            hours = hours_until_check_in(booking.check_in_date, self.clock())
            percentage = refund_percentage(hours)
            refund_amount = to_money(booking.total_amount * percentage / 100)

            refund_status = BookingCancellation.RefundStatus.NOT_APPLICABLE
            refund_id = ''
            payment = Payment.objects.select_for_update().filter(booking=booking).first()
            paid = booking.payment_status == Booking.PaymentStatus.COMPLETED and payment is not None

            if refund_amount > 0 and paid:
                refund_status, refund_id = self._refund(booking, payment, refund_amount, reason)
                self.ledger.transition_payment_status(booking, Booking.PaymentStatus.REFUNDED, save=False)

            self.ledger.transition_status(booking, Booking.Status.CANCELLED, save=False)
            booking.save(update_fields=['status', 'payment_status', 'updated_at'])

            BookingCancellation.objects.create(
                booking=booking,
                reason=reason,
                cancelled_by=user,
                hours_before_check_in=to_money(hours),
                refund_percentage=percentage,
                refund_amount=refund_amount,
                refund_status=refund_status,
                refund_id=refund_id,
            )

        log.info(
            'Booking %s cancelled %.1fh before check-in: %s%% refund of %s (%s)',
            booking.pk, hours, percentage, refund_amount, refund_status,
        )
        return CancellationResult(booking, refund_amount, percentage, refund_status, refund_id)
