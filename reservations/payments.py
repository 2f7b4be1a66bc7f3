import logging
import time
from collections import namedtuple

from django.conf import settings
from django.db import transaction

from .exceptions import (
    BookingNotPending,
    BookingValidationError,
    PaymentVerificationFailed,
    SignatureMismatch,
)
from .gateway import RazorpayGateway
from .ledger import BookingLedger
from .models import Booking, Payment
from .notifications import dispatch_confirmation, get_notifier
from .pricing import to_minor_units

log = logging.getLogger(__name__)

ONLINE_METHODS = (Payment.Method.UPI, Payment.Method.CARD, Payment.Method.CREDIT, Payment.Method.DEBIT)

PaymentIntent = namedtuple(
    'PaymentIntent',
    ['booking', 'payment', 'gateway_order_id', 'gateway_key_id', 'amount', 'currency'],
)


class PaymentOrchestrator:
    """Cash confirms at once; online methods wait for a verified gateway signature"""

    def __init__(self, ledger, gateway, notifier, currency='INR'):
        self.ledger = ledger
        self.gateway = gateway
        self.notifier = notifier
        self.currency = currency

    @classmethod
    def from_settings(cls):
        return cls(
            ledger=BookingLedger.from_settings(),
            gateway=RazorpayGateway.from_settings(),
            notifier=get_notifier(),
            currency=settings.PAYMENT_CURRENCY,
        )

    def _save_payment(self, booking, method, details, transaction_id, order_id=''):
        payment, _ = Payment.objects.update_or_create(
            booking=booking,
            defaults={
                'amount': booking.total_amount,
                'payment_method': method,
                'payment_status': Payment.Status.PENDING,
                'transaction_id': transaction_id,
                'gateway_order_id': order_id,
                'payment_details': details or {},
            },
        )
        return payment

    def initiate_payment(self, booking_id, user, method, details=None):
        with transaction.atomic():
            booking = self.ledger.get_booking(booking_id, user, for_update=True)
            if booking.status != Booking.Status.PENDING:
                raise BookingNotPending(booking.status)

            if method == Payment.Method.CASH:
                payment = self._save_payment(
                    booking, method, details, transaction_id=f'CASH_{int(time.time() * 1000)}'
                )
                self.ledger.transition_status(booking, Booking.Status.CONFIRMED)
                log.info('Booking %s confirmed with cash at check-in', booking.pk)
                return PaymentIntent(booking, payment, None, None, None, None)

            if method not in ONLINE_METHODS:
                raise BookingValidationError(f"Unsupported payment method '{method}'.")

            amount = to_minor_units(booking.total_amount)
            order = self.gateway.create_order(
                amount=amount,
                currency=self.currency,
                receipt=booking.booking_reference,
                notes={'booking_id': str(booking.pk), 'user_id': str(user.pk)},
            )
            payment = self._save_payment(
                booking, method, details, transaction_id=order['id'], order_id=order['id']
            )

        return PaymentIntent(booking, payment, order['id'], self.gateway.key_id, amount, self.currency)

    def verify_payment(self, booking_id, user, order_id, payment_id, signature):
        with transaction.atomic():
            booking = self.ledger.get_booking(booking_id, user, for_update=True)
            payment = Payment.objects.select_for_update().filter(booking=booking).first()

            if not self.gateway.verify_signature(order_id, payment_id, signature):
                log.warning('Signature mismatch for booking %s, order %s', booking.pk, order_id)
                raise SignatureMismatch()
            if payment is None or payment.is_cash or payment.gateway_order_id != order_id:
                log.warning('Order %s does not belong to booking %s', order_id, booking.pk)
                raise PaymentVerificationFailed()

            already_verified = (
                booking.status == Booking.Status.CONFIRMED
                and payment.payment_status == Payment.Status.COMPLETED
                and payment.transaction_id == payment_id
            )
            if already_verified:
                log.info('Payment %s for booking %s already verified', payment_id, booking.pk)
                return booking
            if booking.status != Booking.Status.PENDING:
                raise BookingNotPending(booking.status)

            payment.payment_status = Payment.Status.COMPLETED
            payment.transaction_id = payment_id
            payment.save(update_fields=['payment_status', 'transaction_id', 'updated_at'])

            self.ledger.transition_status(booking, Booking.Status.CONFIRMED, save=False)
            self.ledger.transition_payment_status(booking, Booking.PaymentStatus.COMPLETED, save=False)
            booking.save(update_fields=['status', 'payment_status', 'updated_at'])

        log.info('Payment %s verified, booking %s confirmed', payment_id, booking.pk)
        dispatch_confirmation(self.notifier, booking)
        return booking
