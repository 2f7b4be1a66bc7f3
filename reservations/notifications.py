import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils.module_loading import import_string

log = logging.getLogger(__name__)


def get_notifier():
    return import_string(settings.BOOKING_NOTIFIER)()


def dispatch_confirmation(notifier, booking):
    """Returns True when the notifier finished; failures are logged, never raised"""
    try:
        notifier.booking_confirmed(booking)
    except Exception:
        log.exception('Confirmation for booking %s could not be sent', booking.pk)
        return False
    return True


def _recipient(booking):
    guest = getattr(booking, 'guest', None)
    if guest is not None and guest.email:
        return guest.email, guest.full_name
    user = booking.user
    return user.email, user.get_full_name()


class EmailBookingNotifier:
    def booking_confirmed(self, booking):
        to_email, name = _recipient(booking)
        if not to_email:
            log.warning('Booking %s has no email address, confirmation skipped', booking.pk)
            return

        hotel = booking.hotel
        subtotal = booking.room_rate * booking.num_nights
        tax_percent = (settings.BOOKING_TAX_RATE * 100).normalize()

        subject = f'Booking Confirmation - {booking.booking_reference}'
        message = (
            f"Dear {name or 'Guest'},\n\n"
            f"Thank you for your booking! Your reservation has been confirmed.\n\n"
            f"Reference: {booking.booking_reference}\n"
            f"Hotel: {hotel.name}\n"
            f"Room Type: {booking.room_type.name}\n"
            f"Check-in: {booking.check_in_date:%A, %d %B %Y}\n"
            f"Check-out: {booking.check_out_date:%A, %d %B %Y}\n"
            f"Number of Nights: {booking.num_nights}\n"
            f"Number of Guests: {booking.num_guests}\n"
            f"Room Rate (per night): {booking.room_rate:.2f}\n"
            f"Subtotal: {subtotal:.2f}\n"
            f"Taxes ({tax_percent:f}%): {booking.taxes:.2f}\n"
            f"Total Amount: {booking.total_amount:.2f} {settings.PAYMENT_CURRENCY}\n\n"
            f"Hotel Information\n"
            f"Address: {hotel.address or 'N/A'}\n"
            f"Phone: {hotel.phone or 'N/A'}\n"
            f"Email: {hotel.email or 'N/A'}\n\n"
            f'Please arrive at the hotel after 2:00 PM on your check-in date. '
            f"Check-out time is 11:00 AM.\n\n"
            f"Regards,\n"
            f'{settings.BOOKING_EMAIL_SIGNATURE}'
        )

        send_mail(subject, message, settings.DEFAULT_FROM_EMAIL, [to_email], fail_silently=False)
        log.info('Confirmation for booking %s sent to %s', booking.pk, to_email)
