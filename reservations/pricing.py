from collections import namedtuple
from decimal import ROUND_HALF_UP, Decimal

from .exceptions import BookingValidationError, InvalidDateRange

CENT = Decimal('0.01')

PriceBreakdown = namedtuple('PriceBreakdown', ['subtotal', 'taxes', 'total'])


def _as_decimal(value):
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.12 from turning into 0.11999999999999999555910790149937
    return Decimal(str(value))


def compute_nights(check_in, check_out):
    """Number of nights between two dates; check_out is exclusive."""
    if check_in is None or check_out is None or check_out <= check_in:
        raise InvalidDateRange()
    return (check_out - check_in).days


def compute_totals(rate, nights, tax_rate):
    """Subtotal, taxes and total at full precision; round with `to_money` when persisting"""
    rate = _as_decimal(rate)
    tax_rate = _as_decimal(tax_rate)
    if rate < 0 or tax_rate < 0:
        raise BookingValidationError('Rates must not be negative.')
    if nights < 1:
        raise BookingValidationError('A stay must be at least one night.')

    subtotal = rate * nights
    taxes = subtotal * tax_rate
    return PriceBreakdown(subtotal=subtotal, taxes=taxes, total=subtotal + taxes)


def to_money(value):
    return _as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount):
    """Amount in paise (or cents) as the gateway expects it."""
    return int((_as_decimal(amount) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
