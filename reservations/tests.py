import hashlib
import hmac
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.core import mail
from django.db import DatabaseError, IntegrityError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from .availability import find_available_room_types
from .cancellation import CancellationPolicy, hours_until_check_in, refund_percentage
from .exceptions import (
    DATABASE_ERROR_MESSAGES,
    GENERIC_ERROR_MESSAGE,
    AlreadyCancelled,
    AlreadyCompleted,
    AvailabilityQueryFailed,
    BookingNotFound,
    BookingNotPending,
    BookingValidationError,
    GatewayUnavailable,
    InvalidDateRange,
    InvalidTransition,
    PaymentVerificationFailed,
    RoomTypeNotFound,
    RoomTypeUnavailable,
    SignatureMismatch,
    StateConflict,
    custom_exception_handler,
)
from .gateway import RazorpayGateway
from .ledger import BookingLedger, generate_booking_reference
from .models import Booking, BookingCancellation, BookingGuest, Hotel, Payment, Room, RoomAvailability, RoomType
from .notifications import EmailBookingNotifier
from .payments import PaymentOrchestrator
from .pricing import compute_nights, compute_totals, to_minor_units, to_money
from .serializers import luhn_valid

User = get_user_model()

TAX_RATE = Decimal('0.12')
KEY_ID = 'rzp_test_key'
KEY_SECRET = 'test_secret'

gateway_settings = override_settings(
    RAZORPAY_KEY_ID=KEY_ID,
    RAZORPAY_KEY_SECRET=KEY_SECRET,
    BOOKING_TAX_RATE=TAX_RATE,
    EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend',
)


def make_hotel(name='Seaside Grand', price='2000.00', max_guests=2, rooms=('101',)):
    hotel = Hotel.objects.create(name=name, address='12 Marine Drive', phone='+91 22 5550 1000')
    room_type = RoomType.objects.create(
        hotel=hotel,
        name='Standard Room',
        base_price_per_night=Decimal(price),
        max_guests=max_guests,
    )
    created = [Room.objects.create(room_type=room_type, room_number=number) for number in rooms]
    return hotel, room_type, created


def make_booking(user, room_type, check_in, check_out, status=Booking.Status.CONFIRMED, **kwargs):
    nights = (check_out - check_in).days
    rate = room_type.base_price_per_night
    kwargs.setdefault('total_amount', rate * nights)
    return Booking.objects.create(
        booking_reference=generate_booking_reference(),
        user=user,
        hotel=room_type.hotel,
        room_type=room_type,
        check_in_date=check_in,
        check_out_date=check_out,
        num_guests=1,
        num_nights=nights,
        room_rate=rate,
        taxes=Decimal('0.00'),
        status=status,
        **kwargs,
    )


def gateway_response(body, ok=True, status_code=200):
    res = mock.Mock(ok=ok, status_code=status_code, text=str(body))
    res.json.return_value = body
    return res


def sign(order_id, payment_id, secret=KEY_SECRET):
    return hmac.new(secret.encode(), f'{order_id}|{payment_id}'.encode(), hashlib.sha256).hexdigest()


def flip_bit(text, index):
    return text[:index] + chr(ord(text[index]) ^ 1) + text[index + 1:]


class PricingTestCase(SimpleTestCase):
    """Nights and totals"""

    def test_total_is_subtotal_plus_tax(self):
        """total == r*n + r*n*tax for every rate and stay length"""
        for rate in (Decimal('0'), Decimal('999.99'), Decimal('2000'), Decimal('4599.50')):
            for nights in (1, 2, 3, 14):
                with self.subTest(rate=rate, nights=nights):
                    totals = compute_totals(rate, nights, TAX_RATE)
                    self.assertEqual(totals.subtotal, rate * nights)
                    self.assertEqual(totals.total, rate * nights + rate * nights * TAX_RATE)

    def test_three_nights_at_2000(self):
        totals = compute_totals(2000, 3, 0.12)
        self.assertEqual(totals.subtotal, Decimal('6000'))
        self.assertEqual(to_money(totals.taxes), Decimal('720.00'))
        self.assertEqual(to_money(totals.total), Decimal('6720.00'))

    def test_compute_nights_rejects_empty_or_reversed_range(self):
        day = date(2030, 1, 5)
        for check_out in (day, day - timedelta(days=1), day - timedelta(days=30)):
            with self.subTest(check_out=check_out):
                with self.assertRaises(InvalidDateRange):
                    compute_nights(day, check_out)

    def test_compute_nights(self):
        self.assertEqual(compute_nights(date(2030, 1, 5), date(2030, 1, 10)), 5)
        self.assertEqual(compute_nights(date(2030, 12, 31), date(2031, 1, 1)), 1)

    def test_negative_rate_or_zero_nights_rejected(self):
        with self.assertRaises(BookingValidationError):
            compute_totals(Decimal('-1'), 2, TAX_RATE)
        with self.assertRaises(BookingValidationError):
            compute_totals(Decimal('100'), 0, TAX_RATE)

    def test_money_rounds_half_up(self):
        self.assertEqual(to_money(Decimal('0.125')), Decimal('0.13'))
        self.assertEqual(to_money(Decimal('10.004')), Decimal('10.00'))
        self.assertEqual(to_minor_units(Decimal('6720.00')), 672000)
        self.assertEqual(to_minor_units(Decimal('0.015')), 2)


class AvailabilityTestCase(TestCase):
    """Room type search over a date range"""

    def setUp(self):
        self.user = User.objects.create_user('guest', email='guest@example.com', password='x')
        self.hotel, self.room_type, (self.room,) = make_hotel()
        year = timezone.localdate().year + 1
        self.jan = lambda day: date(year, 1, day)

    def search(self, check_in, check_out, num_guests=1):
        return find_available_room_types(self.hotel.pk, check_in, check_out, num_guests)

    def test_overlapping_ranges_are_unavailable(self):
        """A stay on [Jan 5, Jan 10) blocks every range that intersects it"""
        make_booking(self.user, self.room_type, self.jan(5), self.jan(10))

        scenarios = [
            (self.jan(3), self.jan(6), 'starts before and overlaps'),
            (self.jan(7), self.jan(12), 'starts during existing booking'),
            (self.jan(6), self.jan(8), 'completely within existing booking'),
            (self.jan(1), self.jan(15), 'completely encompasses existing booking'),
            (self.jan(9), self.jan(10), 'last night'),
        ]
        for check_in, check_out, description in scenarios:
            with self.subTest(scenario=description):
                self.assertEqual(self.search(check_in, check_out), [])

    def test_adjacent_ranges_are_available(self):
        """Check-out day is free for the next guest"""
        make_booking(self.user, self.room_type, self.jan(5), self.jan(10))

        for check_in, check_out in ((self.jan(10), self.jan(12)), (self.jan(1), self.jan(5))):
            with self.subTest(check_in=check_in, check_out=check_out):
                results = self.search(check_in, check_out)
                self.assertEqual(len(results), 1)
                self.assertEqual(results[0].room_type, self.room_type)
                self.assertEqual(results[0].available_rooms_count, 1)

    def test_booking_assigned_to_room_blocks_that_room(self):
        make_booking(self.user, self.room_type, self.jan(5), self.jan(10), room=self.room)
        self.assertEqual(self.search(self.jan(6), self.jan(7)), [])

    def test_cancelled_and_completed_bookings_do_not_block(self):
        make_booking(self.user, self.room_type, self.jan(5), self.jan(10), status=Booking.Status.CANCELLED)
        make_booking(self.user, self.room_type, self.jan(5), self.jan(10), status=Booking.Status.COMPLETED)
        self.assertEqual(len(self.search(self.jan(6), self.jan(8))), 1)

    def test_pending_bookings_block(self):
        make_booking(self.user, self.room_type, self.jan(5), self.jan(10), status=Booking.Status.PENDING)
        self.assertEqual(self.search(self.jan(6), self.jan(8)), [])

    def test_rooms_out_of_service_are_excluded(self):
        for room_status in (Room.Status.MAINTENANCE, Room.Status.OCCUPIED, Room.Status.RESERVED):
            with self.subTest(status=room_status):
                Room.objects.filter(pk=self.room.pk).update(status=room_status)
                self.assertEqual(self.search(self.jan(5), self.jan(6)), [])

    def test_blackout_night_excludes_room(self):
        RoomAvailability.objects.create(room=self.room, date=self.jan(6), is_available=False, reason='Renovation')

        self.assertEqual(self.search(self.jan(5), self.jan(8)), [])
        self.assertEqual(len(self.search(self.jan(7), self.jan(9))), 1)

    def test_room_type_too_small_is_excluded(self):
        self.assertEqual(self.search(self.jan(5), self.jan(6), num_guests=3), [])
        self.assertEqual(len(self.search(self.jan(5), self.jan(6), num_guests=2)), 1)

    def test_count_subtracts_unassigned_bookings(self):
        Room.objects.create(room_type=self.room_type, room_number='102')
        Room.objects.create(room_type=self.room_type, room_number='103')
        make_booking(self.user, self.room_type, self.jan(5), self.jan(10))

        (result,) = self.search(self.jan(6), self.jan(7))
        self.assertEqual(result.available_rooms_count, 2)

    def test_unassigned_bookings_on_different_nights_share_a_room(self):
        Room.objects.create(room_type=self.room_type, room_number='102')
        make_booking(self.user, self.room_type, self.jan(1), self.jan(2))
        make_booking(self.user, self.room_type, self.jan(3), self.jan(4))

        (result,) = self.search(self.jan(1), self.jan(5))
        self.assertEqual(result.available_rooms_count, 1)

        booking = BookingLedger(tax_rate=TAX_RATE).create_booking(
            self.user, self.hotel.pk, self.room_type.pk, self.jan(1), self.jan(5), 1
        )
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(self.search(self.jan(1), self.jan(5)), [])

    def test_unassigned_bookings_on_the_same_night_add_up(self):
        Room.objects.create(room_type=self.room_type, room_number='102')
        make_booking(self.user, self.room_type, self.jan(1), self.jan(3))
        make_booking(self.user, self.room_type, self.jan(2), self.jan(4))

        self.assertEqual(self.search(self.jan(1), self.jan(5)), [])
        (result,) = self.search(self.jan(3), self.jan(5))
        self.assertEqual(result.available_rooms_count, 1)

    def test_price_is_base_rate_without_overrides(self):
        (result,) = self.search(self.jan(5), self.jan(6))
        self.assertEqual(result.price_per_night, Decimal('2000.00'))

    def test_cheapest_override_in_range_wins(self):
        other = Room.objects.create(room_type=self.room_type, room_number='102')
        RoomAvailability.objects.create(room=self.room, date=self.jan(5), price_override=Decimal('1800.00'))
        RoomAvailability.objects.create(room=other, date=self.jan(6), price_override=Decimal('1500.00'))
        # Outside the stay
        RoomAvailability.objects.create(room=other, date=self.jan(9), price_override=Decimal('900.00'))

        (result,) = self.search(self.jan(5), self.jan(8))
        self.assertEqual(result.price_per_night, Decimal('1500.00'))

    def test_invalid_input(self):
        with self.assertRaises(InvalidDateRange):
            self.search(self.jan(5), self.jan(5))
        with self.assertRaises(BookingValidationError):
            self.search(self.jan(5), self.jan(6), num_guests=0)

    def test_store_failure_is_reported_as_unavailable_service(self):
        with mock.patch('reservations.availability.free_rooms', side_effect=DatabaseError('connection lost')):
            with self.assertLogs('reservations.availability', level='ERROR'):
                with self.assertRaises(AvailabilityQueryFailed):
                    self.search(self.jan(5), self.jan(6))


class BookingLedgerTestCase(TestCase):
    """Booking creation, ownership and state transitions"""

    def setUp(self):
        self.user = User.objects.create_user('guest', email='guest@example.com', password='x')
        self.other = User.objects.create_user('other', email='other@example.com', password='x')
        self.hotel, self.room_type, (self.room,) = make_hotel()
        self.ledger = BookingLedger(tax_rate=TAX_RATE)
        self.check_in = timezone.localdate() + timedelta(days=10)
        self.check_out = self.check_in + timedelta(days=3)

    def create(self, **kwargs):
        params = {
            'user': self.user,
            'hotel_id': self.hotel.pk,
            'room_type_id': self.room_type.pk,
            'check_in': self.check_in,
            'check_out': self.check_out,
            'num_guests': 2,
        }
        params.update(kwargs)
        return self.ledger.create_booking(**params)

    def test_create_booking_prices_server_side(self):
        booking = self.create()

        self.assertEqual(booking.num_nights, 3)
        self.assertEqual(booking.room_rate, Decimal('2000.00'))
        self.assertEqual(booking.taxes, Decimal('720.00'))
        self.assertEqual(booking.total_amount, Decimal('6720.00'))
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.PENDING)
        self.assertTrue(booking.booking_reference.startswith('BK'))
        self.assertIsNone(booking.room)

    def test_create_booking_with_guest_details(self):
        booking = self.create(guest={'full_name': 'Asha Rao', 'email': 'asha@example.com'})

        guest = BookingGuest.objects.get(booking=booking)
        self.assertEqual(guest.full_name, 'Asha Rao')
        self.assertEqual(guest.phone, '')

    def test_references_are_unique(self):
        references = {generate_booking_reference() for _ in range(200)}
        self.assertEqual(len(references), 200)

    def test_check_in_in_the_past_rejected(self):
        yesterday = timezone.localdate() - timedelta(days=1)
        with self.assertRaises(BookingValidationError):
            self.create(check_in=yesterday, check_out=yesterday + timedelta(days=2))

    def test_invalid_range_rejected(self):
        with self.assertRaises(InvalidDateRange):
            self.create(check_out=self.check_in)

    def test_room_type_of_another_hotel_not_found(self):
        other_hotel, _, _ = make_hotel(name='Hillcrest')
        with self.assertRaises(RoomTypeNotFound):
            self.create(hotel_id=other_hotel.pk)

    def test_too_many_guests_rejected(self):
        with self.assertRaises(BookingValidationError):
            self.create(num_guests=3)

    def test_sold_out_room_type_rejected(self):
        self.create()
        with self.assertRaises(RoomTypeUnavailable):
            self.create(check_in=self.check_in + timedelta(days=1))
        self.assertEqual(Booking.objects.count(), 1)

    def test_get_booking_hides_other_users_bookings(self):
        booking = self.create()

        self.assertEqual(self.ledger.get_booking(booking.pk, self.user), booking)
        with self.assertRaises(BookingNotFound):
            self.ledger.get_booking(booking.pk, self.other)
        with self.assertRaises(BookingNotFound):
            self.ledger.get_booking(booking.pk + 1000, self.user)

    def test_list_bookings_only_returns_own(self):
        mine = self.create()
        make_booking(self.other, self.room_type, self.check_in + timedelta(days=20), self.check_in + timedelta(days=21))

        self.assertEqual(list(self.ledger.list_bookings(self.user)), [mine])

    def test_status_transitions(self):
        allowed = [
            (Booking.Status.PENDING, Booking.Status.CONFIRMED),
            (Booking.Status.PENDING, Booking.Status.CANCELLED),
            (Booking.Status.CONFIRMED, Booking.Status.COMPLETED),
            (Booking.Status.CONFIRMED, Booking.Status.CANCELLED),
        ]
        rejected = [
            (Booking.Status.PENDING, Booking.Status.COMPLETED),
            (Booking.Status.CONFIRMED, Booking.Status.PENDING),
            (Booking.Status.COMPLETED, Booking.Status.CANCELLED),
            (Booking.Status.CANCELLED, Booking.Status.CONFIRMED),
            (Booking.Status.CANCELLED, Booking.Status.PENDING),
        ]
        booking = self.create()

        for current, requested in allowed:
            with self.subTest(current=current, requested=requested):
                booking.status = current
                self.ledger.transition_status(booking, requested)
                booking.refresh_from_db()
                self.assertEqual(booking.status, requested)

        for current, requested in rejected:
            with self.subTest(current=current, requested=requested):
                booking.status = current
                with self.assertRaises(InvalidTransition):
                    self.ledger.transition_status(booking, requested, save=False)

    def test_payment_status_transitions(self):
        booking = self.create()

        self.ledger.transition_payment_status(booking, Booking.PaymentStatus.FAILED)
        self.ledger.transition_payment_status(booking, Booking.PaymentStatus.PENDING)
        self.ledger.transition_payment_status(booking, Booking.PaymentStatus.COMPLETED)
        self.ledger.transition_payment_status(booking, Booking.PaymentStatus.REFUNDED)
        booking.refresh_from_db()
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.REFUNDED)

        with self.assertRaises(InvalidTransition):
            self.ledger.transition_payment_status(booking, Booking.PaymentStatus.COMPLETED)

    def test_complete_booking_requires_confirmation(self):
        booking = self.create()
        with self.assertRaises(InvalidTransition):
            self.ledger.complete_booking(booking.pk)

        Booking.objects.filter(pk=booking.pk).update(status=Booking.Status.CONFIRMED)
        completed = self.ledger.complete_booking(booking.pk)
        self.assertEqual(completed.status, Booking.Status.COMPLETED)

    def test_cash_collection(self):
        booking = self.create()
        with self.assertRaises(StateConflict):
            self.ledger.record_cash_collected(booking.pk)

        Payment.objects.create(booking=booking, amount=booking.total_amount, payment_method=Payment.Method.CASH)
        self.ledger.record_cash_collected(booking.pk)

        booking.refresh_from_db()
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.COMPLETED)
        self.assertEqual(booking.payment.payment_status, Payment.Status.COMPLETED)


class BookingRaceConditionTestCase(TransactionTestCase):
    """Concurrent bookings for the last room of a type"""

    def setUp(self):
        self.user = User.objects.create_user('guest', email='guest@example.com', password='x')
        self.hotel, self.room_type, _ = make_hotel()
        self.check_in = timezone.localdate() + timedelta(days=1)
        self.check_out = timezone.localdate() + timedelta(days=3)

    def test_concurrent_booking_attempts_do_not_oversell(self):
        ledger = BookingLedger(tax_rate=TAX_RATE)

        def attempt(_):
            try:
                booking = ledger.create_booking(
                    self.user, self.hotel.pk, self.room_type.pk, self.check_in, self.check_out, 1
                )
                return booking.pk
            except Exception:
                return None
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=5) as executor:
            futures = [executor.submit(attempt, i) for i in range(5)]
            results = [future.result() for future in as_completed(futures)]

        successful = [r for r in results if r is not None]
        self.assertLessEqual(len(successful), 1, 'More bookings succeeded than rooms available')
        self.assertEqual(Booking.objects.filter(room_type=self.room_type).count(), len(successful))


class RazorpayGatewayTestCase(SimpleTestCase):
    """HTTP calls and signature checks"""

    def setUp(self):
        self.session = mock.Mock()
        self.gateway = RazorpayGateway(KEY_ID, KEY_SECRET, api_url='https://api.example.test/v1/', session=self.session)

    def test_create_order_posts_with_credentials_and_timeout(self):
        self.session.post.return_value = gateway_response({'id': 'order_123'})

        order = self.gateway.create_order(672000, 'INR', 'BK1-ABCDEF', {'booking_id': '1'})

        self.assertEqual(order['id'], 'order_123')
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], 'https://api.example.test/v1/orders')
        self.assertEqual(kwargs['auth'], (KEY_ID, KEY_SECRET))
        self.assertEqual(kwargs['timeout'], 10)
        self.assertEqual(kwargs['json']['amount'], 672000)
        self.assertEqual(kwargs['json']['receipt'], 'BK1-ABCDEF')

    def test_timeout_becomes_gateway_unavailable(self):
        self.session.post.side_effect = requests.Timeout('read timed out')

        with self.assertLogs('reservations.gateway', level='ERROR'):
            with self.assertRaises(GatewayUnavailable) as ctx:
                self.gateway.create_order(100, 'INR', 'r')
        self.assertEqual(ctx.exception.diagnostics, 'read timed out')
        self.assertNotIn('timed out', str(ctx.exception.detail))

    def test_error_response_keeps_body_for_diagnostics(self):
        res = gateway_response({'error': {'code': 'BAD_REQUEST_ERROR'}}, ok=False, status_code=400)
        self.session.post.return_value = res

        with self.assertLogs('reservations.gateway', level='ERROR'):
            with self.assertRaises(GatewayUnavailable) as ctx:
                self.gateway.refund('pay_1', 100)
        self.assertEqual(ctx.exception.diagnostics['status'], 400)
        self.assertEqual(ctx.exception.diagnostics['body']['error']['code'], 'BAD_REQUEST_ERROR')

    def test_non_json_error_body(self):
        res = gateway_response(None, ok=False, status_code=502)
        res.json.side_effect = ValueError('not json')
        res.text = '<html>Bad Gateway</html>'
        self.session.post.return_value = res

        with self.assertLogs('reservations.gateway', level='ERROR'):
            with self.assertRaises(GatewayUnavailable) as ctx:
                self.gateway.create_order(100, 'INR', 'r')
        self.assertEqual(ctx.exception.diagnostics['body'], '<html>Bad Gateway</html>')

    def test_refund_posts_to_payment(self):
        self.session.post.return_value = gateway_response({'id': 'rfnd_1'})

        refund = self.gateway.refund('pay_456', 250000)

        self.assertEqual(refund['id'], 'rfnd_1')
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], 'https://api.example.test/v1/payments/pay_456/refund')
        self.assertEqual(kwargs['json']['amount'], 250000)

    def test_signature(self):
        signature = sign('order_123', 'pay_456')

        self.assertEqual(self.gateway.expected_signature('order_123', 'pay_456'), signature)
        self.assertTrue(self.gateway.verify_signature('order_123', 'pay_456', signature))
        self.assertFalse(self.gateway.verify_signature('order_123', 'pay_457', signature))
        self.assertFalse(self.gateway.verify_signature('order_123', 'pay_456', signature.upper()))
        self.assertFalse(self.gateway.verify_signature('order_123', 'pay_456', ''))
        self.assertFalse(self.gateway.verify_signature('order_123', 'pay_456', 'é' * 64))

    def test_any_single_bit_flip_fails(self):
        signature = sign('order_123', 'pay_456')
        for index in range(len(signature)):
            with self.subTest(index=index):
                self.assertFalse(self.gateway.verify_signature('order_123', 'pay_456', flip_bit(signature, index)))


@gateway_settings
class PaymentOrchestratorTestCase(TestCase):
    """Payment initiation and verification"""

    def setUp(self):
        self.user = User.objects.create_user('guest', email='guest@example.com', password='x')
        self.other = User.objects.create_user('other', email='other@example.com', password='x')
        self.hotel, self.room_type, _ = make_hotel()
        self.ledger = BookingLedger(tax_rate=TAX_RATE)
        check_in = timezone.localdate() + timedelta(days=10)
        self.booking = self.ledger.create_booking(
            self.user, self.hotel.pk, self.room_type.pk, check_in, check_in + timedelta(days=3), 2
        )
        self.session = mock.Mock()
        self.session.post.return_value = gateway_response({'id': 'order_123'})
        self.gateway = RazorpayGateway(KEY_ID, KEY_SECRET, session=self.session)
        self.orchestrator = PaymentOrchestrator(self.ledger, self.gateway, EmailBookingNotifier(), currency='INR')

    def start_online_payment(self):
        return self.orchestrator.initiate_payment(self.booking.pk, self.user, Payment.Method.UPI, {'upi_id': 'asha@okbank'})

    def verify(self, signature=None, order_id='order_123', payment_id='pay_456'):
        if signature is None:
            signature = sign(order_id, payment_id)
        return self.orchestrator.verify_payment(self.booking.pk, self.user, order_id, payment_id, signature)

    def test_cash_confirms_booking_and_leaves_payment_pending(self):
        intent = self.orchestrator.initiate_payment(self.booking.pk, self.user, Payment.Method.CASH)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(self.booking.payment_status, Booking.PaymentStatus.PENDING)
        self.assertEqual(intent.payment.payment_method, Payment.Method.CASH)
        self.assertEqual(intent.payment.amount, Decimal('6720.00'))
        self.assertTrue(intent.payment.transaction_id.startswith('CASH_'))
        self.assertIsNone(intent.gateway_order_id)
        self.session.post.assert_not_called()

    def test_online_payment_opens_gateway_order(self):
        intent = self.start_online_payment()

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)
        self.assertEqual(intent.gateway_order_id, 'order_123')
        self.assertEqual(intent.gateway_key_id, KEY_ID)
        self.assertEqual(intent.amount, 672000)
        self.assertEqual(intent.currency, 'INR')
        self.assertEqual(intent.payment.payment_status, Payment.Status.PENDING)
        self.assertEqual(intent.payment.gateway_order_id, 'order_123')
        self.assertEqual(intent.payment.payment_details, {'upi_id': 'asha@okbank'})

        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs['json']['amount'], 672000)
        self.assertEqual(kwargs['json']['receipt'], self.booking.booking_reference)

    def test_retrying_initiation_reuses_payment_row(self):
        self.start_online_payment()
        self.session.post.return_value = gateway_response({'id': 'order_789'})
        self.start_online_payment()

        self.assertEqual(Payment.objects.filter(booking=self.booking).count(), 1)
        self.assertEqual(Payment.objects.get(booking=self.booking).gateway_order_id, 'order_789')

    def test_gateway_failure_leaves_booking_untouched(self):
        self.session.post.side_effect = requests.ConnectionError('connection refused')

        with self.assertLogs('reservations.gateway', level='ERROR'):
            with self.assertRaises(GatewayUnavailable):
                self.start_online_payment()

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)
        self.assertFalse(Payment.objects.filter(booking=self.booking).exists())

    def test_only_pending_bookings_accept_payment(self):
        self.orchestrator.initiate_payment(self.booking.pk, self.user, Payment.Method.CASH)
        with self.assertRaises(BookingNotPending):
            self.orchestrator.initiate_payment(self.booking.pk, self.user, Payment.Method.CASH)

    def test_other_users_booking_not_found(self):
        with self.assertRaises(BookingNotFound):
            self.orchestrator.initiate_payment(self.booking.pk, self.other, Payment.Method.CASH)

    def test_valid_signature_confirms_booking_and_sends_one_email(self):
        self.start_online_payment()

        booking = self.verify()

        self.assertEqual(booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.COMPLETED)
        payment = Payment.objects.get(booking=self.booking)
        self.assertEqual(payment.payment_status, Payment.Status.COMPLETED)
        self.assertEqual(payment.transaction_id, 'pay_456')

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['guest@example.com'])
        self.assertIn(self.booking.booking_reference, message.subject)
        self.assertIn('Total Amount: 6720.00 INR', message.body)
        self.assertIn('Taxes (12%): 720.00', message.body)

    def test_replayed_verification_is_a_no_op(self):
        self.start_online_payment()

        self.verify()
        booking = self.verify()

        self.assertEqual(booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(len(mail.outbox), 1)

    def test_tampered_signature_rejected(self):
        self.start_online_payment()
        signature = sign('order_123', 'pay_456')

        for index in (0, 31, len(signature) - 1):
            with self.subTest(index=index):
                with self.assertRaises(SignatureMismatch):
                    self.verify(signature=flip_bit(signature, index))
                self.booking.refresh_from_db()
                self.assertEqual(self.booking.status, Booking.Status.PENDING)

        self.assertEqual(mail.outbox, [])

    def test_signature_for_another_order_rejected(self):
        self.start_online_payment()
        with self.assertRaises(PaymentVerificationFailed):
            self.verify(order_id='order_other')

    def test_verification_of_cancelled_booking_rejected(self):
        self.start_online_payment()
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CANCELLED)

        with self.assertRaises(BookingNotPending):
            self.verify()
        self.assertEqual(mail.outbox, [])

    def test_verification_replayed_after_cancellation_rejected(self):
        """A completed payment row left behind by a failed refund does not revive the booking"""
        self.start_online_payment()
        self.verify()

        self.session.post.return_value = gateway_response({'error': {'code': 'SERVER_ERROR'}}, ok=False, status_code=500)
        with self.assertLogs('reservations', level='ERROR'):
            result = CancellationPolicy(self.ledger, self.gateway).cancel_booking(self.booking.pk, self.user)
        self.assertEqual(result.refund_status, BookingCancellation.RefundStatus.FAILED)
        self.assertEqual(Payment.objects.get(booking=self.booking).payment_status, Payment.Status.COMPLETED)

        with self.assertRaises(BookingNotPending):
            self.verify()
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertEqual(len(mail.outbox), 1)

    def test_confirmation_goes_to_guest_email_when_given(self):
        BookingGuest.objects.create(booking=self.booking, full_name='Asha Rao', email='asha@example.com')
        self.start_online_payment()

        self.verify()

        self.assertEqual(mail.outbox[0].to, ['asha@example.com'])
        self.assertIn('Dear Asha Rao', mail.outbox[0].body)

    def test_notification_failure_does_not_undo_payment(self):
        notifier = mock.Mock()
        notifier.booking_confirmed.side_effect = RuntimeError('smtp down')
        self.orchestrator.notifier = notifier
        self.start_online_payment()

        with self.assertLogs('reservations.notifications', level='ERROR'):
            booking = self.verify()

        notifier.booking_confirmed.assert_called_once()
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.COMPLETED)


class CancellationPolicyTestCase(TestCase):
    """Refund tiers and cancellation side effects"""

    def setUp(self):
        self.user = User.objects.create_user('guest', email='guest@example.com', password='x')
        self.other = User.objects.create_user('other', email='other@example.com', password='x')
        self.hotel, self.room_type, _ = make_hotel()
        self.ledger = BookingLedger(tax_rate=TAX_RATE)
        self.session = mock.Mock()
        self.session.post.return_value = gateway_response({'id': 'rfnd_1'})
        self.gateway = RazorpayGateway(KEY_ID, KEY_SECRET, session=self.session)
        self.check_in = timezone.localdate() + timedelta(days=30)
        self.midnight = timezone.make_aware(datetime.combine(self.check_in, time.min))

    def policy(self, hours_before):
        now = self.midnight - timedelta(hours=hours_before)
        return CancellationPolicy(self.ledger, self.gateway, clock=lambda: now)

    def paid_booking(self, method=Payment.Method.UPI, transaction_id='pay_456'):
        booking = make_booking(
            self.user, self.room_type, self.check_in, self.check_in + timedelta(days=2),
            total_amount=Decimal('5000.00'), payment_status=Booking.PaymentStatus.COMPLETED,
        )
        Payment.objects.create(
            booking=booking,
            amount=booking.total_amount,
            payment_method=method,
            payment_status=Payment.Status.COMPLETED,
            transaction_id=transaction_id,
            gateway_order_id='order_123',
        )
        return booking

    def test_refund_percentage_tiers(self):
        for hours, expected in ((Decimal('48'), 100), (Decimal('24.01'), 100), (Decimal('24'), 50),
                                (Decimal('12'), 50), (Decimal('0.5'), 50), (Decimal('0'), 0), (Decimal('-5'), 0)):
            with self.subTest(hours=hours):
                self.assertEqual(refund_percentage(hours), expected)

    def test_hours_until_check_in_measured_to_midnight(self):
        self.assertEqual(hours_until_check_in(self.check_in, self.midnight - timedelta(hours=48)), 48)
        self.assertEqual(hours_until_check_in(self.check_in, self.midnight + timedelta(hours=5)), -5)

    def test_refund_amounts(self):
        """5000 paid: 48h out refunds all, 10h out half, after check-in nothing"""
        scenarios = [(48, 100, Decimal('5000.00')), (12, 50, Decimal('2500.00')),
                     (10, 50, Decimal('2500.00')), (-5, 0, Decimal('0.00'))]
        for hours, percentage, amount in scenarios:
            with self.subTest(hours=hours):
                booking = self.paid_booking()
                result = self.policy(hours).cancel_booking(booking.pk, self.user)

                self.assertEqual(result.refund_percentage, percentage)
                self.assertEqual(result.refund_amount, amount)
                booking.refresh_from_db()
                self.assertEqual(booking.status, Booking.Status.CANCELLED)

    def test_gateway_refund_initiated(self):
        booking = self.paid_booking()

        result = self.policy(48).cancel_booking(booking.pk, self.user, 'Change of plans')

        self.assertEqual(result.refund_status, BookingCancellation.RefundStatus.INITIATED)
        self.assertEqual(result.refund_id, 'rfnd_1')
        args, kwargs = self.session.post.call_args
        self.assertTrue(args[0].endswith('/payments/pay_456/refund'))
        self.assertEqual(kwargs['json']['amount'], 500000)

        booking.refresh_from_db()
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.REFUNDED)
        self.assertEqual(booking.payment.payment_status, Payment.Status.REFUNDED)

        cancellation = booking.cancellation
        self.assertEqual(cancellation.reason, 'Change of plans')
        self.assertEqual(cancellation.cancelled_by, self.user)
        self.assertEqual(cancellation.refund_percentage, 100)
        self.assertEqual(cancellation.refund_amount, Decimal('5000.00'))
        self.assertEqual(cancellation.hours_before_check_in, Decimal('48.00'))

    def test_gateway_refund_failure_still_cancels(self):
        self.session.post.side_effect = requests.Timeout('read timed out')
        booking = self.paid_booking()

        with self.assertLogs('reservations', level='ERROR'):
            result = self.policy(48).cancel_booking(booking.pk, self.user)

        self.assertEqual(result.refund_status, BookingCancellation.RefundStatus.FAILED)
        self.assertEqual(result.refund_id, '')
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CANCELLED)
        self.assertEqual(booking.payment.payment_status, Payment.Status.COMPLETED)
        self.assertEqual(booking.cancellation.refund_status, BookingCancellation.RefundStatus.FAILED)

    def test_cash_refund_is_manual(self):
        booking = self.paid_booking(method=Payment.Method.CASH, transaction_id='CASH_1')

        result = self.policy(48).cancel_booking(booking.pk, self.user)

        self.assertEqual(result.refund_status, BookingCancellation.RefundStatus.PENDING_MANUAL)
        self.session.post.assert_not_called()
        booking.refresh_from_db()
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.REFUNDED)

    def test_unpaid_booking_reports_refund_without_moving_money(self):
        booking = make_booking(
            self.user, self.room_type, self.check_in, self.check_in + timedelta(days=2),
            status=Booking.Status.PENDING, total_amount=Decimal('5000.00'),
        )

        result = self.policy(48).cancel_booking(booking.pk, self.user)

        self.assertEqual(result.refund_amount, Decimal('5000.00'))
        self.assertEqual(result.refund_status, BookingCancellation.RefundStatus.NOT_APPLICABLE)
        self.session.post.assert_not_called()
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CANCELLED)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.PENDING)
        self.assertEqual(booking.cancellation.reason, 'Customer cancellation')

    def test_terminal_bookings_cannot_be_cancelled(self):
        booking = self.paid_booking()
        self.policy(48).cancel_booking(booking.pk, self.user)
        with self.assertRaises(AlreadyCancelled):
            self.policy(48).cancel_booking(booking.pk, self.user)

        completed = make_booking(
            self.user, self.room_type, self.check_in, self.check_in + timedelta(days=1),
            status=Booking.Status.COMPLETED,
        )
        with self.assertRaises(AlreadyCompleted):
            self.policy(48).cancel_booking(completed.pk, self.user)

    def test_other_users_booking_not_found(self):
        booking = self.paid_booking()
        with self.assertRaises(BookingNotFound):
            self.policy(48).cancel_booking(booking.pk, self.other)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CONFIRMED)


class ExceptionHandlerTestCase(SimpleTestCase):
    """Store errors never reach the client verbatim"""

    def test_known_database_code_is_translated(self):
        exc = IntegrityError("duplicate key value violates unique constraint \"bookings_pkey\"")
        exc.__cause__ = mock.Mock(pgcode='23505')

        with self.assertLogs('reservations.exceptions', level='WARNING'):
            response = custom_exception_handler(exc, {'view': None})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['detail'], DATABASE_ERROR_MESSAGES['23505'])

    def test_unknown_database_error_is_generic(self):
        with self.assertLogs('reservations.exceptions', level='ERROR'):
            response = custom_exception_handler(DatabaseError("relation \"secret_table\" does not exist"), {'view': None})

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['detail'], GENERIC_ERROR_MESSAGE)


class PaymentDetailsTestCase(SimpleTestCase):
    def test_luhn(self):
        self.assertTrue(luhn_valid('4111111111111111'))
        self.assertTrue(luhn_valid('5500 0000 0000 0004'))
        self.assertFalse(luhn_valid('4111111111111112'))
        self.assertFalse(luhn_valid('4111'))


@gateway_settings
class BookingAPITestCase(APITestCase):
    """HTTP surface: auth, ownership and the booking flow end to end"""

    def setUp(self):
        self.user = User.objects.create_user('guest', email='guest@example.com', password='x')
        self.other = User.objects.create_user('other', email='other@example.com', password='x')
        self.staff = User.objects.create_user('staff', email='staff@example.com', password='x', is_staff=True)
        self.hotel, self.room_type, _ = make_hotel()
        self.check_in = timezone.localdate() + timedelta(days=10)
        self.check_out = self.check_in + timedelta(days=3)
        self.client.force_authenticate(user=self.user)

    def create_booking(self, **overrides):
        data = {
            'hotel_id': self.hotel.pk,
            'room_type_id': self.room_type.pk,
            'check_in_date': self.check_in.isoformat(),
            'check_out_date': self.check_out.isoformat(),
            'num_guests': 2,
        }
        data.update(overrides)
        return self.client.post('/api/bookings/', data, format='json')

    def test_health_and_welcome(self):
        self.client.force_authenticate(user=None)
        self.assertEqual(self.client.get('/health').json(), {'status': 'ok'})
        self.assertIn('message', self.client.get('/').json())

    def test_bookings_require_authentication(self):
        self.client.force_authenticate(user=None)
        self.assertEqual(self.client.get('/api/bookings/').status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(self.create_booking().status_code, status.HTTP_401_UNAUTHORIZED)

    def test_hotels_are_public(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(f'/api/hotels/{self.hotel.pk}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['room_types'][0]['name'], 'Standard Room')

    def test_availability_endpoints(self):
        self.client.force_authenticate(user=None)
        query = {'check_in': self.check_in.isoformat(), 'check_out': self.check_out.isoformat(), 'num_guests': 2}

        response = self.client.get(f'/api/hotels/{self.hotel.pk}/availability/', query)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        (room_type,) = response.data['available_room_types']
        self.assertEqual(room_type['name'], 'Standard Room')
        self.assertEqual(room_type['price_per_night'], '2000.00')
        self.assertEqual(room_type['available_rooms_count'], 1)

        response = self.client.post('/api/availability/', {**query, 'hotel_id': self.hotel.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['available_room_types']), 1)

        response = self.client.post('/api/availability/', query, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        bad = {**query, 'check_out': self.check_in.isoformat()}
        response = self.client.get(f'/api/hotels/{self.hotel.pk}/availability/', bad)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_booking(self):
        response = self.create_booking(guest={'full_name': 'Asha Rao', 'email': 'asha@example.com'})

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        booking = response.data['booking']
        self.assertEqual(booking['total_amount'], '6720.00')
        self.assertEqual(booking['taxes'], '720.00')
        self.assertEqual(booking['subtotal'], '6000.00')
        self.assertEqual(booking['status'], 'pending')
        self.assertEqual(booking['payment_status'], 'pending')
        self.assertEqual(booking['hotel_name'], 'Seaside Grand')
        self.assertEqual(booking['guest']['email'], 'asha@example.com')

    def test_client_supplied_amounts_are_ignored(self):
        response = self.create_booking(total_amount='1.00', room_rate='1.00')
        self.assertEqual(response.data['booking']['total_amount'], '6720.00')

    def test_create_booking_validation(self):
        scenarios = [
            ({'check_out_date': self.check_in.isoformat()}, status.HTTP_400_BAD_REQUEST),
            ({'num_guests': 0}, status.HTTP_400_BAD_REQUEST),
            ({'num_guests': 3}, status.HTTP_400_BAD_REQUEST),
            ({'room_type_id': self.room_type.pk + 100}, status.HTTP_404_NOT_FOUND),
        ]
        for overrides, expected in scenarios:
            with self.subTest(overrides=overrides):
                self.assertEqual(self.create_booking(**overrides).status_code, expected)

    def test_sold_out_is_a_conflict(self):
        self.create_booking()
        response = self.create_booking()
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_bookings_are_private(self):
        booking_id = self.create_booking().data['booking']['id']

        self.client.force_authenticate(user=self.other)
        response = self.client.get(f'/api/bookings/{booking_id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['detail'], 'Not found.')
        self.assertEqual(self.client.get('/api/bookings/').data, [])

        for path in ('pay', 'cancel'):
            with self.subTest(path=path):
                response = self.client.post(f'/api/bookings/{booking_id}/{path}/', {'payment_method': 'cash'}, format='json')
                self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(user=self.user)
        self.assertEqual(self.client.get(f'/api/bookings/{booking_id}/').data['id'], booking_id)

    def test_cash_payment_confirms(self):
        booking_id = self.create_booking().data['booking']['id']

        response = self.client.post(f'/api/bookings/{booking_id}/pay/', {'payment_method': 'cash'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['booking']['status'], 'confirmed')
        self.assertEqual(response.data['booking']['payment_status'], 'pending')
        self.assertIn('message', response.data)
        self.assertEqual(len(mail.outbox), 0)

    def test_card_details_are_reduced_before_storage(self):
        booking_id = self.create_booking().data['booking']['id']
        details = {'card_number': '4111 1111 1111 1111', 'cvv': '123', 'expiry': '12/30'}

        with mock.patch('requests.Session.post', return_value=gateway_response({'id': 'order_123'})):
            response = self.client.post(
                f'/api/bookings/{booking_id}/pay/',
                {'payment_method': 'credit', 'payment_details': details},
                format='json',
            )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        stored = Payment.objects.get(booking_id=booking_id).payment_details
        self.assertEqual(stored, {'card_last4': '1111', 'card_type': 'Credit Card'})

    def test_invalid_payment_details_rejected(self):
        booking_id = self.create_booking().data['booking']['id']
        scenarios = [
            {'payment_method': 'credit', 'payment_details': {'card_number': '4111111111111112'}},
            {'payment_method': 'upi', 'payment_details': {'upi_id': 'not a upi id'}},
            {'payment_method': 'bitcoin'},
        ]
        for data in scenarios:
            with self.subTest(data=data):
                response = self.client.post(f'/api/bookings/{booking_id}/pay/', data, format='json')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_online_payment_and_verification(self):
        booking_id = self.create_booking().data['booking']['id']

        with mock.patch('requests.Session.post', return_value=gateway_response({'id': 'order_123'})):
            response = self.client.post(f'/api/bookings/{booking_id}/pay/', {'payment_method': 'upi'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['gateway_order_id'], 'order_123')
        self.assertEqual(response.data['gateway_key_id'], KEY_ID)
        self.assertEqual(response.data['amount'], 672000)
        self.assertEqual(response.data['currency'], 'INR')
        self.assertNotIn(KEY_SECRET, str(response.data))

        payload = {
            'gateway_order_id': 'order_123',
            'gateway_payment_id': 'pay_456',
            'gateway_signature': flip_bit(sign('order_123', 'pay_456'), 0),
        }
        response = self.client.post(f'/api/bookings/{booking_id}/verify-payment/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Booking.objects.get(pk=booking_id).status, Booking.Status.PENDING)

        payload['gateway_signature'] = sign('order_123', 'pay_456')
        for _ in range(2):
            response = self.client.post(f'/api/bookings/{booking_id}/verify-payment/', payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertTrue(response.data['success'])
            self.assertEqual(response.data['booking']['status'], 'confirmed')
            self.assertEqual(response.data['booking']['payment_status'], 'completed')
        self.assertEqual(len(mail.outbox), 1)

    def test_gateway_outage_is_a_generic_502(self):
        booking_id = self.create_booking().data['booking']['id']

        with mock.patch('requests.Session.post', side_effect=requests.Timeout('read timed out (secret host)')):
            with self.assertLogs('reservations', level='ERROR'):
                response = self.client.post(f'/api/bookings/{booking_id}/pay/', {'payment_method': 'upi'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data['detail'], 'Payment could not be processed, please try again.')
        self.assertNotIn('secret', str(response.data))

    def test_cancel(self):
        booking_id = self.create_booking().data['booking']['id']

        response = self.client.post(f'/api/bookings/{booking_id}/cancel/', {'reason': 'Plans changed'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['refund_percentage'], 100)
        self.assertEqual(response.data['refund_amount'], '6720.00')
        self.assertEqual(response.data['refund_status'], 'not_applicable')
        self.assertEqual(response.data['booking']['status'], 'cancelled')
        self.assertEqual(response.data['booking']['cancellation']['reason'], 'Plans changed')

        response = self.client.post(f'/api/bookings/{booking_id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(f'/api/bookings/{booking_id}/pay/', {'payment_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_staff_endpoints(self):
        booking_id = self.create_booking().data['booking']['id']
        self.client.post(f'/api/bookings/{booking_id}/pay/', {'payment_method': 'cash'}, format='json')

        self.assertEqual(self.client.get('/api/staff/bookings/').status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.staff)
        response = self.client.get('/api/staff/bookings/', {'status': 'confirmed'})
        self.assertEqual([b['id'] for b in response.data], [booking_id])
        self.assertEqual(self.client.get('/api/staff/bookings/', {'status': 'cancelled'}).data, [])

        response = self.client.post(f'/api/staff/bookings/{booking_id}/collect-cash/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment_status'], 'completed')

        response = self.client.post(f'/api/staff/bookings/{booking_id}/collect-cash/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(f'/api/staff/bookings/{booking_id}/complete/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')
