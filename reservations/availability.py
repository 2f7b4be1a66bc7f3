import logging
from collections import namedtuple
from datetime import timedelta

from django.db import DatabaseError
from django.db.models import Exists, Min, OuterRef

from .exceptions import AvailabilityQueryFailed, BookingValidationError
from .models import Booking, Room, RoomAvailability, RoomType
from .pricing import compute_nights

log = logging.getLogger(__name__)

ACTIVE_STATUSES = [Booking.Status.CONFIRMED, Booking.Status.PENDING]

AvailableRoomType = namedtuple('AvailableRoomType', ['room_type', 'price_per_night', 'available_rooms_count'])


def overlapping_bookings(check_in, check_out):
    """Pending or confirmed bookings whose stay intersects [check_in, check_out)."""
    return Booking.objects.filter(
        status__in=ACTIVE_STATUSES,
        check_in_date__lt=check_out,
        check_out_date__gt=check_in,
    )


def available_rooms_qs(room_type, check_in, check_out):
    booked = Exists(overlapping_bookings(check_in, check_out).filter(room=OuterRef('pk')))
    blacked_out = Exists(
        RoomAvailability.objects.filter(
            room=OuterRef('pk'),
            is_available=False,
            date__gte=check_in,
            date__lt=check_out,
        )
    )
    return (
        Room.objects.filter(room_type=room_type, status=Room.Status.AVAILABLE)
        .annotate(has_overlap=booked, blacked_out=blacked_out)
        .filter(has_overlap=False, blacked_out=False)
    )


def busiest_night(stays, check_in, check_out):
    """Most stays sharing a single night of [check_in, check_out)."""
    nights = [check_in + timedelta(days=i) for i in range((check_out - check_in).days)]
    return max((sum(1 for start, end in stays if start <= night < end) for night in nights), default=0)


def free_rooms(room_type, check_in, check_out):
    """Rooms that could host the stay, and how many remain after unassigned bookings take their share"""
    room_ids = list(available_rooms_qs(room_type, check_in, check_out).values_list('pk', flat=True))
    stays = list(
        overlapping_bookings(check_in, check_out)
        .filter(room_type=room_type, room__isnull=True)
        .values_list('check_in_date', 'check_out_date')
    )
    return room_ids, max(len(room_ids) - busiest_night(stays, check_in, check_out), 0)


def room_type_has_availability(room_type, check_in, check_out):
    _, count = free_rooms(room_type, check_in, check_out)
    return count > 0


def effective_price(room_type, room_ids, check_in, check_out):
    # Several overrides in range: the cheapest night wins.
    override = (
        RoomAvailability.objects.filter(
            room_id__in=room_ids,
            is_available=True,
            price_override__isnull=False,
            date__gte=check_in,
            date__lt=check_out,
        )
        .aggregate(price=Min('price_override'))['price']
    )
    return override if override is not None else room_type.base_price_per_night


def find_available_room_types(hotel_id, check_in, check_out, num_guests):
    compute_nights(check_in, check_out)
    if num_guests is None or num_guests < 1:
        raise BookingValidationError('num_guests must be at least 1.')

    try:
        room_types = RoomType.objects.filter(hotel_id=hotel_id, max_guests__gte=num_guests).select_related('hotel')
        results = []
        for room_type in room_types:
            room_ids, count = free_rooms(room_type, check_in, check_out)
            if count < 1:
                continue
            results.append(
                AvailableRoomType(
                    room_type=room_type,
                    price_per_night=effective_price(room_type, room_ids, check_in, check_out),
                    available_rooms_count=count,
                )
            )
    except DatabaseError as exc:
        log.exception('Availability query failed for hotel %s', hotel_id)
        raise AvailabilityQueryFailed() from exc

    log.debug(
        'Hotel %s has %d room types available %s..%s for %d guests',
        hotel_id, len(results), check_in, check_out, num_guests,
    )
    return results
