from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Hotel(models.Model):
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    address = models.CharField(max_length=300, blank=True)
    phone = models.CharField(max_length=50, blank=True)
    email = models.EmailField(blank=True)
    amenities = models.JSONField(default=list, blank=True)
    images = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'hotels'
        ordering = ('name',)

    def __str__(self):
        return self.name


class RoomType(models.Model):
    hotel = models.ForeignKey(Hotel, on_delete=models.PROTECT, related_name='room_types')
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    base_price_per_night = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(0)]
    )
    max_guests = models.PositiveIntegerField(default=2, validators=[MinValueValidator(1)])
    amenities = models.JSONField(default=list, blank=True)
    images = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'room_types'
        ordering = ('hotel', 'base_price_per_night')

    def __str__(self):
        return f'{self.hotel.name} - {self.name}'


class Room(models.Model):
    class Status(models.TextChoices):
        AVAILABLE = 'available'
        OCCUPIED = 'occupied'
        MAINTENANCE = 'maintenance'
        RESERVED = 'reserved'

    room_type = models.ForeignKey(RoomType, on_delete=models.CASCADE, related_name='rooms')
    room_number = models.CharField(max_length=20)
    floor = models.IntegerField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.AVAILABLE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'rooms'
        ordering = ('room_number',)

    def __str__(self):
        return f'Room {self.room_number}'


class RoomAvailability(models.Model):
    """Per-night override for one room: a blackout or a price change."""

    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name='availability')
    date = models.DateField()
    is_available = models.BooleanField(default=True)
    price_override = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(0)],
    )
    reason = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'room_availability'
        verbose_name_plural = 'room availability'
        constraints = [
            models.UniqueConstraint(fields=('room', 'date'), name='unique_room_availability_per_date'),
        ]


class Booking(models.Model):
    class Status(models.TextChoices):
        PENDING = 'pending'
        CONFIRMED = 'confirmed'
        COMPLETED = 'completed'
        CANCELLED = 'cancelled'

    class PaymentStatus(models.TextChoices):
        PENDING = 'pending'
        COMPLETED = 'completed'
        REFUNDED = 'refunded'
        FAILED = 'failed'

    # Moves not listed here raise InvalidTransition.
    STATUS_TRANSITIONS = {
        Status.PENDING: {Status.CONFIRMED, Status.CANCELLED},
        Status.CONFIRMED: {Status.COMPLETED, Status.CANCELLED},
        Status.COMPLETED: set(),
        Status.CANCELLED: set(),
    }
    PAYMENT_STATUS_TRANSITIONS = {
        PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
        PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
        PaymentStatus.FAILED: {PaymentStatus.PENDING},
        PaymentStatus.REFUNDED: set(),
    }

    booking_reference = models.CharField(max_length=32, unique=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='bookings')
    hotel = models.ForeignKey(Hotel, on_delete=models.PROTECT, related_name='bookings')
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name='bookings')
    room = models.ForeignKey(Room, on_delete=models.SET_NULL, null=True, blank=True, related_name='bookings')
    check_in_date = models.DateField()
    check_out_date = models.DateField()  # exclusive
    num_guests = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    num_nights = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    room_rate = models.DecimalField(max_digits=12, decimal_places=2)
    taxes = models.DecimalField(max_digits=12, decimal_places=2)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(
        max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bookings'
        ordering = ('-created_at',)
        indexes = [
            models.Index(fields=('room_type', 'check_in_date', 'check_out_date'), name='bookings_room_type_dates_idx'),
        ]

    def __str__(self):
        return self.booking_reference

    @property
    def subtotal(self):
        return self.room_rate * self.num_nights

    def can_transition_to(self, new_status):
        return new_status in self.STATUS_TRANSITIONS[self.status]

    def can_transition_payment_to(self, new_payment_status):
        return new_payment_status in self.PAYMENT_STATUS_TRANSITIONS[self.payment_status]


class BookingGuest(models.Model):
    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name='guest')
    full_name = models.CharField(max_length=150)
    email = models.EmailField()
    phone = models.CharField(max_length=50, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'booking_guests'


class Payment(models.Model):
    class Method(models.TextChoices):
        UPI = 'upi'
        CARD = 'card'
        CREDIT = 'credit'
        DEBIT = 'debit'
        CASH = 'cash'

    class Status(models.TextChoices):
        PENDING = 'pending'
        COMPLETED = 'completed'
        FAILED = 'failed'
        REFUNDED = 'refunded'

    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name='payment')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=10, choices=Method.choices)
    payment_status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    transaction_id = models.CharField(max_length=100, blank=True)
    gateway_order_id = models.CharField(max_length=100, blank=True)
    payment_details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments'

    @property
    def is_cash(self):
        return self.payment_method == self.Method.CASH


class BookingCancellation(models.Model):
    class RefundStatus(models.TextChoices):
        NOT_APPLICABLE = 'not_applicable'
        INITIATED = 'initiated'
        FAILED = 'failed'
        PENDING_MANUAL = 'pending_manual'

    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name='cancellation')
    reason = models.TextField(blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='+'
    )
    cancelled_at = models.DateTimeField(auto_now_add=True)
    hours_before_check_in = models.DecimalField(max_digits=10, decimal_places=2)
    refund_percentage = models.PositiveSmallIntegerField()
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2)
    refund_status = models.CharField(
        max_length=20, choices=RefundStatus.choices, default=RefundStatus.NOT_APPLICABLE
    )
    refund_id = models.CharField(max_length=100, blank=True)

    class Meta:
        db_table = 'booking_cancellations'
