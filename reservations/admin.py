from django.contrib import admin

from .models import Booking, BookingCancellation, BookingGuest, Hotel, Payment, Room, RoomAvailability, RoomType


class RoomTypeInline(admin.TabularInline):
    model = RoomType
    extra = 0


@admin.register(Hotel)
class HotelAdmin(admin.ModelAdmin):
    list_display = ('name', 'address', 'phone', 'email')
    search_fields = ('name', 'address')
    inlines = [RoomTypeInline]


@admin.register(RoomType)
class RoomTypeAdmin(admin.ModelAdmin):
    list_display = ('name', 'hotel', 'base_price_per_night', 'max_guests')
    list_filter = ('hotel',)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ('room_number', 'room_type', 'floor', 'status')
    list_filter = ('status', 'room_type__hotel')


@admin.register(RoomAvailability)
class RoomAvailabilityAdmin(admin.ModelAdmin):
    list_display = ('room', 'date', 'is_available', 'price_override', 'reason')
    list_filter = ('is_available',)
    date_hierarchy = 'date'


class BookingGuestInline(admin.StackedInline):
    model = BookingGuest
    extra = 0


class PaymentInline(admin.StackedInline):
    model = Payment
    extra = 0
    readonly_fields = ('transaction_id', 'gateway_order_id', 'payment_details')


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        'booking_reference', 'user', 'hotel', 'room_type', 'check_in_date', 'check_out_date',
        'total_amount', 'status', 'payment_status',
    )
    list_filter = ('status', 'payment_status', 'hotel')
    search_fields = ('booking_reference', 'user__email')
    # Money and state change through the booking flow, not by hand.
    readonly_fields = ('booking_reference', 'num_nights', 'room_rate', 'taxes', 'total_amount', 'status', 'payment_status')
    inlines = [BookingGuestInline, PaymentInline]


admin.site.register(BookingCancellation)
