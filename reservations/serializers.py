import re

from rest_framework import serializers

from .models import Booking, BookingCancellation, BookingGuest, Hotel, Payment, RoomType

UPI_ID_RE = re.compile(r'^[\w.\-]{2,256}@[a-zA-Z]{2,64}$')


def luhn_valid(card_number):
    digits = [int(d) for d in card_number if d.isdigit()]
    if len(digits) < 13 or len(digits) > 19:
        return False
    total = 0
    for i, digit in enumerate(reversed(digits)):
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


class GuestInput(serializers.Serializer):
    full_name = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=50, allow_blank=True, required=False)


class RoomTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = RoomType
        fields = (
            'id', 'hotel_id', 'name', 'description', 'base_price_per_night',
            'max_guests', 'amenities', 'images',
        )


class HotelSerializer(serializers.ModelSerializer):
    room_types = RoomTypeSerializer(many=True, read_only=True)

    class Meta:
        model = Hotel
        fields = ('id', 'name', 'description', 'address', 'phone', 'email', 'amenities', 'images', 'room_types')


class AvailabilityQuerySerializer(serializers.Serializer):
    hotel_id = serializers.IntegerField(required=False)
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    num_guests = serializers.IntegerField(min_value=1)

    def validate(self, data):
        if data['check_out'] <= data['check_in']:
            raise serializers.ValidationError('check_out must be after check_in')
        return data


class AvailableRoomTypeSerializer(serializers.Serializer):
    room_type = RoomTypeSerializer()
    price_per_night = serializers.DecimalField(max_digits=12, decimal_places=2)
    available_rooms_count = serializers.IntegerField()

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # Flattened so clients get the room type fields next to the price.
        room_type = data.pop('room_type')
        return {**room_type, **data}


class BookingCreateSerializer(serializers.Serializer):
    hotel_id = serializers.IntegerField()
    room_type_id = serializers.IntegerField()
    check_in_date = serializers.DateField()
    check_out_date = serializers.DateField()
    num_guests = serializers.IntegerField(min_value=1)
    guest = GuestInput(required=False)

    def validate(self, data):
        if data['check_out_date'] <= data['check_in_date']:
            raise serializers.ValidationError('check_out_date must be after check_in_date')
        return data


class BookingGuestSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingGuest
        fields = ('full_name', 'email', 'phone')


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = (
            'id', 'amount', 'payment_method', 'payment_status', 'transaction_id',
            'payment_details', 'created_at',
        )


class BookingCancellationSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingCancellation
        fields = ('reason', 'cancelled_at', 'refund_percentage', 'refund_amount', 'refund_status', 'refund_id')


class BookingSerializer(serializers.ModelSerializer):
    hotel_name = serializers.CharField(source='hotel.name', read_only=True)
    room_type_name = serializers.CharField(source='room_type.name', read_only=True)

    class Meta:
        model = Booking
        fields = (
            'id', 'booking_reference', 'hotel_id', 'hotel_name', 'room_type_id', 'room_type_name',
            'room_id', 'check_in_date', 'check_out_date', 'num_guests', 'num_nights', 'room_rate',
            'taxes', 'total_amount', 'status', 'payment_status', 'created_at', 'updated_at',
        )

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['subtotal'] = f'{instance.subtotal:.2f}'
        if hasattr(instance, 'guest'):
            data['guest'] = BookingGuestSerializer(instance.guest).data
        if hasattr(instance, 'payment'):
            data['payment'] = PaymentSerializer(instance.payment).data
        if hasattr(instance, 'cancellation'):
            data['cancellation'] = BookingCancellationSerializer(instance.cancellation).data
        return data


class PaymentInitiateSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=Payment.Method.choices)
    payment_details = serializers.DictField(required=False, default=dict)

    def validate(self, data):
        """
        Reduce payment_details to what may be stored: a UPI handle, or the
        card type and last four digits. Full card numbers, expiry and CVV
        never leave this method.
        """
        method = data['payment_method']
        details = data.get('payment_details') or {}
        stored = {}

        if method == Payment.Method.UPI:
            upi_id = str(details.get('upi_id', '')).strip()
            if upi_id:
                if not UPI_ID_RE.match(upi_id):
                    raise serializers.ValidationError({'payment_details': 'Invalid UPI ID.'})
                stored['upi_id'] = upi_id[:100]
        elif method in (Payment.Method.CARD, Payment.Method.CREDIT, Payment.Method.DEBIT):
            card_number = re.sub(r'\D', '', str(details.get('card_number', '')))
            if card_number:
                if not luhn_valid(card_number):
                    raise serializers.ValidationError({'payment_details': 'Invalid card number.'})
                stored['card_last4'] = card_number[-4:]
            elif details.get('card_last4'):
                stored['card_last4'] = re.sub(r'\D', '', str(details['card_last4']))[-4:]
            stored['card_type'] = {
                Payment.Method.CREDIT: 'Credit Card',
                Payment.Method.DEBIT: 'Debit Card',
            }.get(method, 'Card')

        data['payment_details'] = stored
        return data


class PaymentVerifySerializer(serializers.Serializer):
    gateway_order_id = serializers.CharField(max_length=100)
    gateway_payment_id = serializers.CharField(max_length=100)
    gateway_signature = serializers.CharField(max_length=256)


class CancelBookingSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class CancellationResultSerializer(serializers.Serializer):
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    refund_percentage = serializers.IntegerField()
    refund_status = serializers.CharField()
    refund_id = serializers.CharField(allow_blank=True)
