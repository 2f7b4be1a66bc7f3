import logging

from django.http import JsonResponse
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from .availability import find_available_room_types
from .cancellation import CancellationPolicy
from .ledger import BookingLedger
from .models import Booking, Hotel
from .payments import PaymentOrchestrator
from .serializers import (
    AvailabilityQuerySerializer,
    AvailableRoomTypeSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    CancelBookingSerializer,
    CancellationResultSerializer,
    HotelSerializer,
    PaymentInitiateSerializer,
    PaymentSerializer,
    PaymentVerifySerializer,
)

log = logging.getLogger(__name__)


def welcome(request):
    return JsonResponse({'message': 'Welcome to the Hotel Booking API'})


def health_check(request):
    return JsonResponse({'status': 'ok'})


def _availability_response(hotel_id, query):
    results = find_available_room_types(
        hotel_id, query['check_in'], query['check_out'], query['num_guests']
    )
    return Response({'available_room_types': AvailableRoomTypeSerializer(results, many=True).data})


class HotelViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Hotel.objects.prefetch_related('room_types')
    serializer_class = HotelSerializer
    permission_classes = [permissions.AllowAny]
    lookup_value_regex = r'\d+'

    @action(detail=True, methods=['get'])
    def availability(self, request, pk=None):
        """Room types bookable for ?check_in=YYYY-MM-DD&check_out=YYYY-MM-DD&num_guests=N"""
        hotel = self.get_object()
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return _availability_response(hotel.pk, query.validated_data)


class AvailabilityView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        query = AvailabilityQuerySerializer(data=request.data)
        query.is_valid(raise_exception=True)
        hotel_id = query.validated_data.get('hotel_id')
        if hotel_id is None:
            raise ValidationError({'hotel_id': 'This field is required.'})
        return _availability_response(hotel_id, query.validated_data)


class BookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    /api/bookings/                      GET list (own), POST create
    /api/bookings/{id}/                 GET detail (own)
    /api/bookings/{id}/pay/             POST start payment
    /api/bookings/{id}/verify-payment/  POST gateway callback
    /api/bookings/{id}/cancel/          POST cancel with refund
    """

    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        return BookingLedger.from_settings().list_bookings(self.request.user)

    def retrieve(self, request, pk=None):
        booking = BookingLedger.from_settings().get_booking(pk, request.user)
        return Response(self.get_serializer(booking).data)

    def create(self, request):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = BookingLedger.from_settings().create_booking(
            user=request.user,
            hotel_id=data['hotel_id'],
            room_type_id=data['room_type_id'],
            check_in=data['check_in_date'],
            check_out=data['check_out_date'],
            num_guests=data['num_guests'],
            guest=data.get('guest'),
        )
        return Response({'booking': self.get_serializer(booking).data}, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def pay(self, request, pk=None):
        serializer = PaymentInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        intent = PaymentOrchestrator.from_settings().initiate_payment(
            pk,
            request.user,
            serializer.validated_data['payment_method'],
            serializer.validated_data['payment_details'],
        )
        body = {
            'booking': self.get_serializer(intent.booking).data,
            'payment': PaymentSerializer(intent.payment).data,
        }
        if intent.gateway_order_id:
            body.update(
                gateway_order_id=intent.gateway_order_id,
                gateway_key_id=intent.gateway_key_id,
                amount=intent.amount,
                currency=intent.currency,
            )
        else:
            body['message'] = 'Booking confirmed. Please pay at the hotel on check-in.'
        return Response(body)

    @action(detail=True, methods=['post'], url_path='verify-payment')
    def verify_payment(self, request, pk=None):
        serializer = PaymentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = PaymentOrchestrator.from_settings().verify_payment(
            pk,
            request.user,
            order_id=data['gateway_order_id'],
            payment_id=data['gateway_payment_id'],
            signature=data['gateway_signature'],
        )
        return Response({
            'success': True,
            'message': 'Payment verified successfully',
            'booking': self.get_serializer(booking).data,
        })

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        serializer = CancelBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = CancellationPolicy.from_settings().cancel_booking(
            pk, request.user, serializer.validated_data['reason']
        )
        return Response({
            'success': True,
            'message': 'Booking cancelled successfully',
            **CancellationResultSerializer(result).data,
            'booking': self.get_serializer(result.booking).data,
        })


class StaffBookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Back-office view over every booking."""

    queryset = Booking.objects.select_related('hotel', 'room_type').order_by('-created_at')
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAdminUser]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        qs = super().get_queryset()
        booking_status = self.request.query_params.get('status')
        if booking_status:
            qs = qs.filter(status=booking_status)
        return qs

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        booking = BookingLedger.from_settings().complete_booking(pk)
        return Response(self.get_serializer(booking).data)

    @action(detail=True, methods=['post'], url_path='collect-cash')
    def collect_cash(self, request, pk=None):
        booking = BookingLedger.from_settings().record_cash_collected(pk)
        return Response(self.get_serializer(booking).data)
