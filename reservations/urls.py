from django.urls import path
from rest_framework.routers import DefaultRouter

from reservations.views import AvailabilityView, BookingViewSet, HotelViewSet, StaffBookingViewSet

router = DefaultRouter()
router.register(r'hotels', HotelViewSet)
router.register(r'bookings', BookingViewSet, basename='booking')
router.register(r'staff/bookings', StaffBookingViewSet, basename='staff-booking')

urlpatterns = [
    path('availability/', AvailabilityView.as_view(), name='availability'),
] + router.urls
