from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from reservations.models import Hotel, Room, RoomType

HOTELS = [
    {
        'name': 'Seaside Grand',
        'description': 'Beachfront hotel with a rooftop pool',
        'address': '12 Marine Drive, Mumbai',
        'phone': '+91 22 5550 1000',
        'email': 'stay@seasidegrand.example.com',
        'amenities': ['wifi', 'pool', 'spa', 'restaurant'],
        'room_types': [
            {
                'name': 'Standard Room',
                'description': 'Comfortable standard room with city view',
                'base_price_per_night': Decimal('2000.00'),
                'max_guests': 2,
                'amenities': ['wifi', 'tv'],
                'rooms': ['101', '102', '103'],
            },
            {
                'name': 'Deluxe Room',
                'description': 'Spacious deluxe room with ocean view',
                'base_price_per_night': Decimal('3500.00'),
                'max_guests': 3,
                'amenities': ['wifi', 'tv', 'minibar'],
                'rooms': ['201', '202'],
            },
            {
                'name': 'Family Suite',
                'description': 'Large family suite with kitchenette',
                'base_price_per_night': Decimal('6000.00'),
                'max_guests': 4,
                'amenities': ['wifi', 'tv', 'kitchenette'],
                'rooms': ['301'],
            },
        ],
    },
    {
        'name': 'Hillcrest Residency',
        'description': 'Quiet retreat in the hills',
        'address': '4 Mall Road, Shimla',
        'phone': '+91 177 555 2000',
        'email': 'hello@hillcrest.example.com',
        'amenities': ['wifi', 'parking', 'restaurant'],
        'room_types': [
            {
                'name': 'Valley View Room',
                'description': 'Room with balcony facing the valley',
                'base_price_per_night': Decimal('2800.00'),
                'max_guests': 2,
                'amenities': ['wifi', 'heater'],
                'rooms': ['11', '12'],
            },
            {
                'name': 'Presidential Suite',
                'description': 'Luxury suite with all amenities',
                'base_price_per_night': Decimal('12000.00'),
                'max_guests': 6,
                'amenities': ['wifi', 'heater', 'jacuzzi'],
                'rooms': ['50'],
            },
        ],
    },
]


class Command(BaseCommand):
    help = 'Populate database with sample hotels, room types and rooms'

    def add_arguments(self, parser):
        parser.add_argument(
            '--with-demo-user',
            action='store_true',
            help='Also create a demo/demo12345 login for trying the booking API',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        for hotel_data in HOTELS:
            hotel_data = dict(hotel_data)
            room_types = hotel_data.pop('room_types')
            hotel, created = Hotel.objects.get_or_create(name=hotel_data['name'], defaults=hotel_data)
            if created:
                self.stdout.write(f'Created hotel: {hotel.name}')
            else:
                self.stdout.write(f'Hotel {hotel.name} already exists')

            for room_type_data in room_types:
                room_type_data = dict(room_type_data)
                room_numbers = room_type_data.pop('rooms')
                room_type, _ = RoomType.objects.get_or_create(
                    hotel=hotel, name=room_type_data['name'], defaults=room_type_data
                )
                for number in room_numbers:
                    room, created = Room.objects.get_or_create(
                        room_type=room_type,
                        room_number=number,
                        defaults={'floor': int(number) // 100 or 1},
                    )
                    if created:
                        self.stdout.write(f'  Created room: {room.room_number} - {room_type.name}')

        if options['with_demo_user']:
            User = get_user_model()
            if not User.objects.filter(username='demo').exists():
                User.objects.create_user('demo', email='demo@example.com', password='demo12345')
                self.stdout.write('Created demo user')

        self.stdout.write(self.style.SUCCESS('Successfully populated database with sample data'))
