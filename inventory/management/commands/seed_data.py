"""
Management command to seed the database with sample pharmacy data.

Generates:
- Drug categories and forms
- Vendors
- Drugs with purchase/sale unit conversion and markups

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing data first
"""
import datetime
import random
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from inventory.models import Drug, DrugCategory, DrugForm, Vendor

CATEGORIES = [
    'Analgesics', 'Antibiotics', 'Antimalarials', 'Antihypertensives',
    'Antidiabetics', 'Antihistamines', 'Antacids', 'Vitamins & Supplements',
    'Antifungals', 'Cough & Cold',
]

# (purchase form, sale form, units per purchase)
PACKAGING = [
    ('Box', 'Tablet', 100),
    ('Box', 'Capsule', 30),
    ('Strip', 'Tablet', 10),
    ('Bottle', 'Bottle', 1),
    ('Carton', 'Ampoule', 50),
    ('Tube', 'Tube', 1),
]

DRUGS = {
    'Analgesics': [('Paracetamol', '500'), ('Ibuprofen', '400'), ('Diclofenac', '50')],
    'Antibiotics': [('Amoxicillin', '500'), ('Ciprofloxacin', '500'), ('Metronidazole', '400'),
                    ('Azithromycin', '250')],
    'Antimalarials': [('Artemether/Lumefantrine', '20/120'), ('Quinine', '300')],
    'Antihypertensives': [('Amlodipine', '5'), ('Lisinopril', '10'), ('Nifedipine', '20')],
    'Antidiabetics': [('Metformin', '500'), ('Glibenclamide', '5')],
    'Antihistamines': [('Cetirizine', '10'), ('Loratadine', '10'), ('Chlorphenamine', '4')],
    'Antacids': [('Omeprazole', '20'), ('Magnesium Trisilicate', '250')],
    'Vitamins & Supplements': [('Folic Acid', '5'), ('Ferrous Sulphate', '200'), ('Vitamin C', '100')],
    'Antifungals': [('Fluconazole', '150'), ('Clotrimazole', '1')],
    'Cough & Cold': [('Dextromethorphan', '15'), ('Guaifenesin', '100')],
}

VENDORS = [
    ('MedSupply Ltd', 'Grace Otieno', '+254700000001'),
    ('PharmaDirect', 'Samuel Njoroge', '+254700000002'),
    ('HealthLine Distributors', 'Amina Yusuf', '+254700000003'),
    ('CarePlus Wholesale', 'Peter Kamau', '+254700000004'),
]


class Command(BaseCommand):
    help = 'Seed the database with sample drug categories, forms, vendors and drugs'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing inventory data before seeding',
        )
        parser.add_argument(
            '--seed',
            type=int,
            default=None,
            help='Random seed for reproducible data',
        )

    def handle(self, *args, **options):
        if options['seed'] is not None:
            random.seed(options['seed'])

        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting database seeding...')

        with transaction.atomic():
            categories = self._create_categories()
            forms = self._create_forms()
            self._create_vendors()
            self._create_drugs(categories, forms)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))

    def _clear_data(self):
        from restocks.models import Notification, RestockEvent

        Notification.objects.all().delete()
        RestockEvent.objects.all().delete()
        Drug.objects.all().delete()
        Vendor.objects.all().delete()
        DrugForm.objects.all().delete()
        DrugCategory.objects.all().delete()

        self.stdout.write(self.style.WARNING('All existing inventory data cleared.'))

    def _create_categories(self):
        categories = {}
        for name in CATEGORIES:
            category, created = DrugCategory.objects.get_or_create(name=name)
            categories[name] = category
            if created:
                self.stdout.write(f'  Created category: {name}')
        self.stdout.write(self.style.SUCCESS(f'{len(categories)} categories ready'))
        return categories

    def _create_forms(self):
        names = sorted({form for packaging in PACKAGING for form in packaging[:2]})
        forms = {}
        for name in names:
            forms[name], _ = DrugForm.objects.get_or_create(name=name)
        self.stdout.write(self.style.SUCCESS(f'{len(forms)} forms ready'))
        return forms

    def _create_vendors(self):
        for name, contact, phone in VENDORS:
            Vendor.objects.get_or_create(
                name=name,
                defaults={'contact_person': contact, 'phone': phone}
            )
        self.stdout.write(self.style.SUCCESS(f'{len(VENDORS)} vendors ready'))

    def _create_drugs(self, categories, forms):
        today = timezone.localdate()
        created = 0

        for category_name, entries in DRUGS.items():
            for name, strength in entries:
                if Drug.objects.filter(name=name, strength=strength).exists():
                    continue
                purchase_form, sale_form, units = random.choice(PACKAGING)
                unit_price = Decimal(str(round(random.uniform(0.5, 25), 2)))

                # Drug.save() derives unit_cost and sale prices
                Drug.objects.create(
                    name=name,
                    category=categories[category_name],
                    strength=strength,
                    unit=Drug.Unit.ML if sale_form == 'Bottle' else Drug.Unit.MG,
                    purchase_form=forms[purchase_form],
                    sale_form=forms[sale_form],
                    purchase_price=unit_price * units,
                    units_per_purchase=units,
                    pos_markup=Decimal(random.choice(['0.20', '0.25', '0.30', '0.40'])),
                    prescription_markup=Decimal(random.choice(['0.10', '0.15', '0.20'])),
                    stock=random.choice([0, units, units * random.randint(2, 20)]),
                    min_stock=units * random.randint(1, 3),
                    expiry_date=today + datetime.timedelta(days=random.randint(-30, 720)),
                )
                created += 1

        self.stdout.write(self.style.SUCCESS(f'Created {created} drugs'))
