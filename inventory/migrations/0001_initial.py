from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='DrugCategory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, max_length=100, unique=True)),
                ('description', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Drug Category',
                'verbose_name_plural': 'Drug Categories',
                'ordering': ['name'],
                'abstract': False,
            },
        ),
        migrations.CreateModel(
            name='DrugForm',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, max_length=100, unique=True)),
                ('description', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Drug Form',
                'verbose_name_plural': 'Drug Forms',
                'ordering': ['name'],
                'abstract': False,
            },
        ),
        migrations.CreateModel(
            name='Vendor',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, max_length=200)),
                ('contact_person', models.CharField(blank=True, default='', max_length=200)),
                ('phone', models.CharField(blank=True, default='', max_length=50)),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('address', models.TextField(blank=True, default='')),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Vendor',
                'verbose_name_plural': 'Vendors',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Drug',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, help_text='Drug name as shown at the dispensary', max_length=200)),
                ('strength', models.CharField(blank=True, default='', max_length=50)),
                ('unit', models.CharField(choices=[('mg', 'mg'), ('ml', 'ml'), ('g', 'g'), ('mcg', 'mcg'), ('iu', 'IU')], default='mg', max_length=10)),
                ('purchase_price', models.DecimalField(decimal_places=2, help_text='Cost of one purchase unit', max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('units_per_purchase', models.PositiveIntegerField(default=1, help_text='Sale units contained in one purchase unit', validators=[django.core.validators.MinValueValidator(1)])),
                ('pos_markup', models.DecimalField(decimal_places=4, default=Decimal('0'), help_text='Point-of-sale markup ratio (0.20 = 20%)', max_digits=8, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('prescription_markup', models.DecimalField(decimal_places=4, default=Decimal('0'), help_text='Prescription markup ratio (0.10 = 10%)', max_digits=8, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('unit_cost', models.DecimalField(decimal_places=10, default=Decimal('0'), editable=False, max_digits=24)),
                ('pos_price', models.DecimalField(decimal_places=10, default=Decimal('0'), editable=False, max_digits=24)),
                ('prescription_price', models.DecimalField(decimal_places=10, default=Decimal('0'), editable=False, max_digits=24)),
                ('stock', models.PositiveIntegerField(default=0, editable=False)),
                ('min_stock', models.PositiveIntegerField(default=0, help_text='Reorder threshold')),
                ('expiry_date', models.DateField(db_index=True)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='drugs', to='inventory.drugcategory')),
                ('purchase_form', models.ForeignKey(help_text='Form the drug is bought in, e.g. Box', on_delete=django.db.models.deletion.PROTECT, related_name='purchase_drugs', to='inventory.drugform')),
                ('sale_form', models.ForeignKey(help_text='Form the drug is dispensed in, e.g. Tablet', on_delete=django.db.models.deletion.PROTECT, related_name='sale_drugs', to='inventory.drugform')),
            ],
            options={
                'verbose_name': 'Drug',
                'verbose_name_plural': 'Drugs',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['name', 'is_active'], name='drug_name_active_idx'),
                    models.Index(fields=['category', 'is_active'], name='drug_category_active_idx'),
                    models.Index(fields=['is_active', 'expiry_date'], name='drug_active_expiry_idx'),
                ],
            },
        ),
    ]
