"""
Serializers for inventory models.

Drug creation is collected in two steps by the client, so it is validated as
two independent payloads (DrugBasicDetailsSerializer and
DrugPricingDetailsSerializer) that services.DrugCreateCommandBuilder merges
into a single creation command.
"""
from decimal import Decimal

from rest_framework import serializers

from .models import Drug, DrugCategory, DrugForm, Vendor
from .pricing import calculate_pricing


class DrugCategorySerializer(serializers.ModelSerializer):
    drug_count = serializers.SerializerMethodField()

    class Meta:
        model = DrugCategory
        fields = ['id', 'name', 'description', 'drug_count', 'created_at']
        read_only_fields = ['id', 'created_at']

    def get_drug_count(self, obj):
        return obj.drugs.count()


class DrugFormSerializer(serializers.ModelSerializer):

    class Meta:
        model = DrugForm
        fields = ['id', 'name', 'description', 'created_at']
        read_only_fields = ['id', 'created_at']


class ReferenceMinimalSerializer(serializers.Serializer):
    """Nested id + name for categories and forms."""
    id = serializers.IntegerField(read_only=True)
    name = serializers.CharField(read_only=True)


class VendorSerializer(serializers.ModelSerializer):

    class Meta:
        model = Vendor
        fields = [
            'id', 'name', 'contact_person', 'phone', 'email', 'address',
            'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'is_active', 'created_at', 'updated_at']


class DrugSerializer(serializers.ModelSerializer):
    """
    Read representation of a drug.

    Prices are returned at full precision; display_prices carries the same
    values rounded to 2 decimal places.
    """
    category = ReferenceMinimalSerializer(read_only=True)
    purchase_form = ReferenceMinimalSerializer(read_only=True)
    sale_form = ReferenceMinimalSerializer(read_only=True)
    display_prices = serializers.SerializerMethodField()
    is_low_stock = serializers.BooleanField(read_only=True)
    is_expired = serializers.BooleanField(read_only=True)
    expiry_status = serializers.CharField(read_only=True)
    days_until_expiry = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Drug
        fields = [
            'id', 'name', 'category', 'strength', 'unit',
            'purchase_form', 'purchase_price', 'units_per_purchase',
            'sale_form', 'pos_markup', 'prescription_markup',
            'unit_cost', 'pos_price', 'prescription_price', 'display_prices',
            'stock', 'min_stock', 'expiry_date', 'is_active',
            'is_low_stock', 'is_expired', 'expiry_status', 'days_until_expiry',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_display_prices(self, obj):
        return {key: str(value) for key, value in obj.pricing.display().items()}


class DrugMinimalSerializer(serializers.ModelSerializer):
    """Search results and nested drug references."""
    sale_form = serializers.CharField(source='sale_form.name', read_only=True)

    class Meta:
        model = Drug
        fields = ['id', 'name', 'strength', 'unit', 'sale_form', 'stock', 'pos_price', 'prescription_price']


class DrugBasicDetailsSerializer(serializers.Serializer):
    """First step of drug creation: identity, category and stock thresholds."""
    name = serializers.CharField(max_length=200)
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=DrugCategory.objects.all(),
        source='category'
    )
    strength = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    unit = serializers.ChoiceField(choices=Drug.Unit.choices, default=Drug.Unit.MG)
    min_stock = serializers.IntegerField(min_value=0, default=0)
    expiry_date = serializers.DateField()


class DrugPricingDetailsSerializer(serializers.Serializer):
    """Second step of drug creation: purchase/sale units and markups."""
    purchase_form_id = serializers.PrimaryKeyRelatedField(
        queryset=DrugForm.objects.all(),
        source='purchase_form'
    )
    purchase_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    sale_form_id = serializers.PrimaryKeyRelatedField(
        queryset=DrugForm.objects.all(),
        source='sale_form'
    )
    units_per_purchase = serializers.IntegerField(min_value=1)
    pos_markup = serializers.DecimalField(
        max_digits=8, decimal_places=4, min_value=Decimal('0'), default=Decimal('0')
    )
    prescription_markup = serializers.DecimalField(
        max_digits=8, decimal_places=4, min_value=Decimal('0'), default=Decimal('0')
    )


class DrugUpdateSerializer(serializers.ModelSerializer):
    """
    Edits to any drug field. Stock only moves through restocks and the price
    snapshot is recomputed on save, so neither is writable here.
    """
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=DrugCategory.objects.all(),
        source='category',
        required=False
    )
    purchase_form_id = serializers.PrimaryKeyRelatedField(
        queryset=DrugForm.objects.all(),
        source='purchase_form',
        required=False
    )
    sale_form_id = serializers.PrimaryKeyRelatedField(
        queryset=DrugForm.objects.all(),
        source='sale_form',
        required=False
    )
    units_per_purchase = serializers.IntegerField(min_value=1, required=False)

    class Meta:
        model = Drug
        fields = [
            'name', 'category_id', 'strength', 'unit',
            'purchase_form_id', 'purchase_price', 'units_per_purchase',
            'sale_form_id', 'pos_markup', 'prescription_markup',
            'min_stock', 'expiry_date', 'is_active'
        ]
        extra_kwargs = {
            'purchase_price': {'required': False},
            'expiry_date': {'required': False},
        }


class PricingPreviewSerializer(serializers.Serializer):
    """
    Live price preview while a drug form is being filled in.

    Every field is optional: the calculator treats missing values as 0.
    """
    purchase_price = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False, allow_null=True
    )
    units_per_purchase = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    pos_markup = serializers.DecimalField(
        max_digits=8, decimal_places=4, min_value=Decimal('0'), required=False, allow_null=True
    )
    prescription_markup = serializers.DecimalField(
        max_digits=8, decimal_places=4, min_value=Decimal('0'), required=False, allow_null=True
    )

    def to_pricing(self):
        data = self.validated_data
        return calculate_pricing(
            data.get('purchase_price'),
            data.get('units_per_purchase'),
            data.get('pos_markup'),
            data.get('prescription_markup'),
        )
