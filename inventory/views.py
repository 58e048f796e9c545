"""
Inventory API Views.

Implements:
- Drug list/create/retrieve/update, with two-step creation payloads
- Drug name search with rate limiting
- Low-stock and expiring-drug monitors
- Inventory statistics
- Live pricing preview
- Category, form and vendor reference data
"""
import logging

from django.db.models import DecimalField, ExpressionWrapper, F, Q, Sum
from django.utils import timezone
from rest_framework import generics, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import ClinicError, ValidationError, error_response
from core.rate_limiting import get_client_ip, rate_limit
from audit.models import AuditLog
from audit.services import record_request_audit
from .models import Drug, DrugCategory, DrugForm, Vendor
from .serializers import (
    DrugBasicDetailsSerializer,
    DrugCategorySerializer,
    DrugFormSerializer,
    DrugMinimalSerializer,
    DrugPricingDetailsSerializer,
    DrugSerializer,
    DrugUpdateSerializer,
    PricingPreviewSerializer,
    VendorSerializer,
)
from .services import (
    DrugCreateCommandBuilder,
    create_drug,
    delete_reference,
    toggle_vendor_active,
    update_drug,
)
from . import stock

logger = logging.getLogger(__name__)


def _drug_queryset():
    return Drug.objects.select_related('category', 'purchase_form', 'sale_form')


# =============================================================================
# Drug Views
# =============================================================================

class DrugListCreateView(generics.ListAPIView):
    """
    GET: List drugs
    POST: Create a drug from basic + pricing details

    Query Parameters (GET):
        - active: true/false (default: all)
        - category_id: Filter by category

    Request Body (POST):
    {
        "basic": {"name": ..., "category_id": ..., "strength": ..., "unit": ...,
                  "min_stock": ..., "expiry_date": ...},
        "pricing": {"purchase_form_id": ..., "purchase_price": ..., "sale_form_id": ...,
                    "units_per_purchase": ..., "pos_markup": ..., "prescription_markup": ...}
    }
    A flat body carrying both sets of fields is accepted as well.
    """
    serializer_class = DrugSerializer

    def get_queryset(self):
        queryset = _drug_queryset()

        active = self.request.query_params.get('active', '').lower()
        if active in ('true', 'false'):
            queryset = queryset.filter(is_active=(active == 'true'))

        category_id = self.request.query_params.get('category_id')
        if category_id and category_id.isdigit():
            queryset = queryset.filter(category_id=category_id)

        return queryset.order_by('name')

    def post(self, request):
        if not isinstance(request.data, dict):
            return error_response(ValidationError(errors={'non_field_errors': ['Expected a JSON object.']}))

        basic_data = request.data.get('basic', request.data)
        pricing_data = request.data.get('pricing', request.data)

        # Each step validates independently; report both sets of errors together
        basic = DrugBasicDetailsSerializer(data=basic_data)
        pricing = DrugPricingDetailsSerializer(data=pricing_data)
        basic_ok = basic.is_valid()
        pricing_ok = pricing.is_valid()
        if not (basic_ok and pricing_ok):
            errors = {}
            if not basic_ok:
                errors['basic'] = basic.errors
            if not pricing_ok:
                errors['pricing'] = pricing.errors
            return Response(errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            command = (
                DrugCreateCommandBuilder()
                .with_basic_details(basic.validated_data)
                .with_pricing_details(pricing.validated_data)
                .build()
            )
            drug = create_drug(command, user=request.user, ip_address=get_client_ip(request))
        except ClinicError as e:
            logger.warning(f"Drug creation refused: {e}")
            return error_response(e)

        drug = _drug_queryset().get(pk=drug.pk)
        return Response(DrugSerializer(drug).data, status=status.HTTP_201_CREATED)


class DrugDetailView(generics.RetrieveAPIView):
    """
    GET: Retrieve a drug
    PUT/PATCH: Update a drug (stock and derived prices are not writable)

    Drugs are never deleted; set is_active to false instead.
    """
    serializer_class = DrugSerializer

    def get_queryset(self):
        return _drug_queryset()

    def put(self, request, pk):
        return self._update(request, pk, partial=False)

    def patch(self, request, pk):
        return self._update(request, pk, partial=True)

    def _update(self, request, pk, partial):
        drug = self.get_object()
        if not isinstance(request.data, dict):
            return error_response(ValidationError(errors={'non_field_errors': ['Expected a JSON object.']}))
        if 'stock' in request.data:
            return error_response(ValidationError(
                errors={'stock': ['Stock can only change through a restock.']}
            ))

        serializer = DrugUpdateSerializer(drug, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        try:
            drug = update_drug(
                drug.pk,
                serializer.validated_data,
                user=request.user,
                ip_address=get_client_ip(request)
            )
        except ClinicError as e:
            logger.warning(f"Update of drug #{pk} refused: {e}")
            return error_response(e)

        return Response(DrugSerializer(_drug_queryset().get(pk=drug.pk)).data)


class DrugSearchView(APIView):
    """
    GET: Name search for active drugs (dispensing and prescription pickers).

    Query Parameters:
        - q: Search text (minimum 2 characters)

    Returns up to 50 matches, prefix matches first.
    """

    @rate_limit(max_requests=60, window_seconds=60)
    def get(self, request):
        query = request.query_params.get('q', '').strip()

        if len(query) < 2:
            return Response(
                {'error': 'Query must be at least 2 characters'},
                status=status.HTTP_400_BAD_REQUEST
            )

        base = _drug_queryset().filter(is_active=True)
        matches = list(base.filter(name__istartswith=query).order_by('name')[:50])
        if len(matches) < 50:
            seen = [d.pk for d in matches]
            matches += list(
                base.filter(name__icontains=query).exclude(pk__in=seen).order_by('name')[:50 - len(matches)]
            )

        return Response(DrugMinimalSerializer(matches, many=True).data)


class LowStockView(generics.ListAPIView):
    """GET: Active drugs at or below their reorder threshold, lowest stock first."""
    serializer_class = DrugSerializer

    def get_queryset(self):
        return stock.low_stock_drugs().select_related('purchase_form')


class ExpiringDrugsView(generics.ListAPIView):
    """
    GET: Active, in-stock drugs expiring soon (expired ones included).

    Query Parameters:
        - days: Window in days (default: EXPIRY_WARNING_DAYS)
    """
    serializer_class = DrugSerializer

    def get_queryset(self):
        days = self.request.query_params.get('days', '')
        within = int(days) if days.isdigit() else None
        return stock.expiring_drugs(within_days=within).select_related('purchase_form')


class InventoryStatsView(APIView):
    """GET: Headline figures for the inventory dashboard."""

    def get(self, request):
        from restocks.models import RestockEvent

        active = Drug.objects.filter(is_active=True)
        stock_value = active.aggregate(
            value=Sum(ExpressionWrapper(
                F('stock') * F('unit_cost'),
                output_field=DecimalField(max_digits=30, decimal_places=10)
            ))
        )['value']

        expiring = stock.expiring_drugs()
        stats = {
            'total_drugs': Drug.objects.count(),
            'active_drugs': active.count(),
            'low_stock': stock.low_stock_drugs().count(),
            'expiring': expiring.count(),
            'expired': expiring.filter(expiry_date__lt=timezone.localdate()).count(),
            'out_of_stock': active.filter(stock=0).count(),
            'stock_value': str(stock_value or 0),
            'pending_restocks': RestockEvent.objects.filter(status=RestockEvent.Status.PENDING).count(),
        }
        return Response(stats)


class PricingPreviewView(APIView):
    """
    POST: Compute prices for a drug being edited, without saving anything.

    Returns full-precision values and their 2-decimal display form.
    """

    def post(self, request):
        serializer = PricingPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        pricing = serializer.to_pricing()
        return Response({
            'unit_cost': str(pricing.unit_cost),
            'pos_price': str(pricing.pos_price),
            'prescription_price': str(pricing.prescription_price),
            'display': {key: str(value) for key, value in pricing.display().items()},
        })


# =============================================================================
# Reference Data Views
# =============================================================================

class ReferencePagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = 'limit'
    max_page_size = 100


class ReferenceListCreateView(generics.ListCreateAPIView):
    """
    GET: Paginated list (page, limit; q filters by name)
    POST: Create an entry
    """
    pagination_class = ReferencePagination
    entity_type = None

    def get_queryset(self):
        queryset = self.serializer_class.Meta.model.objects.all()
        keyword = self.request.query_params.get('q', '').strip()
        if keyword:
            queryset = queryset.filter(name__icontains=keyword)
        return queryset.order_by('name')

    def perform_create(self, serializer):
        instance = serializer.save()
        logger.info(f"Created {self.entity_type} #{instance.pk} {instance}")
        record_request_audit(
            self.request, AuditLog.ActionType.CREATE, self.entity_type, instance.pk,
            details=serializer.data
        )


class ReferenceDeleteView(APIView):
    """DELETE: Remove an entry no drug references."""
    model = None

    def delete(self, request, pk):
        try:
            delete_reference(self.model, pk, user=request.user, ip_address=get_client_ip(request))
        except ClinicError as e:
            logger.warning(f"Delete of {self.model._meta.verbose_name} #{pk} refused: {e}")
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CategoryListCreateView(ReferenceListCreateView):
    serializer_class = DrugCategorySerializer
    entity_type = AuditLog.EntityType.CATEGORY


class CategoryDeleteView(ReferenceDeleteView):
    model = DrugCategory


class FormListCreateView(ReferenceListCreateView):
    serializer_class = DrugFormSerializer
    entity_type = AuditLog.EntityType.FORM


class FormDeleteView(ReferenceDeleteView):
    model = DrugForm


class VendorListCreateView(generics.ListCreateAPIView):
    """
    GET: List vendors (q filters by name or contact; active=true for selectable ones)
    POST: Create a vendor
    """
    serializer_class = VendorSerializer

    def get_queryset(self):
        queryset = Vendor.objects.all()

        keyword = self.request.query_params.get('q', '').strip()
        if keyword:
            queryset = queryset.filter(Q(name__icontains=keyword) | Q(contact_person__icontains=keyword))

        if self.request.query_params.get('active', '').lower() == 'true':
            queryset = queryset.filter(is_active=True)

        return queryset.order_by('name')

    def perform_create(self, serializer):
        vendor = serializer.save()
        record_request_audit(
            self.request, AuditLog.ActionType.CREATE, AuditLog.EntityType.VENDOR, vendor.pk,
            details=serializer.data
        )


class VendorDetailView(generics.RetrieveUpdateAPIView):
    """
    GET: Retrieve a vendor
    PUT/PATCH: Update vendor details
    """
    queryset = Vendor.objects.all()
    serializer_class = VendorSerializer

    def perform_update(self, serializer):
        vendor = serializer.save()
        record_request_audit(
            self.request, AuditLog.ActionType.UPDATE, AuditLog.EntityType.VENDOR, vendor.pk,
            details=serializer.data
        )


class VendorToggleActiveView(APIView):
    """PATCH: Flip a vendor between active and inactive."""

    def patch(self, request, pk):
        try:
            vendor = toggle_vendor_active(pk, user=request.user, ip_address=get_client_ip(request))
        except ClinicError as e:
            return error_response(e)
        return Response(VendorSerializer(vendor).data)
