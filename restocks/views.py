"""
Restock API Views.

Implements:
- POST /inventory/drugs/{id}/restock/ - Submit a restock (immediate or pending approval)
- GET /inventory/restock/pending/ - Restocks awaiting a decision (staff)
- GET /inventory/restock/history/ - Applied and rejected restocks
- POST /inventory/restock/{id}/approve/ - Approve or reject a pending restock (staff)
- GET /notifications/ - Restock notifications for the current user
- POST /notifications/{id}/read/ - Mark a notification read
"""
import logging

from rest_framework import generics, status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import ClinicError, NotFoundError, error_response
from core.rate_limiting import RateLimitMixin, get_client_ip
from .models import Notification, RestockEvent
from .serializers import (
    NotificationSerializer,
    RestockDecisionSerializer,
    RestockEventSerializer,
    RestockResponseSerializer,
)
from .services import approve_restock, reject_restock, submit_restock

logger = logging.getLogger(__name__)


def _restock_queryset():
    return RestockEvent.objects.select_related(
        'drug__purchase_form', 'drug__sale_form', 'vendor', 'created_by', 'approved_by'
    )


class RestockDrugView(RateLimitMixin, APIView):
    """
    POST: Restock a drug.

    Request Body:
    {
        "purchase_quantity": 5,
        "batch_number": "B-2291",
        "expiry_date": "2027-03-31",
        "notes": "optional",
        "vendor_id": 2
    }

    sale_quantity, if sent, is ignored; it is always derived from the drug's
    units_per_purchase.
    """
    rate_limit_max_requests = 30

    def post(self, request, pk):
        try:
            event, drug = submit_restock(
                pk,
                request.data,
                user=request.user,
                ip_address=get_client_ip(request)
            )
        except ClinicError as e:
            logger.warning(f"Restock of drug #{pk} refused: {e}")
            return error_response(e)

        body = RestockResponseSerializer({'restock': event, 'drug': drug}).data
        if event.is_pending:
            return Response(body, status=status.HTTP_202_ACCEPTED)
        return Response(body, status=status.HTTP_200_OK)


class PendingRestockListView(generics.ListAPIView):
    """GET: Restocks awaiting approval, oldest first."""
    serializer_class = RestockEventSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        return _restock_queryset().filter(
            status=RestockEvent.Status.PENDING
        ).order_by('created_at')


class RestockHistoryView(generics.ListAPIView):
    """
    GET: Decided restocks, newest first.

    Query Parameters:
        - drug_id: Restocks of one drug
        - status: APPROVED or REJECTED
    """
    serializer_class = RestockEventSerializer

    def get_queryset(self):
        queryset = _restock_queryset().exclude(status=RestockEvent.Status.PENDING)

        drug_id = self.request.query_params.get('drug_id')
        if drug_id and drug_id.isdigit():
            queryset = queryset.filter(drug_id=drug_id)

        status_filter = self.request.query_params.get('status', '').upper()
        if status_filter in (RestockEvent.Status.APPROVED, RestockEvent.Status.REJECTED):
            queryset = queryset.filter(status=status_filter)

        return queryset.order_by('-created_at', '-id')


class RestockDecisionView(APIView):
    """
    POST: Approve or reject a pending restock.

    Request Body:
        {"status": "approved"} or {"status": "rejected", "reason": "..."}
    """
    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        serializer = RestockDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        decision = serializer.validated_data['status']
        ip = get_client_ip(request)

        try:
            if decision == 'approved':
                event = approve_restock(pk, request.user, ip_address=ip)
            else:
                event = reject_restock(pk, request.user, serializer.validated_data['reason'], ip_address=ip)
        except ClinicError as e:
            logger.warning(f"Decision on restock #{pk} refused: {e}")
            return error_response(e)

        event = _restock_queryset().get(pk=event.pk)
        return Response(RestockEventSerializer(event).data)


class NotificationListView(generics.ListAPIView):
    """
    GET: Latest 50 notifications for the current user.

    Staff see restock_pending; other users see decisions on their own requests.
    """
    serializer_class = NotificationSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = Notification.objects.filter(user=user)
        if user.is_staff:
            queryset = queryset.filter(type=Notification.Type.RESTOCK_PENDING)
        else:
            queryset = queryset.filter(type__in=[
                Notification.Type.RESTOCK_APPROVED,
                Notification.Type.RESTOCK_REJECTED,
            ])
        return queryset.order_by('-created_at', '-id')[:50]


class NotificationReadView(APIView):
    """POST: Mark one of the current user's notifications as read."""

    def post(self, request, pk):
        updated = Notification.objects.filter(pk=pk, user=request.user).update(is_read=True)
        if not updated:
            return error_response(NotFoundError(f"Notification {pk} not found"))
        return Response({'message': 'Notification marked as read'})
