"""
Celery tasks for the restock approval workflow.

Tasks:
    - notify_restock_pending: tell every active staff user a restock awaits approval
    - notify_restock_decision: tell the requester their restock was approved or rejected
"""
import logging

from celery import shared_task
from django.contrib.auth import get_user_model

logger = logging.getLogger(__name__)


def _describe(restock) -> str:
    drug = restock.drug
    return (
        f"{restock.purchase_quantity} {drug.purchase_form.name} of {drug.name} "
        f"({restock.sale_quantity} {drug.sale_form.name}), batch {restock.batch_number}"
    )


def _load_restock(restock_id: int):
    from restocks.models import RestockEvent

    try:
        return RestockEvent.objects.select_related(
            'drug__purchase_form', 'drug__sale_form', 'created_by'
        ).get(id=restock_id)
    except RestockEvent.DoesNotExist:
        logger.error(f"Restock #{restock_id} not found for notification")
        return None


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def notify_restock_pending(self, restock_id: int):
    """
    Create a restock_pending notification for each active staff user.

    Returns:
        Dict with the number of notifications created
    """
    from restocks.models import Notification

    restock = _load_restock(restock_id)
    if restock is None:
        return {'status': 'error', 'message': f'Restock {restock_id} not found'}

    if not restock.is_pending:
        logger.warning(f"Restock #{restock_id} is {restock.status}, skipping pending notification")
        return {'status': 'skipped', 'message': f'Restock {restock_id} is not pending'}

    requester = restock.created_by.get_username() if restock.created_by else 'unknown user'
    message = f"Restock pending approval: {_describe(restock)}, requested by {requester}"
    staff = get_user_model().objects.filter(is_staff=True, is_active=True)
    notifications = Notification.objects.bulk_create([
        Notification(
            user=user,
            type=Notification.Type.RESTOCK_PENDING,
            message=message,
            restock=restock
        )
        for user in staff
    ])

    logger.info(f"Restock #{restock_id}: notified {len(notifications)} staff users")
    return {'status': 'success', 'restock_id': restock_id, 'notified': len(notifications)}


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def notify_restock_decision(self, restock_id: int):
    """Notify the requester of an approval or rejection."""
    from restocks.models import Notification

    restock = _load_restock(restock_id)
    if restock is None:
        return {'status': 'error', 'message': f'Restock {restock_id} not found'}

    if restock.is_pending:
        return {'status': 'skipped', 'message': f'Restock {restock_id} is still pending'}

    if restock.created_by is None:
        logger.info(f"Restock #{restock_id} has no requester to notify")
        return {'status': 'skipped', 'message': f'Restock {restock_id} has no requester'}

    if restock.is_approved:
        kind = Notification.Type.RESTOCK_APPROVED
        message = f"Restock approved: {_describe(restock)}"
    else:
        kind = Notification.Type.RESTOCK_REJECTED
        message = f"Restock rejected: {_describe(restock)}"
        if restock.rejection_reason:
            message += f". Reason: {restock.rejection_reason}"

    Notification.objects.create(
        user=restock.created_by,
        type=kind,
        message=message,
        restock=restock
    )
    logger.info(f"Restock #{restock_id}: {kind} sent to {restock.created_by}")
    return {'status': 'success', 'restock_id': restock_id, 'type': kind}
