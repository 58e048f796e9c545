"""
Celery tasks for inventory monitoring.

Tasks:
    - generate_daily_stock_report: log low-stock and expiring drugs (Celery Beat)
"""
import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def generate_daily_stock_report():
    """
    Summarise drugs that need reordering or are close to expiry.

    Scheduled daily via CELERY_BEAT_SCHEDULE.
    """
    from django.utils import timezone
    from inventory import stock

    today = timezone.localdate()
    low = list(stock.low_stock_drugs().values_list('name', 'stock', 'min_stock'))
    expiring = list(stock.expiring_drugs(today=today))
    expired = [d for d in expiring if stock.is_expired(d, today)]

    low_lines = [f"  - {name}: {qty} (min {minimum})" for name, qty, minimum in low]
    expiry_lines = [
        f"  - {d.name}: {d.expiry_date} [{stock.expiry_status(d, today)}]"
        for d in expiring
    ]

    report = f"""
    ===============================================
    DAILY STOCK REPORT - {today}
    ===============================================
    Low stock: {len(low)}
    {chr(10).join(low_lines) or '  none'}

    Expiring soon: {len(expiring)} (expired: {len(expired)})
    {chr(10).join(expiry_lines) or '  none'}
    ===============================================
    """
    logger.info(report)

    return {
        'date': today.isoformat(),
        'low_stock': len(low),
        'expiring': len(expiring),
        'expired': len(expired),
    }
