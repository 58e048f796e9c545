"""
Audit recording.

Audit writes are best effort: a failure is logged and never propagates to
the request that caused it.
"""
import logging
from ipaddress import ip_address as parse_ip
from typing import Any, Dict, Optional

from django.db import DatabaseError, transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


def _clean_ip(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return str(parse_ip(value))
    except ValueError:
        return None


def _actor(user):
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return user


def record_audit(
    action_type: str,
    entity_type: str,
    entity_id,
    details: Optional[Dict[str, Any]] = None,
    actor=None,
    ip_address: Optional[str] = None,
) -> Optional[AuditLog]:
    """
    Persist one audit record.

    Returns the created AuditLog, or None when the write failed.
    """
    try:
        # savepoint keeps a failed insert from poisoning an enclosing transaction
        with transaction.atomic():
            entry = AuditLog.objects.create(
                actor=_actor(actor),
                action_type=action_type,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else '',
                details=details or {},
                ip_address=_clean_ip(ip_address),
            )
    except (DatabaseError, TypeError, ValueError) as e:
        logger.error(f"Failed to write audit log for {action_type} {entity_type} #{entity_id}: {e}")
        return None

    logger.debug(f"Audit: {action_type} {entity_type} #{entity_id}")
    return entry


def record_request_audit(request, action_type: str, entity_type: str, entity_id, details=None):
    """record_audit() with actor and IP taken from a request."""
    from core.rate_limiting import get_client_ip

    return record_audit(
        action_type,
        entity_type,
        entity_id,
        details=details,
        actor=getattr(request, 'user', None),
        ip_address=get_client_ip(request),
    )
