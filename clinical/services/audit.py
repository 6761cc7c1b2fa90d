from typing import Optional, Any, Dict
from django.contrib.auth import get_user_model
from clinical.models import AuditEvent

User = get_user_model()

def log_action(*, user: Optional[User], action: str, obj=None, detail: Optional[Dict[str, Any]]=None) -> AuditEvent:
    """Append an audit row.

    Called inside the caller's transaction so the row commits or rolls
    back together with the change it describes.
    """
    return AuditEvent.objects.create(
        user=user if getattr(user, 'pk', None) else None,
        action=action,
        object_type=type(obj).__name__.lower() if obj is not None else None,
        object_id=getattr(obj, 'pk', None),
        detail=detail or {},
    )
