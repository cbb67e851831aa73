from typing import Annotated, Optional
import logging

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from grn_recon.core.actor import Actor
from grn_recon.database import get_db
from grn_recon.services.notification_service import NotificationService, get_notification_service


logger = logging.getLogger(__name__)


async def get_actor(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_department: Annotated[Optional[str], Header()] = None,
) -> Actor:
    """
    Identity of the caller, as forwarded by the gateway.

    Authentication happens upstream; this service only records who acted.
    """
    if not x_user_id:
        logger.debug("No X-User-Id header; acting as 'system'")
    return Actor(user_id=x_user_id or "system", department=x_department)


DB = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
Notifier = Annotated[NotificationService, Depends(get_notification_service)]
