"""
SafeVenue - Alert API Routes
Alert acknowledgement
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from safevenue.api.dependencies import get_current_user_id, get_repository
from safevenue.core.exceptions import AlertNotFoundError
from safevenue.services.analytics import PredictiveAlertSystem
from safevenue.services.data import EventDataRepository

router = APIRouter()


@router.post("/{alert_id}/acknowledge")
async def acknowledge_alert(
    alert_id: str,
    user_id: str = Depends(get_current_user_id),
    repository: EventDataRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """
    Mark an alert as acknowledged by the requesting user.

    Repeating the call keeps the first acknowledgement.
    """
    alert = await repository.get_alert(alert_id)
    if alert is None:
        raise AlertNotFoundError(alert_id)

    system = PredictiveAlertSystem(alert.event_id, repository)
    acknowledged = await system.acknowledge_alert(alert_id, user_id)
    return acknowledged.to_dict()
