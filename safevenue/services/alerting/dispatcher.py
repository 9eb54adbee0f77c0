"""
SafeVenue - Alert Dispatcher
Delivers critical predictive alerts to push and notification channels
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

import httpx

from safevenue.core.config import settings
from safevenue.models.domain import PredictiveAlert
from safevenue.services.monitoring import get_monitoring_service

logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Available notification channels"""
    PUSH = "push"
    LOG = "log"


class NotificationProvider(ABC):
    """Abstract base class for notification providers"""

    @abstractmethod
    async def send(self, alert: PredictiveAlert) -> bool:
        """Send alert through this channel"""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if provider is properly configured"""
        pass


class WebhookPushProvider(NotificationProvider):
    """Push notifications relayed through an HTTP webhook"""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url if url is not None else settings.PUSH_WEBHOOK_URL
        self.timeout = timeout or settings.PUSH_WEBHOOK_TIMEOUT
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.url)

    async def send(self, alert: PredictiveAlert) -> bool:
        if not self.is_configured():
            return False

        payload = {
            "title": f"{alert.alert_type.value.capitalize()} alert ({alert.severity.value})",
            "body": alert.message,
            "alert": alert.to_dict(),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)

                if response.status_code in [200, 201, 202, 204]:
                    logger.info(f"Push notification sent: {alert.id}")
                    return True
                else:
                    logger.error(f"Push send failed ({response.status_code}): {response.text}")
                    return False
        except Exception as e:
            logger.error(f"Push notification error: {e}")
            return False


class LogNotificationSink(NotificationProvider):
    """Writes alerts to the application log; always configured"""

    def is_configured(self) -> bool:
        return True

    async def send(self, alert: PredictiveAlert) -> bool:
        logger.warning(
            f"[{alert.severity.value.upper()}] {alert.alert_type.value} alert for event "
            f"{alert.event_id}: {alert.message}"
        )
        return True


class AlertDispatcher:
    """Fans alerts out to every configured provider"""

    def __init__(self, providers: Optional[Dict[NotificationChannel, NotificationProvider]] = None):
        if providers is None:
            providers = {
                NotificationChannel.PUSH: WebhookPushProvider(),
                NotificationChannel.LOG: LogNotificationSink(),
            }
        self.providers = providers

    def get_configured_channels(self) -> List[NotificationChannel]:
        """Get list of properly configured channels"""
        return [
            channel for channel, provider in self.providers.items()
            if provider.is_configured()
        ]

    async def dispatch(self, alert: PredictiveAlert) -> Dict[str, bool]:
        """
        Send one alert to all configured channels concurrently
        Returns dict of channel -> success status
        """
        channels = self.get_configured_channels()
        results: Dict[str, bool] = {}
        if not channels:
            return results

        channel_results = await asyncio.gather(
            *(self.providers[channel].send(alert) for channel in channels),
            return_exceptions=True,
        )

        monitoring = get_monitoring_service()
        for channel, result in zip(channels, channel_results):
            if isinstance(result, Exception):
                logger.error(f"Notification failed for {channel.value}: {result}")
                results[channel.value] = False
            else:
                results[channel.value] = bool(result)
            monitoring.record_notification(channel.value, results[channel.value])

        return results

    async def dispatch_all(self, alerts: List[PredictiveAlert]) -> List[Dict[str, bool]]:
        return list(await asyncio.gather(*(self.dispatch(alert) for alert in alerts)))


# Global dispatcher instance
alert_dispatcher = AlertDispatcher()


def get_alert_dispatcher() -> AlertDispatcher:
    return alert_dispatcher
