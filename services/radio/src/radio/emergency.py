"""Emergency alerts and the helpers answering them.

A user has at most one active alert. It stays active until the user cancels it
or goes offline. Raising an alert notifies every nearby connection; helpers who
confirm are then sent the alerting user's location updates.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from radio.connections import ConnectionRegistry
from radio.errors import EmergencyNotFound, InvalidRequest
from radio.events import (
    EmergencyCancelled,
    EmergencyPayload,
    EmergencyRaised,
    Event,
    Helper,
    HelpConfirmed,
    HelperConfirmedNotification,
    HelperLocationUpdate,
    HelpRejected,
)
from radio.models import EmergencyAlert
from radio.registry import SubscriberRegistry

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points (haversine)."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def validate_position(latitude: Optional[float], longitude: Optional[float]) -> tuple[float, float]:
    if latitude is None or longitude is None:
        raise InvalidRequest("Invalid location: latitude and longitude are required")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise InvalidRequest(f"Invalid location: ({latitude}, {longitude}) is out of range")
    return latitude, longitude


class EmergencyCoordinator:
    def __init__(
        self,
        subscribers: SubscriberRegistry,
        connections: ConnectionRegistry,
        radius_km: float,
    ) -> None:
        self._subscribers = subscribers
        self._connections = connections
        self._radius_km = radius_km
        self._alerts: dict[str, EmergencyAlert] = {}
        # last reported position per user id
        self._positions: dict[str, tuple[float, float]] = {}

    def get(self, user_id: str) -> Optional[EmergencyAlert]:
        return self._alerts.get(user_id)

    def active(self) -> list[EmergencyAlert]:
        return list(self._alerts.values())

    def nearby(self, latitude: float, longitude: float) -> list[str]:
        """Connections within range of a point, plus those with no known position."""
        nearby = []
        for connection_id in self._subscribers.connection_ids():
            user = self._connections.user_for(connection_id)
            position = self._positions.get(user.user_id) if user is not None else None
            if position is None or distance_km(latitude, longitude, *position) <= self._radius_km:
                nearby.append(connection_id)
        return nearby

    def raise_alert(self, alert: EmergencyAlert) -> tuple[int, int]:
        """Activate ``alert`` and send it to nearby connections except the sender's.

        A repeated alert from the same user replaces the previous one and keeps
        its helpers. Returns the number of connections notified and the number
        found nearby.
        """
        previous = self._alerts.get(alert.user_id)
        if previous is not None:
            alert.helpers = previous.helpers
        self._alerts[alert.user_id] = alert
        self._positions[alert.user_id] = (alert.latitude, alert.longitude)

        event = EmergencyRaised(emergency=EmergencyPayload.from_alert(alert))
        nearby = self.nearby(alert.latitude, alert.longitude)
        notified = 0
        for connection_id in nearby:
            if connection_id != alert.connection_id:
                self._subscribers.unicast(connection_id, event)
                notified += 1
        logger.warning(
            "Emergency alert (%s) from %s (%s): %d/%d nearby connections notified",
            alert.emergency_type,
            alert.user_id,
            alert.username,
            notified,
            len(nearby),
        )
        return notified, len(nearby)

    def update_location(
        self,
        user_id: str,
        username: str,
        latitude: float,
        longitude: float,
        timestamp: int,
    ) -> int:
        """Record a position. During an alert, forward it to the helpers.

        Returns the number of helpers notified.
        """
        self._positions[user_id] = (latitude, longitude)
        alert = self._alerts.get(user_id)
        if alert is None:
            return 0
        alert.latitude = latitude
        alert.longitude = longitude
        alert.timestamp = timestamp
        return self._notify_helpers(
            alert,
            HelperLocationUpdate(
                emergency_user_id=user_id,
                user_id=user_id,
                username=username or alert.username,
                latitude=latitude,
                longitude=longitude,
                timestamp=timestamp,
            ),
        )

    def confirm_help(
        self,
        emergency_user_id: str,
        helper_id: str,
        helper_name: str,
        latitude: Optional[float],
        longitude: Optional[float],
        timestamp: int,
    ) -> None:
        alert = self._alerts.get(emergency_user_id)
        if alert is None:
            raise EmergencyNotFound(emergency_user_id)
        alert.helpers[helper_id] = helper_name

        self._subscribers.unicast(
            self._connection_of(alert),
            HelpConfirmed(
                emergency_user_id=emergency_user_id,
                helper_id=helper_id,
                helper_name=helper_name,
                latitude=latitude,
                longitude=longitude,
                timestamp=timestamp,
            ),
        )
        if latitude is not None and longitude is not None:
            self._positions[helper_id] = (latitude, longitude)
            self._notify_helpers(
                alert,
                HelperLocationUpdate(
                    emergency_user_id=emergency_user_id,
                    user_id=helper_id,
                    username=helper_name,
                    latitude=latitude,
                    longitude=longitude,
                    timestamp=timestamp,
                ),
                skip=helper_id,
            )
        self._subscribers.broadcast_all(
            HelperConfirmedNotification(
                emergency_user_id=emergency_user_id,
                helper_id=helper_id,
                helper_name=helper_name,
                timestamp=timestamp,
            )
        )
        logger.info("%s (%s) is helping %s", helper_id, helper_name, emergency_user_id)

    def reject_help(self, emergency_user_id: str, helper_id: str, helper_name: str) -> None:
        alert = self._alerts.get(emergency_user_id)
        if alert is None:
            raise EmergencyNotFound(emergency_user_id)
        alert.helpers.pop(helper_id, None)
        self._subscribers.unicast(
            self._connection_of(alert),
            HelpRejected(
                emergency_user_id=emergency_user_id,
                helper_id=helper_id,
                helper_name=helper_name,
            ),
        )
        logger.info("%s (%s) declined to help %s", helper_id, helper_name, emergency_user_id)

    def cancel(self, user_id: str) -> bool:
        """End the user's alert and tell everyone. Returns False when none was active."""
        alert = self._alerts.pop(user_id, None)
        if alert is None:
            return False
        self._subscribers.broadcast_all(EmergencyCancelled(user_id=user_id))
        logger.info("Emergency alert for %s cancelled", user_id)
        return True

    def forget(self, user_id: str) -> None:
        self._positions.pop(user_id, None)

    def helpers(self, emergency_user_id: str) -> list[Helper]:
        """Confirmed helpers of an alert who are still online."""
        alert = self._alerts.get(emergency_user_id)
        if alert is None:
            return []
        helpers = []
        for helper_id in alert.helpers:
            user = self._connections.get(helper_id)
            if user is not None:
                helpers.append(Helper(user_id=helper_id, username=user.username))
        return helpers

    def _connection_of(self, alert: EmergencyAlert) -> Optional[str]:
        return self._connections.connection_of(alert.user_id) or alert.connection_id

    def _notify_helpers(self, alert: EmergencyAlert, event: Event, skip: Optional[str] = None) -> int:
        notified = 0
        for helper_id in alert.helpers:
            if helper_id == skip:
                continue
            connection_id = self._connections.connection_of(helper_id)
            if connection_id is not None:
                self._subscribers.unicast(connection_id, event)
                notified += 1
        return notified
