"""
SafeVenue - Crowd Flow Prediction Engine
Short-horizon occupancy forecasts extrapolated from an event's attendance samples.

Predictions are anchored on the latest attendance sample so that repeated
runs over unchanged history produce identical slots and values.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional

from safevenue.core.config import settings
from safevenue.core.exceptions import PersistenceError
from safevenue.models.domain import (
    AttendanceSample,
    CrowdFactor,
    CrowdFlowPrediction,
    DensityZone,
    EventSnapshot,
    OccupancyForecast,
    RiskLevel,
    RiskPeriod,
)
from safevenue.services.data.repository import EventDataRepository

logger = logging.getLogger(__name__)

SLOT_COUNT = 8
SLOT_MINUTES = 30

ENTRY_WEIGHT = 0.7
EXIT_WEIGHT = 0.3

BASE_CONFIDENCE = 0.8
MIN_CONFIDENCE = 0.3

HIGH_OCCUPANCY_PERCENT = 85
CRITICAL_OCCUPANCY_PERCENT = 95

VENUE_LOCATION = "Venue-wide"

RECOMMENDATIONS_BY_LEVEL = {
    RiskLevel.CRITICAL: [
        "Consider implementing crowd control measures",
        "Prepare overflow areas if available",
        "Alert security and management teams",
    ],
    RiskLevel.HIGH: [
        "Monitor entry rates closely",
        "Prepare for potential capacity management",
    ],
    RiskLevel.MEDIUM: [
        "Monitor attendance closely",
    ],
    RiskLevel.LOW: [],
}


@dataclass
class FlowRates:
    """Entry and exit rates in people per minute"""
    entry_rate: float = 0.0
    exit_rate: float = 0.0
    peak_entry_time: Optional[datetime] = None
    peak_exit_time: Optional[datetime] = None
    intervals: int = 0

    @property
    def entry_per_hour(self) -> float:
        return self.entry_rate * 60

    @property
    def exit_per_hour(self) -> float:
        return self.exit_rate * 60


# =============================================================================
# PURE HELPERS
# =============================================================================

def calculate_flow_rates(samples: List[AttendanceSample]) -> FlowRates:
    """
    Maximum entry and exit rates over consecutive samples.

    Increases and decreases are tracked separately; intervals with no
    elapsed time are skipped.
    """
    rates = FlowRates()
    ordered = sorted(samples, key=lambda s: s.timestamp)

    for previous, current in zip(ordered, ordered[1:]):
        minutes = (current.timestamp - previous.timestamp).total_seconds() / 60
        if minutes <= 0:
            continue
        rates.intervals += 1

        rate = (current.count - previous.count) / minutes
        if rate > rates.entry_rate:
            rates.entry_rate = rate
            rates.peak_entry_time = current.timestamp
        elif -rate > rates.exit_rate:
            rates.exit_rate = -rate
            rates.peak_exit_time = current.timestamp

    return rates


def density_risk_level(density_percent: float) -> RiskLevel:
    """>=95 critical, >=85 high, >=70 medium"""
    if density_percent >= 95:
        return RiskLevel.CRITICAL
    if density_percent >= 85:
        return RiskLevel.HIGH
    if density_percent >= 70:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def prediction_confidence(sample_count: int, hours_ahead: float) -> float:
    confidence = BASE_CONFIDENCE
    if sample_count < 10:
        confidence -= 0.2
    elif sample_count < 20:
        confidence -= 0.1
    if hours_ahead > 2:
        confidence -= 0.1
    if hours_ahead > 4:
        confidence -= 0.2
    return round(max(MIN_CONFIDENCE, confidence), 2)


def project_count(current: int, capacity: int, rates: FlowRates, hours_ahead: float) -> int:
    """current + entry/h * h * 0.7 - exit/h * h * 0.3, clamped to [0, capacity]"""
    projected = (
        current
        + rates.entry_per_hour * hours_ahead * ENTRY_WEIGHT
        - rates.exit_per_hour * hours_ahead * EXIT_WEIGHT
    )
    return int(round(max(0.0, min(float(capacity), projected))))


def build_predictions(
    event: EventSnapshot,
    samples: List[AttendanceSample],
    anchor: datetime,
) -> List[CrowdFlowPrediction]:
    capacity = event.capacity
    current = event.current_attendance
    rates = calculate_flow_rates(samples)
    current_density = current / capacity * 100

    predictions = []
    for slot in range(1, SLOT_COUNT + 1):
        minutes_ahead = slot * SLOT_MINUTES
        hours_ahead = minutes_ahead / 60
        count = project_count(current, capacity, rates, hours_ahead)
        density = count / capacity * 100
        level = density_risk_level(density)

        factors = [
            CrowdFactor(
                name="entry_rate",
                value=round(rates.entry_per_hour, 2),
                impact="increase" if rates.entry_rate > 0 else "none",
                description=f"Peak entry rate {rates.entry_per_hour:.0f}/h weighted at {ENTRY_WEIGHT:g}",
            ),
            CrowdFactor(
                name="exit_rate",
                value=round(rates.exit_per_hour, 2),
                impact="decrease" if rates.exit_rate > 0 else "none",
                description=f"Peak exit rate {rates.exit_per_hour:.0f}/h weighted at {EXIT_WEIGHT:g}",
            ),
            CrowdFactor(
                name="history_samples",
                value=float(len(samples)),
                impact="confidence",
                description=f"{len(samples)} attendance samples available",
            ),
        ]

        predictions.append(CrowdFlowPrediction(
            event_id=event.id,
            timestamp=anchor + timedelta(minutes=minutes_ahead),
            location=VENUE_LOCATION,
            current_density=current_density,
            predicted_density=density,
            predicted_count=count,
            confidence=prediction_confidence(len(samples), hours_ahead),
            factors=factors,
            risk_level=level,
            recommendations=list(RECOMMENDATIONS_BY_LEVEL[level]),
        ))

    return predictions


def _merge_recommendations(predictions: List[CrowdFlowPrediction]) -> List[str]:
    merged: List[str] = []
    for prediction in predictions:
        for recommendation in prediction.recommendations:
            if recommendation not in merged:
                merged.append(recommendation)
    return merged


def find_risk_periods(predictions: List[CrowdFlowPrediction]) -> List[RiskPeriod]:
    """Contiguous runs of high or critical slots"""
    severe = (RiskLevel.HIGH, RiskLevel.CRITICAL)
    periods = []
    run: List[CrowdFlowPrediction] = []

    for prediction in predictions + [None]:
        if prediction is not None and prediction.risk_level in severe:
            run.append(prediction)
            continue
        if run:
            periods.append(RiskPeriod(
                start=run[0].timestamp,
                end=run[-1].timestamp,
                risk_level=(
                    RiskLevel.CRITICAL
                    if any(p.risk_level == RiskLevel.CRITICAL for p in run)
                    else RiskLevel.HIGH
                ),
                peak_density=max(p.predicted_density for p in run),
                recommendations=_merge_recommendations(run),
            ))
            run = []

    return periods


def summarize_forecast(
    predictions: List[CrowdFlowPrediction],
    max_capacity: int,
    zone: tzinfo = timezone.utc,
) -> Optional[OccupancyForecast]:
    """Peak, utilisation, risk periods and capacity warnings stamped in venue-local time"""
    if not predictions or max_capacity <= 0:
        return None

    # max() keeps the first of equal densities
    peak = max(predictions, key=lambda p: p.predicted_density)

    warnings = []
    for prediction in predictions:
        percent = prediction.predicted_count / max_capacity * 100
        at = prediction.timestamp.astimezone(zone).strftime("%H:%M")
        if percent >= CRITICAL_OCCUPANCY_PERCENT:
            warnings.append(f"Critical occupancy predicted at {at}: {percent:.0f}%")
        elif percent >= HIGH_OCCUPANCY_PERCENT:
            warnings.append(f"High occupancy predicted at {at}: {percent:.0f}%")

    return OccupancyForecast(
        peak_time=peak.timestamp,
        peak_occupancy=peak.predicted_count,
        peak_density=peak.predicted_density,
        average_occupancy=sum(p.predicted_count for p in predictions) / len(predictions),
        capacity_utilization=peak.predicted_count / max_capacity * 100,
        risk_periods=find_risk_periods(predictions),
        capacity_warnings=warnings,
        confidence=sum(p.confidence for p in predictions) / len(predictions),
        max_capacity=max_capacity,
    )


def identify_peak_times(predictions: List[CrowdFlowPrediction]) -> List[datetime]:
    """Timestamps of local maxima in predicted count"""
    peaks = []
    for previous, current, following in zip(predictions, predictions[1:], predictions[2:]):
        if current.predicted_count > previous.predicted_count and current.predicted_count > following.predicted_count:
            peaks.append(current.timestamp)
    return peaks


# =============================================================================
# DENSITY ZONES
# =============================================================================

class DensityZoneSource(ABC):
    """Supplies per-zone occupancy snapshots for an event"""

    @abstractmethod
    async def get_zones(
        self,
        event: EventSnapshot,
        predictions: List[CrowdFlowPrediction],
    ) -> List[DensityZone]:
        pass


class SimulatedDensityZoneSource(DensityZoneSource):
    """
    Placeholder zones until venue sensors are wired in.

    Splits current attendance and the predicted peak evenly across four
    fixed zones.
    """

    ZONES = ["Main Arena", "Food Court", "Parking Area", "Entry Gates"]

    async def get_zones(
        self,
        event: EventSnapshot,
        predictions: List[CrowdFlowPrediction],
    ) -> List[DensityZone]:
        zone_count = len(self.ZONES)
        zone_capacity = max(1, event.capacity // zone_count)
        occupancy = event.current_attendance // zone_count
        peak = max((p.predicted_count for p in predictions), default=0) // zone_count
        rate = occupancy / zone_capacity

        if rate > 0.8:
            level = RiskLevel.HIGH
            recommendations = ["Increase security presence", "Monitor crowd flow closely"]
        elif rate > 0.5:
            level = RiskLevel.MEDIUM
            recommendations = ["Regular monitoring"]
        else:
            level = RiskLevel.LOW
            recommendations = []

        return [
            DensityZone(
                zone_id=name.lower().replace(" ", "_"),
                name=name,
                occupancy=occupancy,
                capacity=zone_capacity,
                occupancy_rate=rate,
                risk_level=level,
                predicted_peak=peak,
                recommendations=list(recommendations),
            )
            for name in self.ZONES
        ]


# =============================================================================
# ENGINE
# =============================================================================

class CrowdFlowPredictionEngine:
    """Crowd flow prediction for a single event"""

    def __init__(
        self,
        event_id: str,
        repository: EventDataRepository,
        zone_source: Optional[DensityZoneSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.event_id = event_id
        self.repository = repository
        self.zone_source = zone_source or SimulatedDensityZoneSource()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def predict_crowd_flow(self, persist: bool = True) -> List[CrowdFlowPrediction]:
        """Eight 30-minute slots over the next four hours"""
        event = await self.repository.get_event(self.event_id)
        if event is None:
            logger.warning(f"No event record for {self.event_id}, skipping crowd prediction")
            return []
        if not event.capacity or event.capacity <= 0:
            logger.warning(f"Event {self.event_id} has no capacity, skipping crowd prediction")
            return []

        samples = await self.repository.list_attendance(self.event_id)
        anchor = max(s.timestamp for s in samples) if samples else self._clock()
        predictions = build_predictions(event, samples, anchor)

        peak = max(predictions, key=lambda p: p.predicted_density)
        logger.info(
            f"Crowd prediction for {self.event_id}: {len(samples)} samples, "
            f"peak {peak.predicted_count}/{event.capacity} at {peak.timestamp.isoformat()}"
        )

        if persist:
            await self.store_crowd_predictions(predictions)
        return predictions

    async def store_crowd_predictions(self, predictions: List[CrowdFlowPrediction]) -> None:
        """Replace the stored batch for this event"""
        try:
            await self.repository.replace_crowd_predictions(self.event_id, predictions)
        except Exception as e:
            logger.error(f"Failed to store crowd predictions for {self.event_id}: {e}")
            raise PersistenceError(f"Crowd prediction write failed: {e}") from e

    async def calculate_occupancy_forecast(
        self,
        predictions: Optional[List[CrowdFlowPrediction]] = None,
    ) -> Optional[OccupancyForecast]:
        event = await self.repository.get_event(self.event_id)
        if event is None:
            return None
        if predictions is None:
            predictions = await self.predict_crowd_flow(persist=False)
        return summarize_forecast(predictions, event.capacity, settings.get_venue_zone(event.timezone))

    async def identify_peak_times(
        self,
        predictions: Optional[List[CrowdFlowPrediction]] = None,
    ) -> List[datetime]:
        if predictions is None:
            predictions = await self.predict_crowd_flow(persist=False)
        return identify_peak_times(predictions)

    async def calculate_flow_rates(self) -> FlowRates:
        return calculate_flow_rates(await self.repository.list_attendance(self.event_id))

    async def monitor_density_zones(self) -> List[DensityZone]:
        event = await self.repository.get_event(self.event_id)
        if event is None or not event.capacity:
            return []
        predictions = await self.predict_crowd_flow(persist=False)
        return await self.zone_source.get_zones(event, predictions)
