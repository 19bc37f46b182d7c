"""
SLA Value Objects
==================

Immutable value objects and pure calculators for the SLA domain.

Nothing in this module reads a clock: every time-dependent calculation
takes ``now`` explicitly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, NamedTuple, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from dcms.config import ESCALATION_ORDER, EscalationLevel, UrgencyLevel


# Normalised urgency contribution to the priority score
URGENCY_VALUES: Dict[str, float] = {
    UrgencyLevel.CRITICAL.value: 1.0,
    UrgencyLevel.HIGH.value: 0.7,
    UrgencyLevel.NORMAL.value: 0.3,
}

# Age at which the time component saturates
PRIORITY_TIME_HORIZON_HOURS = 168


class PriorityWeights(BaseModel):
    """Relative weights of the three priority components; must sum to 100."""
    urgency: float = Field(default=40, ge=0)
    time: float = Field(default=35, ge=0)
    location: float = Field(default=25, ge=0)

    @model_validator(mode="after")
    def validate_total(self) -> "PriorityWeights":
        total = self.urgency + self.time + self.location
        if abs(total - 100) > 1e-9:
            raise ValueError(f"priority weights must sum to 100, got {total}")
        return self


class SLAConfig(BaseModel):
    """
    Complaint lifecycle policy loaded from YAML.

    Effective SLA = Department SLA hours x Urgency multiplier

    This is a value object: it is swapped as a whole on reload, never
    mutated in place.
    """
    default_sla_hours: float = Field(
        default=72,
        gt=0,
        description="Base SLA when the department is unknown or has no hours"
    )
    urgency_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {"critical": 0.25, "high": 0.5, "normal": 1.0},
        description="SLA multipliers by urgency"
    )
    priority_weights: PriorityWeights = Field(default_factory=PriorityWeights)
    warning_hours: float = Field(
        default=6,
        gt=0,
        description="Send an SLA warning when less than this many hours remain"
    )
    escalation_thresholds: Dict[str, float] = Field(
        default_factory=lambda: {"level_1": 24, "level_2": 48, "level_3": 72},
        description="Hours overdue after which a level advances to the next one"
    )
    escalation_cooldown_hours: float = Field(
        default=12,
        ge=0,
        description="Minimum hours between two escalation advances"
    )
    auto_approval_threshold: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Classifier confidence required to skip manual review"
    )

    @field_validator("urgency_multipliers")
    @classmethod
    def validate_urgency_multipliers(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Fill in missing urgencies and reject non-positive multipliers."""
        defaults = {"critical": 0.25, "high": 0.5, "normal": 1.0}
        merged = {**defaults, **{k.lower(): val for k, val in v.items()}}
        for urgency, multiplier in merged.items():
            if multiplier <= 0:
                raise ValueError(f"urgency multiplier for {urgency} must be positive")
        return merged

    @field_validator("escalation_thresholds")
    @classmethod
    def validate_escalation_thresholds(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Thresholds must exist for every non-terminal level and increase."""
        defaults = {"level_1": 24, "level_2": 48, "level_3": 72}
        merged = {**defaults, **v}
        ordered = [merged[level] for level in ("level_1", "level_2", "level_3")]
        if ordered != sorted(ordered):
            raise ValueError("escalation thresholds must be non-decreasing by level")
        return merged

    def get_multiplier(self, urgency: str) -> float:
        """Multiplier for an urgency; unknown urgencies count as normal."""
        key = getattr(urgency, "value", urgency)
        return self.urgency_multipliers.get(key, self.urgency_multipliers["normal"])

    def get_threshold(self, level: EscalationLevel) -> Optional[float]:
        """Hours overdue required to leave ``level``; None for the top level."""
        return self.escalation_thresholds.get(getattr(level, "value", level))


class PriorityScorer:
    """
    Pure priority calculation.

    score = w_urgency * urgency_value + w_time * time_value + w_location * location_value
    """

    @staticmethod
    def calculate(
        urgency: str,
        created_at: datetime,
        is_critical_area: bool,
        now: datetime,
        weights: Optional[PriorityWeights] = None
    ) -> float:
        """
        Calculate a 0-100 priority score.

        Args:
            urgency: Complaint urgency
            created_at: When the complaint was submitted
            is_critical_area: Whether the complaint lies inside a critical area
            now: Evaluation time
            weights: Component weights (defaults 40/35/25)

        Returns:
            float: Score rounded to two decimals
        """
        weights = weights or PriorityWeights()
        key = getattr(urgency, "value", urgency)

        urgency_value = URGENCY_VALUES.get(key, URGENCY_VALUES["normal"])

        # Clock skew can make the age negative
        age_hours = max((now - created_at).total_seconds() / 3600, 0.0)
        time_value = min(age_hours / PRIORITY_TIME_HORIZON_HOURS, 1.0)

        location_value = 1.0 if is_critical_area else 0.0

        score = (
            weights.urgency * urgency_value
            + weights.time * time_value
            + weights.location * location_value
        )
        return round(min(max(score, 0.0), 100.0), 2)


class TimeRemaining(NamedTuple):
    """Display view of the time left until an SLA deadline."""
    is_breached: bool
    hours_remaining: float
    formatted: str


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class, all deadline arithmetic in one place.
    """

    @staticmethod
    def calculate_deadline(
        created_at: datetime,
        urgency: str,
        base_hours: Optional[float] = None,
        config: Optional[SLAConfig] = None
    ) -> datetime:
        """
        Calculate the SLA deadline for a complaint.

        Example:
            Department SLA 72h, urgency "critical" multiplier 0.25
            Deadline = created_at + 18h
        """
        config = config or SLAConfig()
        hours = base_hours if base_hours else config.default_sla_hours
        return created_at + timedelta(hours=hours * config.get_multiplier(urgency))

    @staticmethod
    def hours_until(deadline: datetime, now: datetime) -> float:
        """Hours until ``deadline``; negative once it has passed."""
        return (deadline - now).total_seconds() / 3600

    @staticmethod
    def time_remaining(deadline: datetime, now: datetime) -> TimeRemaining:
        """
        Format the time left until ``deadline``.

        Returns e.g. ``"1d 4h"``, ``"3h 20m"``, ``"45m"``, or
        ``"-3h 10m (overdue)"`` once the deadline has passed.
        """
        hours_remaining = SLACalculator.hours_until(deadline, now)
        is_breached = hours_remaining < 0

        total_minutes = int(abs(hours_remaining) * 60)
        days, rest = divmod(total_minutes, 24 * 60)
        hours, minutes = divmod(rest, 60)

        if days > 0:
            formatted = f"{days}d {hours}h"
        elif hours > 0:
            formatted = f"{hours}h {minutes}m"
        else:
            formatted = f"{minutes}m"

        if is_breached:
            formatted = f"-{formatted} (overdue)"

        return TimeRemaining(is_breached, round(hours_remaining, 2), formatted)


class EscalationLadder:
    """
    Ordered escalation levels with time thresholds and a cool-down.

    A level advances at most one step per evaluation and never goes down.
    """

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    @staticmethod
    def next_level(level: EscalationLevel) -> Optional[EscalationLevel]:
        """Level above ``level``, or None at the top of the ladder."""
        index = ESCALATION_ORDER.index(EscalationLevel(level))
        if index + 1 >= len(ESCALATION_ORDER):
            return None
        return ESCALATION_ORDER[index + 1]

    def evaluate(
        self,
        current_level: EscalationLevel,
        sla_deadline: datetime,
        last_escalated_at: datetime,
        now: datetime
    ) -> Optional[EscalationLevel]:
        """
        Decide whether a breached complaint climbs one level.

        Args:
            current_level: Level of the most recent escalation row
            sla_deadline: The missed deadline
            last_escalated_at: Creation time of the most recent escalation row
            now: Evaluation time

        Returns:
            The new level, or None when the complaint stays where it is
        """
        target = self.next_level(current_level)
        if target is None:
            return None

        threshold = self._config.get_threshold(current_level)
        if threshold is None:
            return None

        hours_overdue = (now - sla_deadline).total_seconds() / 3600
        if hours_overdue <= threshold:
            return None

        hours_since_last = (now - last_escalated_at).total_seconds() / 3600
        if hours_since_last < self._config.escalation_cooldown_hours:
            return None

        return target


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class StaticSLAConfigProvider(ISLAConfigProvider):
    """Provider for a fixed configuration (tests, one-off scripts)."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self._config
