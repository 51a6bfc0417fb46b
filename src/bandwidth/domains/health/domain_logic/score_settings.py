"""Per-user score settings: category toggles, weight maps and validation.

Weights are percentages. Every weight map the scorers read must be
complete and sum to 100 (within 0.1) before settings are accepted, so the
scoring path never has to guess a missing weight.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from bandwidth.core.audit.logger import AuditLogger
from bandwidth.core.auth.identity import IdentityProvider, require_user
from bandwidth.core.storage.repository import BandwidthRepository

logger = logging.getLogger(__name__)

SLEEP = "sleep"
EXERCISE = "exercise"
HEART_RATE = "heartRate"

CATEGORIES = (SLEEP, EXERCISE, HEART_RATE)

RECENT_DAY_KEYS = ("currentDay", "yesterday", "twoDaysAgo")
EXERCISE_KEYS = ("minutes", "calories", "steps")
HEART_RATE_KEYS = ("elevated", "variability", "resting")

AVERAGING_PERIODS = (30, 60, 90)
THRESHOLD_RANGE = (60.0, 90.0)

SAVED_MESSAGE = "Settings saved successfully"

_WEIGHT_TOLERANCE = 0.1

# Main-weight split by number of enabled categories
_TWO_CATEGORY_SPLIT = (60.0, 40.0)
_ALL_CATEGORY_SPLIT = {SLEEP: 50.0, EXERCISE: 30.0, HEART_RATE: 20.0}


class SettingsInvalidError(Exception):
    """Raised when settings fail validation. ``reason`` is user-facing."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _default_main() -> dict[str, float]:
    return {SLEEP: 0.0, EXERCISE: 60.0, HEART_RATE: 40.0}


def _default_recent() -> dict[str, float]:
    return {"currentDay": 70.0, "yesterday": 20.0, "twoDaysAgo": 10.0}


def _default_exercise() -> dict[str, float]:
    return {"minutes": 50.0, "calories": 30.0, "steps": 20.0}


def _default_heart_rate() -> dict[str, float]:
    return {"elevated": 40.0, "variability": 35.0, "resting": 25.0}


@dataclass
class ScoreSettings:
    sleep_enabled: bool = False
    exercise_enabled: bool = True
    heart_rate_enabled: bool = True
    main_weights: dict[str, float] = field(default_factory=_default_main)
    recent_days_weights: dict[str, float] = field(default_factory=_default_recent)
    exercise_weights: dict[str, float] = field(default_factory=_default_exercise)
    heart_rate_weights: dict[str, float] = field(default_factory=_default_heart_rate)
    elevated_heart_rate_threshold: float = 75.0
    averaging_period_days: int = 30

    def is_enabled(self, category: str) -> bool:
        if category == SLEEP:
            return self.sleep_enabled
        if category == EXERCISE:
            return self.exercise_enabled
        if category == HEART_RATE:
            return self.heart_rate_enabled
        raise ValueError(f"Unknown category: {category!r}")

    @property
    def enabled_categories(self) -> list[str]:
        return [c for c in CATEGORIES if self.is_enabled(c)]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreSettings:
        """Build settings from a stored or user-supplied mapping.

        Missing fields take their defaults. Unknown fields and wrongly typed
        values raise SettingsInvalidError.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise SettingsInvalidError(f"Unknown settings field(s): {', '.join(unknown)}")

        settings = cls()
        for name, value in data.items():
            if name.endswith("_enabled"):
                if not isinstance(value, bool):
                    raise SettingsInvalidError(f"{name} must be true or false")
            elif name.endswith("_weights"):
                value = _weight_map(name, value)
            elif name == "elevated_heart_rate_threshold":
                value = _number(name, value)
            elif name == "averaging_period_days":
                if isinstance(value, bool) or not isinstance(value, int):
                    raise SettingsInvalidError(f"{name} must be a whole number of days")
            setattr(settings, name, value)
        return settings


def _number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SettingsInvalidError(f"{name} must be a number")
    return float(value)


def _weight_map(name: str, value: Any) -> dict[str, float]:
    if not isinstance(value, dict):
        raise SettingsInvalidError(f"{name} must be a mapping of weights")
    return {str(k): _number(f"{name}.{k}", v) for k, v in value.items()}


def _sums_to_100(values) -> bool:
    return abs(sum(values) - 100.0) <= _WEIGHT_TOLERANCE


def validate_settings(settings: ScoreSettings) -> None:
    """Check every weight invariant.

    Raises:
        SettingsInvalidError: With the first failing rule as ``reason``.
    """
    enabled = settings.enabled_categories
    missing = [c for c in enabled if c not in settings.main_weights]
    if missing:
        raise SettingsInvalidError(f"Missing main category weight for {', '.join(missing)}")
    if not _sums_to_100(settings.main_weights[c] for c in enabled):
        raise SettingsInvalidError("Enabled main category weights must sum to 100%")

    missing = [k for k in RECENT_DAY_KEYS if k not in settings.recent_days_weights]
    if missing:
        raise SettingsInvalidError(f"Missing recent days weight for {', '.join(missing)}")
    if not _sums_to_100(settings.recent_days_weights.values()):
        raise SettingsInvalidError("Recent days weights must sum to 100%")

    if settings.exercise_enabled:
        missing = [k for k in EXERCISE_KEYS if k not in settings.exercise_weights]
        if missing:
            raise SettingsInvalidError(f"Missing exercise weight for {', '.join(missing)}")
        if not _sums_to_100(settings.exercise_weights.values()):
            raise SettingsInvalidError("Exercise weights must sum to 100%")

    if settings.heart_rate_enabled:
        missing = [k for k in HEART_RATE_KEYS if k not in settings.heart_rate_weights]
        if missing:
            raise SettingsInvalidError(f"Missing heart rate weight for {', '.join(missing)}")
        if not _sums_to_100(settings.heart_rate_weights.values()):
            raise SettingsInvalidError("Heart rate weights must sum to 100%")

        low, high = THRESHOLD_RANGE
        if not low <= settings.elevated_heart_rate_threshold <= high:
            raise SettingsInvalidError(
                "Elevated heart rate threshold must be between 60% and 90%"
            )

    if settings.averaging_period_days not in AVERAGING_PERIODS:
        raise SettingsInvalidError("Averaging period must be 30, 60 or 90 days")


def redistribute_main_weights(settings: ScoreSettings) -> None:
    """Replace ``main_weights`` with the standard split over enabled categories."""
    enabled = settings.enabled_categories
    if not enabled:
        return
    if len(enabled) == 1:
        weights = {enabled[0]: 100.0}
    elif len(enabled) == 2:
        weights = dict(zip(enabled, _TWO_CATEGORY_SPLIT))
    else:
        weights = dict(_ALL_CATEGORY_SPLIT)
    settings.main_weights = weights


class SettingsManager:
    """Edits, validates and persists one user's score settings.

    ``settings`` is the working copy callers edit; ``saved`` is the last
    accepted version, which scoring reads. A failed save restores the
    working copy from ``saved``.

    Usage::

        manager = SettingsManager(repository, "u1")
        manager.toggle_category("sleep", True)
        ok, message = manager.save()
    """

    def __init__(
        self,
        repository: BandwidthRepository,
        user_id: str,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._repo = repository
        self._user_id = user_id
        self._audit = audit_logger
        self._saved = self._load()
        self.settings = copy.deepcopy(self._saved)

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def saved(self) -> ScoreSettings:
        """A copy of the last accepted settings."""
        return copy.deepcopy(self._saved)

    def save(self) -> tuple[bool, str]:
        """Validate and persist the working copy.

        Returns:
            ``(True, "Settings saved successfully")`` or ``(False, reason)``;
            on failure the working copy is rolled back.
        """
        try:
            validate_settings(self.settings)
        except SettingsInvalidError as exc:
            logger.info("Rejected settings for user %s: %s", self._user_id, exc.reason)
            self.settings = copy.deepcopy(self._saved)
            if self._audit is not None:
                self._audit.log_settings_saved(
                    user_id=self._user_id, accepted=False, reason=exc.reason
                )
            return False, exc.reason

        self._repo.save_user_settings(self._user_id, self.settings.to_dict())
        self._saved = copy.deepcopy(self.settings)
        if self._audit is not None:
            self._audit.log_settings_saved(user_id=self._user_id, accepted=True)
        return True, SAVED_MESSAGE

    def replace(self, changes: dict[str, Any]) -> tuple[bool, str]:
        """Apply field changes on top of the saved settings and save."""
        merged = {**self._saved.to_dict(), **changes}
        try:
            self.settings = ScoreSettings.from_dict(merged)
        except SettingsInvalidError as exc:
            self.settings = copy.deepcopy(self._saved)
            return False, exc.reason
        return self.save()

    def toggle_category(self, category: str, enabled: bool) -> None:
        """Enable or disable a category on the working copy (not saved).

        Main weights are redistributed over the enabled categories. A
        disabled category's sub-weights are zeroed with their keys kept; a
        re-enabled one gets its default sub-weights back.
        """
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category!r}. Valid: {CATEGORIES}")

        s = self.settings
        if category == SLEEP:
            s.sleep_enabled = enabled
        elif category == EXERCISE:
            s.exercise_enabled = enabled
            s.exercise_weights = (
                _default_exercise() if enabled else dict.fromkeys(EXERCISE_KEYS, 0.0)
            )
        else:
            s.heart_rate_enabled = enabled
            if enabled:
                s.heart_rate_weights = _default_heart_rate()
            else:
                s.heart_rate_weights = dict.fromkeys(HEART_RATE_KEYS, 0.0)
                s.elevated_heart_rate_threshold = ScoreSettings().elevated_heart_rate_threshold

        redistribute_main_weights(s)
        for name in CATEGORIES:
            if not s.is_enabled(name):
                s.main_weights.pop(name, None)

    def redistribute_main_weights(self) -> None:
        redistribute_main_weights(self.settings)

    def reset_to_defaults(self) -> tuple[bool, str]:
        self.settings = ScoreSettings()
        redistribute_main_weights(self.settings)
        return self.save()

    def _load(self) -> ScoreSettings:
        stored = self._repo.get_user_settings(self._user_id)
        if stored is None:
            return ScoreSettings()
        try:
            settings = ScoreSettings.from_dict(stored)
            validate_settings(settings)
        except SettingsInvalidError as exc:
            logger.warning(
                "Stored settings for user %s are invalid (%s); using defaults",
                self._user_id, exc.reason,
            )
            return ScoreSettings()
        return settings


class SettingsRegistry:
    """One SettingsManager per user, loaded on first use.

    Scoring reads the settings of the user being scored; tools edit the
    settings of whoever is signed in when they are called.

    Usage::

        registry = SettingsRegistry(repository, audit_logger)
        registry.for_user("u1").saved
        registry.current(identity).toggle_category("sleep", True)
    """

    def __init__(
        self,
        repository: BandwidthRepository,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._repo = repository
        self._audit = audit_logger
        self._managers: dict[str, SettingsManager] = {}

    def for_user(self, user_id: str) -> SettingsManager:
        if not user_id:
            raise ValueError("user_id must not be empty")
        manager = self._managers.get(user_id)
        if manager is None:
            manager = SettingsManager(self._repo, user_id, self._audit)
            self._managers[user_id] = manager
        return manager

    def current(self, identity: IdentityProvider) -> SettingsManager:
        """The signed-in user's manager.

        Raises:
            UnauthenticatedError: If no user is bound to ``identity``.
        """
        return self.for_user(require_user(identity))
