from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, replace
from typing import TYPE_CHECKING, Callable, Optional

from periods import Period

if TYPE_CHECKING:  # pragma: no cover
    from services import PreferenceService

logger = logging.getLogger(__name__)

SETTINGS_KEY = "MonthlyBudgetBars_settings"
CATEGORIES_SELECTED_KEY = "MonthlyBudgetBars_cats"

SETTINGS_VERSION_1 = 1
SETTINGS_VERSION_2 = 2
SETTINGS_VERSION_3 = 3
CURRENT_SETTINGS_VERSION = SETTINGS_VERSION_3

V1_NUM_FIELDS = 7
V2_NUM_FIELDS = 8
V3_NUM_FIELDS = 9

MAX_WARNING_LEVEL = 200.0
MAX_OVER_BUDGET_SPREAD = 50.0

_SPLIT_RE = re.compile(r"\s*,\s*")


class SettingsCorrupt(ValueError):
    pass


@dataclass(frozen=True)
class WidgetSettings:
    version: int = CURRENT_SETTINGS_VERSION
    budget_name: str = "Budget"
    use_full_names: bool = False
    warning_level: float = 100.0
    over_budget_level: float = 105.0
    period: Period = Period.AUTOMATIC
    all_ancestors: bool = False
    use_category_currency: bool = False
    ignore_unbudgeted: bool = False

    def as_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["period"] = int(self.period)
        return data


DEFAULT_SETTINGS = WidgetSettings()


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() == "true"


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def _parse_period(raw: str) -> Period:
    try:
        return Period(int(raw))
    except ValueError as exc:
        raise SettingsCorrupt(f"Unknown period: {raw!r}") from exc


def _decode_v1(fields: list[str]) -> dict[str, object]:
    return {
        "budget_name": fields[1],
        "use_full_names": _parse_bool(fields[2]),
        "warning_level": float(fields[3]),
        "over_budget_level": float(fields[4]),
        "period": _parse_period(fields[5]),
        "all_ancestors": _parse_bool(fields[6]),
    }


def _decode_v2(fields: list[str]) -> dict[str, object]:
    values = _decode_v1(fields)
    values["use_category_currency"] = _parse_bool(fields[7])
    return values


def _decode_v3(fields: list[str]) -> dict[str, object]:
    values = _decode_v2(fields)
    values["ignore_unbudgeted"] = _parse_bool(fields[8])
    return values


_DECODERS: dict[int, tuple[int, Callable[[list[str]], dict[str, object]]]] = {
    SETTINGS_VERSION_1: (V1_NUM_FIELDS, _decode_v1),
    SETTINGS_VERSION_2: (V2_NUM_FIELDS, _decode_v2),
    SETTINGS_VERSION_3: (V3_NUM_FIELDS, _decode_v3),
}


def decode_settings(raw: Optional[str]) -> WidgetSettings:
    """Decode a stored settings record, upgrading it to the current version.

    Fields introduced after the stored version take their defaults. Anything
    that does not parse yields the default record.
    """
    if not raw:
        return DEFAULT_SETTINGS
    fields = _SPLIT_RE.split(raw.strip())
    try:
        version = int(fields[0])
        expected = _DECODERS.get(version)
        if expected is None:
            raise SettingsCorrupt(f"Unsupported settings version {version}")
        field_count, decoder = expected
        if len(fields) != field_count:
            raise SettingsCorrupt(
                f"Settings version {version} expects {field_count} fields, "
                f"got {len(fields)}"
            )
        values = decoder(fields)
    except ValueError as exc:
        logger.warning(f"settings_decode_failed: raw={raw!r} error={exc}")
        return DEFAULT_SETTINGS
    return replace(DEFAULT_SETTINGS, version=CURRENT_SETTINGS_VERSION, **values)


def encode_settings(settings: WidgetSettings) -> str:
    if "," in settings.budget_name:
        raise ValueError("Budget name cannot contain a comma")
    return ",".join(
        [
            str(CURRENT_SETTINGS_VERSION),
            settings.budget_name,
            _format_bool(settings.use_full_names),
            repr(float(settings.warning_level)),
            repr(float(settings.over_budget_level)),
            str(int(settings.period)),
            _format_bool(settings.all_ancestors),
            _format_bool(settings.use_category_currency),
            _format_bool(settings.ignore_unbudgeted),
        ]
    )


def validate_levels(warning_level: float, over_budget_level: float) -> None:
    if not 0 <= warning_level <= MAX_WARNING_LEVEL:
        raise ValueError(
            f"Warning level must be between 0 and {MAX_WARNING_LEVEL:g} percent"
        )
    if not warning_level <= over_budget_level <= warning_level + MAX_OVER_BUDGET_SPREAD:
        raise ValueError(
            "Over budget level must be between the warning level and "
            f"{MAX_OVER_BUDGET_SPREAD:g} points above it"
        )


def decode_selected(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [part for part in _SPLIT_RE.split(raw.strip()) if part]


def encode_selected(category_ids: list[str]) -> str:
    for category_id in category_ids:
        if "," in category_id:
            raise ValueError(f"Invalid category id: {category_id!r}")
    return ",".join(category_ids)


class SettingsStore:
    """Owns the widget settings of one data file.

    ``current`` is an immutable snapshot; updates produce a new record.
    """

    def __init__(self, preferences: "PreferenceService") -> None:
        self.preferences = preferences
        self._current: Optional[WidgetSettings] = None

    @property
    def current(self) -> WidgetSettings:
        if self._current is None:
            return self.load()
        return self._current

    def load(self) -> WidgetSettings:
        raw = self.preferences.get(SETTINGS_KEY, "")
        self._current = decode_settings(raw)
        return self._current

    def reload(self) -> WidgetSettings:
        return self.load()

    def save(self) -> None:
        self.preferences.set(SETTINGS_KEY, encode_settings(self.current))

    def update(self, **changes: object) -> WidgetSettings:
        updated = replace(self.current, **changes)
        if "period" in changes:
            updated = replace(updated, period=Period(int(updated.period)))
        validate_levels(updated.warning_level, updated.over_budget_level)
        self.preferences.set(SETTINGS_KEY, encode_settings(updated))
        self._current = updated
        logger.info(f"settings_updated: fields={sorted(changes)}")
        return updated

    def load_selected(self) -> list[str]:
        return decode_selected(self.preferences.get(CATEGORIES_SELECTED_KEY, ""))

    def save_selected(self, category_ids: list[str]) -> None:
        self.preferences.set(CATEGORIES_SELECTED_KEY, encode_selected(category_ids))
