"""Translate between provider status arrays and canonical device state."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .catalog import DeviceStatusEntry
from .const import DEFAULT_MAX_KELVIN, DEFAULT_MIN_KELVIN, MAX_MIRED, MIN_MIRED
from .device_codes import DeviceCodeMapping, DeviceCodeResolver
from .errors import ConfigurationError, UnsupportedOperationError
from .range_mapper import RangeMapper, clamp, round_half_up

_LOGGER = logging.getLogger(__name__)

BRIGHTNESS_V2_RANGE = (10, 1000)
BRIGHTNESS_V1_RANGE = (0, 255)
BRIGHTNESS_V1_FLOOR = 25
TEMP_VALUE_V2_RANGE = (0, 1000)
TEMP_VALUE_V1_RANGE = (0, 255)
COLOUR_V2_SV_MAX = 1000
COLOUR_V1_SV_MAX = 255
CANONICAL_PERCENT = (0, 100)

_TRUE_VALUES = frozenset({"true", "1", "on"})


def parse_bool(value: Any) -> bool:
    """Interpret the provider's loose boolean encodings."""

    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_VALUES
    return False


def kelvin_to_mired(kelvin: float) -> tuple[int, bool]:
    """Return the mired value for ``kelvin`` clamped to the canonical range."""

    mired, clamped = clamp(round_half_up(1_000_000 / kelvin), MIN_MIRED, MAX_MIRED)
    return int(mired), clamped


def mired_to_kelvin(mired: float) -> float:
    return 1_000_000 / mired


class CoverState(Enum):
    OPENING = "opening"
    CLOSING = "closing"
    STOPPED = "stopped"


_COVER_STATES = {
    "open": CoverState.OPENING,
    "close": CoverState.CLOSING,
    "stop": CoverState.STOPPED,
}


@dataclass(frozen=True)
class HSVColor:
    """Hue in degrees; saturation and value in percent."""

    hue: int
    saturation: int
    value: int


@dataclass
class DeviceState:
    """Canonical, scale-independent device state."""

    online: bool = False
    is_on: bool | None = None
    brightness: int | None = None
    color: HSVColor | None = None
    color_mode: str | None = None
    color_temp_kelvin: int | None = None
    color_temp_mired: int | None = None
    fan_speed: int | None = None
    mode: str | None = None
    position: int | None = None
    cover_state: CoverState | None = None
    target_temperature: float | None = None
    current_temperature: float | None = None
    min_temperature: float | None = None
    max_temperature: float | None = None
    support_stop: bool | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Command:
    """One ``{code, value}`` instruction for the provider."""

    code: str
    value: Any

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "value": self.value}


@dataclass(frozen=True)
class PowerIntent:
    on: bool


@dataclass(frozen=True)
class BrightnessIntent:
    brightness: float


@dataclass(frozen=True)
class ColorIntent:
    hue: float
    saturation: float
    value: float = 100


@dataclass(frozen=True)
class ColorTemperatureIntent:
    """Either ``mired`` or ``kelvin`` must be given."""

    mired: float | None = None
    kelvin: float | None = None


@dataclass(frozen=True)
class FanSpeedIntent:
    percentage: float


@dataclass(frozen=True)
class ModeIntent:
    mode: str


@dataclass(frozen=True)
class TargetTemperatureIntent:
    temperature: float


@dataclass(frozen=True)
class PositionIntent:
    position: float


@dataclass(frozen=True)
class CoverIntent:
    action: str


Intent = (
    PowerIntent
    | BrightnessIntent
    | ColorIntent
    | ColorTemperatureIntent
    | FanSpeedIntent
    | ModeIntent
    | TargetTemperatureIntent
    | PositionIntent
    | CoverIntent
)


@dataclass(frozen=True)
class TranslatorConfig:
    """Per-installation conversion settings."""

    min_kelvin: int = DEFAULT_MIN_KELVIN
    max_kelvin: int = DEFAULT_MAX_KELVIN
    brightness_range: tuple[int, int] | None = None

    def __post_init__(self) -> None:
        if self.min_kelvin <= 0 or self.min_kelvin >= self.max_kelvin:
            raise ConfigurationError(
                f"Invalid Kelvin range {self.min_kelvin}..{self.max_kelvin}"
            )
        if self.brightness_range is not None:
            low, high = self.brightness_range
            if low < 0 or low >= high:
                raise ConfigurationError(f"Invalid brightness range {low}..{high}")


def _status_map(status: Iterable[DeviceStatusEntry | Mapping[str, Any]]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for entry in status:
        if isinstance(entry, DeviceStatusEntry):
            values[entry.code] = entry.value
        else:
            values[str(entry["code"])] = entry.get("value")
    return values


def _parse_colour(value: Any) -> dict[str, Any] | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value if isinstance(value, dict) else None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _limit(name: str, value: float, low: float, high: float) -> float:
    """Clamp an outbound value, logging when the intent was out of range."""

    result, moved = clamp(value, low, high)
    if moved:
        _LOGGER.warning(
            "Requested %s %s outside %s..%s; sending %s", name, value, low, high, result
        )
    return result


class StateTranslator:
    """Pure conversions between provider values and canonical state."""

    def __init__(
        self,
        config: TranslatorConfig | None = None,
        resolver: DeviceCodeResolver | None = None,
    ) -> None:
        self._config = config or TranslatorConfig()
        self._resolver = resolver
        self._kelvin_v2 = RangeMapper.map(
            *TEMP_VALUE_V2_RANGE, self._config.min_kelvin, self._config.max_kelvin
        )
        self._kelvin_v1 = RangeMapper.map(
            *TEMP_VALUE_V1_RANGE, self._config.min_kelvin, self._config.max_kelvin
        )

    @property
    def config(self) -> TranslatorConfig:
        return self._config

    def _brightness_mapper(self, mapping: DeviceCodeMapping) -> RangeMapper:
        source = self._config.brightness_range or (
            BRIGHTNESS_V2_RANGE if mapping.is_v2_brightness else BRIGHTNESS_V1_RANGE
        )
        return RangeMapper.map(*source, *CANONICAL_PERCENT)

    def _kelvin_mapper(self, mapping: DeviceCodeMapping) -> RangeMapper:
        return self._kelvin_v2 if mapping.is_v2_temp_value else self._kelvin_v1

    @staticmethod
    def _clamped(
        state: DeviceState, name: str, value: float, low: float, high: float
    ) -> int:
        result, moved = clamp(round_half_up(value), low, high)
        if moved:
            message = f"{name} {value} outside {low}..{high}; clamped to {result}"
            _LOGGER.warning("%s", message)
            state.warnings.append(message)
        return int(result)

    def to_canonical(
        self,
        status: Iterable[DeviceStatusEntry | Mapping[str, Any]],
        online: bool,
        mapping: DeviceCodeMapping | None = None,
    ) -> DeviceState:
        """Convert a raw status array into a :class:`DeviceState`."""

        values = _status_map(status)
        if mapping is None:
            resolver = self._resolver or DeviceCodeResolver()
            mapping = resolver.resolve("", values)
        state = DeviceState(online=parse_bool(online))

        if mapping.switch_code in values:
            state.is_on = parse_bool(values[mapping.switch_code])

        raw = _as_number(values.get(mapping.brightness_code or ""))
        if raw is not None:
            state.brightness = self._clamped(
                state,
                "brightness",
                round_half_up(self._brightness_mapper(mapping).to_target(raw)),
                *CANONICAL_PERCENT,
            )

        raw = _as_number(values.get(mapping.temp_value_code or ""))
        if raw is not None:
            kelvin = round_half_up(self._kelvin_mapper(mapping).to_target(raw))
            state.color_temp_kelvin = kelvin
            state.color_temp_mired = self._clamped(
                state, "color_temp_mired", round_half_up(1_000_000 / kelvin), MIN_MIRED, MAX_MIRED
            )

        colour = _parse_colour(values.get(mapping.colour_code or ""))
        if colour is not None:
            state.color = self._colour_to_canonical(state, mapping, colour)

        if mapping.work_mode_code in values:
            state.color_mode = str(values[mapping.work_mode_code])

        raw = _as_number(values.get(mapping.fan_speed_code or ""))
        if raw is not None:
            state.fan_speed = self._clamped(state, "fan_speed", raw, *CANONICAL_PERCENT)

        if mapping.mode_code in values:
            state.mode = str(values[mapping.mode_code])

        raw = _as_number(values.get(mapping.position_code or ""))
        if raw is not None:
            state.position = self._clamped(state, "position", raw, *CANONICAL_PERCENT)

        if mapping.control_code in values:
            state.cover_state = _COVER_STATES.get(str(values[mapping.control_code]))

        state.target_temperature = _as_number(
            values.get(mapping.target_temperature_code or "")
        )
        state.current_temperature = _as_number(
            values.get(mapping.current_temperature_code or "")
        )
        state.min_temperature = _as_number(values.get("lower_temp"))
        state.max_temperature = _as_number(values.get("upper_temp"))
        if "support_stop" in values:
            state.support_stop = parse_bool(values["support_stop"])
        return state

    def _colour_to_canonical(
        self, state: DeviceState, mapping: DeviceCodeMapping, colour: dict[str, Any]
    ) -> HSVColor:
        sv_max = COLOUR_V2_SV_MAX if mapping.is_v2_colour else COLOUR_V1_SV_MAX
        sv = RangeMapper.map(0, sv_max, *CANONICAL_PERCENT)
        hue = self._clamped(state, "hue", round_half_up(_as_number(colour.get("h")) or 0), 0, 360)
        saturation = self._clamped(
            state,
            "saturation",
            round_half_up(sv.to_target(_as_number(colour.get("s")) or 0)),
            *CANONICAL_PERCENT,
        )
        value = self._clamped(
            state,
            "color_value",
            round_half_up(sv.to_target(_as_number(colour.get("v")) or 0)),
            *CANONICAL_PERCENT,
        )
        return HSVColor(hue=hue, saturation=saturation, value=value)

    def to_commands(self, mapping: DeviceCodeMapping, intent: Intent) -> list[Command]:
        """Convert a canonical ``intent`` into provider commands."""

        if isinstance(intent, PowerIntent):
            if mapping.control_code and mapping.device_type in ("cover", "garage"):
                return [Command(mapping.control_code, "open" if intent.on else "close")]
            return [Command(mapping.switch_code, bool(intent.on))]
        if isinstance(intent, BrightnessIntent):
            return [self._brightness_command(mapping, intent)]
        if isinstance(intent, ColorIntent):
            return self._colour_commands(mapping, intent)
        if isinstance(intent, ColorTemperatureIntent):
            return self._colour_temperature_commands(mapping, intent)
        if isinstance(intent, FanSpeedIntent):
            code = self._require(mapping.fan_speed_code, mapping, "fan speed")
            value = _limit("fan speed", round_half_up(intent.percentage), *CANONICAL_PERCENT)
            return [Command(code, int(value))]
        if isinstance(intent, ModeIntent):
            code = self._require(mapping.mode_code, mapping, "mode")
            return [Command(code, intent.mode)]
        if isinstance(intent, TargetTemperatureIntent):
            code = self._require(mapping.target_temperature_code, mapping, "target temperature")
            return [Command(code, intent.temperature)]
        if isinstance(intent, PositionIntent):
            code = self._require(mapping.position_code, mapping, "position")
            value = _limit("position", round_half_up(intent.position), *CANONICAL_PERCENT)
            return [Command(code, int(value))]
        if isinstance(intent, CoverIntent):
            code = self._require(mapping.control_code, mapping, "cover control")
            if intent.action not in _COVER_STATES:
                raise UnsupportedOperationError(f"Unknown cover action {intent.action}")
            return [Command(code, intent.action)]
        raise UnsupportedOperationError(f"Unsupported intent {type(intent).__name__}")

    @staticmethod
    def _require(code: str | None, mapping: DeviceCodeMapping, what: str) -> str:
        if not code:
            raise UnsupportedOperationError(
                f"{mapping.device_type} device ({mapping.category or 'unknown'}) "
                f"has no {what} code"
            )
        return code

    def _brightness_command(
        self, mapping: DeviceCodeMapping, intent: BrightnessIntent
    ) -> Command:
        code = self._require(mapping.brightness_code, mapping, "brightness")
        mapper = self._brightness_mapper(mapping)
        canonical = _limit("brightness", intent.brightness, *CANONICAL_PERCENT)
        raw = round_half_up(mapper.to_source(canonical))
        if self._config.brightness_range is not None:
            low, high = self._config.brightness_range
        elif mapping.is_v2_brightness:
            low, high = BRIGHTNESS_V2_RANGE
        else:
            low, high = BRIGHTNESS_V1_FLOOR, BRIGHTNESS_V1_RANGE[1]
        value = _limit("raw brightness", raw, low, high)
        return Command(code, int(value))

    def _colour_commands(
        self, mapping: DeviceCodeMapping, intent: ColorIntent
    ) -> list[Command]:
        code = self._require(mapping.colour_code, mapping, "colour")
        sv_max = COLOUR_V2_SV_MAX if mapping.is_v2_colour else COLOUR_V1_SV_MAX
        sv = RangeMapper.map(0, sv_max, *CANONICAL_PERCENT)
        hue = _limit("hue", round_half_up(intent.hue), 0, 360)
        saturation = _limit("saturation", intent.saturation, *CANONICAL_PERCENT)
        value = _limit("colour value", intent.value, *CANONICAL_PERCENT)
        payload = {
            "h": int(hue),
            "s": round_half_up(sv.to_source(saturation)),
            "v": round_half_up(sv.to_source(value)),
        }
        commands = []
        if mapping.work_mode_code:
            commands.append(Command(mapping.work_mode_code, "colour"))
        commands.append(Command(code, json.dumps(payload, separators=(",", ":"))))
        return commands

    def _colour_temperature_commands(
        self, mapping: DeviceCodeMapping, intent: ColorTemperatureIntent
    ) -> list[Command]:
        code = self._require(mapping.temp_value_code, mapping, "colour temperature")
        if intent.kelvin is not None:
            kelvin = float(intent.kelvin)
        elif intent.mired:
            mired = _limit("mired", intent.mired, MIN_MIRED, MAX_MIRED)
            kelvin = mired_to_kelvin(mired)
        else:
            raise UnsupportedOperationError("Colour temperature needs mired or kelvin")
        kelvin = _limit("kelvin", kelvin, self._config.min_kelvin, self._config.max_kelvin)
        mapper = self._kelvin_mapper(mapping)
        low, high = TEMP_VALUE_V2_RANGE if mapping.is_v2_temp_value else TEMP_VALUE_V1_RANGE
        value = _limit("raw colour temperature", round_half_up(mapper.to_source(kelvin)), low, high)
        commands = []
        if mapping.work_mode_code:
            commands.append(Command(mapping.work_mode_code, "white"))
        commands.append(Command(code, int(value)))
        return commands
