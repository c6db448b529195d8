"""Tests for converting provider values to canonical state and back."""

from __future__ import annotations

import json
import logging

import pytest

from custom_components.tuya_cloud.device_codes import DeviceCodeResolver
from custom_components.tuya_cloud.errors import (
    ConfigurationError,
    UnsupportedOperationError,
)
from custom_components.tuya_cloud.translator import (
    BrightnessIntent,
    ColorIntent,
    ColorTemperatureIntent,
    Command,
    CoverIntent,
    CoverState,
    FanSpeedIntent,
    HSVColor,
    ModeIntent,
    PositionIntent,
    PowerIntent,
    StateTranslator,
    TargetTemperatureIntent,
    TranslatorConfig,
    kelvin_to_mired,
    parse_bool,
)

RESOLVER = DeviceCodeResolver()
V2_LIGHT = RESOLVER.resolve(
    "dj",
    ["switch_led", "work_mode", "bright_value_v2", "temp_value_v2", "colour_data_v2"],
)
V1_LIGHT = RESOLVER.resolve(
    "dj", ["switch_led", "bright_value", "temp_value", "colour_data"]
)


def _status(**values):
    return [{"code": code, "value": value} for code, value in values.items()]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (True, True),
        ("true", True),
        ("ON", True),
        (1, True),
        ("1", True),
        (False, False),
        ("false", False),
        (0, False),
        (None, False),
    ],
)
def test_parse_bool(value, expected) -> None:
    assert parse_bool(value) is expected


def test_kelvin_to_mired() -> None:
    assert kelvin_to_mired(2700) == (370, False)
    assert kelvin_to_mired(6500) == (154, False)
    assert kelvin_to_mired(1000) == (500, True)


def test_v2_brightness_to_canonical() -> None:
    translator = StateTranslator()

    assert translator.to_canonical(_status(bright_value_v2=550), True, V2_LIGHT).brightness == 55
    assert translator.to_canonical(_status(bright_value_v2=1000), True, V2_LIGHT).brightness == 100
    assert translator.to_canonical(_status(bright_value_v2=10), True, V2_LIGHT).brightness == 0


def test_out_of_range_value_is_clamped_with_warning() -> None:
    state = StateTranslator().to_canonical(_status(bright_value_v2=1200), True, V2_LIGHT)

    assert state.brightness == 100
    assert len(state.warnings) == 1
    assert "brightness" in state.warnings[0]


def test_switch_and_online_flags() -> None:
    state = StateTranslator().to_canonical(_status(switch_led="true"), "true", V2_LIGHT)

    assert state.online is True
    assert state.is_on is True


def test_colour_temperature_to_canonical() -> None:
    state = StateTranslator().to_canonical(_status(temp_value_v2=500), True, V2_LIGHT)

    assert state.color_temp_kelvin == 4600
    assert state.color_temp_mired == 217
    assert state.warnings == []


def test_wide_kelvin_range_clamps_mired() -> None:
    translator = StateTranslator(TranslatorConfig(min_kelvin=1667, max_kelvin=6500))

    state = translator.to_canonical(_status(temp_value_v2=0), True, V2_LIGHT)

    assert state.color_temp_kelvin == 1667
    assert state.color_temp_mired == 500
    assert state.warnings


def test_invalid_kelvin_range_rejected() -> None:
    with pytest.raises(ConfigurationError):
        TranslatorConfig(min_kelvin=6500, max_kelvin=2700)


def test_colour_to_canonical_from_json_string() -> None:
    state = StateTranslator().to_canonical(
        _status(colour_data_v2='{"h":120,"s":1000,"v":500}', work_mode="colour"),
        True,
        V2_LIGHT,
    )

    assert state.color == HSVColor(hue=120, saturation=100, value=50)
    assert state.color_mode == "colour"


def test_v1_colour_uses_255_scale() -> None:
    state = StateTranslator().to_canonical(
        _status(colour_data={"h": 10, "s": 255, "v": 51}), True, V1_LIGHT
    )

    assert state.color == HSVColor(hue=10, saturation=100, value=20)


def test_mapping_resolved_when_not_given() -> None:
    state = StateTranslator().to_canonical(_status(switch_1=True, bright_value=128), True)

    assert state.is_on is True
    assert state.brightness == 50


def test_power_commands() -> None:
    translator = StateTranslator()

    assert translator.to_commands(V2_LIGHT, PowerIntent(True)) == [Command("switch_led", True)]
    assert translator.to_commands(V2_LIGHT, PowerIntent(False)) == [
        Command("switch_led", False)
    ]


def test_brightness_commands() -> None:
    translator = StateTranslator()

    assert translator.to_commands(V2_LIGHT, BrightnessIntent(100)) == [
        Command("bright_value_v2", 1000)
    ]
    assert translator.to_commands(V2_LIGHT, BrightnessIntent(0)) == [
        Command("bright_value_v2", 10)
    ]
    assert translator.to_commands(V1_LIGHT, BrightnessIntent(50)) == [
        Command("bright_value", 128)
    ]
    assert translator.to_commands(V1_LIGHT, BrightnessIntent(1)) == [
        Command("bright_value", 25)
    ]


def test_colour_command_switches_work_mode() -> None:
    commands = StateTranslator().to_commands(V2_LIGHT, ColorIntent(240, 50, 100))

    assert commands[0] == Command("work_mode", "colour")
    assert commands[1].code == "colour_data_v2"
    assert json.loads(commands[1].value) == {"h": 240, "s": 500, "v": 1000}


def test_colour_temperature_commands() -> None:
    translator = StateTranslator()

    assert translator.to_commands(V2_LIGHT, ColorTemperatureIntent(kelvin=4600)) == [
        Command("work_mode", "white"),
        Command("temp_value_v2", 500),
    ]
    assert translator.to_commands(V2_LIGHT, ColorTemperatureIntent(kelvin=10_000)) == [
        Command("work_mode", "white"),
        Command("temp_value_v2", 1000),
    ]
    assert translator.to_commands(V1_LIGHT, ColorTemperatureIntent(mired=500)) == [
        Command("temp_value", 0)
    ]


def test_missing_code_is_unsupported() -> None:
    translator = StateTranslator()
    plug = RESOLVER.resolve("cz", ["switch_1"])

    with pytest.raises(UnsupportedOperationError):
        translator.to_commands(plug, BrightnessIntent(50))
    with pytest.raises(UnsupportedOperationError):
        translator.to_commands(plug, FanSpeedIntent(50))
    with pytest.raises(UnsupportedOperationError):
        translator.to_commands(V2_LIGHT, ColorTemperatureIntent())


def test_cover_state_and_commands() -> None:
    translator = StateTranslator()
    cover = RESOLVER.resolve("cl", ["control", "percent_control"])

    state = translator.to_canonical(_status(control="stop", percent_control=120), True, cover)

    assert state.cover_state is CoverState.STOPPED
    assert state.position == 100
    assert state.warnings
    assert translator.to_commands(cover, PowerIntent(True)) == [Command("control", "open")]
    assert translator.to_commands(cover, CoverIntent("close")) == [Command("control", "close")]
    assert translator.to_commands(cover, PositionIntent(42.4)) == [
        Command("percent_control", 42)
    ]
    with pytest.raises(UnsupportedOperationError):
        translator.to_commands(cover, CoverIntent("wiggle"))


def test_climate_and_fan_commands() -> None:
    translator = StateTranslator()
    climate = RESOLVER.resolve("wk", ["switch", "temp_set", "temp_current", "mode"])
    fan = RESOLVER.resolve("fs", ["switch", "fan_speed_percent"])

    state = translator.to_canonical(
        _status(temp_set=21.5, temp_current="19", mode="auto", lower_temp=5, upper_temp=35),
        True,
        climate,
    )

    assert state.target_temperature == 21.5
    assert state.current_temperature == 19.0
    assert state.mode == "auto"
    assert (state.min_temperature, state.max_temperature) == (5, 35)
    assert translator.to_commands(climate, TargetTemperatureIntent(22)) == [
        Command("temp_set", 22)
    ]
    assert translator.to_commands(climate, ModeIntent("cold")) == [Command("mode", "cold")]
    assert translator.to_commands(fan, FanSpeedIntent(150)) == [
        Command("fan_speed_percent", 100)
    ]


def test_out_of_range_brightness_intent_is_clamped_with_warning(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="custom_components.tuya_cloud.translator"):
        commands = StateTranslator().to_commands(V2_LIGHT, BrightnessIntent(150))

    assert commands == [Command("bright_value_v2", 1000)]
    assert any("brightness 150" in record.getMessage() for record in caplog.records)


def test_out_of_range_colour_temperature_intents_warn(caplog) -> None:
    translator = StateTranslator()

    with caplog.at_level(logging.WARNING, logger="custom_components.tuya_cloud.translator"):
        by_mired = translator.to_commands(V2_LIGHT, ColorTemperatureIntent(mired=600))
        by_kelvin = translator.to_commands(V2_LIGHT, ColorTemperatureIntent(kelvin=9000))

    assert by_mired[-1] == Command("temp_value_v2", 0)
    assert by_kelvin[-1] == Command("temp_value_v2", 1000)
    messages = [record.getMessage() for record in caplog.records]
    assert any("mired 600" in message for message in messages)
    assert any("kelvin 9000" in message for message in messages)


def test_in_range_intent_does_not_warn(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="custom_components.tuya_cloud.translator"):
        StateTranslator().to_commands(V2_LIGHT, BrightnessIntent(50))

    assert caplog.records == []


@pytest.mark.parametrize("brightness_range", [(100, 100), (255, 0), (-1, 100)])
def test_invalid_brightness_range_rejected(brightness_range) -> None:
    with pytest.raises(ConfigurationError):
        TranslatorConfig(brightness_range=brightness_range)


def test_fractional_fan_speed_and_position_are_rounded() -> None:
    translator = StateTranslator()
    fan = RESOLVER.resolve("fs", ["switch", "fan_speed_percent"])
    cover = RESOLVER.resolve("cl", ["control", "percent_control"])

    assert translator.to_canonical(_status(fan_speed_percent=55.7), True, fan).fan_speed == 56
    assert translator.to_canonical(_status(percent_control="42.5"), True, cover).position == 43
