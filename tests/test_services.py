from __future__ import annotations

import asyncio
import struct

import pytest

from fakes import (
    FakeTransport,
    environmental_service,
    fan_policy_service,
    fan_service,
    find,
    label,
    servo_service,
)
from nevermorectl.core import aggregate
from nevermorectl.core import characteristic as chars
from nevermorectl.core.characteristic import Notify, ReadOnly, Writeable
from nevermorectl.core.errors import CapabilityMissingError, DiscoveryIncompleteError, InvalidValueError
from nevermorectl.core.model import DeviceProfile
from nevermorectl.core.services import (
    EnvironmentalSensingService,
    FanPolicyService,
    FanService,
    ServoService,
    clamp_percentage,
)


def _discovered(cls, fake_service, profile: DeviceProfile, transport: FakeTransport | None = None):
    transport = transport or FakeTransport()
    service = cls(transport, fake_service, profile)
    asyncio.run(service.discover())
    return service, transport


def test_clamp_percentage() -> None:
    assert clamp_percentage(120) == 100.0
    assert clamp_percentage(-5) == 0.0
    assert clamp_percentage(42.5) == 42.5
    with pytest.raises(InvalidValueError, match="must be a number"):
        clamp_percentage(float("nan"))


def test_environmental_slots_assigned_by_discovery_order(profile: DeviceProfile) -> None:
    service, _ = _discovered(EnvironmentalSensingService, environmental_service(profile), profile)

    values = {}
    for slot in EnvironmentalSensingService.SLOTS[:-1]:
        char = service.get(slot)
        assert isinstance(char, ReadOnly)
        values[slot] = asyncio.run(chars.read(char))

    assert values["temperature_intake"] == 25.0
    assert values["temperature_exhaust"] == 27.5
    assert values["temperature_mcu"] == 40.12
    assert values["humidity_intake"] == 45.5
    assert values["humidity_exhaust"] == 50.0
    assert values["pressure_intake"] == 101325.0
    assert values["pressure_exhaust"] == 101300.0
    assert values["voc_index_intake"] == 100
    assert values["voc_raw_exhaust"] == 31000
    assert service.last_error is None


def test_environmental_aggregate_is_subscribed_then_read(profile: DeviceProfile) -> None:
    service, transport = _discovered(EnvironmentalSensingService, environmental_service(profile), profile)

    agg = service.aggregate
    assert isinstance(agg, Notify)
    assert agg.is_subscribed is True
    assert f"start {profile.characteristics['environmental_aggregate']}" in transport.log
    assert isinstance(agg.state.current_value, aggregate.EnvironmentalData)
    assert agg.state.current_value.temperature_mcu == 40.12


def test_missing_slots_are_absent_not_fatal(profile: DeviceProfile) -> None:
    fake = environmental_service(profile)
    # drop the third temperature and both VOC raw characteristics
    fake.characteristics = [
        c
        for c in fake.characteristics
        if c.uuid != profile.characteristics["voc_raw"]
    ]
    fake.characteristics.remove(find(fake, profile.characteristics["temperature"], 2))

    service, _ = _discovered(EnvironmentalSensingService, fake, profile)

    assert service.get("temperature_mcu") is None
    assert service.get("voc_raw_intake") is None
    assert service.get("temperature_exhaust") is not None
    assert isinstance(service.last_error, DiscoveryIncompleteError)
    assert service.last_error.missing == ("temperature_mcu", "voc_raw_intake", "voc_raw_exhaust")


def test_packaged_profile_leaves_voc_raw_slots_absent(packaged_profile: DeviceProfile) -> None:
    assert packaged_profile.characteristic_uuid("voc_raw") is None

    service, _ = _discovered(EnvironmentalSensingService, environmental_service(packaged_profile), packaged_profile)

    assert service.get("voc_raw_intake") is None
    assert service.get("voc_raw_exhaust") is None
    assert service.get("voc_index_exhaust") is not None
    assert isinstance(service.last_error, DiscoveryIncompleteError)
    assert service.last_error.missing == ("voc_raw_intake", "voc_raw_exhaust")


def test_power_override_disambiguated_by_label(profile: DeviceProfile) -> None:
    fake = fan_service(profile)
    service, _ = _discovered(FanService, fake, profile)

    override = service.get("power_override")
    assert isinstance(override, Writeable)
    assert override.handle is find(fake, profile.characteristics["percentage8"], 2)
    assert override.state.current_value is None


def test_power_override_first_match_wins(profile: DeviceProfile) -> None:
    fake = fan_service(profile)
    find(fake, profile.characteristics["percentage8"], 3).descriptors = [label("Fan Override")]
    service, _ = _discovered(FanService, fake, profile)

    assert service.get("power_override").handle is find(fake, profile.characteristics["percentage8"], 2)


def test_unreadable_label_skips_candidate(profile: DeviceProfile) -> None:
    fake = fan_service(profile)
    pct = profile.characteristics["percentage8"]
    find(fake, pct, 2).descriptors[0].fail = True
    find(fake, pct, 3).descriptors = [label("Fan % - Override (manual)")]

    service, _ = _discovered(FanService, fake, profile)

    assert service.get("power_override").handle is find(fake, pct, 3)


def test_failed_disambiguation_is_discovery_incomplete(profile: DeviceProfile) -> None:
    fake = fan_service(profile)
    find(fake, profile.characteristics["percentage8"], 2).descriptors = [label("Fan % - Passive")]

    service, _ = _discovered(FanService, fake, profile)

    assert service.get("power_override") is None
    assert isinstance(service.last_error, DiscoveryIncompleteError)
    assert service.last_error.missing == ("power_override",)
    # other slots are still usable
    assert service.aggregate.state.current_value.tachometer == 1200
    with pytest.raises(CapabilityMissingError):
        asyncio.run(service.set_power_override(50))


def test_fan_aggregates_subscribed(profile: DeviceProfile) -> None:
    service, _ = _discovered(FanService, fan_service(profile), profile)

    assert service.get("aggregate").is_subscribed
    fan_agg = service.get("fan_aggregate")
    assert fan_agg.is_subscribed
    assert fan_agg.state.current_value.power_coefficient == 100.0


def test_set_power_override_clamps_writes_and_reads_back(profile: DeviceProfile) -> None:
    fake = fan_service(profile)
    service, _ = _discovered(FanService, fake, profile)
    handle = find(fake, profile.characteristics["percentage8"], 2)
    tacho = find(fake, profile.characteristics["fan_power_tacho_aggregate"])
    tacho.value = struct.pack("<BH", 200, 2400)

    assert asyncio.run(service.set_power_override(150)) is True
    assert handle.writes == [bytes([200])]
    assert service.get("power_override").state.current_value == 100.0
    assert service.aggregate.state.current_value == aggregate.FanPowerTachoData(100.0, 2400)

    assert asyncio.run(service.set_power_override(None)) is True
    assert handle.writes[-1] == bytes([0xFF])
    assert service.get("power_override").state.current_value is None


def test_listing_failure_leaves_slot_empty(profile: DeviceProfile) -> None:
    fake = servo_service(profile)
    fake.fail_listing = True

    service, _ = _discovered(ServoService, fake, profile)

    assert service.get("position") is None
    assert service.get("range") is None
    assert service.last_error.missing == ("position", "range")


def test_single_slot_read_failure_does_not_stop_discovery(profile: DeviceProfile) -> None:
    fake = servo_service(profile)
    find(fake, profile.characteristics["servo_position"]).fail_read = True

    service, _ = _discovered(ServoService, fake, profile)

    assert service.get("position").state.last_error is not None
    assert service.get("range").state.current_value == aggregate.ServoRangeData(10.0, 90.0)


@pytest.mark.parametrize(("requested", "raw"), [(120, 10000), (-5, 0), (37.5, 3750)])
def test_set_servo_position_clamps(profile: DeviceProfile, requested: float, raw: int) -> None:
    fake = servo_service(profile)
    service, _ = _discovered(ServoService, fake, profile)
    handle = find(fake, profile.characteristics["servo_position"])

    assert asyncio.run(service.set_position(requested)) is True

    assert handle.writes == [struct.pack("<H", raw)]
    assert service.get("position").state.current_value == raw / 100


def test_set_servo_range_clamps_both_ends(profile: DeviceProfile) -> None:
    fake = servo_service(profile)
    service, _ = _discovered(ServoService, fake, profile)
    handle = find(fake, profile.characteristics["servo_range"])

    assert asyncio.run(service.set_range(-10, 250)) is True

    assert handle.writes == [struct.pack("<HH", 0, 10000)]
    assert service.get("range").state.current_value == aggregate.ServoRangeData(0.0, 100.0)


def test_fan_policy_slots_and_commands(profile: DeviceProfile) -> None:
    fake = fan_policy_service(profile)
    service, _ = _discovered(FanPolicyService, fake, profile)

    assert service.get("cooldown").state.current_value == 900
    assert service.get("voc_passive_max").state.current_value == 250
    assert service.get("voc_improve_min").state.current_value == 180
    assert service.get("thermal_limit").state.current_value == aggregate.ThermalLimitData(50.0, 70.0, 50.0)

    assert asyncio.run(service.set_cooldown(60)) is True
    assert find(fake, profile.characteristics["time_second16"]).writes == [struct.pack("<H", 60)]

    assert asyncio.run(service.set_thermal_limit(45.0, 65.0, 130.0)) is True
    assert find(fake, profile.characteristics["fan_thermal_limit"]).writes == [
        struct.pack("<hhH", 4500, 6500, 10000)
    ]


def test_close_unsubscribes_notify_slots(profile: DeviceProfile) -> None:
    transport = FakeTransport()
    service, _ = _discovered(ServoService, servo_service(profile), profile, transport)

    asyncio.run(service.close())

    assert transport.log[-1] == f"stop {profile.characteristics['servo_position']}"
    assert service.get("position").is_subscribed is False


def test_snapshot_lists_every_slot(profile: DeviceProfile) -> None:
    fake = servo_service(profile)
    fake.characteristics.pop()
    service, _ = _discovered(ServoService, fake, profile)

    snap = service.snapshot()

    assert snap.slots["range"] is None
    assert snap.slots["position"].current_value == 25.0
    assert snap.error == "servo: missing range"
