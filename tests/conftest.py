from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from fakes import VOC_RAW_UUID
from nevermorectl.core.model import DeviceProfile
from nevermorectl.core.profile_loader import load_profiles


@pytest.fixture(autouse=True)
def _isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


@pytest.fixture
def packaged_profile() -> DeviceProfile:
    return load_profiles().get("nevermore")


@pytest.fixture
def profile(packaged_profile: DeviceProfile) -> DeviceProfile:
    # the packaged profile has no VOC raw UUID; give the fake firmware one
    characteristics = {**packaged_profile.characteristics, "voc_raw": VOC_RAW_UUID}
    return dataclasses.replace(packaged_profile, characteristics=characteristics)
