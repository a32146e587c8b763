from __future__ import annotations

import copy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest
import yaml

from ad_inventory.collectors import CollectContext
from ad_inventory.directory.source import SnapshotSource

SNAPSHOT_PATH = Path(__file__).resolve().parents[1] / "config" / "snapshot.example.yaml"
COLLECTED_AT = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

_SNAPSHOT_CACHE: Dict[str, Any] = {}


def load_snapshot() -> Dict[str, Any]:
    if "data" not in _SNAPSHOT_CACHE:
        _SNAPSHOT_CACHE["data"] = yaml.safe_load(SNAPSHOT_PATH.read_text(encoding="utf-8"))
    return copy.deepcopy(_SNAPSHOT_CACHE["data"])


@pytest.fixture
def snapshot_path() -> Path:
    return SNAPSHOT_PATH


@pytest.fixture
def snapshot_data() -> Dict[str, Any]:
    return load_snapshot()


@pytest.fixture
def make_ctx() -> Callable[..., CollectContext]:
    def _make(data: Dict[str, Any], tier_groups: Optional[Dict[str, Any]] = None) -> CollectContext:
        return CollectContext(
            source=SnapshotSource(data=data),
            collected_at=COLLECTED_AT,
            tier_groups=tier_groups or {},
        )

    return _make
