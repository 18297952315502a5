"""Integration test fixtures: real files and SQLite, no network."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from housing_pulse.core.config import (
    APIConfig,
    CacheConfig,
    CsvProviderConfig,
    ProvidersConfig,
    PulseConfig,
)
from housing_pulse.core.models import ProviderKind

RENTS_CSV = (
    "RegionID,RegionName,RegionType,StateName,2023-06-30,2024-06-30\n"
    '394913,"New York, NY",msa,NY,3000,3300\n'
)


@pytest.fixture
def data_dir(tmp_path: Path, wide_csv: str) -> Path:
    """Default home-value and rental datasets on disk."""
    data = tmp_path / "data"
    data.mkdir()
    (data / "homes.csv").write_text(wide_csv, encoding="utf-8")
    (data / "rents.csv").write_text(RENTS_CSV, encoding="utf-8")
    return data


@pytest.fixture
def api_config(tmp_path: Path, data_dir: Path) -> PulseConfig:
    """CSV first, mock fallback, cache in a temporary SQLite file."""
    return PulseConfig(
        providers=ProvidersConfig(active=ProviderKind.CSV, fallback=[ProviderKind.MOCK]),
        csv=CsvProviderConfig(
            default_dataset=str(data_dir / "homes.csv"),
            default_rentals=str(data_dir / "rents.csv"),
        ),
        cache=CacheConfig(sqlite_path=str(tmp_path / "cache.db"), legacy_path=None),
        api=APIConfig(),
    )


@pytest.fixture
def config_file(tmp_path: Path, api_config: PulseConfig) -> Path:
    """``api_config`` written out as a YAML config file."""
    path = tmp_path / "housing-pulse.yml"
    path.write_text(yaml.safe_dump(api_config.model_dump(mode="json")), encoding="utf-8")
    return path
