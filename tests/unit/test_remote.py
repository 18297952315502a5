"""Tests for the remote market-metrics API provider."""

from __future__ import annotations

import httpx
import pytest
import respx

from housing_pulse.core.config import RemoteProviderConfig
from housing_pulse.core.exceptions import (
    ParsingError,
    ProviderError,
    ProviderNotConfiguredError,
    TransientFetchError,
    UnsupportedCapabilityError,
)
from housing_pulse.core.models import Capability, Direction, ProviderKind
from housing_pulse.providers.base import MarketDataProvider
from housing_pulse.providers.remote import RemoteApiProvider, RemoteMarketAdapter

BASE_URL = "https://api.example.com/v1"
AUSTIN_URL = f"{BASE_URL}/markets/austin-tx"


@pytest.fixture
def remote_config() -> RemoteProviderConfig:
    return RemoteProviderConfig(
        base_url=BASE_URL, api_key="secret", request_timeout=2, rate_limit=100
    )


@pytest.fixture
async def provider(remote_config, memory_cache):
    p = RemoteApiProvider(remote_config, memory_cache)
    yield p
    await p.close()


@pytest.fixture
def austin_json() -> dict:
    return {
        "id": "394355",
        "name": "Austin, TX",
        "city": "Austin",
        "state": "TX",
        "zipCode": None,
        "history": [
            {"date": "2024-06-30", "value": 440000},
            {"date": "2023-06-30", "value": 470000},
            {"date": "2023-12-31", "value": 455000},
        ],
    }


class TestRemoteMarketAdapter:
    def test_adapts_and_sorts(self, austin_json):
        result = RemoteMarketAdapter().adapt(austin_json)
        assert result.records[0].id == "394355"
        series = result.series_by_record["394355"]
        assert [p.value for p in series] == [470000.0, 455000.0, 440000.0]

    def test_skips_bad_history_entries(self, austin_json):
        austin_json["history"] += [
            {"date": "not-a-date", "value": 1},
            {"date": "2024-07-31", "value": None},
            "junk",
        ]
        result = RemoteMarketAdapter().adapt(austin_json)
        assert len(result.series_by_record["394355"]) == 3

    def test_identity_from_name(self):
        result = RemoteMarketAdapter().adapt(
            {"name": "Reno, NV", "history": [{"date": "2024-01-31", "value": 1}]}
        )
        record = result.records[0]
        assert (record.id, record.city, record.state) == ("reno-nv", "Reno", "NV")

    def test_non_object_rejected(self):
        with pytest.raises(ParsingError):
            RemoteMarketAdapter().adapt(["not", "an", "object"])

    def test_missing_state_rejected(self):
        with pytest.raises(ParsingError):
            RemoteMarketAdapter().adapt({"city": "Reno", "history": []})

    @pytest.mark.parametrize("history", [5, "2024-01-31", {"date": "2024-01-31"}])
    def test_non_list_history_rejected(self, austin_json, history):
        austin_json["history"] = history
        with pytest.raises(ParsingError, match="history"):
            RemoteMarketAdapter().adapt(austin_json)

    def test_null_history_is_empty(self, austin_json):
        austin_json["history"] = None
        result = RemoteMarketAdapter().adapt(austin_json)
        assert result.series_by_record[result.records[0].id] == []


class TestDescriptor:
    def test_capabilities(self, provider):
        desc = provider.descriptor()
        assert desc.id is ProviderKind.REMOTE
        assert desc.capabilities == frozenset({Capability.DETAILS})
        assert desc.requires_api_key

    def test_satisfies_protocol(self, provider):
        assert isinstance(provider, MarketDataProvider)

    async def test_requires_base_url_and_key(self, memory_cache):
        p = RemoteApiProvider(RemoteProviderConfig(base_url=BASE_URL), memory_cache)
        assert not p.is_configured()
        with pytest.raises(ProviderNotConfiguredError):
            await p.get_stats("Austin, TX")
        await p.close()


class TestGetStats:
    @respx.mock
    async def test_json_body(self, provider, austin_json):
        route = respx.get(AUSTIN_URL).mock(return_value=httpx.Response(200, json=austin_json))

        stats = await provider.get_stats("Austin, TX")

        assert stats.current_value == 440000.0
        assert stats.reference_value == 470000.0
        assert stats.direction is Direction.DOWN
        assert stats.provider == "remote"
        assert route.calls.last.request.headers["X-Api-Key"] == "secret"

    @respx.mock
    async def test_csv_body(self, provider):
        body = (
            "RegionID,RegionName,StateName,2023-06-30,2024-06-30\n"
            '394355,"Austin, TX",TX,470000,440000\n'
        )
        respx.get(AUSTIN_URL).mock(
            return_value=httpx.Response(200, text=body, headers={"content-type": "text/csv"})
        )
        stats = await provider.get_stats("Austin, TX")
        assert stats.record.id == "394355"
        assert stats.current_value == 440000.0

    @respx.mock
    async def test_second_call_served_from_cache(self, provider, austin_json):
        route = respx.get(AUSTIN_URL).mock(return_value=httpx.Response(200, json=austin_json))
        await provider.get_stats("Austin, TX")
        await provider.get_stats("austin, tx")
        assert route.call_count == 1

    @respx.mock
    async def test_not_found(self, provider):
        respx.get(AUSTIN_URL).mock(return_value=httpx.Response(404))
        assert await provider.get_stats("Austin, TX") is None

    @pytest.mark.parametrize("status", [429, 500, 503])
    @respx.mock
    async def test_retryable_status_is_transient(self, provider, status):
        route = respx.get(AUSTIN_URL).mock(return_value=httpx.Response(status))
        with pytest.raises(TransientFetchError) as exc_info:
            await provider.get_stats("Austin, TX")
        assert exc_info.value.context["status_code"] == status
        assert route.call_count == 1

    @respx.mock
    async def test_client_error_is_provider_error(self, provider):
        respx.get(AUSTIN_URL).mock(return_value=httpx.Response(403))
        with pytest.raises(ProviderError) as exc_info:
            await provider.get_stats("Austin, TX")
        assert not isinstance(exc_info.value, TransientFetchError)

    @respx.mock
    async def test_timeout_is_transient_without_retry(self, provider):
        route = respx.get(AUSTIN_URL).mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(TransientFetchError, match="Timed out"):
            await provider.get_stats("Austin, TX")
        assert route.call_count == 1

    @respx.mock
    async def test_connection_error_is_transient(self, provider):
        respx.get(AUSTIN_URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(TransientFetchError):
            await provider.get_stats("Austin, TX")

    @respx.mock
    async def test_invalid_json(self, provider):
        respx.get(AUSTIN_URL).mock(
            return_value=httpx.Response(
                200, text="{nope", headers={"content-type": "application/json"}
            )
        )
        with pytest.raises(ParsingError):
            await provider.get_stats("Austin, TX")

    @respx.mock
    async def test_empty_history(self, provider, austin_json):
        austin_json["history"] = []
        respx.get(AUSTIN_URL).mock(return_value=httpx.Response(200, json=austin_json))
        with pytest.raises(ParsingError, match="no usable values"):
            await provider.get_stats("Austin, TX")

    @respx.mock
    async def test_scalar_history_is_parsing_error(self, provider):
        respx.get(AUSTIN_URL).mock(
            return_value=httpx.Response(
                200, json={"id": "1", "city": "Austin", "state": "TX", "history": 5}
            )
        )
        with pytest.raises(ParsingError):
            await provider.get_stats("Austin, TX")


class TestUnsupported:
    async def test_search(self, provider):
        with pytest.raises(UnsupportedCapabilityError):
            await provider.search("austin")

    async def test_list_markets(self, provider):
        with pytest.raises(UnsupportedCapabilityError):
            await provider.list_markets()
