"""Unit tests for the Pyth price source: response parsing and error handling."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cdp_engine.config import PythConfig
from cdp_engine.errors import PriceUnavailableError
from cdp_engine.models import PriceQuote
from cdp_engine.oracles.pyth import PythPriceSource, parse_price_item

ETH_ID = "0xff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace"
BTC_ID = "0xe62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43"


@pytest.fixture()
def oracle() -> PythPriceSource:
    return PythPriceSource(
        PythConfig(hermes_url="https://hermes.example.com/v2/updates/price/latest")
    )


def _make_pyth_response(items: list[dict]) -> dict:
    return {"parsed": items}


def _price_item(feed_id: str, price: str, expo: int, publish_time: int) -> dict:
    return {
        "id": feed_id.removeprefix("0x"),
        "price": {
            "price": price,
            "conf": "100",
            "expo": expo,
            "publish_time": publish_time,
        },
    }


def _mock_session(status: int = 200, data: dict | None = None) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=data or {})
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.get = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestParsePriceItem:
    def test_negative_expo(self) -> None:
        quote = parse_price_item(_price_item(ETH_ID, "200000000000", -8, 1700000000))
        assert quote == PriceQuote(price=200000000000, decimals=8, published_at=1700000000.0)

    def test_positive_expo(self) -> None:
        quote = parse_price_item(_price_item(ETH_ID, "2", 3, 1))
        assert quote.price == 2000
        assert quote.decimals == 0

    def test_malformed_raises(self) -> None:
        with pytest.raises(PriceUnavailableError, match="Malformed"):
            parse_price_item({"id": "abc", "price": {"price": "1"}})


class TestPythPriceSource:
    @pytest.mark.asyncio
    async def test_get_price_parses_response(self, oracle: PythPriceSource) -> None:
        session = _mock_session(
            data=_make_pyth_response([_price_item(ETH_ID, "200000000000", -8, 1700000000)])
        )
        with patch("cdp_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("cdp_engine.oracles.pyth.aiohttp.TCPConnector"):
                quote = await oracle.get_price(ETH_ID)

        assert quote.price == 200000000000
        assert quote.decimals == 8
        assert quote.published_at == 1700000000.0
        url = session.get.call_args[0][0]
        assert f"ids[]={ETH_ID}" in url

    @pytest.mark.asyncio
    async def test_fetch_prices_matches_ids_without_prefix(
        self, oracle: PythPriceSource
    ) -> None:
        session = _mock_session(
            data=_make_pyth_response(
                [
                    _price_item(ETH_ID, "200000000000", -8, 10),
                    _price_item(BTC_ID, "100000000000", -8, 11),
                ]
            )
        )
        with patch("cdp_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("cdp_engine.oracles.pyth.aiohttp.TCPConnector"):
                quotes = await oracle.fetch_prices([ETH_ID, BTC_ID, ETH_ID])

        assert set(quotes) == {ETH_ID, BTC_ID}
        assert quotes[BTC_ID].price == 100000000000

    @pytest.mark.asyncio
    async def test_http_error_raises(self, oracle: PythPriceSource) -> None:
        session = _mock_session(status=500)
        with patch("cdp_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("cdp_engine.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(PriceUnavailableError, match="HTTP 500"):
                    await oracle.get_price(ETH_ID)

    @pytest.mark.asyncio
    async def test_network_error_raises(self, oracle: PythPriceSource) -> None:
        session = _mock_session()
        session.get = MagicMock(side_effect=ConnectionError("timeout"))
        with patch("cdp_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("cdp_engine.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(PriceUnavailableError, match="timeout"):
                    await oracle.get_price(ETH_ID)

    @pytest.mark.asyncio
    async def test_missing_feed_raises(self, oracle: PythPriceSource) -> None:
        session = _mock_session(data=_make_pyth_response([]))
        with patch("cdp_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("cdp_engine.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(PriceUnavailableError, match="No Pyth price"):
                    await oracle.get_price(ETH_ID)

    @pytest.mark.asyncio
    async def test_empty_request_skips_network(self, oracle: PythPriceSource) -> None:
        with patch("cdp_engine.oracles.pyth.aiohttp.ClientSession") as session_cls:
            assert await oracle.fetch_prices([]) == {}
        session_cls.assert_not_called()
