import pytest

from conftest import IDLE_MARKET, NOW, WBTC_MARKET, WSTETH_MARKET, FakeGraphQLClient
from vaultrisk.exceptions import MorphoAPIError
from vaultrisk.fetch.collateral import fetch_collateral_at_risk
from vaultrisk.fetch.liquidations import fetch_liquidations
from vaultrisk.fetch.pagination import paginate
from vaultrisk.fetch.positions import fetch_market_positions
from vaultrisk.fetch.queries import MARKET_POSITIONS_QUERY
from vaultrisk.models import VaultAllocationRow


def _paged_handler(root_field, pages, count_total):
    def handler(variables):
        index = variables["skip"] // variables["first"]
        items = pages[index] if index < len(pages) else []
        return {root_field: {"items": items, "pageInfo": {"count": len(items), "countTotal": count_total}}}

    return handler


@pytest.mark.asyncio
async def test_paginate_stops_on_short_page_and_dedups():
    pages = [[{"id": "1"}, {"id": "2"}], [{"id": "2"}, {"id": "3"}], [{"id": "4"}]]
    client = FakeGraphQLClient({"MarketPositions": _paged_handler("marketPositions", pages, 100)})

    items = await paginate(client, MARKET_POSITIONS_QUERY, {"marketKeys": ["m"]}, "marketPositions", 2)

    assert [item["id"] for item in items] == ["1", "2", "3", "4"]
    assert [call["skip"] for call in client.calls_for("MarketPositions")] == [0, 2, 4]


@pytest.mark.asyncio
async def test_paginate_stops_at_count_total():
    pages = [[{"id": "1"}, {"id": "2"}], [{"id": "3"}, {"id": "4"}]]
    client = FakeGraphQLClient({"MarketPositions": _paged_handler("marketPositions", pages, 2)})

    items = await paginate(client, MARKET_POSITIONS_QUERY, {}, "marketPositions", 2)

    assert len(items) == 2
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_paginate_stops_on_empty_page():
    client = FakeGraphQLClient({"MarketPositions": lambda variables: {"marketPositions": None}})
    assert await paginate(client, MARKET_POSITIONS_QUERY, {}, "marketPositions", 2) == []


@pytest.mark.asyncio
async def test_fetch_market_positions_filters_zero_borrow(fake_client):
    positions = await fetch_market_positions(fake_client, [WSTETH_MARKET, WBTC_MARKET], chain_id=1)

    assert [p.id for p in positions] == ["p1", "p2"]
    assert positions[0].lltv == 0.86
    assert positions[0].user_address == "0xu1"
    assert positions[0].market_label == "wstETH/USDC"
    call = fake_client.calls_for("MarketPositions")[0]
    assert call["first"] == 200
    assert call["chainIds"] == [1]


@pytest.mark.asyncio
async def test_fetch_market_positions_without_markets_makes_no_request(fake_client):
    assert await fetch_market_positions(fake_client, [], chain_id=1) == []
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_fetch_market_positions_propagates_errors():
    client = FakeGraphQLClient({"MarketPositions": lambda variables: MorphoAPIError("boom")})
    with pytest.raises(MorphoAPIError):
        await fetch_market_positions(client, ["m"], chain_id=1)


@pytest.mark.asyncio
async def test_fetch_liquidations_sorted_newest_first(fake_client):
    incidents = await fetch_liquidations(fake_client, [WSTETH_MARKET], chain_id=1, now=NOW)

    assert [i.id for i in incidents] == ["l-recent", "l-old"]
    assert incidents[0].repaid_usd == 1000
    call = fake_client.calls_for("Liquidations")[0]
    assert call["timestampGte"] == NOW - 90 * 24 * 60 * 60
    assert call["first"] == 100


@pytest.mark.asyncio
async def test_fetch_liquidations_propagates_errors():
    client = FakeGraphQLClient({"Liquidations": lambda variables: MorphoAPIError("boom")})
    with pytest.raises(MorphoAPIError):
        await fetch_liquidations(client, ["m"], chain_id=1, now=NOW)


def _allocation(key, collateral, allocation_usd=100.0, lltv=0.86):
    return VaultAllocationRow(
        market_key=key,
        collateral_symbol=collateral,
        loan_symbol="USDC",
        allocation_usd=allocation_usd,
        allocation_pct=0.1,
        lltv=lltv,
    )


@pytest.mark.asyncio
async def test_fetch_collateral_at_risk_isolates_market_failures(fake_client):
    allocations = [
        _allocation(WSTETH_MARKET, "wstETH"),
        _allocation(WBTC_MARKET, "WBTC"),
        _allocation(IDLE_MARKET, "Idle", lltv=0.0),
        _allocation("0xnolltv", "WETH", lltv=None),
        _allocation("0xempty", "WETH", allocation_usd=0),
    ]

    series = await fetch_collateral_at_risk(fake_client, allocations, chain_id=1)

    assert [s.market_key for s in series] == [WSTETH_MARKET]
    assert series[0].label == "wstETH/USDC"
    assert len(series[0].points) == 2
    requested = sorted(call["uniqueKey"] for call in fake_client.calls_for("MarketCollateralAtRisk"))
    assert requested == sorted([WSTETH_MARKET, WBTC_MARKET])
    assert all(call["numberOfPoints"] == 24 for call in fake_client.calls_for("MarketCollateralAtRisk"))


def _curve_payload(key, points):
    return {
        "marketCollateralAtRisk": {
            "market": {"uniqueKey": key, "loanAsset": {"symbol": "USDC"}, "collateralAsset": None},
            "collateralAtRisk": points,
        }
    }


@pytest.mark.parametrize(
    "bad_payload",
    [
        _curve_payload("0xbad", [None]),
        _curve_payload(None, [{"collateralPriceRatio": 1.0, "collateralUsd": 10}]),
    ],
    ids=["null-point", "null-market-key"],
)
@pytest.mark.asyncio
async def test_fetch_collateral_at_risk_skips_malformed_market(bad_payload):
    good_payload = _curve_payload("0xgood", [{"collateralPriceRatio": 1.0, "collateralUsd": 10}])

    def handler(variables):
        return good_payload if variables["uniqueKey"] == "0xgood" else bad_payload

    client = FakeGraphQLClient({"MarketCollateralAtRisk": handler})
    allocations = [_allocation("0xgood", "WETH"), _allocation("0xbad", "WBTC")]

    series = await fetch_collateral_at_risk(client, allocations, chain_id=1)

    assert [s.market_key for s in series] == ["0xgood"]


@pytest.mark.asyncio
async def test_fetch_collateral_at_risk_honours_explicit_point_count(fake_client):
    await fetch_collateral_at_risk(fake_client, [_allocation(WSTETH_MARKET, "wstETH")], chain_id=1, number_of_points=0)

    assert fake_client.calls_for("MarketCollateralAtRisk")[0]["numberOfPoints"] == 0


@pytest.mark.asyncio
async def test_fetch_market_positions_wraps_malformed_items(positions_payload):
    positions_payload["marketPositions"]["items"][0]["market"] = None
    client = FakeGraphQLClient({"MarketPositions": lambda variables: positions_payload})

    with pytest.raises(MorphoAPIError, match="malformed market positions"):
        await fetch_market_positions(client, [WSTETH_MARKET], chain_id=1)


@pytest.mark.asyncio
async def test_fetch_liquidations_wraps_malformed_items(liquidations_payload):
    liquidations_payload["transactions"]["items"][0]["data"]["market"] = None
    client = FakeGraphQLClient({"Liquidations": lambda variables: liquidations_payload})

    with pytest.raises(MorphoAPIError, match="malformed liquidations"):
        await fetch_liquidations(client, [WBTC_MARKET], chain_id=1, now=NOW)


@pytest.mark.asyncio
async def test_fetch_liquidations_honours_zero_lookback(fake_client):
    await fetch_liquidations(fake_client, [WSTETH_MARKET], chain_id=1, lookback_days=0, now=NOW)

    assert fake_client.calls_for("Liquidations")[0]["timestampGte"] == NOW
