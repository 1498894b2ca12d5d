import copy

import pytest

from vaultrisk.exceptions import MorphoAPIError

DAY = 24 * 60 * 60
NOW = 1_700_000_000

WSTETH_MARKET = "0xaaaa"
WBTC_MARKET = "0xbbbb"
IDLE_MARKET = "0xidle"


class FakeGraphQLClient:
    """In-memory stand-in for MorphoClient, routed by operation name."""

    OPERATIONS = ("VaultDashboard", "MarketCollateralAtRisk", "MarketPositions", "Liquidations")

    def __init__(self, handlers):
        self.handlers = handlers
        self.calls = []

    async def execute(self, query, variables=None):
        operation = next(op for op in self.OPERATIONS if f"query {op}(" in query)
        self.calls.append((operation, dict(variables or {})))
        result = self.handlers[operation](variables or {})
        if isinstance(result, Exception):
            raise result
        return copy.deepcopy(result)

    def calls_for(self, operation):
        return [variables for op, variables in self.calls if op == operation]


def _market(key, collateral, loan, lltv, supply_usd, utilization_points, supply_points):
    return {
        "uniqueKey": key,
        "lltv": lltv,
        "loanAsset": {"symbol": loan},
        "collateralAsset": {"symbol": collateral} if collateral else None,
        "state": {
            "utilization": 0.9,
            "liquidityAssetsUsd": supply_usd / 10,
            "supplyAssetsUsd": supply_usd,
            "netSupplyApy": None,
            "supplyApy": 0.05,
        },
        "historicalState": {
            "utilizationRange": utilization_points,
            "supplyAssetsUsd": supply_points,
        },
    }


@pytest.fixture
def vault_payload():
    return {
        "vaultByAddress": {
            "address": "0xvault",
            "name": "Test USDC Vault",
            "symbol": "tUSDC",
            "chain": {"id": 1, "network": "ethereum"},
            "state": {
                "timestamp": str(NOW),
                "totalAssetsUsd": 1000,
                "netApy": 0.06,
                "fee": 0.1,
                "allocation": [
                    {
                        "supplyAssetsUsd": 100,
                        "market": _market(IDLE_MARKET, None, "USDC", "0", 0, [], []),
                    },
                    {
                        "supplyAssetsUsd": 300,
                        "market": _market(
                            WBTC_MARKET,
                            "WBTC",
                            "USDC",
                            "915000000000000000",
                            1000,
                            [{"x": NOW - 2 * DAY, "y": 0.5}],
                            [],
                        ),
                    },
                    {
                        "supplyAssetsUsd": 600,
                        "market": _market(
                            WSTETH_MARKET,
                            "wstETH",
                            "USDC",
                            "860000000000000000",
                            6000,
                            [{"x": NOW - DAY, "y": 0.9}, {"x": NOW - 2 * DAY, "y": 0.8}],
                            [{"x": NOW - 2 * DAY, "y": 5000}, {"x": NOW - DAY, "y": 6000}],
                        ),
                    },
                ],
            },
            "liquidity": {"usd": 250},
            "historicalState": {
                "allocation": [
                    {
                        "market": {"uniqueKey": WSTETH_MARKET},
                        "supplyAssetsUsd": [
                            {"x": NOW - 2 * DAY, "y": 500},
                            {"x": NOW - DAY, "y": 600},
                        ],
                    },
                    {
                        "market": {"uniqueKey": WBTC_MARKET},
                        "supplyAssetsUsd": [{"x": NOW - 2 * DAY, "y": 300}],
                    },
                ],
                "sharePriceUsd": [{"x": NOW - DAY, "y": 1.1}, {"x": NOW - 2 * DAY, "y": 1.0}],
                "netApy": [{"x": NOW - DAY, "y": 0.06}, {"x": NOW - 2 * DAY, "y": None}],
                "totalAssetsUsd": [{"x": NOW - 2 * DAY, "y": 900}, {"x": NOW - DAY, "y": 1000}],
            },
        }
    }


def _position(position_id, user, market_key, collateral, lltv, hf, borrow, collateral_usd):
    return {
        "id": position_id,
        "healthFactor": hf,
        "priceVariationToLiquidationPrice": None,
        "user": {"address": user} if user else None,
        "market": {
            "uniqueKey": market_key,
            "lltv": lltv,
            "loanAsset": {"symbol": "USDC"},
            "collateralAsset": {"symbol": collateral},
        },
        "state": (
            None
            if borrow is None
            else {"borrowAssetsUsd": borrow, "collateralUsd": collateral_usd, "marginUsd": 0}
        ),
    }


@pytest.fixture
def positions_payload():
    items = [
        _position("p1", "0xu1", WSTETH_MARKET, "wstETH", "860000000000000000", 1.02, 1000, 1500),
        _position("p2", "0xu2", WBTC_MARKET, "WBTC", "915000000000000000", 2.0, 100, 1000),
        _position("p3", "0xu3", WBTC_MARKET, "WBTC", "915000000000000000", None, None, None),
    ]
    return {"marketPositions": {"items": items, "pageInfo": {"count": 3, "countTotal": 3}}}


def _liquidation(tx_id, timestamp, market_key, collateral, repaid, seized, bad_debt):
    return {
        "id": tx_id,
        "timestamp": timestamp,
        "hash": f"0xhash-{tx_id}",
        "data": {
            "repaidAssetsUsd": repaid,
            "seizedAssetsUsd": seized,
            "badDebtAssetsUsd": bad_debt,
            "market": {
                "uniqueKey": market_key,
                "loanAsset": {"symbol": "USDC"},
                "collateralAsset": {"symbol": collateral},
            },
        },
    }


@pytest.fixture
def liquidations_payload():
    items = [
        _liquidation("l-old", NOW - 40 * DAY, WBTC_MARKET, "WBTC", 0, 50, 0),
        _liquidation("l-recent", int(NOW - 1.5 * DAY), WSTETH_MARKET, "wstETH", 1000, 0, 10),
        {"id": "l-empty", "timestamp": NOW, "hash": "0x", "data": None},
    ]
    return {"transactions": {"items": items, "pageInfo": {"count": 3, "countTotal": 3}}}


@pytest.fixture
def collateral_handler():
    def handler(variables):
        if variables["uniqueKey"] == WBTC_MARKET:
            return MorphoAPIError("market not indexed")
        return {
            "marketCollateralAtRisk": {
                "market": {
                    "uniqueKey": variables["uniqueKey"],
                    "loanAsset": {"symbol": "USDC"},
                    "collateralAsset": {"symbol": "wstETH"},
                },
                "collateralAtRisk": [
                    {"collateralPriceRatio": 0.8, "collateralUsd": 50},
                    {"collateralPriceRatio": 1.0, "collateralUsd": 100},
                ],
            }
        }

    return handler


@pytest.fixture
def fake_client(vault_payload, positions_payload, liquidations_payload, collateral_handler):
    return FakeGraphQLClient(
        {
            "VaultDashboard": lambda variables: vault_payload,
            "MarketCollateralAtRisk": collateral_handler,
            "MarketPositions": lambda variables: positions_payload,
            "Liquidations": lambda variables: liquidations_payload,
        }
    )
