"""Integration tests for scenario replay and in-memory deployment."""
from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from cdp_engine.config import AppConfig, PriceOracleConfig
from cdp_engine.constants import NO_DEBT_HEALTH_FACTOR
from cdp_engine.oracles import FixedPriceSource, PythPriceSource
from cdp_engine.services import (
    ScenarioRunner,
    build_price_source,
    deploy_in_memory,
    load_scenario,
    to_base_units,
)
from tests.conftest import NOW, units

SCENARIO_PATH = Path(__file__).resolve().parents[2] / "scenarios" / "liquidation.yaml"


@pytest.fixture()
def runner(sample_app_config: AppConfig, clock) -> ScenarioRunner:
    return ScenarioRunner(sample_app_config, clock=clock)


class TestToBaseUnits:
    def test_whole_and_fractional(self) -> None:
        assert to_base_units("10") == units(10)
        assert to_base_units("0.05") == units(0.05)
        assert to_base_units(2000, 8) == 2000 * 10**8

    def test_smallest_unit_is_exact(self) -> None:
        assert to_base_units("9900.000000000000000001") == units(9_900) + 1

    def test_extra_digits_truncated(self) -> None:
        assert to_base_units("1.123", decimals=2) == 112

    def test_accepts_decimal(self) -> None:
        assert to_base_units(Decimal("1.5")) == units(1.5)

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid amount"):
            to_base_units("lots")


class TestLoadScenario:
    def test_loads_bundled_scenario(self) -> None:
        scenario = load_scenario(SCENARIO_PATH)
        assert scenario["prices"]["WETH"] == "2000"
        assert scenario["steps"][0]["action"] == "fund"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_scenario(tmp_path / "missing.yaml")

    def test_missing_steps_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("prices: {WETH: '1'}\n")
        with pytest.raises(ValueError, match="steps"):
            load_scenario(path)


class TestFactory:
    def test_build_price_source(self, sample_app_config: AppConfig) -> None:
        assert isinstance(
            build_price_source(sample_app_config.price_oracle), FixedPriceSource
        )
        assert isinstance(build_price_source(PriceOracleConfig()), PythPriceSource)

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError, match="No price source factory"):
            build_price_source(PriceOracleConfig(provider="chainlink"))

    @pytest.mark.asyncio
    async def test_deploy_in_memory(self, sample_app_config: AppConfig, clock) -> None:
        deployment = deploy_in_memory(sample_app_config, clock=clock)
        assert set(deployment.collateral_tokens) == {"WETH", "WBTC"}
        assert deployment.engine.collateral_assets == ("WETH", "WBTC")
        assert await deployment.engine.get_usd_value("WETH", units(1)) == units(2_000)


class TestScenarioRunner:
    @pytest.mark.asyncio
    async def test_bundled_liquidation_scenario(self, runner: ScenarioRunner) -> None:
        report = await runner.run(load_scenario(SCENARIO_PATH))

        assert report.all_matched
        assert [r.error for r in report.results if not r.ok] == [
            "HealthFactorBrokenError",
            "HealthFactorOkError",
        ]
        accounts = {a.account: a for a in report.accounts}
        assert list(accounts) == ["alice", "bob"]
        assert accounts["alice"].total_debt == units(50)
        assert accounts["bob"].collateral == (("WETH", units(20)),)
        assert runner.deployment.collateral_tokens["WETH"].balance_of("bob") > 0

    @pytest.mark.asyncio
    async def test_engine_errors_are_recorded(self, runner: ScenarioRunner) -> None:
        report = await runner.run(
            {
                "steps": [
                    {"action": "deposit", "account": "alice", "asset": "WETH", "amount": "1"},
                    {"action": "fund", "account": "alice", "asset": "DOGE", "amount": "1"},
                    {"action": "mint", "account": "alice", "amount": "1", "expect": "ok"},
                ]
            }
        )
        assert [r.error for r in report.results] == [
            "TransferFailedError",
            "UnsupportedAssetError",
            "HealthFactorBrokenError",
        ]
        assert not report.all_matched
        assert report.accounts[0].health_factor == NO_DEBT_HEALTH_FACTOR

    @pytest.mark.asyncio
    async def test_successful_step_carries_events(self, runner: ScenarioRunner) -> None:
        report = await runner.run(
            {
                "steps": [
                    {"action": "fund", "account": "alice", "asset": "WBTC", "amount": "2"},
                    {"action": "deposit", "account": "alice", "asset": "WBTC", "amount": "2"},
                    {"action": "mint", "account": "alice", "amount": "500"},
                    {"action": "transfer_debt", "account": "alice", "to": "carol", "amount": "500"},
                    {"action": "burn", "account": "alice", "amount": "1"},
                ]
            }
        )
        results = report.results
        assert [len(r.events) for r in results[:3]] == [0, 1, 1]
        assert results[3].ok
        assert results[4].error == "BurnFailedError"
        assert runner.deployment.debt_token.balance_of("carol") == units(500)

    @pytest.mark.asyncio
    async def test_stale_price_step(self, runner: ScenarioRunner) -> None:
        report = await runner.run(
            {
                "steps": [
                    {"action": "fund", "account": "alice", "asset": "WETH", "amount": "1"},
                    {"action": "deposit", "account": "alice", "asset": "WETH", "amount": "1"},
                    {"action": "set_price", "asset": "WETH", "price": "2000", "age": 86400},
                    {"action": "mint", "account": "alice", "amount": "1"},
                ]
            }
        )
        assert report.results[-1].error == "PriceUnavailableError"
        assert report.accounts == ()

    def test_set_price_uses_feed_decimals(self, runner: ScenarioRunner) -> None:
        runner.set_price("WETH", "1.5", age_seconds=10)
        quote = runner.deployment.price_source._quotes["eth-usd"]
        assert quote.price == 150_000_000
        assert quote.decimals == 8
        assert quote.published_at == NOW - 10

    @pytest.mark.asyncio
    async def test_unknown_action_raises(self, runner: ScenarioRunner) -> None:
        with pytest.raises(ValueError, match="unknown action 'teleport'"):
            await runner.run({"steps": [{"action": "teleport"}]})

    @pytest.mark.asyncio
    async def test_missing_field_raises(self, runner: ScenarioRunner) -> None:
        with pytest.raises(ValueError, match="missing 'amount'"):
            await runner.run({"steps": [{"action": "mint", "account": "alice"}]})
