# PATH: tests/unit/test_settings.py
"""
Tests for config/settings.py

- YAML sections map onto typed settings with gwei conversion
- environment values override the file
- live mode refuses to start without secrets
"""

import pytest

from config import load_orchestrator_config, load_yaml
from config.settings import Settings, apply_environment, load_settings, settings_from_dict
from core.constants import GWEI, GasStrategy
from core.exceptions import ValidationError

ENV_KEYS = (
    "FLASHARB_PRIVATE_KEY",
    "FLASHARB_RPC_URLS",
    "FLASHARB_SETTLEMENT_ADDRESS",
    "FLASHARB_CHAIN_ID",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also removes values a .env file adds
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


class TestFromDict:
    def test_shipped_config(self):
        settings = settings_from_dict(load_orchestrator_config())

        assert settings.orchestrator.mode == "paper"
        assert settings.retry.max_attempts == 3
        assert settings.gas.strategy == GasStrategy.ADAPTIVE
        assert settings.gas.max_gas_price == 100 * GWEI
        assert settings.risk.max_network_fee == 80 * GWEI
        assert settings.risk.max_loan == {"WETH": 100 * 10**18}
        assert settings.settlement.market_file == "paper_market.yaml"

    def test_empty_dict_gives_defaults(self):
        settings = settings_from_dict({})
        assert settings == Settings()

    def test_policy_and_pricer_config(self):
        settings = settings_from_dict({
            "retry": {"max_attempts": 5, "base_delay_s": 0.5},
            "gas": {"strategy": "Aggressive", "fallback_base_fee_gwei": 30},
        })
        policy = settings.retry.to_policy()
        assert policy.max_attempts == 5
        assert policy.base_delay_s == 0.5

        pricer = settings.gas.to_pricer_config()
        assert pricer.strategy == GasStrategy.AGGRESSIVE
        assert pricer.fallback_base_fee == 30 * GWEI

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError, match="Unknown gas strategy"):
            settings_from_dict({"gas": {"strategy": "yolo"}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValidationError):
            settings_from_dict({"retry": [1, 2]})


class TestEnvironment:
    def test_overrides(self):
        settings = apply_environment(Settings(), {
            "FLASHARB_PRIVATE_KEY": "0x" + "11" * 32,
            "FLASHARB_RPC_URLS": "https://a.example, https://b.example,",
            "FLASHARB_SETTLEMENT_ADDRESS": "0x" + "f1" * 20,
            "FLASHARB_CHAIN_ID": "1",
        })
        assert settings.settlement.rpc_urls == ["https://a.example", "https://b.example"]
        assert settings.settlement.chain_id == 1
        assert settings.settlement.address == "0x" + "f1" * 20

    def test_private_key_not_in_repr(self):
        settings = apply_environment(Settings(), {"FLASHARB_PRIVATE_KEY": "0xsecret"})
        assert "0xsecret" not in repr(settings)

    def test_dotenv_file_is_loaded(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("FLASHARB_CHAIN_ID=10\n", encoding="utf-8")

        settings = load_settings(env_file=env_file)

        assert settings.settlement.chain_id == 10


class TestValidate:
    def test_paper_mode_needs_nothing(self):
        Settings().validate()

    def test_live_mode_lists_missing_values(self):
        settings = Settings()
        settings.orchestrator.mode = "live"
        with pytest.raises(ValidationError) as exc:
            settings.validate()
        assert exc.value.details["missing"] == [
            "FLASHARB_PRIVATE_KEY",
            "FLASHARB_SETTLEMENT_ADDRESS",
            "FLASHARB_RPC_URLS",
        ]

    def test_unknown_mode(self):
        settings = Settings()
        settings.orchestrator.mode = "shadow"
        with pytest.raises(ValidationError):
            settings.validate()

    def test_concurrency_floor(self):
        settings = Settings()
        settings.orchestrator.max_concurrent = 0
        with pytest.raises(ValidationError):
            settings.validate()


class TestLoadYaml:
    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_yaml("does_not_exist.yaml")

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("orchestrator: {mode: live}\n", encoding="utf-8")
        assert load_yaml(path)["orchestrator"]["mode"] == "live"
