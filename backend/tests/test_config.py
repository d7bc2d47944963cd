import logging
from pathlib import Path

from portfolio_recon.config import AppSettings
from portfolio_recon.core.logging import setup_logging
from portfolio_recon.core.telemetry import setup_telemetry


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("PORTFOLIO_RECON_LARGE_FEE_THRESHOLD", "2500")
    monkeypatch.setenv("PORTFOLIO_RECON_OPENING_BALANCE_OVERRIDES", '{"General Investment": 413279}')
    monkeypatch.setenv("PORTFOLIO_RECON_ACTIVE_BENCHMARKS", '["SP500", "QQQ"]')
    settings = AppSettings()
    assert settings.large_fee_threshold == 2500.0
    assert settings.opening_balance_for("General Investment") == 413279.0
    assert settings.opening_balance_for("Other") is None
    assert settings.active_benchmarks == ["SP500", "QQQ"]


def test_defaults():
    settings = AppSettings()
    assert settings.primary_benchmark == "SP500"
    assert settings.anomaly_drop_ratio == 0.9
    assert settings.output_path == Path("data/multi-account-data.json")


def test_dict_for_logging_masks_endpoint():
    settings = AppSettings(telemetry_otlp_endpoint="http://collector:4317")
    assert settings.dict_for_logging()["telemetry_otlp_endpoint"] == "***"


def test_telemetry_disabled_by_default():
    assert setup_telemetry(AppSettings()) is False


def test_setup_logging_quiets_pdf_libraries():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    try:
        setup_logging("DEBUG")
        assert root.level == logging.DEBUG
        assert logging.getLogger("pdfminer").level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            if handler not in handlers:
                root.removeHandler(handler)
        root.setLevel(level)
