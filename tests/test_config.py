import pathlib
from decimal import Decimal

import pytest

from library_lending import ConfigError, LendingConfig


def test_defaults():
    config = LendingConfig.from_env({})
    assert config.data_dir == pathlib.Path("data")
    assert config.fee_per_day == Decimal("0.50")
    assert config.max_fee == Decimal("25.00")
    assert config.max_renewals == 3
    assert config.log_level == "INFO"


def test_overrides():
    config = LendingConfig.from_env({
        "LIBRARY_DATA_DIR": "/srv/library",
        "LIBRARY_FEE_PER_DAY": "0.25",
        "LIBRARY_MAX_FEE": "10",
        "LIBRARY_MAX_RENEWALS": "1",
        "LIBRARY_LOG_LEVEL": "debug",
    })
    assert config.data_dir == pathlib.Path("/srv/library")
    assert config.fee_per_day == Decimal("0.25")
    assert config.max_fee == Decimal("10")
    assert config.max_renewals == 1
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize("name, value", [
    ("LIBRARY_FEE_PER_DAY", "fifty cents"),
    ("LIBRARY_MAX_FEE", "-1"),
    ("LIBRARY_FEE_PER_DAY", "NaN"),
    ("LIBRARY_FEE_PER_DAY", "sNaN"),
    ("LIBRARY_MAX_FEE", "Infinity"),
    ("LIBRARY_MAX_RENEWALS", "three"),
    ("LIBRARY_LOG_LEVEL", "LOUD"),
])
def test_malformed_values(name, value):
    with pytest.raises(ConfigError):
        LendingConfig.from_env({name: value})


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("LIBRARY_MAX_RENEWALS=5\n")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LIBRARY_MAX_RENEWALS", "")
    monkeypatch.delenv("LIBRARY_MAX_RENEWALS")
    assert LendingConfig.from_env().max_renewals == 5


def test_engine_honours_renewal_setting(ledger, members, store, clock):
    from library_lending import BorrowingEngine, FailureKind
    engine = BorrowingEngine(ledger, members, store, clock=clock,
                             config=LendingConfig(max_renewals=1))
    view, _ = engine.borrow("M001", "B001")
    engine.renew(view.transaction.id, "M001")
    _, failure = engine.renew(view.transaction.id, "M001")
    assert failure.kind == FailureKind.RENEWAL_LIMIT_REACHED
    assert failure.message == "Maximum renewal limit (1) reached"
