"""Tests for configuration, structured logging and the error taxonomy."""

import json
import logging
import sys

from lending_ledger import config as config_module
from lending_ledger.config import LendingConfig, reload_config
from lending_ledger.errors import (
    ErrorKind, InternalError, InvalidStateError, NotFoundError, RequestValidationError
)
from lending_ledger.logging_config import (
    JSONFormatter, log_action, setup_logging, setup_logging_from_config
)


class TestLendingConfig:
    """Tests for LendingConfig."""

    def test_default_values(self, monkeypatch) -> None:
        """Test default configuration values."""
        for name in ("DATABASE_URL", "LOG_LEVEL", "LOG_FORMAT", "CURRENCY"):
            monkeypatch.delenv(f"LENDING_{name}", raising=False)

        config = LendingConfig()

        assert config.database_url == "sqlite:///lending.db"
        assert config.log_level == "INFO"
        assert config.log_format == "json"
        assert config.currency == "PHP"
        assert config.default_payment_method == "Cash"
        assert config.enable_audit_logging is True

    def test_environment_prefix(self, monkeypatch) -> None:
        """Test values read from LENDING_* variables."""
        monkeypatch.setenv("LENDING_DATABASE_URL", "memory://")
        monkeypatch.setenv("LENDING_CURRENCY", "USD")
        monkeypatch.setenv("LENDING_ENABLE_AUDIT_LOGGING", "false")

        config = LendingConfig()

        assert config.database_url == "memory://"
        assert config.currency == "USD"
        assert config.enable_audit_logging is False

    def test_reload_config(self, monkeypatch) -> None:
        """Test reload replaces the global instance."""
        original = config_module.config
        monkeypatch.setenv("LENDING_LOG_LEVEL", "DEBUG")
        try:
            reloaded = reload_config()
            assert reloaded.log_level == "DEBUG"
            assert config_module.get_config() is reloaded
        finally:
            config_module.config = original


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def _record(self, **attrs) -> logging.LogRecord:
        record = logging.LogRecord("lending_ledger.test", logging.INFO, __file__, 1,
                                   "Payment of %s applied", ("100.00",), None)
        for key, value in attrs.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self) -> None:
        """Test the message is rendered and empty fields dropped."""
        data = json.loads(JSONFormatter().format(self._record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "lending_ledger.test"
        assert data["message"] == "Payment of 100.00 applied"
        assert "timestamp" in data
        assert "action" not in data

    def test_structured_fields(self) -> None:
        """Test action, resource and extra are included."""
        record = self._record(action="apply_payment", resource="loan:L1",
                              correlation_id="req-1", extra={"applied": "100.00"})

        data = json.loads(JSONFormatter().format(record))

        assert data["action"] == "apply_payment"
        assert data["resource"] == "loan:L1"
        assert data["correlation_id"] == "req-1"
        assert data["extra"] == {"applied": "100.00"}

    def test_exception_included(self) -> None:
        """Test exception info is formatted."""
        try:
            raise ValueError("bad amount")
        except ValueError:
            record = logging.LogRecord("lending_ledger", logging.ERROR, __file__, 1,
                                       "failed", (), sys.exc_info())

        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad amount" in data["exception"]


class TestSetupLogging:
    """Tests for setup_logging and log_action."""

    def test_json_to_file(self, tmp_path) -> None:
        """Test JSON lines written to a log file."""
        log_file = tmp_path / "ledger.log"
        logger = setup_logging(level="INFO", logger_name="lending_ledger.test_json",
                               log_file=str(log_file))

        log_action(logger, "info", "apply_payment succeeded",
                   action="apply_payment", resource="loan:L1")
        logger.handlers[0].flush()

        data = json.loads(log_file.read_text().strip())
        assert data["message"] == "apply_payment succeeded"
        assert data["action"] == "apply_payment"
        assert data["resource"] == "loan:L1"
        assert logger.propagate is False

    def test_text_format(self, tmp_path) -> None:
        """Test plain text output."""
        log_file = tmp_path / "ledger.log"
        logger = setup_logging(logger_name="lending_ledger.test_text", log_format="text",
                               log_file=str(log_file))

        logger.warning("Payment on loan %s left %s unapplied", "L1", "700.00")
        logger.handlers[0].flush()

        line = log_file.read_text().strip()
        assert "WARNING [lending_ledger.test_text] Payment on loan L1 left 700.00 unapplied" in line

    def test_repeated_setup_replaces_handlers(self, tmp_path) -> None:
        """Test handlers are not duplicated."""
        name = "lending_ledger.test_repeat"
        setup_logging(logger_name=name, log_file=str(tmp_path / "a.log"))
        logger = setup_logging(logger_name=name, log_file=str(tmp_path / "b.log"))

        assert len(logger.handlers) == 1

    def test_log_action_respects_level(self, tmp_path) -> None:
        """Test records below the logger level are dropped."""
        log_file = tmp_path / "ledger.log"
        logger = setup_logging(level="WARNING", logger_name="lending_ledger.test_level",
                               log_file=str(log_file))

        log_action(logger, "info", "ignored", action="get_loan")
        log_action(logger, "warning", "kept", action="get_loan")
        logger.handlers[0].flush()

        lines = log_file.read_text().strip().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["kept"]

    def test_setup_from_config(self, tmp_path) -> None:
        """Test config values are applied."""
        config = LendingConfig(log_level="DEBUG", log_format="text",
                               log_file=str(tmp_path / "ledger.log"))

        logger = setup_logging_from_config(config)
        try:
            assert logger.name == "lending_ledger"
            assert logger.level == logging.DEBUG
            assert isinstance(logger.handlers[0], logging.FileHandler)
        finally:
            for handler in logger.handlers[:]:
                logger.removeHandler(handler)
                handler.close()
            logger.propagate = True


class TestErrors:
    """Tests for the error taxonomy."""

    def test_kinds(self) -> None:
        """Test each error class carries its kind."""
        assert NotFoundError("loan", "L1").kind == ErrorKind.NOT_FOUND
        assert InvalidStateError("x").kind == ErrorKind.INVALID_STATE
        assert RequestValidationError("x").kind == ErrorKind.VALIDATION
        assert InternalError("x").kind == ErrorKind.INTERNAL

    def test_not_found_message(self) -> None:
        """Test the not-found message names the entity."""
        error = NotFoundError("installment", "L1_9")

        assert str(error) == "Installment L1_9 not found"
        assert error.entity_id == "L1_9"

    def test_to_dict_omits_empty_details(self) -> None:
        """Test to_dict leaves out empty details."""
        assert InvalidStateError("Cannot cancel a completed loan").to_dict() == {
            "error": "invalid_state",
            "message": "Cannot cancel a completed loan"
        }

    def test_validation_errors_in_details(self) -> None:
        """Test field errors are exposed in details."""
        error = RequestValidationError("Invalid request", [{"field": "amount", "message": "bad"}])

        assert error.to_dict()["details"] == {"errors": [{"field": "amount", "message": "bad"}]}
        assert error.errors == [{"field": "amount", "message": "bad"}]
