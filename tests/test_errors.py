"""Tests for the error hierarchy and the error-handling decorator."""

from __future__ import annotations

import pytest

from rdpilot.errors import (
    CommandShapeError,
    ConfigurationError,
    LLMConnectionError,
    LLMError,
    NotFoundError,
    RdpilotError,
    ValidationError,
    get_error_code,
    handle_errors,
)


class TestRdpilotError:
    def test_to_dict_drops_none_context(self) -> None:
        err = NotFoundError("no such session", resource_type="session", resource_id=None)
        assert err.to_dict() == {
            "type": "notfound",
            "message": "no such session",
            "recoverable": False,
            "resource_type": "session",
        }

    def test_validation_error_context(self) -> None:
        err = ValidationError("incomplete", field="host", missing=["host", "username"])
        data = err.to_dict()
        assert data["field"] == "host"
        assert data["missing"] == ["host", "username"]
        assert err.missing == ["host", "username"]

    def test_sensitive_values_are_not_recorded(self) -> None:
        err = ValidationError("bad", field="password", value="hunter2")
        assert "value" not in err.context

    def test_long_values_truncated(self) -> None:
        err = ValidationError("bad", field="host", value="x" * 500)
        assert len(err.context["value"]) == 103

    def test_command_shape_error_is_validation_error(self) -> None:
        err = CommandShapeError("nope", field="action")
        assert isinstance(err, ValidationError)
        assert err.constraint == "command_shape"

    def test_llm_connection_error_is_recoverable(self) -> None:
        err = LLMConnectionError("down", provider="openai", url="https://api.example.com")
        assert err.recoverable
        assert err.context["url"] == "https://api.example.com"
        assert isinstance(err, LLMError)


class TestErrorCodes:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (ValidationError("x"), -32602),
            (CommandShapeError("x"), -32602),
            (NotFoundError("x"), -32003),
            (LLMConnectionError("x"), -32011),
            (ConfigurationError("x"), -32030),
            (LLMError("x"), -32010),
            (RdpilotError("x"), -32603),
        ],
    )
    def test_get_error_code(self, error: RdpilotError, code: int) -> None:
        assert get_error_code(error) == code


class TestHandleErrors:
    def test_returns_default_on_failure(self) -> None:
        @handle_errors("read things", default=[])
        def broken() -> list[str]:
            raise OSError("disk gone")

        assert broken() == []

    def test_domain_errors_propagate(self) -> None:
        @handle_errors("read things", default=None)
        def strict() -> None:
            raise NotFoundError("missing")

        with pytest.raises(NotFoundError):
            strict()

    def test_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        @handle_errors("write things", log_level="warning", default=False)
        def broken() -> bool:
            raise ValueError("bad bytes")

        with caplog.at_level("WARNING", logger="rdpilot.errors"):
            assert broken() is False
        assert "Failed to write things: bad bytes" in caplog.text

    def test_success_passthrough(self) -> None:
        @handle_errors("add")
        def add(a: int, b: int) -> int:
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"
