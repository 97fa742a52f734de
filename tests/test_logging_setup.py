from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import replace

import pytest

from rdpilot import logging_setup
from rdpilot.settings import Settings


@pytest.fixture
def clean_root() -> Iterator[logging.Logger]:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    root.handlers = [h for h in root.handlers if not getattr(h, logging_setup._MARKER, False)]
    yield root
    for handler in root.handlers:
        if getattr(handler, logging_setup._MARKER, False):
            handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def _ours(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if getattr(h, logging_setup._MARKER, False)]


class TestConfigureLogging:
    def test_idempotent(
        self, clean_root: logging.Logger, test_settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(logging_setup, "settings", test_settings)

        logging_setup.configure_logging("DEBUG")
        logging_setup.configure_logging("WARNING")

        assert len(_ours(clean_root)) == 1
        assert clean_root.level == logging.WARNING

    def test_file_handler_under_data_dir(
        self, clean_root: logging.Logger, test_settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(logging_setup, "settings", replace(test_settings, log_to_file=True))

        logging_setup.configure_logging("INFO")
        logging.getLogger("rdpilot.test").info("hello file")

        assert len(_ours(clean_root)) == 2
        assert test_settings.log_path.exists()
