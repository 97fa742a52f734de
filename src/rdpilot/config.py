"""Centralized configuration constants for rdpilot.

This module provides a single source of truth for:
- Timeouts (connect attempts, model calls, HTTP requests)
- Chain execution pacing
- Input limits
- RDP connection defaults and tool argument bounds
- Server identity advertised over JSON-RPC

Constants can be overridden via environment variables where noted.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


# =============================================================================
# Helper functions
# =============================================================================


def _env_int(name: str, default: int, min_val: int | None = None) -> int:
    """Get integer from environment with optional minimum enforcement."""
    val = int(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


def _env_float(name: str, default: float, min_val: float | None = None) -> float:
    """Get float from environment with optional minimum enforcement."""
    val = float(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


# =============================================================================
# Timeouts
# =============================================================================


@dataclass(frozen=True)
class Timeouts:
    """Timeout values in seconds."""

    # A connect attempt still pending after this is marked Failed.
    CONNECT: float = _env_float("RDPILOT_CONNECT_TIMEOUT", 30.0, min_val=1.0)

    # Budget for the external model before the rule engine takes over.
    LLM_PARSE: float = _env_float("RDPILOT_LLM_TIMEOUT", 15.0, min_val=1.0)

    HTTP_REQUEST: float = 30.0
    HEALTH_CHECK: float = 5.0


TIMEOUTS = Timeouts()


# =============================================================================
# Chain Execution
# =============================================================================


@dataclass(frozen=True)
class ChainConfig:
    """Pacing for sequential chain execution."""

    # Upper bound on steps in one chain; extra steps are dropped.
    MAX_STEPS: int = _env_int("RDPILOT_CHAIN_MAX_STEPS", 20, min_val=1)

    # Progress percent reported before the first step runs.
    START_PERCENT: int = 5


CHAIN = ChainConfig()


# =============================================================================
# Input Limits
# =============================================================================


@dataclass(frozen=True)
class Limits:
    """Bounds on caller-supplied input."""

    # Longer chat input is truncated, never rejected.
    MAX_INPUT_CHARS: int = _env_int("RDPILOT_MAX_INPUT_CHARS", 10_000, min_val=256)

    # Messages kept in the model prompt as conversation history.
    HISTORY_MESSAGES: int = 6

    MAX_MODEL_TOKENS: int = 500


LIMITS = Limits()


# =============================================================================
# RDP Defaults
# =============================================================================


@dataclass(frozen=True)
class RdpDefaults:
    """Default connection parameters and accepted ranges."""

    PORT: int = 3389
    WIDTH: int = 1920
    HEIGHT: int = 1080
    COLOR_DEPTH: int = 32

    MIN_PORT: int = 1
    MAX_PORT: int = 65535
    MIN_WIDTH: int = 800
    MAX_WIDTH: int = 7680
    MIN_HEIGHT: int = 600
    MAX_HEIGHT: int = 4320
    COLOR_DEPTHS: tuple[int, ...] = (8, 15, 16, 24, 32)


RDP_DEFAULTS = RdpDefaults()


# =============================================================================
# Server Identity
# =============================================================================


@dataclass(frozen=True)
class ServerInfo:
    """What the JSON-RPC gateway reports about itself."""

    NAME: str = "rdpilot"
    VERSION: str = "0.1.0"
    PROTOCOL_VERSION: str = "2024-11-05"


SERVER_INFO = ServerInfo()
