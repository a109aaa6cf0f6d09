"""Context window sizing — how many tokens the compaction budget is carved from."""

from __future__ import annotations

import logging
from enum import Enum
from typing import NamedTuple

from ..config import BudgetConfig
from .monitor import BudgetThresholds

log = logging.getLogger(__name__)

# Below this the summary alone would crowd out the conversation.
HARD_MIN_TOKENS = 16_000
WARN_BELOW_TOKENS = 32_000


class WindowSource(str, Enum):
    MODEL = "model"
    CONFIG = "config"
    DEFAULT = "default"


class WindowStatus(str, Enum):
    OK = "ok"
    SMALL = "small"
    TOO_SMALL = "too_small"


class ContextWindow(NamedTuple):
    tokens: int
    source: WindowSource
    status: WindowStatus = WindowStatus.OK

    @property
    def usable(self) -> bool:
        return self.status != WindowStatus.TOO_SMALL


def window_status(
    tokens: int,
    *,
    hard_min: int = HARD_MIN_TOKENS,
    warn_below: int = WARN_BELOW_TOKENS,
) -> WindowStatus:
    if tokens < hard_min:
        return WindowStatus.TOO_SMALL
    if tokens < warn_below:
        return WindowStatus.SMALL
    return WindowStatus.OK


def resolve_context_window(
    *,
    model_context_window: int | None = None,
    config_cap: int | None = None,
    default_tokens: int = 100_000,
    hard_min: int = HARD_MIN_TOKENS,
    warn_below: int = WARN_BELOW_TOKENS,
) -> ContextWindow:
    """Size the window and grade it.

    The model's own window is used when known, else ``default_tokens``;
    a positive ``config_cap`` narrows either one.
    """
    tokens, source = default_tokens, WindowSource.DEFAULT
    if model_context_window and model_context_window > 0:
        tokens, source = model_context_window, WindowSource.MODEL
    if config_cap and 0 < config_cap < tokens:
        tokens, source = config_cap, WindowSource.CONFIG

    status = window_status(tokens, hard_min=hard_min, warn_below=warn_below)
    if status == WindowStatus.TOO_SMALL:
        log.error("Context window of %d tokens (%s) is under the %d minimum", tokens, source.value, hard_min)
    elif status == WindowStatus.SMALL:
        log.warning("Context window of %d tokens (%s) is small; expect frequent compaction", tokens, source.value)
    return ContextWindow(tokens, source, status)


def derive_thresholds(
    window: ContextWindow,
    budget: BudgetConfig,
    *,
    reserve_tokens: int = 0,
) -> BudgetThresholds:
    """Warning and critical levels as ratios of the window minus any reserved output space."""
    usable = max(0, window.tokens - reserve_tokens)
    return BudgetThresholds(
        warning_tokens=int(usable * budget.warning_ratio),
        critical_tokens=int(usable * budget.critical_ratio),
    )
