"""agent-context — Context compaction and pruning for LLM coding agents."""

from pathlib import Path

import yaml

_CONFIG_PATH = Path(__file__).parent / "CONFIG.yaml"


def load_config(path: Path | None = None) -> dict:
    """Load and return the CONFIG.yaml as a dict."""
    p = path or _CONFIG_PATH
    with open(p) as f:
        return yaml.safe_load(f) or {}


# Public API
from .config import (  # noqa: E402
    BudgetConfig,
    ClassifierConfig,
    CompressionConfig,
    EngineConfig,
    PruningConfig,
    ToolTrackerConfig,
)
from .context.archive import ContextArchive  # noqa: E402
from .context.classifier import classify, classify_all  # noqa: E402
from .context.compression import (  # noqa: E402
    aggressive_truncate,
    apply_progressive_fallback,
    apply_truncation,
    extract_key_info,
    remove_middle,
)
from .context.fallback import apply_message_fallback  # noqa: E402
from .context.monitor import BudgetThresholds, CompactionOutcome, check_and_compact  # noqa: E402
from .context.pruning import apply_hard_clear, should_hard_clear  # noqa: E402
from .context.tool_tracker import ToolCallTracker  # noqa: E402
from .context.types import (  # noqa: E402
    ArchiveRecord,
    BudgetLevel,
    ClassifiedMessage,
    ClearReason,
    CompactionReport,
    CompressionResult,
    CompressionStrategy,
    ContentType,
    MessageFallbackResult,
    MessageRole,
    PrunableMessage,
    ToolCallTimestamp,
)
from .engine import CompactionEngine  # noqa: E402

__all__ = [
    "load_config",
    "CompactionEngine",
    "EngineConfig",
    "PruningConfig",
    "ClassifierConfig",
    "CompressionConfig",
    "BudgetConfig",
    "ToolTrackerConfig",
    "BudgetThresholds",
    "CompactionOutcome",
    "ContextArchive",
    "ToolCallTracker",
    "classify",
    "classify_all",
    "apply_hard_clear",
    "should_hard_clear",
    "apply_progressive_fallback",
    "apply_truncation",
    "remove_middle",
    "extract_key_info",
    "aggressive_truncate",
    "apply_message_fallback",
    "check_and_compact",
    "ArchiveRecord",
    "BudgetLevel",
    "ClassifiedMessage",
    "ClearReason",
    "CompactionReport",
    "CompressionResult",
    "CompressionStrategy",
    "ContentType",
    "MessageFallbackResult",
    "MessageRole",
    "PrunableMessage",
    "ToolCallTimestamp",
]
