"""Engine configuration dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta


@dataclass
class PruningConfig:
    """Retention policy for the hard-clear controller.

    ``max_message_age <= 0`` disables age-based clearing.
    """

    keep_system_messages: bool = True
    keep_user_messages: bool = True
    keep_last_n_assistant: int = 3
    max_message_age: timedelta = field(default_factory=lambda: timedelta(minutes=30))

    @property
    def age_clearing_enabled(self) -> bool:
        return self.max_message_age > timedelta(0)


@dataclass
class ClassifierConfig:
    """Weights for importance scoring. The four weights should sum to about 1."""

    recency_weight: float = 0.3
    role_weight: float = 0.3
    content_weight: float = 0.3
    marker_bonus: float = 0.05
    marker_cap: float = 0.1
    recency_half_life: timedelta = field(default_factory=lambda: timedelta(minutes=30))
    length_penalty_threshold: int = 5000
    length_penalty: float = 0.1


@dataclass
class CompressionConfig:
    """Per-message progressive fallback settings."""

    max_message_tokens: int = 1000
    safety_margin: float = 1.1

    def __post_init__(self) -> None:
        if self.safety_margin < 1.0:
            raise ValueError(f"safety_margin must be >= 1.0, got {self.safety_margin}")


@dataclass
class BudgetConfig:
    """Context budget and the warning/critical ratios applied to it."""

    context_tokens: int = 100_000
    warning_ratio: float = 0.7
    critical_ratio: float = 0.85

    def __post_init__(self) -> None:
        for name in ("warning_ratio", "critical_ratio"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ValueError(f"{name} must be in (0, 1], got {value}")
        if self.warning_ratio > self.critical_ratio:
            raise ValueError(
                f"warning_ratio {self.warning_ratio} exceeds critical_ratio {self.critical_ratio}"
            )


@dataclass
class ToolTrackerConfig:
    """Default lifetime of tool-call results."""

    default_ttl: timedelta = field(default_factory=lambda: timedelta(minutes=10))


@dataclass
class EngineConfig:
    """Top-level compaction engine configuration."""

    pruning: PruningConfig = field(default_factory=PruningConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    tools: ToolTrackerConfig = field(default_factory=ToolTrackerConfig)
    max_archive_records: int = 1000

    @classmethod
    def from_dict(cls, data: dict) -> EngineConfig:
        """Build from a config dict, filling defaults for missing keys."""
        pr = data.get("pruning", {})
        cl = data.get("classifier", {})
        co = data.get("compression", {})
        bu = data.get("budget", {})
        tt = data.get("tools", {})
        return cls(
            pruning=PruningConfig(
                keep_system_messages=pr.get("keep_system_messages", True),
                keep_user_messages=pr.get("keep_user_messages", True),
                keep_last_n_assistant=pr.get("keep_last_n_assistant", 3),
                max_message_age=timedelta(seconds=pr.get("max_message_age_seconds", 1800)),
            ),
            classifier=ClassifierConfig(
                recency_weight=cl.get("recency_weight", 0.3),
                role_weight=cl.get("role_weight", 0.3),
                content_weight=cl.get("content_weight", 0.3),
                marker_bonus=cl.get("marker_bonus", 0.05),
                marker_cap=cl.get("marker_cap", 0.1),
                recency_half_life=timedelta(seconds=cl.get("recency_half_life_seconds", 1800)),
                length_penalty_threshold=cl.get("length_penalty_threshold", 5000),
                length_penalty=cl.get("length_penalty", 0.1),
            ),
            compression=CompressionConfig(
                max_message_tokens=co.get("max_message_tokens", 1000),
                safety_margin=co.get("safety_margin", 1.1),
            ),
            budget=BudgetConfig(
                context_tokens=bu.get("context_tokens", 100_000),
                warning_ratio=bu.get("warning_ratio", 0.7),
                critical_ratio=bu.get("critical_ratio", 0.85),
            ),
            tools=ToolTrackerConfig(
                default_ttl=timedelta(seconds=tt.get("default_ttl_seconds", 600)),
            ),
            max_archive_records=data.get("max_archive_records", 1000),
        )
