"""Configuration loader for termctx."""

import json
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, List

import yaml


@dataclass
class AutoRoutingConfig:
    """Per-tier models and budgets for automatic query routing."""
    enabled: bool = True
    simple_model: Optional[str] = None
    moderate_model: Optional[str] = None
    complex_model: Optional[str] = None
    simple_budget: Optional[int] = None
    moderate_budget: Optional[int] = None
    complex_budget: Optional[int] = None
    enable_prompt_enhancement: bool = True
    show_routing_info: bool = True

    def model_for(self, tier: str) -> Optional[str]:
        model = getattr(self, f"{tier}_model", None)
        if isinstance(model, str) and model.strip():
            return model
        return None

    def budget_for(self, tier: str) -> Optional[int]:
        budget = getattr(self, f"{tier}_budget", None)
        if isinstance(budget, int) and not isinstance(budget, bool) and budget > 0:
            return budget
        return None


@dataclass
class AiSettings:
    """Provider, model and mode settings consumed on every request."""
    provider: str = ""
    model: str = ""
    api_key: str = ""
    url: Optional[str] = None
    embedding_model: Optional[str] = None
    mode: str = "agent"  # chat or agent
    context_token_budget_chat: int = 12000
    context_token_budget_agent: int = 6000
    max_output_tokens: int = 2000
    auto_routing: Optional[AutoRoutingConfig] = None

    def __post_init__(self):
        if isinstance(self.auto_routing, dict):
            known = AutoRoutingConfig.__dataclass_fields__
            self.auto_routing = AutoRoutingConfig(
                **{k: v for k, v in self.auto_routing.items() if k in known}
            )

    def missing_fields(self) -> List[str]:
        """Return the names of required fields that are empty."""
        return [
            name for name in ("provider", "model", "api_key")
            if not (getattr(self, name) or "").strip()
        ]

    def is_complete(self) -> bool:
        return not self.missing_fields()

    @property
    def routing_enabled(self) -> bool:
        return self.auto_routing is not None and self.auto_routing.enabled is not False

    @property
    def prompt_enhancement_enabled(self) -> bool:
        if self.auto_routing is None:
            return True
        return self.auto_routing.enable_prompt_enhancement is not False

    def mode_budget(self, mode: Optional[str] = None) -> int:
        mode = mode or self.mode
        if mode == "chat":
            return self.context_token_budget_chat or 12000
        return self.context_token_budget_agent or 6000


@dataclass
class RankerConfig:
    """Tunable constants for context relevance ranking."""
    default_token_budget: int = 8000
    max_query_terms: int = 10
    # Memory penalty is scaled by this factor when the query match exceeds the threshold
    memory_override_threshold: int = 30
    memory_override_factor: float = 0.5
    chat_memory_factor: float = 0.8


@dataclass
class CacheConfig:
    """Context formatting cache bounds."""
    max_size: int = 10
    max_age_seconds: float = 30.0


@dataclass
class HistoryConfig:
    """Sliding window and summarization settings."""
    window_size: int = 8
    min_messages_for_summary: int = 12
    summary_cache_ttl: float = 300.0
    summary_max_tokens: int = 300
    summary_temperature: float = 0.3
    summary_timeout: float = 20.0


@dataclass
class StreamingConfig:
    """Streaming buffer flush policy."""
    flush_interval_ms: int = 50
    max_buffer_size: int = 500
    idle_flush_ms: int = 150


@dataclass
class SmartContextConfig:
    """Semantic index retrieval settings."""
    min_items: int = 10
    top_k: int = 8
    global_smart_mode: bool = True


@dataclass
class TelemetryConfig:
    """Where request telemetry and event logs are written (None disables)."""
    log_path: Optional[str] = None
    telemetry_path: Optional[str] = None
    max_history: int = 50


@dataclass
class Config:
    """Main configuration for termctx."""
    ai: AiSettings = field(default_factory=AiSettings)
    ranker: RankerConfig = field(default_factory=RankerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    smart_context: SmartContextConfig = field(default_factory=SmartContextConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)

    def __post_init__(self):
        """Convert dicts to proper config objects."""
        sections = {
            "ai": AiSettings,
            "ranker": RankerConfig,
            "cache": CacheConfig,
            "history": HistoryConfig,
            "streaming": StreamingConfig,
            "smart_context": SmartContextConfig,
            "telemetry": TelemetryConfig,
        }
        for name, cls in sections.items():
            value = getattr(self, name)
            if isinstance(value, dict):
                setattr(self, name, cls(**value))

    @classmethod
    def load(cls, path: str) -> "Config":
        """Load configuration from YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        else:
            data = json.loads(content)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create config from dictionary, ignoring unknown keys."""
        def pick(section_cls, section_data):
            if not isinstance(section_data, dict):
                return section_cls()
            known = section_cls.__dataclass_fields__
            return section_cls(**{k: v for k, v in section_data.items() if k in known})

        return cls(
            ai=pick(AiSettings, data.get("ai", {})),
            ranker=pick(RankerConfig, data.get("ranker", {})),
            cache=pick(CacheConfig, data.get("cache", {})),
            history=pick(HistoryConfig, data.get("history", {})),
            streaming=pick(StreamingConfig, data.get("streaming", {})),
            smart_context=pick(SmartContextConfig, data.get("smart_context", {})),
            telemetry=pick(TelemetryConfig, data.get("telemetry", {})),
        )

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return asdict(self)

    def save(self, path: str):
        """Save configuration to file."""
        path = Path(path)
        data = self.to_dict()

        if path.suffix in (".yaml", ".yml"):
            content = yaml.dump(data, default_flow_style=False, sort_keys=False)
        else:
            content = json.dumps(data, indent=2)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
