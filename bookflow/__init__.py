"""
bookflow - control-plane gateway for book generation workflows

Drives a long-running book pipeline that runs inside a durable-execution
engine (validated update commands) and streams its progress to clients,
together with the deterministic pieces the pipeline relies on: provider
backoff, seeded themes and character image quality scoring.
"""

__version__ = "0.1.0"

# Data model and errors
from bookflow.model import (
    AlphaMetadata,
    Cancel,
    ChooseCharacter,
    CommandValidationError,
    GatewayError,
    Pause,
    QualityBreakdown,
    Resume,
    SelectCover,
    SetBookPrefs,
    SetCharacterSpec,
    StreamTerminalError,
    TERMINAL_STATUSES,
    ThemeDescriptor,
    UPDATE_KINDS,
    UpdateCommand,
    UpstreamError,
    WorkflowAlreadyStarted,
    WorkflowRef,
    WorkflowState,
    WorkflowStatus,
)

# Deterministic algorithms
from bookflow.backoff import RetryPolicy, compute_backoff_ms, compute_delay, retry
from bookflow.quality import score_breakdown, score_quality
from bookflow.theme import generate_theme, resolve_theme

# Gateway
from bookflow.config import GatewayConfig, load_bookflow_toml, load_config
from bookflow.dispatch import CommandDispatcher, parse_command
from bookflow.engine import EngineClient, TemporalEngineClient, WorkflowHandle
from bookflow.gateway import BookflowGateway, create_app
from bookflow.http_client import fetch_with_retry
from bookflow.metrics import GatewayMetrics
from bookflow.ratelimit import ProviderLimits, RateLimiter
from bookflow.stream import ProgressStream

__all__ = [
    "__version__",
    # Data model and errors
    "AlphaMetadata",
    "Cancel",
    "ChooseCharacter",
    "CommandValidationError",
    "GatewayError",
    "Pause",
    "QualityBreakdown",
    "Resume",
    "SelectCover",
    "SetBookPrefs",
    "SetCharacterSpec",
    "StreamTerminalError",
    "TERMINAL_STATUSES",
    "ThemeDescriptor",
    "UPDATE_KINDS",
    "UpdateCommand",
    "UpstreamError",
    "WorkflowAlreadyStarted",
    "WorkflowRef",
    "WorkflowState",
    "WorkflowStatus",
    # Deterministic algorithms
    "RetryPolicy",
    "compute_backoff_ms",
    "compute_delay",
    "retry",
    "score_breakdown",
    "score_quality",
    "generate_theme",
    "resolve_theme",
    # Gateway
    "GatewayConfig",
    "load_bookflow_toml",
    "load_config",
    "CommandDispatcher",
    "parse_command",
    "EngineClient",
    "TemporalEngineClient",
    "WorkflowHandle",
    "BookflowGateway",
    "create_app",
    "fetch_with_retry",
    "GatewayMetrics",
    "ProviderLimits",
    "RateLimiter",
    "ProgressStream",
]
