"""Build analysis option normalisation and telemetry ingestion."""

from buildlens.application.ingest import (
    GraphIngestor,
    IngestionBusyError,
    IngestionClosedError,
    IngestionState,
    IngestionSummary,
)
from buildlens.application.session import AnalysisSession, SessionReport
from buildlens.core.conditions import (
    make_condition_serializable,
    make_rules_serializable,
)
from buildlens.core.fidelity import resolve_fidelity
from buildlens.core.options import ConfigurationError, normalize_user_config
from buildlens.domain.graph import ChunkGraph, ModuleGraph
from buildlens.domain.models import FeatureSet, FidelityLevel, Mode, NormalizedConfig

__all__ = [
    "AnalysisSession",
    "ChunkGraph",
    "ConfigurationError",
    "FeatureSet",
    "FidelityLevel",
    "GraphIngestor",
    "IngestionBusyError",
    "IngestionClosedError",
    "IngestionState",
    "IngestionSummary",
    "Mode",
    "ModuleGraph",
    "NormalizedConfig",
    "SessionReport",
    "make_condition_serializable",
    "make_rules_serializable",
    "normalize_user_config",
    "resolve_fidelity",
]

__version__ = "0.3.0"
