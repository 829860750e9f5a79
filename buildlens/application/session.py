"""One analysis session: options, graphs and the ingestor feeding them."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import FilteringBoundLogger

from buildlens.application.ingest import GraphIngestor, IngestionSummary
from buildlens.core import config
from buildlens.core.conditions import (
    make_condition_serializable,
    make_rules_serializable,
    project_condition,
)
from buildlens.core.defaults import DEFAULTS_VERSION
from buildlens.core.options import normalize_user_config
from buildlens.domain.graph import ChunkGraph
from buildlens.domain.models import NormalizedConfig


@dataclass(frozen=True)
class SessionReport:
    """Payload handed to the report generator when a session ends."""

    options: dict[str, Any]
    fidelity: str
    module_graph: dict[str, Any]
    chunk_graph: dict[str, Any]
    malformed_records: int
    defaults_version: str = DEFAULTS_VERSION

    def as_dict(self) -> dict[str, Any]:
        return {
            "options": self.options,
            "fidelity": self.fidelity,
            "moduleGraph": self.module_graph,
            "chunkGraph": self.chunk_graph,
            "malformedRecords": self.malformed_records,
            "defaultsVersion": self.defaults_version,
        }


@dataclass(slots=True)
class AnalysisSession:
    options: NormalizedConfig
    chunk_graph: ChunkGraph = field(default_factory=ChunkGraph)
    ingestor: GraphIngestor = field(init=False)
    logger: FilteringBoundLogger = field(
        default_factory=lambda: structlog.get_logger(__name__)
    )

    def __post_init__(self) -> None:
        self.ingestor = GraphIngestor.from_config(self.options)

    @classmethod
    def from_user_config(
        cls, raw: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> "AnalysisSession":
        return cls(options=normalize_user_config(raw), **kwargs)

    @classmethod
    def from_file(
        cls, path: Path | None = None, *, root: Path | None = None, **kwargs: Any
    ) -> "AnalysisSession":
        """Build a session from an option file, or defaults when none is found."""

        resolved = path or config.discover_user_config(root)
        raw = config.load_user_config(resolved) if resolved is not None else {}
        return cls.from_user_config(raw, **kwargs)

    def prepare_module_rules(self, rules: Any) -> bool:
        """Make the host's module rules serializable when loaders are analysed."""

        if not self.options.features.loader:
            return False
        make_rules_serializable(rules)
        self.logger.debug("session.rules_prepared", source="module_rules")
        return True

    def prepare_linter_rules(self) -> int:
        """Add projections to patterns held by configured linter rules."""

        prepared = 0
        for rule_id, rule_config in self.options.linter.rules.items():
            if rule_config is None:
                continue
            make_rules_serializable(rule_config)
            make_condition_serializable(rule_config)
            prepared += 1
            self.logger.debug(
                "session.rules_prepared", source="linter", rule=rule_id
            )
        return prepared

    def ingest(self, snapshot: Mapping[str, Any]) -> IngestionSummary:
        return self.ingestor.ingest(
            snapshot,
            self.chunk_graph,
            self.options.features,
            self.options.fidelity,
        )

    def finalize(self) -> SessionReport:
        module_graph = self.ingestor.finalize()
        report = SessionReport(
            options=project_condition(self.options.to_dict()),
            fidelity=self.options.fidelity.name,
            module_graph=module_graph.to_dict(),
            chunk_graph=self.chunk_graph.to_dict(),
            malformed_records=self.ingestor.malformed_count,
        )
        self.logger.info(
            "session.finalized",
            modules=len(module_graph),
            chunks=len(self.chunk_graph),
            fidelity=report.fidelity,
        )
        return report


__all__ = ["AnalysisSession", "SessionReport"]
