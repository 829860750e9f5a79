"""Merge per-build telemetry snapshots into the shared session graphs."""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError
from structlog.typing import FilteringBoundLogger

from buildlens.core import config
from buildlens.domain.contracts import (
    AssetRecordContract,
    ChunkRecordContract,
    LoaderTimingContract,
    ModuleRecordContract,
    ModuleRefContract,
    PluginTimingContract,
    ResolverRecordContract,
)
from buildlens.domain.graph import (
    AssetPayload,
    ChunkGraph,
    LoaderTiming,
    ModuleGraph,
    ModuleNode,
    PluginTiming,
    ResolverRecord,
    module_key,
)
from buildlens.domain.models import FeatureSet, FidelityLevel, NormalizedConfig


class IngestionClosedError(RuntimeError):
    """Raised when a snapshot arrives after the session was finalized."""


class IngestionBusyError(RuntimeError):
    """Raised when the graph lock cannot be acquired within the timeout."""


class IngestionState(str, Enum):
    EMPTY = "empty"
    POPULATING = "populating"
    FINALIZED = "finalized"


@dataclass(slots=True)
class IngestionSummary:
    """Counters describing what one ``ingest`` call did."""

    compiler: str | None = None
    modules_added: int = 0
    modules_merged: int = 0
    chunks: int = 0
    assets: int = 0
    loader_timings: int = 0
    plugin_timings: int = 0
    resolver_records: int = 0
    malformed: int = 0
    dropped: Counter[str] = field(default_factory=Counter)

    def as_dict(self) -> dict[str, Any]:
        return {
            "compiler": self.compiler,
            "modules_added": self.modules_added,
            "modules_merged": self.modules_merged,
            "chunks": self.chunks,
            "assets": self.assets,
            "loader_timings": self.loader_timings,
            "plugin_timings": self.plugin_timings,
            "resolver_records": self.resolver_records,
            "malformed": self.malformed,
            "dropped": dict(self.dropped),
        }


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "record"
    return f"{location}: {first.get('msg', 'invalid')}"


def _count(records: Any) -> int:
    return len(records) if isinstance(records, (list, tuple)) else 0


def _drop(summary: IngestionSummary, kind: str, count: int) -> None:
    if count:
        summary.dropped[kind] += count


def _matches_loader(loader: str, skip_loaders: Sequence[str]) -> bool:
    normalised = loader.replace("\\", "/")
    return any(
        loader == skip or f"/{skip}/" in normalised or normalised.endswith(f"/{skip}")
        for skip in skip_loaders
    )


class GraphIngestor:
    """Incrementally build the module graph of a build session.

    Several compilers may feed one ingestor concurrently; each ``ingest`` call
    holds the graph lock for the duration of its merge. Once ``finalize`` has
    run, the graphs are frozen and further snapshots are rejected.
    """

    def __init__(
        self,
        module_graph: ModuleGraph | None = None,
        *,
        skip_loaders: Sequence[str] = (),
        settings: config.IngestionSettings | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._module_graph = (
            module_graph if module_graph is not None else ModuleGraph()
        )
        self._skip_loaders = tuple(skip_loaders)
        self._settings = settings or config.INGESTION
        self._logger = logger or structlog.get_logger(__name__)
        self._lock = threading.RLock()
        self._state = IngestionState.EMPTY
        self._malformed = 0
        self._chunk_graphs: dict[int, ChunkGraph] = {}

    @classmethod
    def from_config(
        cls,
        options: NormalizedConfig,
        module_graph: ModuleGraph | None = None,
        **kwargs: Any,
    ) -> "GraphIngestor":
        return cls(
            module_graph,
            skip_loaders=options.loader_interceptor.skip_loaders,
            **kwargs,
        )

    @property
    def state(self) -> IngestionState:
        return self._state

    @property
    def module_graph(self) -> ModuleGraph:
        return self._module_graph

    @property
    def malformed_count(self) -> int:
        return self._malformed

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        timeout = self._settings.lock_timeout_seconds
        if not self._lock.acquire(timeout=timeout):
            raise IngestionBusyError(
                f"Module graph lock not acquired within {timeout:.1f}s"
            )
        try:
            yield
        finally:
            self._lock.release()

    def _ensure_open(self) -> None:
        if self._state is IngestionState.FINALIZED:
            raise IngestionClosedError("Build session already finalized")

    def ingest(
        self,
        snapshot: Mapping[str, Any],
        chunk_graph: ChunkGraph,
        features: FeatureSet,
        fidelity: FidelityLevel,
    ) -> IngestionSummary:
        """Merge one compilation snapshot into the shared graphs."""

        self._ensure_open()
        if not isinstance(snapshot, Mapping):
            raise TypeError("Compilation snapshots must be mappings")

        compiler = snapshot.get("compiler")
        summary = IngestionSummary(compiler=str(compiler) if compiler else None)

        with self._exclusive():
            self._ensure_open()
            self._state = IngestionState.POPULATING
            self._chunk_graphs.setdefault(id(chunk_graph), chunk_graph)

            for raw in self._records(snapshot, "modules", summary):
                self._ingest_module(raw, chunk_graph, features, fidelity, summary)
            for raw in self._records(snapshot, "chunks", summary):
                self._ingest_chunk(raw, chunk_graph, summary)
            for raw in self._records(snapshot, "assets", summary):
                self._ingest_asset(raw, chunk_graph, fidelity, summary)

            if features.plugins:
                for raw in self._records(snapshot, "plugins", summary):
                    self._ingest_plugin(raw, summary)
            else:
                _drop(summary, "plugins", _count(snapshot.get("plugins")))

            if features.resolver:
                for raw in self._records(snapshot, "resolver", summary):
                    self._ingest_resolution(raw, summary)
            else:
                _drop(summary, "resolver", _count(snapshot.get("resolver")))

            self._malformed += summary.malformed

        self._logger.debug("ingest.completed", **summary.as_dict())
        return summary

    def finalize(self) -> ModuleGraph:
        """Close the session and freeze the graphs. Safe to call twice."""

        with self._exclusive():
            if self._state is IngestionState.FINALIZED:
                return self._module_graph
            self._reconcile_memberships()
            self._module_graph.freeze()
            for chunk_graph in self._chunk_graphs.values():
                chunk_graph.freeze()
            self._state = IngestionState.FINALIZED

        self._logger.info(
            "ingest.finalized",
            modules=len(self._module_graph),
            edges=self._module_graph.edge_count,
            malformed=self._malformed,
        )
        return self._module_graph

    def _records(
        self, snapshot: Mapping[str, Any], name: str, summary: IngestionSummary
    ) -> Sequence[Any]:
        records = snapshot.get(name)
        if records is None:
            return ()
        if not isinstance(records, (list, tuple)):
            self._skip(name, records, "expected a list of records", summary)
            return ()
        return records

    def _validate(
        self,
        contract: type[BaseModel],
        kind: str,
        raw: Any,
        summary: IngestionSummary,
    ) -> Any:
        payload = dict(raw) if isinstance(raw, Mapping) else raw
        try:
            return contract.model_validate(payload)
        except ValidationError as exc:
            self._skip(kind, raw, _describe(exc), summary)
            return None

    def _skip(
        self, kind: str, raw: Any, reason: str, summary: IngestionSummary
    ) -> None:
        summary.malformed += 1
        seen = self._malformed + summary.malformed
        log = (
            self._logger.warning
            if seen <= self._settings.max_logged_malformed
            else self._logger.debug
        )
        log(
            "ingest.record_skipped",
            kind=kind,
            reason=reason,
            compiler=summary.compiler,
            record_type=type(raw).__name__,
        )

    def _ingest_module(
        self,
        raw: Any,
        chunk_graph: ChunkGraph,
        features: FeatureSet,
        fidelity: FidelityLevel,
        summary: IngestionSummary,
    ) -> None:
        record = self._validate(ModuleRecordContract, "module", raw, summary)
        if record is None:
            return

        graph = self._module_graph
        key = module_key(record.path, record.query, record.layer)
        module = graph.get(key)
        if module is None:
            module = graph.add_module(
                ModuleNode(
                    key=key,
                    path=record.path,
                    query=record.query,
                    layer=record.layer,
                    size=record.size,
                )
            )
            summary.modules_added += 1
        else:
            module.size = max(module.size, record.size)
            summary.modules_merged += 1

        if summary.compiler:
            module.compilers.add(summary.compiler)

        for raw_dependency in record.dependencies:
            target = self._dependency_key(raw_dependency, summary)
            if target is not None:
                graph.add_dependency(key, target)

        for chunk_id in record.chunks:
            module.chunks.add(chunk_id)
            chunk_graph.ensure_chunk(chunk_id).modules.add(key)

        if record.source is not None and fidelity.keeps_module_source:
            module.source = record.source

        if not features.loader:
            _drop(summary, "loader", len(record.loaders))
            return
        for raw_timing in record.loaders:
            timing = self._validate(LoaderTimingContract, "loader", raw_timing, summary)
            if timing is None:
                continue
            if _matches_loader(timing.loader, self._skip_loaders):
                summary.dropped["skipped_loader"] += 1
                continue
            module.record_loader(
                LoaderTiming(loader=timing.loader, duration=timing.elapsed)
            )
            summary.loader_timings += 1

    def _dependency_key(self, raw: Any, summary: IngestionSummary) -> str | None:
        if isinstance(raw, str) and raw:
            return raw
        ref = self._validate(ModuleRefContract, "dependency", raw, summary)
        if ref is None:
            return None
        return module_key(ref.path, ref.query, ref.layer)

    def _ingest_chunk(
        self, raw: Any, chunk_graph: ChunkGraph, summary: IngestionSummary
    ) -> None:
        record = self._validate(ChunkRecordContract, "chunk", raw, summary)
        if record is None:
            return

        chunk = chunk_graph.ensure_chunk(record.id)
        if record.name:
            chunk.name = record.name
        chunk.initial = chunk.initial or record.initial
        chunk.entry = chunk.entry or record.entry
        chunk.modules.update(record.modules)
        chunk.asset_names.update(record.assets)
        chunk.parents.update(record.parents)
        chunk.children.update(record.children)
        for parent in record.parents:
            chunk_graph.ensure_chunk(parent).children.add(chunk.key)
        for child in record.children:
            chunk_graph.ensure_chunk(child).parents.add(chunk.key)
        summary.chunks += 1

    def _ingest_asset(
        self,
        raw: Any,
        chunk_graph: ChunkGraph,
        fidelity: FidelityLevel,
        summary: IngestionSummary,
    ) -> None:
        record = self._validate(AssetRecordContract, "asset", raw, summary)
        if record is None:
            return

        for chunk_id in record.chunks:
            chunk = chunk_graph.ensure_chunk(chunk_id)
            chunk.asset_names.add(record.name)
            if not fidelity.keeps_assets:
                continue
            existing = chunk.assets.get(record.name)
            content = record.content
            size = record.size
            if existing is not None:
                size = max(size, existing.size)
                content = content if content is not None else existing.content
            chunk.assets[record.name] = AssetPayload(
                name=record.name, size=size, content=content
            )
        summary.assets += 1

    def _ingest_plugin(self, raw: Any, summary: IngestionSummary) -> None:
        record = self._validate(PluginTimingContract, "plugin", raw, summary)
        if record is None:
            return
        self._module_graph.record_plugin(
            PluginTiming(name=record.name, hook=record.hook, duration=record.elapsed)
        )
        summary.plugin_timings += 1

    def _ingest_resolution(self, raw: Any, summary: IngestionSummary) -> None:
        record = self._validate(ResolverRecordContract, "resolver", raw, summary)
        if record is None:
            return
        self._module_graph.record_resolution(
            ResolverRecord(
                request=record.request,
                issuer=record.issuer,
                result=record.result,
                duration=record.elapsed,
            )
        )
        summary.resolver_records += 1

    def _reconcile_memberships(self) -> None:
        # Chunks may list modules that were reported after the chunk itself.
        for chunk_graph in self._chunk_graphs.values():
            for chunk in chunk_graph:
                for key in chunk.modules:
                    module = self._module_graph.get(key)
                    if module is not None:
                        module.chunks.add(chunk.key)


__all__ = [
    "GraphIngestor",
    "IngestionBusyError",
    "IngestionClosedError",
    "IngestionState",
    "IngestionSummary",
]
