"""Module and chunk graph models shared across a build session."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import networkx as nx


class GraphFrozenError(RuntimeError):
    """Raised when a finalized graph is mutated."""


def _escape_key_part(value: str) -> str:
    return value.replace("%", "%25").replace("|", "%7C")


def module_key(path: str, query: str = "", layer: str | None = None) -> str:
    """Return the stable key of a module variant.

    The same file loaded with another resource query or in another build
    layer is a distinct module. ``|`` separates the layer, so ``%`` and ``|``
    inside the path or query are percent-encoded to keep keys unique.
    """

    key = _escape_key_part(path)
    if query:
        key += _escape_key_part(query if query.startswith("?") else f"?{query}")
    if layer:
        key = f"{key}|{layer}"
    return key


@dataclass(frozen=True)
class LoaderTiming:
    loader: str
    duration: float


@dataclass(frozen=True)
class PluginTiming:
    name: str
    hook: str
    duration: float


@dataclass(frozen=True)
class ResolverRecord:
    request: str
    issuer: str
    result: str | None
    duration: float


@dataclass(frozen=True)
class AssetPayload:
    name: str
    size: int
    content: str | None = None


def merge_duration(primary: float, incoming: float) -> float:
    """Repeated measurements of one unit keep the largest observation."""

    return max(primary, incoming)


@dataclass
class ModuleNode:
    key: str
    path: str
    query: str = ""
    layer: str | None = None
    size: int = 0
    loaders: dict[str, LoaderTiming] = field(default_factory=dict)
    chunks: set[str] = field(default_factory=set)
    source: str | None = None
    compilers: set[str] = field(default_factory=set)

    def record_loader(self, timing: LoaderTiming) -> None:
        existing = self.loaders.get(timing.loader)
        if existing is None:
            self.loaders[timing.loader] = timing
            return
        self.loaders[timing.loader] = LoaderTiming(
            loader=timing.loader,
            duration=merge_duration(existing.duration, timing.duration),
        )

    def to_dict(self, dependencies: set[str] | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "key": self.key,
            "path": self.path,
            "query": self.query,
            "layer": self.layer,
            "size": self.size,
            "chunks": sorted(self.chunks),
            "dependencies": sorted(dependencies or ()),
            "loaders": [
                {"loader": timing.loader, "duration": timing.duration}
                for timing in sorted(self.loaders.values(), key=lambda t: t.loader)
            ],
            "compilers": sorted(self.compilers),
        }
        if self.source is not None:
            payload["source"] = self.source
        return payload


@dataclass
class ChunkNode:
    key: str
    name: str | None = None
    modules: set[str] = field(default_factory=set)
    parents: set[str] = field(default_factory=set)
    children: set[str] = field(default_factory=set)
    asset_names: set[str] = field(default_factory=set)
    assets: dict[str, AssetPayload] = field(default_factory=dict)
    initial: bool = False
    entry: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "modules": sorted(self.modules),
            "parents": sorted(self.parents),
            "children": sorted(self.children),
            "initial": self.initial,
            "entry": self.entry,
            "assets": sorted(self.asset_names),
            "assetPayloads": [
                {"name": asset.name, "size": asset.size, "content": asset.content}
                for asset in sorted(self.assets.values(), key=lambda a: a.name)
            ],
        }


class _FreezableGraph:
    def __init__(self) -> None:
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise GraphFrozenError(f"{type(self).__name__} is finalized")


class ChunkGraph(_FreezableGraph):
    """Chunks of one build session, keyed by chunk id."""

    def __init__(self) -> None:
        super().__init__()
        self._chunks: dict[str, ChunkNode] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._chunks

    def __len__(self) -> int:
        return len(self._chunks)

    def __iter__(self) -> Iterator[ChunkNode]:
        return iter(list(self._chunks.values()))

    def get(self, key: str) -> ChunkNode | None:
        return self._chunks.get(key)

    def add_chunk(self, chunk: ChunkNode) -> ChunkNode:
        self._ensure_mutable()
        self._chunks[chunk.key] = chunk
        return chunk

    def ensure_chunk(self, key: str) -> ChunkNode:
        chunk = self._chunks.get(key)
        if chunk is None:
            chunk = self.add_chunk(ChunkNode(key=key))
        return chunk

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunks": [self._chunks[key].to_dict() for key in sorted(self._chunks)]
        }


class ModuleGraph(_FreezableGraph):
    """Modules of one build session plus their dependency edges.

    Edges are kept in a ``networkx.DiGraph`` so repeated edges collapse and
    reverse lookups (dependents) stay cheap. Targets may reference modules
    that have not been reported yet.
    """

    def __init__(self) -> None:
        super().__init__()
        self._modules: dict[str, ModuleNode] = {}
        self._edges = nx.DiGraph()
        self.plugin_timings: dict[tuple[str, str], PluginTiming] = {}
        self.resolver_records: dict[tuple[str, str], ResolverRecord] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._modules

    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self) -> Iterator[ModuleNode]:
        return iter(list(self._modules.values()))

    def get(self, key: str) -> ModuleNode | None:
        return self._modules.get(key)

    def add_module(self, module: ModuleNode) -> ModuleNode:
        self._ensure_mutable()
        self._modules[module.key] = module
        self._edges.add_node(module.key)
        return module

    def add_dependency(self, source: str, target: str) -> None:
        self._ensure_mutable()
        self._edges.add_edge(source, target)

    def dependencies(self, key: str) -> set[str]:
        if key not in self._edges:
            return set()
        return set(self._edges.successors(key))

    def dependents(self, key: str) -> set[str]:
        if key not in self._edges:
            return set()
        return set(self._edges.predecessors(key))

    @property
    def edge_count(self) -> int:
        return self._edges.number_of_edges()

    def record_plugin(self, timing: PluginTiming) -> None:
        self._ensure_mutable()
        slot = (timing.name, timing.hook)
        existing = self.plugin_timings.get(slot)
        if existing is not None:
            timing = PluginTiming(
                name=timing.name,
                hook=timing.hook,
                duration=merge_duration(existing.duration, timing.duration),
            )
        self.plugin_timings[slot] = timing

    def record_resolution(self, record: ResolverRecord) -> None:
        self._ensure_mutable()
        slot = (record.issuer, record.request)
        existing = self.resolver_records.get(slot)
        if existing is not None:
            record = ResolverRecord(
                request=record.request,
                issuer=record.issuer,
                result=record.result or existing.result,
                duration=merge_duration(existing.duration, record.duration),
            )
        self.resolver_records[slot] = record

    def to_networkx(self) -> nx.DiGraph:
        """Return a copy of the dependency graph with module attributes."""

        graph = self._edges.copy()
        for key, module in self._modules.items():
            graph.nodes[key].update(size=module.size, path=module.path)
        return graph

    def to_dict(self) -> dict[str, Any]:
        return {
            "modules": [
                self._modules[key].to_dict(self.dependencies(key))
                for key in sorted(self._modules)
            ],
            "plugins": [
                {"name": timing.name, "hook": timing.hook, "duration": timing.duration}
                for _, timing in sorted(self.plugin_timings.items())
            ],
            "resolver": [
                {
                    "request": record.request,
                    "issuer": record.issuer,
                    "result": record.result,
                    "duration": record.duration,
                }
                for _, record in sorted(self.resolver_records.items())
            ],
        }


__all__ = [
    "AssetPayload",
    "ChunkGraph",
    "ChunkNode",
    "GraphFrozenError",
    "LoaderTiming",
    "ModuleGraph",
    "ModuleNode",
    "PluginTiming",
    "ResolverRecord",
    "merge_duration",
    "module_key",
]
