from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any


class Mode(str, Enum):
    """Analysis modes accepted by the plugin options."""

    NORMAL = "normal"
    BRIEF = "brief"
    LITE = "lite"


class Severity(str, Enum):
    IGNORE = "Ignore"
    WARN = "Warn"
    ERROR = "Error"


class FidelityLevel(IntEnum):
    """How much code payload a report keeps.

    Higher values drop more data, so ``NORMAL < NO_CODE < NO_SOURCE <
    NO_SOURCE_AND_ASSETS`` orders levels from richest to leanest.
    """

    NORMAL = 0
    NO_CODE = 1
    NO_SOURCE = 2
    NO_SOURCE_AND_ASSETS = 3

    @property
    def keeps_module_source(self) -> bool:
        return self is FidelityLevel.NORMAL

    @property
    def keeps_assets(self) -> bool:
        return self is not FidelityLevel.NO_SOURCE_AND_ASSETS


def _frozen_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True)
class FeatureSet:
    """Per-capability switches gating which telemetry is collected."""

    loader: bool = True
    plugins: bool = True
    resolver: bool = False
    bundle: bool = True
    tree_shaking: bool = False
    lite: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "loader": self.loader,
            "plugins": self.plugins,
            "resolver": self.resolver,
            "bundle": self.bundle,
            "treeShaking": self.tree_shaking,
            "lite": self.lite,
        }


@dataclass(frozen=True)
class LinterOptions:
    rules: Mapping[str, Any] = field(default_factory=lambda: _frozen_mapping(None))
    extends: tuple[Any, ...] = ()
    level: Severity = Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules": dict(self.rules),
            "extends": list(self.extends),
            "level": self.level.value,
        }


@dataclass(frozen=True)
class LoaderInterceptorOptions:
    skip_loaders: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReportCodeType:
    """Flags controlling which code payloads are recorded."""

    no_module_source: bool = False
    no_assets_and_module_source: bool = False
    no_code: bool = False
    source_code: bool = True
    assets_code: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ReportCodeType":
        if not data:
            return cls()
        return cls(
            no_module_source=bool(data.get("noModuleSource", False)),
            no_assets_and_module_source=bool(
                data.get("noAssetsAndModuleSource", False)
            ),
            no_code=bool(data.get("noCode", False)),
            source_code=bool(data.get("sourceCode", True)),
            assets_code=bool(data.get("assetsCode", True)),
        )

    def to_dict(self) -> dict[str, bool]:
        return {
            "noModuleSource": self.no_module_source,
            "noAssetsAndModuleSource": self.no_assets_and_module_source,
            "noCode": self.no_code,
            "sourceCode": self.source_code,
            "assetsCode": self.assets_code,
        }


@dataclass(frozen=True)
class SupportOptions:
    banner: bool = False
    parse_bundle: bool = True
    generate_tile_graph: bool = True

    def to_dict(self) -> dict[str, bool]:
        return {
            "banner": self.banner,
            "parseBundle": self.parse_bundle,
            "generateTileGraph": self.generate_tile_graph,
        }


@dataclass(frozen=True)
class NormalizedConfig:
    """Fully populated plugin options shared for the whole session."""

    features: FeatureSet
    linter: LinterOptions
    loader_interceptor: LoaderInterceptorOptions
    fidelity: FidelityLevel
    supports: SupportOptions
    mode: Mode
    report_code_type: ReportCodeType = field(default_factory=ReportCodeType)
    disable_client_server: bool = False
    disable_tos_upload: bool = False
    inner_client_path: str = ""
    port: int | None = None
    print_log: Mapping[str, Any] = field(
        default_factory=lambda: _frozen_mapping({"serverUrls": True})
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the key spelling used by the host plugin options."""

        return {
            "features": self.features.to_dict(),
            "linter": self.linter.to_dict(),
            "loaderInterceptorOptions": {
                "skipLoaders": list(self.loader_interceptor.skip_loaders)
            },
            "reportCodeType": self.fidelity.name,
            "supports": self.supports.to_dict(),
            "mode": self.mode.value,
            "disableClientServer": self.disable_client_server,
            "disableTOSUpload": self.disable_tos_upload,
            "innerClientPath": self.inner_client_path,
            "port": self.port,
            "printLog": dict(self.print_log),
        }


__all__ = [
    "FeatureSet",
    "FidelityLevel",
    "LinterOptions",
    "LoaderInterceptorOptions",
    "Mode",
    "NormalizedConfig",
    "ReportCodeType",
    "Severity",
    "SupportOptions",
]
