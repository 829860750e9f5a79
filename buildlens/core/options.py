"""Normalise raw plugin options into an immutable ``NormalizedConfig``."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from buildlens.core.defaults import (
    FEATURE_DEFAULTS,
    KNOWN_FEATURES,
    option_default,
)
from buildlens.core.fidelity import resolve_fidelity
from buildlens.domain.contracts import RawUserConfigContract
from buildlens.domain.models import (
    FeatureSet,
    LinterOptions,
    LoaderInterceptorOptions,
    Mode,
    NormalizedConfig,
    ReportCodeType,
    Severity,
    SupportOptions,
)

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when a plugin option has the wrong shape."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"Invalid plugin option '{field}': {message}")
        self.field = field


def _default_boolean(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _overlay(name: str, provided: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = option_default(name)
    if provided:
        merged.update(provided)
    return merged


def _validate_shape(raw: Mapping[str, Any]) -> RawUserConfigContract:
    try:
        return RawUserConfigContract.model_validate(dict(raw))
    except ValidationError as exc:
        first = exc.errors()[0]
        location = first.get("loc") or ("options",)
        raise ConfigurationError(str(location[0]), first.get("msg", "invalid")) from exc


def _resolve_features(
    features: Sequence[Any] | Mapping[str, Any], mode: Mode
) -> FeatureSet:
    if isinstance(features, Mapping):
        flags = {
            name: _default_boolean(features.get(name), FEATURE_DEFAULTS[name])
            for name in KNOWN_FEATURES
        }
        coerced = sorted(
            name
            for name in KNOWN_FEATURES
            if features.get(name) is not None
            and not isinstance(features.get(name), bool)
        )
        if coerced:
            logger.debug(
                "Non-boolean feature flags fall back to defaults: %s",
                ", ".join(coerced),
            )
    else:
        tags = {tag for tag in features if isinstance(tag, str)}
        unknown = sorted(tags.difference(KNOWN_FEATURES))
        if unknown:
            logger.debug("Ignoring unknown feature tags: %s", ", ".join(unknown))
        flags = {name: name in tags for name in KNOWN_FEATURES}

    return FeatureSet(
        loader=flags["loader"],
        plugins=flags["plugins"],
        resolver=flags["resolver"],
        bundle=flags["bundle"],
        tree_shaking=flags["treeShaking"],
        lite=flags["lite"] or mode is Mode.LITE,
    )


def _resolve_linter(linter: Mapping[str, Any] | None) -> LinterOptions:
    merged = _overlay("linter", linter)

    rules = merged.get("rules") or {}
    if not isinstance(rules, Mapping):
        raise ConfigurationError("linter", "'rules' must be a mapping of rule ids")

    extends = merged.get("extends") or ()
    if isinstance(extends, str):
        extends = (extends,)
    elif not isinstance(extends, (list, tuple)):
        raise ConfigurationError("linter", "'extends' must be a list")

    try:
        level = Severity(merged.get("level") or Severity.ERROR.value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in Severity)
        raise ConfigurationError(
            "linter", f"'level' must be one of {allowed}"
        ) from exc

    return LinterOptions(
        rules=MappingProxyType(dict(rules)),
        extends=tuple(extends),
        level=level,
    )


def _resolve_skip_loaders(
    options: Mapping[str, Any] | None,
) -> LoaderInterceptorOptions:
    merged = _overlay("loaderInterceptorOptions", options)
    skip = merged.get("skipLoaders")
    if not isinstance(skip, (list, tuple)):
        return LoaderInterceptorOptions()
    return LoaderInterceptorOptions(
        skip_loaders=tuple(str(loader) for loader in skip if loader)
    )


def _resolve_supports(supports: Mapping[str, Any] | None) -> SupportOptions:
    defaults = option_default("supports")
    merged = _overlay("supports", supports)
    return SupportOptions(
        banner=_default_boolean(merged.get("banner"), defaults["banner"]),
        parse_bundle=_default_boolean(
            merged.get("parseBundle"), defaults["parseBundle"]
        ),
        generate_tile_graph=_default_boolean(
            merged.get("generateTileGraph"), defaults["generateTileGraph"]
        ),
    )


def _pick(value: Any, name: str) -> Any:
    return option_default(name) if value is None else value


def normalize_user_config(raw: Mapping[str, Any] | None = None) -> NormalizedConfig:
    """Return the fully populated option set for ``raw``.

    ``raw`` may use any legal shape: ``features`` as a list of tags or as a
    mapping of booleans, any subset of fields omitted. Fields with the wrong
    kind of value raise :class:`ConfigurationError` naming the field.
    """

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError("options", "plugin options must be a mapping")

    contract = _validate_shape(raw)
    mode = Mode(_pick(contract.mode, "mode"))
    report_code_type = ReportCodeType.from_mapping(
        _overlay("reportCodeType", contract.report_code_type)
    )

    return NormalizedConfig(
        features=_resolve_features(_pick(contract.features, "features"), mode),
        linter=_resolve_linter(contract.linter),
        loader_interceptor=_resolve_skip_loaders(contract.loader_interceptor_options),
        fidelity=resolve_fidelity(report_code_type, mode),
        supports=_resolve_supports(contract.supports),
        mode=mode,
        report_code_type=report_code_type,
        disable_client_server=_pick(
            contract.disable_client_server, "disableClientServer"
        ),
        disable_tos_upload=_pick(contract.disable_tos_upload, "disableTOSUpload"),
        inner_client_path=_pick(contract.inner_client_path, "innerClientPath"),
        port=contract.port,
        print_log=MappingProxyType(_overlay("printLog", contract.print_log)),
    )


__all__ = ["ConfigurationError", "normalize_user_config"]
