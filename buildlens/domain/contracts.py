"""Pydantic contracts for the shapes accepted at the buildlens boundary.

Two families live here:
- ``RawUserConfigContract`` checks that user supplied plugin options have the
  expected *kind* of value for each top-level field (mapping, list, bool...).
- Telemetry record contracts validate individual records from a host
  compilation snapshot. A record failing validation is skipped by the
  ingestor rather than aborting the snapshot.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    StrictBool,
    StrictInt,
    field_validator,
    model_validator,
)

CONTRACT_VERSION = "1.0.0"


def _identifier_list(value: Any) -> Any:
    """Accept numeric chunk/module ids from hosts that emit them as ints."""

    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [
            str(item) if isinstance(item, (int, float)) and not isinstance(item, bool)
            else item
            for item in value
        ]
    return value


class RawUserConfigContract(BaseModel):
    """Shape check for raw plugin options; values are normalised elsewhere."""

    linter: dict[str, Any] | None = None
    features: list[Any] | dict[str, Any] | None = None
    mode: Literal["normal", "brief", "lite"] | None = None
    loader_interceptor_options: dict[str, Any] | None = Field(
        None, alias="loaderInterceptorOptions"
    )
    disable_client_server: StrictBool | None = Field(
        None, alias="disableClientServer"
    )
    report_code_type: dict[str, Any] | None = Field(None, alias="reportCodeType")
    supports: dict[str, Any] | None = None
    disable_tos_upload: StrictBool | None = Field(None, alias="disableTOSUpload")
    inner_client_path: str | None = Field(None, alias="innerClientPath")
    port: StrictInt | None = None
    print_log: dict[str, Any] | None = Field(None, alias="printLog")

    model_config = {
        "extra": "allow",
        "populate_by_name": True,
        "json_schema_extra": {"version": CONTRACT_VERSION},
    }


class TimedRecordContract(BaseModel):
    """Base for records carrying either a duration or a start/end pair (ms)."""

    duration: float | None = Field(None, ge=0)
    start: float | None = None
    end: float | None = None

    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def _derive_duration(self) -> "TimedRecordContract":
        if self.duration is None and self.start is not None and self.end is not None:
            if self.end < self.start:
                raise ValueError("end must not precede start")
            self.duration = self.end - self.start
        return self

    @property
    def elapsed(self) -> float:
        return self.duration or 0.0


class LoaderTimingContract(TimedRecordContract):
    loader: str = Field(..., min_length=1, description="Loader identifier")


class PluginTimingContract(TimedRecordContract):
    name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("name", "plugin"),
        description="Plugin name",
    )
    hook: str = Field(default="", description="Hook the plugin tapped")


class ResolverRecordContract(TimedRecordContract):
    request: str = Field(..., min_length=1, description="Raw request string")
    issuer: str = Field(default="", description="Module issuing the request")
    result: str | None = Field(None, description="Resolved path, if any")


class ModuleRefContract(BaseModel):
    path: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("path", "identifier")
    )
    query: str = ""
    layer: str | None = None

    model_config = {"extra": "ignore"}

    @field_validator("query", mode="before")
    @classmethod
    def _none_query(cls, value: Any) -> Any:
        return "" if value is None else value


class ModuleRecordContract(BaseModel):
    """A module as reported by one compilation pass.

    ``loaders`` and ``dependencies`` are left unvalidated here so one bad
    entry drops only itself. Loader records are only inspected when the
    loader feature is enabled.
    """

    path: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("path", "identifier"),
        description="Resolved module path",
    )
    query: str = Field(default="", description="Resource query discriminator")
    layer: str | None = Field(None, description="Build layer discriminator")
    size: int = Field(default=0, ge=0, description="Module size in bytes")
    dependencies: list[Any] = Field(default_factory=list)
    loaders: list[Any] = Field(default_factory=list)
    chunks: list[str] = Field(default_factory=list)
    source: str | None = None

    model_config = {"extra": "ignore"}

    @field_validator("query", mode="before")
    @classmethod
    def _none_query(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("chunks", mode="before")
    @classmethod
    def _chunk_ids(cls, value: Any) -> Any:
        return _identifier_list(value)


class ChunkRecordContract(BaseModel):
    id: str = Field(..., min_length=1, description="Stable chunk identifier")
    name: str | None = None
    modules: list[str] = Field(default_factory=list)
    parents: list[str] = Field(default_factory=list)
    children: list[str] = Field(default_factory=list)
    assets: list[str] = Field(default_factory=list)
    initial: bool = False
    entry: bool = False

    model_config = {"extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _numeric_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("modules", "parents", "children", "assets", mode="before")
    @classmethod
    def _id_lists(cls, value: Any) -> Any:
        return _identifier_list(value)


class AssetRecordContract(BaseModel):
    name: str = Field(..., min_length=1, description="Emitted file name")
    size: int = Field(default=0, ge=0)
    content: str | None = None
    chunks: list[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @field_validator("chunks", mode="before")
    @classmethod
    def _chunk_ids(cls, value: Any) -> Any:
        return _identifier_list(value)


__all__ = [
    "AssetRecordContract",
    "ChunkRecordContract",
    "CONTRACT_VERSION",
    "LoaderTimingContract",
    "ModuleRecordContract",
    "ModuleRefContract",
    "PluginTimingContract",
    "RawUserConfigContract",
    "ResolverRecordContract",
    "TimedRecordContract",
]
