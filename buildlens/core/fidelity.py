"""Derive the report fidelity level from mode and report code flags."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from buildlens.domain.models import FidelityLevel, Mode, ReportCodeType


def _coerce_mode(mode: Mode | str | None) -> Mode:
    if isinstance(mode, Mode):
        return mode
    if mode is None:
        return Mode.NORMAL
    try:
        return Mode(str(mode))
    except ValueError:
        # Unknown modes fall through to the normal branch.
        return Mode.NORMAL


def resolve_fidelity(
    report_code_type: ReportCodeType | Mapping[str, Any] | None,
    mode: Mode | str | None = Mode.NORMAL,
) -> FidelityLevel:
    """Pick the fidelity level.

    The mode selects a branch first; report code flags only refine the result
    inside that branch. ``mode="lite"`` with ``noCode=True`` therefore still
    yields ``NO_SOURCE``.
    """

    flags = (
        report_code_type
        if isinstance(report_code_type, ReportCodeType)
        else ReportCodeType.from_mapping(report_code_type)
    )
    resolved_mode = _coerce_mode(mode)

    if resolved_mode is Mode.BRIEF:
        return FidelityLevel.NO_CODE
    if resolved_mode is Mode.LITE:
        if flags.no_assets_and_module_source:
            return FidelityLevel.NO_SOURCE_AND_ASSETS
        return FidelityLevel.NO_SOURCE
    if flags.no_code:
        return FidelityLevel.NO_CODE
    return FidelityLevel.NORMAL


__all__ = ["resolve_fidelity"]
