from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from buildlens.core.fidelity import resolve_fidelity
from buildlens.domain.models import FidelityLevel, Mode, ReportCodeType

_FLAG_MAPPINGS = st.fixed_dictionaries(
    {},
    optional={
        "noCode": st.booleans(),
        "noModuleSource": st.booleans(),
        "noAssetsAndModuleSource": st.booleans(),
    },
)


@pytest.mark.parametrize(
    ("flags", "mode", "expected"),
    [
        ({"noCode": True}, "brief", FidelityLevel.NO_CODE),
        ({"noAssetsAndModuleSource": True}, "lite", FidelityLevel.NO_SOURCE_AND_ASSETS),
        ({}, "lite", FidelityLevel.NO_SOURCE),
        ({"noCode": True}, "normal", FidelityLevel.NO_CODE),
        ({}, "normal", FidelityLevel.NORMAL),
    ],
)
def test_precedence_table(
    flags: dict[str, bool], mode: str, expected: FidelityLevel
) -> None:
    assert resolve_fidelity(flags, mode) is expected


@given(_FLAG_MAPPINGS)
def test_brief_mode_always_drops_code(flags: dict[str, bool]) -> None:
    assert resolve_fidelity(flags, Mode.BRIEF) is FidelityLevel.NO_CODE


@given(_FLAG_MAPPINGS)
def test_lite_mode_never_resolves_to_no_code(flags: dict[str, bool]) -> None:
    assert resolve_fidelity(flags, Mode.LITE) in {
        FidelityLevel.NO_SOURCE,
        FidelityLevel.NO_SOURCE_AND_ASSETS,
    }


def test_accepts_report_code_type_and_missing_flags() -> None:
    assert resolve_fidelity(ReportCodeType(no_code=True)) is FidelityLevel.NO_CODE
    assert resolve_fidelity(None, None) is FidelityLevel.NORMAL


def test_unknown_mode_takes_normal_branch() -> None:
    assert resolve_fidelity({"noCode": True}, "verbose") is FidelityLevel.NO_CODE
    assert resolve_fidelity({}, "verbose") is FidelityLevel.NORMAL


def test_levels_are_ordered_by_dropped_payload() -> None:
    assert (
        FidelityLevel.NORMAL
        < FidelityLevel.NO_CODE
        < FidelityLevel.NO_SOURCE
        < FidelityLevel.NO_SOURCE_AND_ASSETS
    )
    assert [level.keeps_module_source for level in FidelityLevel] == [
        True,
        False,
        False,
        False,
    ]
    assert [level.keeps_assets for level in FidelityLevel] == [True, True, True, False]
