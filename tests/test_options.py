from __future__ import annotations

import dataclasses

import pytest
from hypothesis import given
from hypothesis import strategies as st

from buildlens.core import options
from buildlens.core.defaults import KNOWN_FEATURES
from buildlens.domain.models import FidelityLevel, Mode, Severity


def test_empty_options_take_documented_defaults() -> None:
    normalized = options.normalize_user_config({})

    assert normalized.features.to_dict() == {
        "loader": True,
        "plugins": True,
        "resolver": False,
        "bundle": True,
        "treeShaking": False,
        "lite": False,
    }
    assert dict(normalized.linter.rules) == {}
    assert normalized.linter.extends == ()
    assert normalized.linter.level is Severity.ERROR
    assert normalized.loader_interceptor.skip_loaders == ()
    assert normalized.fidelity is FidelityLevel.NORMAL
    assert normalized.supports.to_dict() == {
        "banner": False,
        "parseBundle": True,
        "generateTileGraph": True,
    }
    assert normalized.mode is Mode.NORMAL
    assert normalized.disable_client_server is False
    assert normalized.disable_tos_upload is False
    assert normalized.inner_client_path == ""
    assert normalized.port is None
    assert dict(normalized.print_log) == {"serverUrls": True}


def test_none_is_treated_as_empty_options() -> None:
    assert options.normalize_user_config(None) == options.normalize_user_config({})


@given(
    st.lists(
        st.sampled_from(KNOWN_FEATURES + ("legacyStats", "unknown-tag")),
        max_size=12,
    )
)
def test_feature_tag_list_enables_exactly_the_listed_features(tags: list[str]) -> None:
    flags = options.normalize_user_config({"features": tags}).features.to_dict()

    for feature in KNOWN_FEATURES:
        assert flags[feature] == (feature in tags)


@given(
    st.one_of(
        st.lists(st.sampled_from(KNOWN_FEATURES), max_size=6),
        st.fixed_dictionaries(
            {},
            optional={
                "lite": st.booleans(),
                "loader": st.booleans(),
                "resolver": st.booleans(),
            },
        ),
    )
)
def test_lite_mode_always_forces_lite_feature(features: object) -> None:
    normalized = options.normalize_user_config({"mode": "lite", "features": features})

    assert normalized.features.lite is True


def test_feature_mapping_defaults_each_flag_independently() -> None:
    normalized = options.normalize_user_config(
        {"features": {"resolver": True, "loader": "yes", "plugins": False}}
    )

    assert normalized.features.resolver is True
    assert normalized.features.loader is True
    assert normalized.features.plugins is False
    assert normalized.features.bundle is True
    assert normalized.features.tree_shaking is False
    assert normalized.features.lite is False


@pytest.mark.parametrize(
    ("raw", "field"),
    [
        ({"features": 42}, "features"),
        ({"features": "loader"}, "features"),
        ({"linter": "strict"}, "linter"),
        ({"linter": {"level": "Fatal"}}, "linter"),
        ({"linter": {"rules": ["duplicate-package"]}}, "linter"),
        ({"loaderInterceptorOptions": ["babel-loader"]}, "loaderInterceptorOptions"),
        ({"disableClientServer": "no"}, "disableClientServer"),
        ({"mode": "turbo"}, "mode"),
        ({"port": "8080"}, "port"),
        ({"port": True}, "port"),
    ],
)
def test_wrong_shapes_raise_configuration_error_naming_field(
    raw: dict[str, object], field: str
) -> None:
    with pytest.raises(options.ConfigurationError) as excinfo:
        options.normalize_user_config(raw)

    assert excinfo.value.field == field
    assert field in str(excinfo.value)


def test_non_mapping_options_are_rejected() -> None:
    with pytest.raises(options.ConfigurationError) as excinfo:
        options.normalize_user_config(["loader"])  # type: ignore[arg-type]

    assert excinfo.value.field == "options"


def test_linter_options_overlay_defaults() -> None:
    normalized = options.normalize_user_config(
        {
            "linter": {
                "level": "Warn",
                "rules": {"duplicate-package": "off"},
                "extends": ["recommended"],
            }
        }
    )

    assert normalized.linter.level is Severity.WARN
    assert dict(normalized.linter.rules) == {"duplicate-package": "off"}
    assert normalized.linter.extends == ("recommended",)


def test_skip_loaders_are_kept_in_order_and_invalid_values_ignored() -> None:
    listed = options.normalize_user_config(
        {"loaderInterceptorOptions": {"skipLoaders": ["ts-loader", "babel-loader"]}}
    )
    scalar = options.normalize_user_config(
        {"loaderInterceptorOptions": {"skipLoaders": "babel-loader"}}
    )

    assert listed.loader_interceptor.skip_loaders == ("ts-loader", "babel-loader")
    assert scalar.loader_interceptor.skip_loaders == ()


def test_partial_supports_and_report_flags_overlay_defaults() -> None:
    normalized = options.normalize_user_config(
        {"supports": {"banner": True}, "reportCodeType": {"noCode": True}}
    )

    assert normalized.supports.banner is True
    assert normalized.supports.parse_bundle is True
    assert normalized.supports.generate_tile_graph is True
    assert normalized.report_code_type.no_code is True
    assert normalized.report_code_type.source_code is True
    assert normalized.fidelity is FidelityLevel.NO_CODE


def test_lite_mode_ignores_no_code_flag() -> None:
    normalized = options.normalize_user_config(
        {"mode": "lite", "reportCodeType": {"noCode": True}}
    )

    assert normalized.fidelity is FidelityLevel.NO_SOURCE


def test_pass_through_scalars_are_preserved() -> None:
    normalized = options.normalize_user_config(
        {
            "port": 9988,
            "disableClientServer": True,
            "disableTOSUpload": True,
            "innerClientPath": "@scope/client",
            "printLog": {"serverUrls": False},
        }
    )

    assert normalized.port == 9988
    assert normalized.disable_client_server is True
    assert normalized.disable_tos_upload is True
    assert normalized.inner_client_path == "@scope/client"
    assert dict(normalized.print_log) == {"serverUrls": False}


def test_normalized_config_is_immutable() -> None:
    normalized = options.normalize_user_config(
        {"linter": {"rules": {"duplicate-package": "Error"}}}
    )

    with pytest.raises(dataclasses.FrozenInstanceError):
        normalized.mode = Mode.BRIEF  # type: ignore[misc]
    with pytest.raises(dataclasses.FrozenInstanceError):
        normalized.features.loader = False  # type: ignore[misc]
    with pytest.raises(TypeError):
        normalized.linter.rules["ecma-version-check"] = "Warn"  # type: ignore[index]


def test_to_dict_uses_host_key_spelling() -> None:
    payload = options.normalize_user_config({"mode": "brief"}).to_dict()

    assert payload["mode"] == "brief"
    assert payload["reportCodeType"] == "NO_CODE"
    assert payload["loaderInterceptorOptions"] == {"skipLoaders": []}
    assert payload["features"]["treeShaking"] is False
