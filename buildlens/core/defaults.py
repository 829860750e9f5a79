"""Default values for every optional plugin option.

This table is the single place defaults are declared; only the option
normaliser reads it. Bump ``DEFAULTS_VERSION`` whenever a default changes so
reports can record which table produced them.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

DEFAULTS_VERSION = "1"

KNOWN_FEATURES: tuple[str, ...] = (
    "loader",
    "plugins",
    "resolver",
    "bundle",
    "treeShaking",
    "lite",
)

# Defaults applied when ``features`` is given as a mapping.
FEATURE_DEFAULTS: Mapping[str, bool] = {
    "loader": True,
    "plugins": True,
    "resolver": False,
    "bundle": True,
    "treeShaking": False,
    "lite": False,
}

OPTION_DEFAULTS: Mapping[str, Any] = {
    "linter": {"rules": {}, "extends": [], "level": "Error"},
    "features": {},
    "loaderInterceptorOptions": {"skipLoaders": []},
    "reportCodeType": {
        "noModuleSource": False,
        "noAssetsAndModuleSource": False,
        "noCode": False,
        "sourceCode": True,
        "assetsCode": True,
    },
    "disableClientServer": False,
    "disableTOSUpload": False,
    "innerClientPath": "",
    "supports": {"parseBundle": True, "banner": False, "generateTileGraph": True},
    "port": None,
    "printLog": {"serverUrls": True},
    "mode": "normal",
}


def option_default(name: str) -> Any:
    """Return a private copy of the default for ``name``."""

    return copy.deepcopy(OPTION_DEFAULTS[name])


__all__ = [
    "DEFAULTS_VERSION",
    "FEATURE_DEFAULTS",
    "KNOWN_FEATURES",
    "OPTION_DEFAULTS",
    "option_default",
]
