#
# Copyright 2024 xadbuild Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

"""
Build configuration for xadbuild.

The configuration is assembled once at startup from, in increasing order of
precedence: built-in defaults, XADBUILD.toml in the project directory,
environment variables and command line flags. The result is a frozen
BuildConfig that is passed explicitly to every build step.
"""

import os
import re
import sys
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from xadbuild.utils.errors import ConfigError

PROJECT_NAME = "XADMaster"
UDT_NAME = "UniversalDetector"
CONFIG_FILE_NAME = "XADBUILD.toml"

VARIANT_FRAMEWORK = "framework"
VARIANT_LIBRARY = "library"
VARIANTS = [VARIANT_FRAMEWORK, VARIANT_LIBRARY]

DEFAULT_XAD_REPO_URL = "https://github.com/MacPaw/XADMaster.git"
DEFAULT_UDT_REPO_URL = "https://github.com/MacPaw/universal-detector.git"

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")

VERSION_PATTERN = re.compile(r"^\d+(\.\d+){0,2}$")

# field name -> environment variable
ENV_KEYS = {
    "configuration": "CONFIGURATION",
    "out_dir": "OUT_DIR",
    "variant": "XCFRAMEWORK_VARIANT",
    "include_ios": "INCLUDE_IOS",
    "include_catalyst": "INCLUDE_CATALYST",
    "include_macos_x86_64": "INCLUDE_MACOS_X86_64",
    "generate_modulemap": "GENERATE_MODULEMAP",
    "macos_deployment_target": "MACOSX_DEPLOYMENT_TARGET",
    "ios_deployment_target": "IPHONEOS_DEPLOYMENT_TARGET",
    "catalyst_deployment_target": "CATALYST_DEPLOYMENT_TARGET",
    "use_xcpretty": "USE_XCPRETTY",
}

# field name -> (table, key) in XADBUILD.toml
TOML_KEYS = {
    "revision": ("source", "revision"),
    "xad_repo_url": ("source", "xad_url"),
    "udt_repo_url": ("source", "udt_url"),
    "configuration": ("build", "configuration"),
    "out_dir": ("build", "out_dir"),
    "variant": ("build", "variant"),
    "generate_modulemap": ("build", "generate_modulemap"),
    "use_xcpretty": ("build", "xcpretty"),
    "archive": ("build", "archive"),
    "include_ios": ("slices", "ios"),
    "include_catalyst": ("slices", "catalyst"),
    "include_macos_x86_64": ("slices", "macos_x86_64"),
    "macos_deployment_target": ("deployment", "macos"),
    "ios_deployment_target": ("deployment", "ios"),
    "catalyst_deployment_target": ("deployment", "catalyst"),
    "bundle_identifier": ("bundle", "identifier"),
    "bundle_version": ("bundle", "version"),
}

BOOL_FIELDS = (
    "include_ios",
    "include_catalyst",
    "include_macos_x86_64",
    "generate_modulemap",
    "archive",
)
VERSION_FIELDS = (
    "macos_deployment_target",
    "ios_deployment_target",
    "catalyst_deployment_target",
)


def parse_bool(value, name: str) -> bool:
    """Parse a boolean-like value ('1', 'true', 'no', ...)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigError(
        f"invalid value for {name}: '{value}'",
        hint=f"use one of {', '.join(TRUE_VALUES + FALSE_VALUES)}",
    )


def parse_version_string(value, name: str) -> str:
    text = str(value).strip()
    if not VERSION_PATTERN.match(text):
        raise ConfigError(
            f"invalid version for {name}: '{value}'",
            hint="expected a dotted numeric version such as 12.0",
        )
    return text


@dataclass(frozen=True)
class BuildConfig:
    """Immutable settings of one build run."""

    root_dir: Path
    out_dir: Path
    configuration: str = "Release"
    revision: Optional[str] = None
    variant: str = VARIANT_FRAMEWORK
    include_ios: bool = True
    include_catalyst: bool = False
    include_macos_x86_64: bool = False
    generate_modulemap: bool = True
    macos_deployment_target: str = "10.13"
    ios_deployment_target: str = "12.0"
    catalyst_deployment_target: str = "13.0"
    # None means "use xcpretty if it is installed"
    use_xcpretty: Optional[bool] = None
    archive: bool = False
    xad_repo_url: str = DEFAULT_XAD_REPO_URL
    udt_repo_url: str = DEFAULT_UDT_REPO_URL
    bundle_identifier: str = "org.macpaw.XADMaster"
    bundle_version: str = "1.0"

    def __post_init__(self):
        if self.variant not in VARIANTS:
            raise ConfigError(
                f"unknown xcframework variant: '{self.variant}'",
                hint=f"use one of {', '.join(VARIANTS)}",
            )
        if not self.configuration:
            raise ConfigError("configuration name must not be empty")
        for name in VERSION_FIELDS:
            parse_version_string(getattr(self, name), name)

    @property
    def project_name(self) -> str:
        return PROJECT_NAME

    @property
    def xad_dir(self) -> Path:
        return self.root_dir / PROJECT_NAME

    @property
    def udt_dir(self) -> Path:
        return self.root_dir / UDT_NAME

    @property
    def project_path(self) -> Path:
        return self.xad_dir / f"{PROJECT_NAME}.xcodeproj"

    @property
    def headers_dir(self) -> Path:
        return self.out_dir / f"Headers-{PROJECT_NAME}"

    @property
    def staging_dir(self) -> Path:
        return self.out_dir / "FrameworkStaging"

    @property
    def xcframework_path(self) -> Path:
        return self.out_dir / f"{PROJECT_NAME}.xcframework"

    @property
    def archive_path(self) -> Path:
        return self.out_dir / f"{PROJECT_NAME}.xcframework.zip"

    def with_overrides(self, **kwargs) -> "BuildConfig":
        return replace(self, **kwargs)


def load_toml_config(root_dir) -> Dict[str, Any]:
    """
    Read XADBUILD.toml from the project directory.

    Returns:
        dict: BuildConfig field name -> value, empty when the file is absent
    """
    config_file = Path(root_dir) / CONFIG_FILE_NAME
    if not config_file.is_file():
        return {}
    try:
        with open(config_file, "rb") as f:
            toml_data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"cannot parse {config_file}: {e}")

    values = {}
    for name, (table, key) in TOML_KEYS.items():
        section = toml_data.get(table, {})
        if isinstance(section, dict) and key in section:
            values[name] = section[key]
    return values


def load_env_config(environ: Mapping[str, str]) -> Dict[str, Any]:
    values = {}
    for name, env_var in ENV_KEYS.items():
        value = environ.get(env_var)
        if value is not None and value != "":
            values[name] = value
    return values


def _normalize(name: str, value, root_dir: Path):
    if name in BOOL_FIELDS:
        return parse_bool(value, name)
    if name == "use_xcpretty":
        if value is None or str(value).strip().lower() == "auto":
            return None
        return parse_bool(value, name)
    if name in VERSION_FIELDS:
        return parse_version_string(value, name)
    if name == "out_dir":
        path = Path(os.path.expanduser(str(value)))
        return path if path.is_absolute() else root_dir / path
    if name == "variant":
        return str(value).strip().lower()
    return str(value) if value is not None else None


def load_build_config(
    root_dir=None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BuildConfig:
    """
    Assemble the BuildConfig for a run.

    Args:
        root_dir: Directory holding the source trees (default: cwd)
        overrides: Values from command line flags, None entries are ignored
        environ: Environment mapping (default: os.environ)

    Returns:
        BuildConfig: the frozen configuration
    """
    root_dir = Path(root_dir or os.getcwd()).resolve()
    environ = os.environ if environ is None else environ

    merged: Dict[str, Any] = {}
    merged.update(load_toml_config(root_dir))
    merged.update(load_env_config(environ))
    for name, value in (overrides or {}).items():
        if value is not None:
            merged[name] = value

    known = {f.name for f in fields(BuildConfig)}
    unknown = set(merged) - known
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(sorted(unknown))}")

    values = {name: _normalize(name, value, root_dir) for name, value in merged.items()}
    if "out_dir" not in values:
        values["out_dir"] = root_dir / "Build"
    values["root_dir"] = root_dir
    return BuildConfig(**values)
