#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_slices.py
# xadbuild
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
Per-slice xcodebuild invocations.

Each Slice is one (platform, architecture) build of the upstream Xcode
project. It is built into its own derived data directory with code signing
disabled, and its product is expected at:

    <derived data>/Build/Products/<configuration>[-<platform>]/<product>

Slices:
    macos-arm64            XADMaster.framework or libXADMaster.a
    macos-x86_64           optional, merged into the macOS slice
    ios-device             libXADMaster.ios.a, iphoneos arm64
    ios-simulator-arm64    libXADMaster.ios.a, iphonesimulator arm64
    ios-simulator-x86_64   best effort, some hosts lack the toolchain
    maccatalyst            optional, libXADMaster.ios.a for Mac Catalyst
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from xadbuild.utils.cmd.cmd_util import exec_command, stream_command
from xadbuild.utils.config.build_config import VARIANT_FRAMEWORK
from xadbuild.utils.context.result import CliResult
from xadbuild.utils.errors import BuildError, MissingArtifactError

SCHEME_MAC_FRAMEWORK = "XADMaster"
SCHEME_MAC_LIB = "libXADMaster.a"
SCHEME_IOS_LIB = "libXADMaster.ios.a"

MAC_FRAMEWORK_NAME = "XADMaster.framework"
MAC_LIB_NAME = "libXADMaster.a"
IOS_LIB_NAME = "libXADMaster.ios.a"

SDK_MACOS = "macosx"
SDK_IOS = "iphoneos"
SDK_IOS_SIMULATOR = "iphonesimulator"
CATALYST_DESTINATION = "generic/platform=macOS,variant=Mac Catalyst"

MACOS_DEPLOYMENT_SETTING = "MACOSX_DEPLOYMENT_TARGET"
IOS_DEPLOYMENT_SETTING = "IPHONEOS_DEPLOYMENT_TARGET"

PLATFORM_TAG_MACOS = "MacOSX"
PLATFORM_TAG_IOS = "iPhoneOS"
PLATFORM_TAG_IOS_SIMULATOR = "iPhoneSimulator"

# platform variant identifiers, at most one slice each in the xcframework
IDENTIFIER_MACOS = "macos"
IDENTIFIER_IOS = "ios"
IDENTIFIER_IOS_SIMULATOR = "ios-simulator"
IDENTIFIER_MACCATALYST = "ios-maccatalyst"


@dataclass(frozen=True)
class Slice:
    key: str
    label: str
    scheme: str
    product_name: str
    identifier: str
    platform_tag: str
    deployment_setting: str
    sdk: Optional[str] = None
    destination: Optional[str] = None
    arch: Optional[str] = None
    products_suffix: str = ""
    is_bundle: bool = False
    best_effort: bool = False
    catalyst: bool = False

    def derived_data_path(self, config) -> Path:
        return config.out_dir / f"DerivedData-{self.key}"

    def products_dir(self, config) -> Path:
        name = config.configuration
        if self.products_suffix:
            name += f"-{self.products_suffix}"
        return self.derived_data_path(config) / "Build" / "Products" / name

    def artifact_path(self, config) -> Path:
        return self.products_dir(config) / self.product_name


def macos_slice(config, arch="arm64") -> Slice:
    if config.variant == VARIANT_FRAMEWORK:
        return Slice(
            key=f"macos-{arch}",
            label=f"macOS {arch} framework",
            scheme=SCHEME_MAC_FRAMEWORK,
            product_name=MAC_FRAMEWORK_NAME,
            identifier=IDENTIFIER_MACOS,
            platform_tag=PLATFORM_TAG_MACOS,
            deployment_setting=MACOS_DEPLOYMENT_SETTING,
            sdk=SDK_MACOS,
            arch=arch,
            is_bundle=True,
        )
    return Slice(
        key=f"macos-{arch}",
        label=f"macOS {arch} static library",
        scheme=SCHEME_MAC_LIB,
        product_name=MAC_LIB_NAME,
        identifier=IDENTIFIER_MACOS,
        platform_tag=PLATFORM_TAG_MACOS,
        deployment_setting=MACOS_DEPLOYMENT_SETTING,
        sdk=SDK_MACOS,
        arch=arch,
    )


def ios_device_slice(arch="arm64") -> Slice:
    return Slice(
        key="ios-device",
        label="iOS device static library",
        scheme=SCHEME_IOS_LIB,
        product_name=IOS_LIB_NAME,
        identifier=IDENTIFIER_IOS,
        platform_tag=PLATFORM_TAG_IOS,
        deployment_setting=IOS_DEPLOYMENT_SETTING,
        sdk=SDK_IOS,
        arch=arch,
        products_suffix=SDK_IOS,
    )


def ios_simulator_slice(arch, best_effort=False) -> Slice:
    return Slice(
        key=f"ios-sim-{arch}",
        label=f"iOS simulator {arch} static library",
        scheme=SCHEME_IOS_LIB,
        product_name=IOS_LIB_NAME,
        identifier=IDENTIFIER_IOS_SIMULATOR,
        platform_tag=PLATFORM_TAG_IOS_SIMULATOR,
        deployment_setting=IOS_DEPLOYMENT_SETTING,
        sdk=SDK_IOS_SIMULATOR,
        arch=arch,
        products_suffix=SDK_IOS_SIMULATOR,
        best_effort=best_effort,
    )


def catalyst_slice() -> Slice:
    return Slice(
        key="maccatalyst",
        label="Mac Catalyst static library",
        scheme=SCHEME_IOS_LIB,
        product_name=IOS_LIB_NAME,
        identifier=IDENTIFIER_MACCATALYST,
        platform_tag=PLATFORM_TAG_MACOS,
        deployment_setting=IOS_DEPLOYMENT_SETTING,
        destination=CATALYST_DESTINATION,
        products_suffix="maccatalyst",
        catalyst=True,
    )


def deployment_target_for(config, slice: Slice) -> str:
    if slice.catalyst:
        return config.catalyst_deployment_target
    if slice.deployment_setting == MACOS_DEPLOYMENT_SETTING:
        return config.macos_deployment_target
    return config.ios_deployment_target


def xcodebuild_args(config, slice: Slice) -> List[str]:
    args = [
        "xcodebuild",
        "-project", str(config.project_path),
        "-scheme", slice.scheme,
        "-configuration", config.configuration,
    ]
    if slice.destination:
        args += ["-destination", slice.destination]
    else:
        args += ["-sdk", slice.sdk]
    args += ["-derivedDataPath", str(slice.derived_data_path(config))]
    if slice.arch:
        args += [f"ARCHS={slice.arch}", "ONLY_ACTIVE_ARCH=NO"]
    args += ["CODE_SIGNING_ALLOWED=NO", "CODE_SIGNING_REQUIRED=NO"]
    if slice.catalyst:
        args.append("SUPPORTS_MACCATALYST=YES")
    args.append(f"{slice.deployment_setting}={deployment_target_for(config, slice)}")
    args.append("build")
    return args


def build_slice(config, slice: Slice, pretty=False) -> Path:
    """
    Build one slice and verify its product.

    Args:
        config: BuildConfig
        slice: The slice to build
        pretty: Pipe xcodebuild output through xcpretty

    Returns:
        Path: the built artifact

    Raises:
        BuildError: xcodebuild exited non-zero
        MissingArtifactError: xcodebuild succeeded but the product is absent
    """
    print(f"==> Building {slice.label}...")
    derived_data = slice.derived_data_path(config)
    if derived_data.exists():
        shutil.rmtree(derived_data)

    ret = stream_command(xcodebuild_args(config, slice), cwd=config.root_dir, pretty=pretty)
    if ret != 0:
        raise BuildError(f"xcodebuild failed for {slice.label} (exit code {ret})")

    artifact = slice.artifact_path(config)
    exists = artifact.is_dir() if slice.is_bundle else artifact.is_file()
    if not exists:
        raise MissingArtifactError(slice.label, artifact)
    return artifact


def try_build_slice(config, slice: Slice, pretty=False) -> CliResult:
    """
    Build a slice whose failure must not stop the run.

    Returns:
        CliResult: the artifact path, or the error that was turned into a warning
    """
    err_code, _ = exec_command(["xcodebuild", "-version"])
    if err_code != 0:
        print(f"WARNING: xcodebuild -version failed; skipping {slice.label}")
        return CliResult.failure(BuildError("xcodebuild -version failed"))
    try:
        return CliResult.success(build_slice(config, slice, pretty=pretty))
    except BuildError as e:
        print(f"WARNING: {slice.label} missing; continuing... ({e})")
        return CliResult.failure(e)
