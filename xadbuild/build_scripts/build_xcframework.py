#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_xcframework.py
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
XADMaster.xcframework build pipeline.

The steps run strictly in order and every step is fatal on failure, except
the iOS simulator x86_64 build:

1. Check that xcodebuild, git and lipo are installed
2. Clone XADMaster/UniversalDetector, pin XADMaster to the requested revision
3. Remove outputs of a previous run
4. Stage the public headers (and module.modulemap)
5. Build the macOS slice (arm64, plus x86_64 merged with lipo when enabled)
6. Build iOS device, iOS simulator arm64 and (best effort) x86_64
7. Merge the simulator architectures with lipo
8. Framework variant: wrap the iOS archives into .framework bundles
9. Optionally build Mac Catalyst
10. Create the xcframework with a single create-xcframework call

Variants:
    framework   every entry is a -framework (default)
    library     every entry is a -library with the shared -headers directory

Output:
    - <out>/XADMaster.xcframework
    - <out>/XADMaster.xcframework.zip (with archive enabled)
"""

import shutil
import time

from xadbuild.build_scripts.build_slices import (
    IDENTIFIER_IOS,
    IDENTIFIER_IOS_SIMULATOR,
    IDENTIFIER_MACCATALYST,
    IDENTIFIER_MACOS,
    IOS_LIB_NAME,
    MAC_LIB_NAME,
    PLATFORM_TAG_IOS,
    PLATFORM_TAG_IOS_SIMULATOR,
    PLATFORM_TAG_MACOS,
    build_slice,
    catalyst_slice,
    ios_device_slice,
    ios_simulator_slice,
    macos_slice,
    try_build_slice,
)
from xadbuild.build_scripts.build_utils import (
    XCFRAMEWORK_KIND_FRAMEWORK,
    XCFRAMEWORK_KIND_LIBRARY,
    XCFrameworkSlice,
    archive_xcframework,
    check_library_architecture,
    framework_binary_path,
    lipo_framework,
    lipo_libs,
    make_static_framework,
    make_xcframework,
    stage_headers,
)
from xadbuild.build_scripts.fetch_sources import acquire_sources
from xadbuild.utils.cmd.cmd_util import find_tool
from xadbuild.utils.config.build_config import VARIANT_FRAMEWORK
from xadbuild.utils.errors import MissingArtifactError, ToolNotFoundError, XadBuildError

STATE_INIT = "Init"
STATE_SOURCE_READY = "SourceReady"
STATE_HEADERS_STAGED = "HeadersStaged"
STATE_BUILT = "Built"
STATE_VERIFIED = "Verified"
STATE_MERGED = "Merged"
STATE_WRAPPED = "Wrapped"
STATE_COMPOSED = "Composed"
STATE_DONE = "Done"
STATE_FAILED = "Failed"

XCODE_TOOLS_HINT = "Please install Xcode Command Line Tools."


class StepTracker:
    """Records the pipeline states of one run and its elapsed time."""

    def __init__(self):
        self.before_time = time.time()
        self.states = [(STATE_INIT, None)]

    def advance(self, state, detail=None):
        self.states.append((state, detail))

    def fail(self, error):
        self.states.append((STATE_FAILED, str(error)))

    @property
    def current(self):
        return self.states[-1][0]

    def state_names(self):
        return [state for state, _ in self.states]

    def elapsed(self):
        return int(time.time() - self.before_time)


def required_tools(config):
    tools = ["xcodebuild", "git"]
    if config.include_ios or config.include_macos_x86_64:
        tools.append("lipo")
    return tools


def require_tools(config):
    """
    Raises:
        ToolNotFoundError: for the first required tool missing from PATH
    """
    for tool in required_tools(config):
        if find_tool(tool) is None:
            raise ToolNotFoundError(tool, hint=XCODE_TOOLS_HINT if tool != "git" else None)


def resolve_xcpretty(config) -> bool:
    if config.use_xcpretty is not None:
        if config.use_xcpretty and find_tool("xcpretty") is None:
            print("WARNING: xcpretty requested but not found; showing raw xcodebuild output.")
            return False
        return config.use_xcpretty
    if find_tool("xcpretty") is not None:
        print("==> Using xcpretty for build logs.")
        return True
    print("==> xcpretty not found; showing raw xcodebuild output.")
    return False


def clean_previous_outputs(config):
    print("==> Cleaning previous build artifacts...")
    targets = [
        config.xcframework_path,
        config.staging_dir,
        config.out_dir / "Universal-macos",
        config.out_dir / "Universal-ios-simulator",
    ]
    if config.archive:
        targets.append(config.archive_path)
    for path in targets:
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()


def build_and_verify(config, tracker, slice, pretty=False):
    try:
        artifact = build_slice(config, slice, pretty)
    except MissingArtifactError:
        tracker.advance(STATE_BUILT, slice.key)
        raise
    tracker.advance(STATE_BUILT, slice.key)
    tracker.advance(STATE_VERIFIED, slice.key)
    return artifact


def build_macos(config, tracker, pretty=False) -> XCFrameworkSlice:
    """
    Build the macOS slice, merging x86_64 into it when enabled.
    """
    arm64 = macos_slice(config, "arm64")
    artifacts = [build_and_verify(config, tracker, arm64, pretty)]

    if config.include_macos_x86_64:
        x86_64 = macos_slice(config, "x86_64")
        artifacts.append(build_and_verify(config, tracker, x86_64, pretty))

    universal_dir = config.out_dir / "Universal-macos"
    if config.variant == VARIANT_FRAMEWORK:
        if len(artifacts) > 1:
            final = lipo_framework(artifacts, universal_dir / artifacts[0].name)
            tracker.advance(STATE_MERGED, arm64.identifier)
        else:
            final = artifacts[0]
        return XCFrameworkSlice(IDENTIFIER_MACOS, final, XCFRAMEWORK_KIND_FRAMEWORK)

    if len(artifacts) > 1:
        final = lipo_libs(artifacts, universal_dir / MAC_LIB_NAME)
        tracker.advance(STATE_MERGED, arm64.identifier)
    else:
        final = artifacts[0]
    return XCFrameworkSlice(
        IDENTIFIER_MACOS, final, XCFRAMEWORK_KIND_LIBRARY, headers=config.headers_dir
    )


def build_ios(config, tracker, pretty=False):
    """
    Build the iOS device and simulator archives.

    Returns:
        tuple: (device library, simulator library); the simulator library
        holds arm64 and, when it could be built, x86_64
    """
    device = ios_device_slice()
    device_lib = build_and_verify(config, tracker, device, pretty)

    sim_arm64 = ios_simulator_slice("arm64")
    sim_arm64_lib = build_and_verify(config, tracker, sim_arm64, pretty)

    sim_x86_64 = ios_simulator_slice("x86_64", best_effort=True)
    result = try_build_slice(config, sim_x86_64, pretty)
    sim_libs = [sim_arm64_lib]
    if result.is_success():
        sim_libs.append(result.get_value())
        tracker.advance(STATE_BUILT, sim_x86_64.key)
        tracker.advance(STATE_VERIFIED, sim_x86_64.key)

    # the wrapped framework needs a file of its own even with a single arch
    if config.variant == VARIANT_FRAMEWORK or len(sim_libs) > 1:
        sim_lib = lipo_libs(sim_libs, config.out_dir / "Universal-ios-simulator" / IOS_LIB_NAME)
    else:
        sim_lib = sim_arm64_lib
    if len(sim_libs) > 1:
        tracker.advance(STATE_MERGED, IDENTIFIER_IOS_SIMULATOR)
    return device_lib, sim_lib


def build_catalyst(config, tracker, pretty=False):
    """
    Build the Mac Catalyst archive.

    Returns:
        Path or None: None when the build succeeded without producing the archive
    """
    catalyst = catalyst_slice()
    try:
        lib = build_and_verify(config, tracker, catalyst, pretty)
    except MissingArtifactError as e:
        print(f"WARNING: Mac Catalyst static library not found; skipping. ({e.path})")
        return None
    return lib


def wrap_framework(config, tracker, lib, staging_name, identifier, platform_tag):
    dst = config.staging_dir / staging_name / f"{config.project_name}.framework"
    make_static_framework(lib, dst, config.headers_dir, platform_tag, config)
    tracker.advance(STATE_WRAPPED, identifier)
    return XCFrameworkSlice(identifier, dst, XCFRAMEWORK_KIND_FRAMEWORK)


def library_entry(config, identifier, lib):
    return XCFrameworkSlice(identifier, lib, XCFRAMEWORK_KIND_LIBRARY, headers=config.headers_dir)


def build_all_slices(config, tracker, pretty=False):
    """
    Build every enabled slice.

    Returns:
        list: XCFrameworkSlice entries in create-xcframework order
    """
    slices = [build_macos(config, tracker, pretty)]
    if not config.include_ios:
        return slices

    print("==> Building iOS static libraries (libXADMaster.ios.a)...")
    device_lib, sim_lib = build_ios(config, tracker, pretty)
    if config.variant == VARIANT_FRAMEWORK:
        print("==> Wrapping iOS static libs into .framework bundles...")
        slices.append(wrap_framework(
            config, tracker, device_lib, "iOS-device", IDENTIFIER_IOS, PLATFORM_TAG_IOS))
        slices.append(wrap_framework(
            config, tracker, sim_lib, "iOS-simulator",
            IDENTIFIER_IOS_SIMULATOR, PLATFORM_TAG_IOS_SIMULATOR))
    else:
        slices.append(library_entry(config, IDENTIFIER_IOS, device_lib))
        slices.append(library_entry(config, IDENTIFIER_IOS_SIMULATOR, sim_lib))

    if config.include_catalyst:
        catalyst_lib = build_catalyst(config, tracker, pretty)
        if catalyst_lib is not None:
            if config.variant == VARIANT_FRAMEWORK:
                slices.append(wrap_framework(
                    config, tracker, catalyst_lib, "maccatalyst",
                    IDENTIFIER_MACCATALYST, PLATFORM_TAG_MACOS))
            else:
                slices.append(library_entry(config, IDENTIFIER_MACCATALYST, catalyst_lib))
    return slices


def print_verification(slices):
    print("\n==================Verifying XCFramework Slices========================")
    for item in slices:
        binary = item.path
        if item.kind == XCFRAMEWORK_KIND_FRAMEWORK:
            binary = framework_binary_path(item.path)
        check_library_architecture(binary, label=item.identifier)
    print("=====================================================================")


def run_pipeline(config, tracker=None):
    """
    Build XADMaster.xcframework.

    Args:
        config: BuildConfig of this run
        tracker: Optional StepTracker recording the state sequence

    Returns:
        Path: the created xcframework

    Raises:
        XadBuildError: on any fatal failure; the tracker ends in Failed
    """
    tracker = tracker or StepTracker()
    print(f"==================build_xcframework (variant: {config.variant})========================")
    print(f"==> Output directory: {config.out_dir} (configuration: {config.configuration})")
    try:
        require_tools(config)
        config.out_dir.mkdir(parents=True, exist_ok=True)
        pretty = resolve_xcpretty(config)

        acquire_sources(config)
        tracker.advance(STATE_SOURCE_READY)

        clean_previous_outputs(config)
        stage_headers(config)
        tracker.advance(STATE_HEADERS_STAGED)

        slices = build_all_slices(config, tracker, pretty)

        xcframework = make_xcframework(slices, config.xcframework_path)
        tracker.advance(STATE_COMPOSED)

        if config.archive:
            archive_xcframework(xcframework, config.archive_path)
    except XadBuildError as e:
        tracker.fail(e)
        raise

    print_verification(slices)
    tracker.advance(STATE_DONE)
    print(time.strftime("%Y-%m-%d %H:%M:%S", time.localtime()))
    print("==================Output========================")
    print(f"Done: {xcframework}")
    print(f"use time: {tracker.elapsed()} s")
    return xcframework


def main(config):
    return run_pipeline(config)
