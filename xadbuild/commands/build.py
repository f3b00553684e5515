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

import argparse

from xadbuild.build_scripts import build_xcframework
from xadbuild.utils.config.build_config import VARIANTS, load_build_config
from xadbuild.utils.context.command import CliCommand
from xadbuild.utils.context.context import CliContext
from xadbuild.utils.context.namespace import CliNameSpace
from xadbuild.utils.errors import XadBuildError


class Build(CliCommand):
    def description(self) -> str:
        return """Build XADMaster.xcframework.

Default slices: macOS (arm64), iOS device (arm64) and iOS simulator
(arm64, plus x86_64 when the host can build it).

EXAMPLES:
    xadbuild build                       # Build the checked out sources
    xadbuild build v1.10.8               # Pin XADMaster to a tag
    xadbuild build 3f2a1c9               # Pin XADMaster to a commit
    xadbuild build --macos-x86_64        # Universal macOS slice
    xadbuild build --catalyst            # Add Mac Catalyst
    xadbuild build --no-catalyst         # Override INCLUDE_CATALYST=1
    xadbuild build --variant library     # Static archives + headers
    xadbuild build --archive             # Also zip the xcframework

ENVIRONMENT VARIABLES:
    CONFIGURATION               Xcode configuration (default: Release)
    OUT_DIR                     Output directory (default: ./Build)
    XCFRAMEWORK_VARIANT         framework or library (default: framework)
    INCLUDE_IOS                 Set to 0 to skip the iOS slices
    INCLUDE_CATALYST            Set to 1 to build Mac Catalyst
    INCLUDE_MACOS_X86_64        Set to 1 to merge x86_64 into macOS
    GENERATE_MODULEMAP          Set to 0 to skip module.modulemap
    MACOSX_DEPLOYMENT_TARGET    macOS minimum version (default: 10.13)
    IPHONEOS_DEPLOYMENT_TARGET  iOS minimum version (default: 12.0)
    CATALYST_DEPLOYMENT_TARGET  Mac Catalyst minimum iOS version (default: 13.0)
    USE_XCPRETTY                1, 0 or auto (default: auto)

Command line flags override environment variables, which override
XADBUILD.toml.
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="xadbuild build",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "revision",
            nargs="?",
            default=None,
            help="XADMaster tag or commit to build (default: current checkout)",
        )
        parser.add_argument(
            "--configuration",
            default=None,
            help="Xcode build configuration (default: Release)",
        )
        parser.add_argument(
            "--out-dir",
            default=None,
            help="Output directory (default: ./Build)",
        )
        parser.add_argument(
            "--variant",
            choices=VARIANTS,
            default=None,
            help="Package frameworks or static libraries (default: framework)",
        )
        parser.add_argument(
            "--macos-x86_64",
            dest="include_macos_x86_64",
            action="store_const",
            const=True,
            default=None,
            help="Merge an x86_64 build into the macOS slice",
        )
        parser.add_argument(
            "--no-macos-x86_64",
            dest="include_macos_x86_64",
            action="store_const",
            const=False,
            help="Keep the macOS slice arm64 only",
        )
        parser.add_argument(
            "--catalyst",
            dest="include_catalyst",
            action="store_const",
            const=True,
            default=None,
            help="Build a Mac Catalyst slice",
        )
        parser.add_argument(
            "--no-catalyst",
            dest="include_catalyst",
            action="store_const",
            const=False,
            help="Skip the Mac Catalyst slice",
        )
        parser.add_argument(
            "--ios",
            dest="include_ios",
            action="store_const",
            const=True,
            default=None,
            help="Build the iOS device and simulator slices",
        )
        parser.add_argument(
            "--no-ios",
            dest="include_ios",
            action="store_const",
            const=False,
            default=None,
            help="Skip the iOS device and simulator slices",
        )
        parser.add_argument(
            "--modulemap",
            dest="generate_modulemap",
            action="store_const",
            const=True,
            default=None,
            help="Write module.modulemap into the shared headers",
        )
        parser.add_argument(
            "--no-modulemap",
            dest="generate_modulemap",
            action="store_const",
            const=False,
            default=None,
            help="Do not write module.modulemap into the shared headers",
        )
        parser.add_argument(
            "--xcpretty",
            dest="use_xcpretty",
            action="store_const",
            const=True,
            default=None,
            help="Pipe build logs through xcpretty",
        )
        parser.add_argument(
            "--no-xcpretty",
            dest="use_xcpretty",
            action="store_const",
            const=False,
            help="Show raw xcodebuild output",
        )
        parser.add_argument(
            "--archive",
            action="store_const",
            const=True,
            default=None,
            help="Zip the xcframework after building",
        )
        return parser.parse_args(argv, namespace=CliNameSpace())

    def get_overrides(self, args: CliNameSpace) -> dict:
        keys = [
            "revision",
            "configuration",
            "out_dir",
            "variant",
            "include_macos_x86_64",
            "include_catalyst",
            "include_ios",
            "generate_modulemap",
            "use_xcpretty",
            "archive",
        ]
        return {key: getattr(args, key) for key in keys}

    def exec(self, context: CliContext, args: CliNameSpace):
        try:
            config = load_build_config(context.project_dir, self.get_overrides(args))
            build_xcframework.main(config)
        except XadBuildError as e:
            print(f"ERROR: {e.message}")
            if e.hint:
                print(f"hint: {e.hint}")
            return 1
        return 0
