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
import platform

from xadbuild.build_scripts.build_xcframework import XCODE_TOOLS_HINT, required_tools
from xadbuild.utils.cmd.cmd_util import find_tool, tool_version
from xadbuild.utils.config.build_config import load_build_config
from xadbuild.utils.context.command import CliCommand
from xadbuild.utils.context.context import CliContext
from xadbuild.utils.context.namespace import CliNameSpace
from xadbuild.utils.errors import XadBuildError

# tool -> version arguments
TOOLS = {
    "xcodebuild": ["-version"],
    "git": ["--version"],
    "lipo": None,
    "xcpretty": ["--version"],
}

# shown when a tool the current configuration does not need is missing
TOOL_NOTES = {
    "lipo": "needed for the iOS and macOS x86_64 slices",
    "xcpretty": "optional",
}


class Check(CliCommand):
    def description(self) -> str:
        return """
        Check that the tools needed to build XADMaster.xcframework are installed.

        Required: xcodebuild, git
        Required when iOS or macOS x86_64 is enabled: lipo
        Optional: xcpretty (prettier build logs)

        The slices are read from XADBUILD.toml and the environment, the
        same way 'xadbuild build' reads them.

        Examples:
            xadbuild check
            xadbuild check --verbose
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="xadbuild check",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show tool paths",
        )
        return parser.parse_args(argv, namespace=CliNameSpace())

    def exec(self, context: CliContext, args: CliNameSpace):
        try:
            config = load_build_config(context.project_dir)
        except XadBuildError as e:
            print(f"ERROR: {e.message}")
            return 1
        required = set(required_tools(config))

        print("Checking build tools...\n")
        checker = ToolChecker(verbose=args.verbose)
        if platform.system() != "Darwin":
            checker.print_warning(f"host is {platform.system()}; Xcode builds need macOS")
        for tool, version_args in TOOLS.items():
            checker.check_tool(tool, tool in required, version_args, note=TOOL_NOTES.get(tool))
        checker.print_summary()
        return 1 if checker.errors else 0


class ToolChecker:
    def __init__(self, verbose=False):
        self.verbose = verbose
        self.warnings = []
        self.errors = []

    def check_tool(self, tool, required=True, version_args=None, note=None):
        path = find_tool(tool)
        if path is None:
            if required:
                self.print_error(f"{tool}: Not found")
            else:
                self.print_warning(f"{tool}: Not found ({note or 'optional'})")
            return False

        version_str = tool_version(tool, version_args) if version_args else ""
        msg = f"{tool}: Found {version_str}".rstrip()
        if self.verbose:
            msg += f" ({path})"
        self.print_ok(msg)
        return True

    def print_ok(self, msg):
        print(f"  ✅ {msg}")

    def print_error(self, msg):
        print(f"  ❌ {msg}")
        self.errors.append(msg)

    def print_warning(self, msg):
        print(f"  ⚠️  {msg}")
        self.warnings.append(msg)

    def print_summary(self):
        print(f"\n{'='*60}")
        if self.errors:
            print(f"  {len(self.errors)} required tool(s) missing. {XCODE_TOOLS_HINT}")
        elif self.warnings:
            print(f"  Ready to build ({len(self.warnings)} warning(s))")
        else:
            print("  Ready to build")
        print(f"{'='*60}")
