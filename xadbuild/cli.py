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
import importlib
import os
import sys

from xadbuild.utils.context.command import CliCommand
from xadbuild.utils.context.context import CliContext
from xadbuild.utils.context.namespace import CliNameSpace

SCRIPT_PATH = os.path.split(os.path.realpath(__file__))[0]


# Root Class for Command Line Interface
class Cli(CliCommand):
    def description(self) -> str:
        return """xadbuild - XADMaster.xcframework builder

Builds a single XADMaster.xcframework containing macOS (arm64) and iOS
(device + simulator) slices from the upstream XADMaster and
UniversalDetector sources. Mac Catalyst and macOS x86_64 are optional.

USAGE:
    xadbuild <command> [options]

COMMANDS:
    build       Build XADMaster.xcframework
    check       Check required tools (xcodebuild, git, lipo)
    clean       Remove build products
    init        Write a starter XADBUILD.toml

EXAMPLES:
    xadbuild build                   # Build with defaults
    xadbuild build v1.10.8           # Pin XADMaster to a tag or commit
    xadbuild build --catalyst        # Add a Mac Catalyst slice
    xadbuild check                   # Check the toolchain

For more information on a specific command:
    xadbuild <command> --help
        """

    def get_command_list(self) -> list:
        arr = []
        for command in os.listdir(os.path.join(SCRIPT_PATH, "commands")):
            if (
                not command.startswith("_")
                and not command.startswith("test_")
                and command.endswith(".py")
            ):
                arr.append(os.path.splitext(os.path.basename(command))[0])
        return sorted(arr)

    def _parser(self, add_help=True):
        parser = argparse.ArgumentParser(
            prog="xadbuild",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
            add_help=add_help,
        )
        parser.add_argument(
            "subcommand",
            metavar=f"{self.get_command_list()}",
            type=str,
            nargs="?",
            choices=self.get_command_list(),
        )
        return parser

    def cli(self, argv=None) -> CliNameSpace:
        argv = sys.argv[1:] if argv is None else argv
        # "xadbuild --help" is ours, "xadbuild build --help" belongs to the subcommand
        if len(argv) == 1 and argv[0] in ["--help", "-h"]:
            self._parser().print_help()
            sys.exit(0)

        args, unknown = self._parser(add_help=False).parse_known_args(
            argv, namespace=CliNameSpace()
        )
        args.rest = unknown
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        if not args.subcommand:
            print("ERROR: No command specified\n")
            self._parser().print_help()
            sys.exit(1)

        module = importlib.import_module(f"xadbuild.commands.{args.subcommand}")
        klass = getattr(module, args.subcommand.capitalize())
        sub_cmd = klass()
        return sub_cmd.exec(context, sub_cmd.cli(args.rest))
