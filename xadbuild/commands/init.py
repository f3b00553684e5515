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
import os
from pathlib import Path

from copier import run_copy

from xadbuild.utils.config.build_config import CONFIG_FILE_NAME
from xadbuild.utils.context.command import CliCommand
from xadbuild.utils.context.context import CliContext
from xadbuild.utils.context.namespace import CliNameSpace

TEMPLATE_PATH = Path(os.path.realpath(__file__)).parent.parent / "templates" / "config"


def parse_data_items(items) -> dict:
    """Turn KEY=VALUE strings into template answers."""
    data = {}
    for item in items or []:
        if "=" not in item:
            continue
        key, value = item.split("=", 1)
        # Convert string boolean values to actual booleans
        if value.lower() == "true":
            value = True
        elif value.lower() == "false":
            value = False
        data[key] = value
    return data


class Init(CliCommand):
    def description(self) -> str:
        return f"""
        Write a starter {CONFIG_FILE_NAME} into the current directory.

        The file documents every build setting with its default value.
        Values can be preset with --data.

        Examples:
            xadbuild init
            xadbuild init --force
            xadbuild init --data catalyst=true --data ios_deployment_target=13.0
            xadbuild init --interact
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="xadbuild init",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "--data",
            action="append",
            help="Template data in KEY=VALUE format (can be used multiple times)",
        )
        parser.add_argument(
            "--interact",
            action="store_true",
            help="Enable interactive mode with prompts (default is non-interactive)",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help=f"Overwrite an existing {CONFIG_FILE_NAME}",
        )
        return parser.parse_args(argv, namespace=CliNameSpace())

    def exec(self, context: CliContext, args: CliNameSpace):
        config_path = Path(context.project_dir) / CONFIG_FILE_NAME
        if config_path.exists() and not args.force:
            print(f"ERROR: {config_path} already exists (use --force to overwrite)")
            return 1

        print(f"Writing {config_path}")
        run_copy(
            str(TEMPLATE_PATH),
            str(context.project_dir),
            data=parse_data_items(args.data),
            defaults=not args.interact,
            overwrite=True,
            quiet=True,
        )
        print(f"\n✅ Created {CONFIG_FILE_NAME}")
        print("\nNext steps:")
        print(f"  # Edit {CONFIG_FILE_NAME}, then run: xadbuild build")
        return 0
