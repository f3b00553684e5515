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
import shutil

from xadbuild.utils.config.build_config import load_build_config
from xadbuild.utils.context.command import CliCommand
from xadbuild.utils.context.context import CliContext
from xadbuild.utils.context.namespace import CliNameSpace
from xadbuild.utils.errors import XadBuildError


def collect_build_products(config) -> list:
    """Existing build products below the output directory, sources excluded."""
    out_dir = config.out_dir
    if not out_dir.is_dir():
        return []
    paths = []
    for pattern in ["DerivedData-*", "Universal-*"]:
        paths.extend(sorted(out_dir.glob(pattern)))
    for path in [
        config.headers_dir,
        config.staging_dir,
        config.xcframework_path,
        config.archive_path,
    ]:
        if path.exists():
            paths.append(path)
    # never touch the source trees, even when OUT_DIR points at them
    protected = {config.xad_dir.resolve(), config.udt_dir.resolve(), config.root_dir}
    return [p for p in paths if p.resolve() not in protected]


class Clean(CliCommand):
    def description(self) -> str:
        return """
        Remove build products from the output directory.

        Cleans:
        - DerivedData-*/            # per-slice xcodebuild output
        - Universal-*/              # lipo merged libraries
        - Headers-XADMaster/        # staged headers
        - FrameworkStaging/         # wrapped frameworks
        - XADMaster.xcframework     # final bundle (and its zip)

        The XADMaster and UniversalDetector source trees are kept.

        Examples:
            xadbuild clean              # Clean with confirmation
            xadbuild clean --dry-run    # Preview what will be cleaned
            xadbuild clean -y           # Clean without confirmation
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="xadbuild clean",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "--out-dir",
            default=None,
            help="Output directory (default: ./Build or OUT_DIR)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be cleaned without actually deleting",
        )
        parser.add_argument(
            "-y", "--yes",
            action="store_true",
            help="Skip confirmation prompts",
        )
        return parser.parse_args(argv, namespace=CliNameSpace())

    def exec(self, context: CliContext, args: CliNameSpace):
        try:
            config = load_build_config(context.project_dir, {"out_dir": args.out_dir})
        except XadBuildError as e:
            print(f"ERROR: {e.message}")
            return 1

        paths = collect_build_products(config)
        if not paths:
            print(f"Nothing to clean in {config.out_dir}")
            return 0

        print("Cleaning build artifacts...\n")
        for path in paths:
            print(f"  {path}")
        if args.dry_run:
            print("\n[dry-run] Nothing was deleted.")
            return 0

        if not args.yes:
            response = input("\nDo you want to continue? (y/N): ")
            if response.lower() != "y":
                print("Aborted.")
                return 0

        for path in paths:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        print(f"\n✅ Removed {len(paths)} item(s)")
        return 0
