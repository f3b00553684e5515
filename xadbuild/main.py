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

import sys

from xadbuild.cli import Cli
from xadbuild.utils.context.context import CliContext


def main():
    cli = Cli()
    ret = cli.exec(CliContext(), cli.cli())
    sys.exit(ret or 0)


if __name__ == "__main__":
    main()
