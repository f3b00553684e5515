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

"""Build steps for the XADMaster xcframework."""

__all__ = [
    "build_slices",
    "build_utils",
    "build_xcframework",
    "fetch_sources",
]
