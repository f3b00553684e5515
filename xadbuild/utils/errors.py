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
Errors raised by the xadbuild build steps.

Every fatal condition of a build is a subclass of XadBuildError. The build
command catches it at the top level, prints the message (and hint, if any)
and exits with status 1.
"""


class XadBuildError(Exception):
    """Base class of all fatal build errors"""

    def __init__(self, message, hint=None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class ConfigError(XadBuildError):
    """Invalid configuration value"""
    pass


class ToolNotFoundError(XadBuildError):
    """A required external tool is not installed"""

    def __init__(self, tool, hint=None):
        super().__init__(f"{tool} not found.", hint=hint)
        self.tool = tool


class SourceError(XadBuildError):
    """A source tree could not be cloned or inspected"""
    pass


class RevisionError(SourceError):
    """The requested revision does not resolve to a commit"""

    def __init__(self, revision, message, hint=None):
        super().__init__(message, hint=hint)
        self.revision = revision


class BuildError(XadBuildError):
    """The build driver reported a failure"""
    pass


class MissingArtifactError(BuildError):
    """The build driver succeeded but the expected product is absent"""

    def __init__(self, label, path):
        super().__init__(f"{label} not found: {path}")
        self.path = path


class MergeError(XadBuildError):
    """Architecture merge failed"""
    pass


class CompositionError(XadBuildError):
    """The xcframework could not be created"""
    pass
