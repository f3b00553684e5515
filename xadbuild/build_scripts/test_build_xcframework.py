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
End-to-end tests of the xcframework pipeline against a fake toolchain.

xcodebuild writes text files that list their architectures instead of
Mach-O binaries, lipo merges those lists.

Run with: python3 -m pytest xadbuild/build_scripts/test_build_xcframework.py
"""

import plistlib
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from xadbuild.build_scripts.build_xcframework import StepTracker, resolve_xcpretty, run_pipeline
from xadbuild.utils.config.build_config import BuildConfig
from xadbuild.utils.errors import BuildError, MissingArtifactError, RevisionError, ToolNotFoundError


class FakeToolchain:
    """
    Stand-in for xcodebuild and lipo.

    Args:
        fail_keys: slice keys whose xcodebuild run exits non-zero
        missing_keys: slice keys whose xcodebuild run succeeds without a product
    """

    def __init__(self, fail_keys=(), missing_keys=()):
        self.fail_keys = set(fail_keys)
        self.missing_keys = set(missing_keys)
        self.built_keys = []
        self.create_calls = []

    @staticmethod
    def option(command, name):
        return command[command.index(name) + 1]

    def stream_command(self, command, cwd=None, pretty=False):
        derived = Path(self.option(command, "-derivedDataPath"))
        key = derived.name[len("DerivedData-"):]
        self.built_keys.append(key)
        if key in self.fail_keys:
            return 65
        if key in self.missing_keys:
            return 0

        if "-destination" in command:
            suffix = "maccatalyst"
        else:
            sdk = self.option(command, "-sdk")
            suffix = "" if sdk == "macosx" else sdk
        products = self.option(command, "-configuration") + (f"-{suffix}" if suffix else "")
        arch = next((arg[len("ARCHS="):] for arg in command if arg.startswith("ARCHS=")), "arm64 x86_64")

        products_dir = derived / "Build" / "Products" / products
        products_dir.mkdir(parents=True)
        scheme = self.option(command, "-scheme")
        if scheme == "XADMaster":
            framework = products_dir / "XADMaster.framework"
            (framework / "Headers").mkdir(parents=True)
            (framework / "XADMaster").write_text(arch)
        else:
            (products_dir / scheme).write_text(arch)
        return 0

    def exec_command(self, command, cwd=None):
        if command[:2] == ["xcodebuild", "-version"]:
            return 0, "Xcode 15.0\nBuild version 15A240d"
        if command[:2] == ["lipo", "-archs"]:
            return 0, Path(command[2]).read_text()
        if command[:2] == ["lipo", "-create"]:
            output = command.index("-output")
            archs = set()
            for src in command[2:output]:
                archs.update(Path(src).read_text().split())
            Path(command[output + 1]).write_text(" ".join(sorted(archs)))
            return 0, ""
        if command[:2] == ["xcodebuild", "-create-xcframework"]:
            self.create_calls.append(command)
            output = Path(self.option(command, "-output"))
            output.mkdir(parents=True)
            (output / "Info.plist").write_text("<plist/>")
            return 0, ""
        return 1, f"unexpected command: {command}"

    def entries(self, kind):
        command = self.create_calls[-1]
        return [command[i + 1] for i, arg in enumerate(command) if arg == f"-{kind}"]


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        for relpath in ["XADMaster/XADMaster.h", "XADMaster/XADArchive.h", "UniversalDetector/UniversalDetector.h"]:
            path = self.root / relpath
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")
        self.config = BuildConfig(root_dir=self.root, out_dir=self.root / "Build")
        self.missing_tools = set()
        self.tools = FakeToolchain()

        patchers = [
            patch("xadbuild.build_scripts.build_slices.stream_command", side_effect=self.stream_command),
            patch("xadbuild.build_scripts.build_slices.exec_command", side_effect=self.exec_command),
            patch("xadbuild.build_scripts.build_utils.exec_command", side_effect=self.exec_command),
            patch("xadbuild.build_scripts.build_xcframework.find_tool", side_effect=self.find_tool),
        ]
        for patcher in patchers:
            patcher.start()
            self.addCleanup(patcher.stop)
        acquire = patch("xadbuild.build_scripts.build_xcframework.acquire_sources")
        self.acquire_sources = acquire.start()
        self.addCleanup(acquire.stop)

    def tearDown(self):
        self.tmp.cleanup()

    def stream_command(self, command, cwd=None, pretty=False):
        return self.tools.stream_command(command, cwd, pretty)

    def exec_command(self, command, cwd=None):
        return self.tools.exec_command(command, cwd)

    def find_tool(self, name):
        if name == "xcpretty" or name in self.missing_tools:
            return None
        return f"/usr/bin/{name}"

    def run_build(self, **overrides):
        tracker = StepTracker()
        config = self.config.with_overrides(**overrides) if overrides else self.config
        return run_pipeline(config, tracker), tracker

    def staged_binary(self, staging_name):
        return self.config.staging_dir / staging_name / "XADMaster.framework" / "XADMaster"


class TestFrameworkVariant(PipelineTestCase):

    def test_default_slices(self):
        xcframework, tracker = self.run_build()

        self.assertEqual(xcframework, self.config.xcframework_path)
        self.assertTrue(xcframework.is_dir())
        self.assertEqual(len(self.tools.create_calls), 1)
        self.assertEqual(self.tools.entries("framework"), [
            str(self.config.out_dir / "DerivedData-macos-arm64" / "Build" / "Products" / "Release" / "XADMaster.framework"),
            str(self.config.staging_dir / "iOS-device" / "XADMaster.framework"),
            str(self.config.staging_dir / "iOS-simulator" / "XADMaster.framework"),
        ])
        self.assertEqual(self.tools.entries("library"), [])
        self.assertEqual(self.tools.built_keys, ["macos-arm64", "ios-device", "ios-sim-arm64", "ios-sim-x86_64"])
        self.assertEqual(self.staged_binary("iOS-device").read_text(), "arm64")
        self.assertEqual(self.staged_binary("iOS-simulator").read_text(), "arm64 x86_64")
        self.assertEqual(tracker.state_names(), [
            "Init", "SourceReady", "HeadersStaged",
            "Built", "Verified",
            "Built", "Verified",
            "Built", "Verified",
            "Built", "Verified",
            "Merged", "Wrapped", "Wrapped",
            "Composed", "Done",
        ])

    def test_wrapped_framework_layout(self):
        self.run_build()
        framework = self.config.staging_dir / "iOS-simulator" / "XADMaster.framework"

        self.assertTrue((framework / "Headers" / "XADArchive.h").is_file())
        self.assertTrue((framework / "Modules" / "module.modulemap").is_file())
        with open(framework / "Info.plist", "rb") as f:
            self.assertEqual(plistlib.load(f)["CFBundleSupportedPlatforms"], ["iPhoneSimulator"])

    def test_simulator_x86_64_unavailable(self):
        self.tools = FakeToolchain(fail_keys=["ios-sim-x86_64"])
        _, tracker = self.run_build()

        self.assertEqual(self.staged_binary("iOS-simulator").read_text(), "arm64")
        self.assertNotIn("Merged", tracker.state_names())
        self.assertEqual(len(self.tools.entries("framework")), 3)
        self.assertEqual(tracker.current, "Done")

    def test_macos_x86_64_is_merged_into_one_slice(self):
        self.run_build(include_macos_x86_64=True)

        frameworks = self.tools.entries("framework")
        universal = self.config.out_dir / "Universal-macos" / "XADMaster.framework"
        self.assertEqual(frameworks[0], str(universal))
        self.assertEqual(len(frameworks), 3)
        self.assertEqual((universal / "XADMaster").read_text(), "arm64 x86_64")

    def test_without_ios(self):
        self.missing_tools = {"lipo"}
        _, tracker = self.run_build(include_ios=False)

        self.assertEqual(self.tools.built_keys, ["macos-arm64"])
        self.assertEqual(len(self.tools.entries("framework")), 1)
        self.assertEqual(tracker.current, "Done")

    def test_catalyst(self):
        self.run_build(include_catalyst=True)

        frameworks = self.tools.entries("framework")
        self.assertEqual(len(frameworks), 4)
        self.assertEqual(frameworks[-1], str(self.config.staging_dir / "maccatalyst" / "XADMaster.framework"))
        with open(self.config.staging_dir / "maccatalyst" / "XADMaster.framework" / "Info.plist", "rb") as f:
            self.assertEqual(plistlib.load(f)["CFBundleSupportedPlatforms"], ["MacOSX"])

    def test_catalyst_artifact_missing_is_skipped(self):
        self.tools = FakeToolchain(missing_keys=["maccatalyst"])
        _, tracker = self.run_build(include_catalyst=True)

        self.assertEqual(len(self.tools.entries("framework")), 3)
        self.assertFalse((self.config.staging_dir / "maccatalyst").exists())
        self.assertEqual(tracker.current, "Done")

    def test_archive(self):
        self.run_build(archive=True)
        self.assertTrue(self.config.archive_path.is_file())

    def test_rerun_gives_same_composition(self):
        self.run_build()
        self.run_build()

        first, second = self.tools.create_calls
        self.assertEqual(first, second)
        self.assertEqual(self.staged_binary("iOS-simulator").read_text(), "arm64 x86_64")


class TestLibraryVariant(PipelineTestCase):

    def test_library_slices(self):
        self.run_build(variant="library")

        out = self.config.out_dir
        self.assertEqual(self.tools.entries("framework"), [])
        self.assertEqual(self.tools.entries("library"), [
            str(out / "DerivedData-macos-arm64" / "Build" / "Products" / "Release" / "libXADMaster.a"),
            str(out / "DerivedData-ios-device" / "Build" / "Products" / "Release-iphoneos" / "libXADMaster.ios.a"),
            str(out / "Universal-ios-simulator" / "libXADMaster.ios.a"),
        ])
        self.assertEqual(self.tools.entries("headers"), [str(self.config.headers_dir)] * 3)
        self.assertFalse(self.config.staging_dir.exists())

    def test_single_simulator_arch_is_used_directly(self):
        self.tools = FakeToolchain(fail_keys=["ios-sim-x86_64"])
        self.run_build(variant="library")

        libraries = self.tools.entries("library")
        self.assertEqual(
            libraries[2],
            str(self.config.out_dir / "DerivedData-ios-sim-arm64" / "Build" / "Products"
                / "Release-iphonesimulator" / "libXADMaster.ios.a"),
        )

    def test_macos_x86_64_merged_library(self):
        self.run_build(variant="library", include_macos_x86_64=True)

        universal = self.config.out_dir / "Universal-macos" / "libXADMaster.a"
        self.assertEqual(self.tools.entries("library")[0], str(universal))
        self.assertEqual(universal.read_text(), "arm64 x86_64")


class TestFailures(PipelineTestCase):

    def test_missing_tool_fails_before_network(self):
        self.missing_tools = {"lipo"}
        tracker = StepTracker()
        with self.assertRaises(ToolNotFoundError) as ctx:
            run_pipeline(self.config, tracker)

        self.assertEqual(ctx.exception.tool, "lipo")
        self.acquire_sources.assert_not_called()
        self.assertEqual(tracker.state_names(), ["Init", "Failed"])

    def test_unknown_revision_stops_before_build(self):
        self.acquire_sources.side_effect = RevisionError("v9.9.9", "revision 'v9.9.9' not found")
        tracker = StepTracker()
        with self.assertRaises(RevisionError):
            run_pipeline(self.config.with_overrides(revision="v9.9.9"), tracker)

        self.assertEqual(self.tools.built_keys, [])
        self.assertFalse(self.config.headers_dir.exists())
        self.assertEqual(tracker.current, "Failed")

    def test_missing_artifact_stops_before_composition(self):
        self.tools = FakeToolchain(missing_keys=["ios-device"])
        tracker = StepTracker()
        with self.assertRaises(MissingArtifactError):
            run_pipeline(self.config, tracker)

        self.assertEqual(self.tools.create_calls, [])
        self.assertFalse(self.config.xcframework_path.exists())
        self.assertEqual(tracker.state_names()[-2:], ["Built", "Failed"])

    def test_build_failure_is_fatal(self):
        self.tools = FakeToolchain(fail_keys=["ios-sim-arm64"])
        with self.assertRaises(BuildError):
            self.run_build()
        self.assertEqual(self.tools.create_calls, [])



class TestResolveXcpretty(unittest.TestCase):
    """auto, forced on and forced off use_xcpretty settings."""

    def setUp(self):
        self.config = BuildConfig(root_dir=Path("/src"), out_dir=Path("/src/Build"))

    def resolve(self, use_xcpretty, installed):
        found = "/usr/local/bin/xcpretty" if installed else None
        config = self.config.with_overrides(use_xcpretty=use_xcpretty)
        with patch("xadbuild.build_scripts.build_xcframework.find_tool", return_value=found), \
                patch("builtins.print") as mock_print:
            pretty = resolve_xcpretty(config)
        return pretty, [call[0][0] for call in mock_print.call_args_list]

    def test_auto(self):
        self.assertEqual(self.resolve(None, installed=True)[0], True)
        self.assertEqual(self.resolve(None, installed=False)[0], False)

    def test_forced_on(self):
        self.assertEqual(self.resolve(True, installed=True)[0], True)

        pretty, printed = self.resolve(True, installed=False)
        self.assertFalse(pretty)
        self.assertTrue(any(line.startswith("WARNING: xcpretty") for line in printed))

    def test_forced_off(self):
        self.assertEqual(self.resolve(False, installed=True)[0], False)
        self.assertEqual(self.resolve(False, installed=False)[0], False)

    @patch("xadbuild.build_scripts.build_xcframework.acquire_sources")
    @patch("xadbuild.build_scripts.build_xcframework.find_tool", return_value="/usr/bin/tool")
    def test_pipeline_passes_pretty_to_builds(self, mock_find, mock_acquire):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "XADMaster").mkdir()
            config = BuildConfig(root_dir=root, out_dir=root / "Build", include_ios=False)
            with patch("xadbuild.build_scripts.build_slices.stream_command", return_value=65) as mock_stream:
                with self.assertRaises(BuildError):
                    run_pipeline(config)
        self.assertTrue(mock_stream.call_args[1]["pretty"])


if __name__ == "__main__":
    unittest.main()
