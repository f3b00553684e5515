#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_utils.py
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
Build utility functions shared by the xcframework build steps.

This module provides:
- Header staging (copy public headers, synthesize module.modulemap)
- Architecture merging with lipo (static archives and framework bundles)
- Static framework wrapping (binary, Headers/, Modules/, Info.plist)
- XCFramework composition with 'xcodebuild -create-xcframework'
- Zip archiving of the final bundle
"""

import os
import plistlib
import shutil
import stat
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from xadbuild.utils.cmd.cmd_util import exec_command, format_command
from xadbuild.utils.errors import CompositionError, MergeError

HEADER_SUFFIX = ".h"
MODULEMAP_FILE_NAME = "module.modulemap"
# directories never searched for public headers
HEADER_SKIP_DIRS = [".git", "build", "DerivedData"]

# modulemap placed in the shared headers directory (static-library slices)
HEADERS_MODULEMAP_TEMPLATE = """module {name} {{
  umbrella "."
  export *
  module * {{ export * }}
}}
"""

# modulemap placed in Modules/ of a wrapped framework
FRAMEWORK_MODULEMAP_TEMPLATE = """module {name} {{
  umbrella header "{name}.h"
  export *
  module * {{ export * }}
}}
"""

XCFRAMEWORK_KIND_FRAMEWORK = "framework"
XCFRAMEWORK_KIND_LIBRARY = "library"


def copy_file(src, dst):
    """
    Copy a file or directory, creating destination directories as needed.

    Directories are copied with their symlinks preserved, which keeps
    versioned macOS framework bundles intact.
    """
    src = Path(src)
    dst = Path(dst)
    if not src.exists():
        return
    if src.is_dir():
        if dst.exists():
            shutil.rmtree(dst)
        shutil.copytree(src, dst, symlinks=True)
    else:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy(src, dst)


def copy_headers_tree(src_dir, dst_dir) -> int:
    """
    Copy every header below src_dir into dst_dir keeping relative paths.

    Returns:
        int: number of headers copied
    """
    src_dir = Path(src_dir)
    dst_dir = Path(dst_dir)
    count = 0
    for fpath, dirs, fs in os.walk(src_dir):
        dirs[:] = sorted(d for d in dirs if d not in HEADER_SKIP_DIRS)
        for name in sorted(fs):
            if not name.endswith(HEADER_SUFFIX):
                continue
            src = Path(fpath) / name
            copy_file(src, dst_dir / src.relative_to(src_dir))
            count += 1
    return count


def copy_top_level_headers(src_dir, dst_dir) -> int:
    """Copy the headers directly inside src_dir (not recursive)."""
    src_dir = Path(src_dir)
    dst_dir = Path(dst_dir)
    count = 0
    for src in sorted(src_dir.iterdir()):
        if src.is_file() and src.name.endswith(HEADER_SUFFIX):
            copy_file(src, dst_dir / src.name)
            count += 1
    return count


def write_modulemap(path, name, umbrella_header=False):
    template = FRAMEWORK_MODULEMAP_TEMPLATE if umbrella_header else HEADERS_MODULEMAP_TEMPLATE
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(template.format(name=name))
    return path


def stage_headers(config) -> Path:
    """
    Collect the public headers of both source trees into one directory.

    XADMaster headers keep their directory layout, UniversalDetector only
    contributes its top-level headers. A module.modulemap is written when
    config.generate_modulemap is set.

    Returns:
        Path: the shared headers directory
    """
    headers_dir = config.headers_dir
    if headers_dir.exists():
        shutil.rmtree(headers_dir)
    headers_dir.mkdir(parents=True)

    count = copy_headers_tree(config.xad_dir, headers_dir)
    print(f"==> Staged {count} {config.project_name} headers into {headers_dir}")

    if config.udt_dir.is_dir():
        count = copy_top_level_headers(config.udt_dir, headers_dir)
        print(f"==> Staged {count} UniversalDetector headers")
    else:
        print(f"WARNING: UniversalDetector sources not found at {config.udt_dir}")

    if config.generate_modulemap:
        write_modulemap(headers_dir / MODULEMAP_FILE_NAME, config.project_name)
    return headers_dir


def get_library_archs(library_path) -> List[str]:
    """
    List the architectures contained in a Mach-O binary or archive.

    Returns:
        list: sorted architecture names, empty if lipo cannot read the file
    """
    err_code, output = exec_command(["lipo", "-archs", str(library_path)])
    if err_code != 0:
        return []
    return sorted(output.split())


def lipo_libs(src_libs, dst_lib):
    """
    Create a universal binary from architecture-specific libraries.

    A single input is copied through unchanged. The destination is replaced
    on every call, so merging the same inputs twice gives the same result.

    Args:
        src_libs: Architecture-specific library paths
        dst_lib: Destination path

    Raises:
        MergeError: No input, or lipo failed
    """
    src_libs = [Path(x) for x in src_libs]
    dst_lib = Path(dst_lib)
    if not src_libs:
        raise MergeError(f"no libraries to merge into {dst_lib}")
    dst_lib.parent.mkdir(parents=True, exist_ok=True)
    if dst_lib.exists():
        dst_lib.unlink()

    if len(src_libs) == 1:
        shutil.copy(src_libs[0], dst_lib)
        return dst_lib

    cmd = ["lipo", "-create"] + [str(x) for x in src_libs] + ["-output", str(dst_lib)]
    err_code, output = exec_command(cmd)
    if err_code != 0:
        raise MergeError(
            f"lipo failed for {dst_lib}, cmd:['{format_command(cmd)}']: {output.strip()}"
        )
    return dst_lib


def framework_name(framework) -> str:
    return Path(framework).name[: -len(".framework")]


def framework_binary_path(framework) -> Path:
    """The real file behind <name>.framework/<name> (symlinks resolved)."""
    framework = Path(framework)
    return Path(os.path.realpath(framework / framework_name(framework)))


def lipo_framework(src_frameworks, dst_framework):
    """
    Merge framework bundles of the same platform into one bundle.

    The first framework is copied as the base and its binary is replaced by
    the lipo merge of every input binary.
    """
    src_frameworks = [Path(x) for x in src_frameworks]
    dst_framework = Path(dst_framework)
    if not src_frameworks:
        raise MergeError(f"no frameworks to merge into {dst_framework}")

    copy_file(src_frameworks[0], dst_framework)
    if len(src_frameworks) == 1:
        return dst_framework

    src_binaries = [framework_binary_path(x) for x in src_frameworks]
    lipo_libs(src_binaries, framework_binary_path(dst_framework))
    return dst_framework


def write_info_plist(path, config, platform_tag):
    info = {
        "CFBundleDevelopmentRegion": "en",
        "CFBundleIdentifier": config.bundle_identifier,
        "CFBundleName": config.project_name,
        "CFBundlePackageType": "FMWK",
        "CFBundleShortVersionString": config.bundle_version,
        "CFBundleVersion": "1",
        "CFBundleSupportedPlatforms": [platform_tag],
    }
    with open(path, "wb") as f:
        plistlib.dump(info, f, fmt=plistlib.FMT_XML)
    return path


def make_static_framework(src_lib, dst_framework, headers_dir, platform_tag, config):
    """
    Wrap a static archive into a minimal framework bundle.

    Layout:
        <name>.framework/<name>                     the archive, renamed
        <name>.framework/Headers/                   copy of headers_dir
        <name>.framework/Modules/module.modulemap
        <name>.framework/Info.plist

    Args:
        src_lib: Static library (.a)
        dst_framework: Destination bundle path (.framework)
        headers_dir: Staged public headers
        platform_tag: CFBundleSupportedPlatforms entry (e.g. iPhoneOS)
        config: BuildConfig providing name, identifier and version
    """
    dst_framework = Path(dst_framework)
    if dst_framework.exists():
        shutil.rmtree(dst_framework)
    name = framework_name(dst_framework)
    dst_framework.mkdir(parents=True)

    copy_file(headers_dir, dst_framework / "Headers")
    shutil.copy(src_lib, dst_framework / name)
    write_modulemap(dst_framework / "Modules" / MODULEMAP_FILE_NAME, name, umbrella_header=True)
    write_info_plist(dst_framework / "Info.plist", config, platform_tag)
    print(f"  Created static framework: {dst_framework}")
    return dst_framework


@dataclass(frozen=True)
class XCFrameworkSlice:
    """One -framework or -library entry of create-xcframework."""

    identifier: str
    path: Path
    kind: str = XCFRAMEWORK_KIND_FRAMEWORK
    headers: Optional[Path] = None

    def to_args(self) -> List[str]:
        args = [f"-{self.kind}", str(self.path)]
        if self.kind == XCFRAMEWORK_KIND_LIBRARY and self.headers is not None:
            args += ["-headers", str(self.headers)]
        return args


def check_xcframework_slices(slices):
    """
    Reject slice lists that create-xcframework would refuse.

    Raises:
        CompositionError: Empty list or two slices for the same platform variant
    """
    if not slices:
        raise CompositionError("no slices to package into the xcframework")
    seen = {}
    for item in slices:
        if item.identifier in seen:
            raise CompositionError(
                f"duplicate slice '{item.identifier}': {seen[item.identifier]} and {item.path}",
                hint="merge architectures of the same platform with lipo first",
            )
        seen[item.identifier] = item.path


def make_xcframework(slices, dst_xcframework):
    """
    Create an XCFramework from the accumulated slices.

    Args:
        slices: XCFrameworkSlice entries, one per platform variant
        dst_xcframework: Output path (.xcframework)

    Raises:
        CompositionError: Invalid slice list, or xcodebuild failed
    """
    check_xcframework_slices(slices)
    dst_xcframework = Path(dst_xcframework)
    if dst_xcframework.exists():
        shutil.rmtree(dst_xcframework)

    cmd = ["xcodebuild", "-create-xcframework"]
    for item in slices:
        cmd += item.to_args()
    cmd += ["-output", str(dst_xcframework)]
    print(f"==> Creating {dst_xcframework.name}...")
    err_code, output = exec_command(cmd)
    if err_code != 0:
        raise CompositionError(
            f"make_xcframework {dst_xcframework} failed, cmd:['{format_command(cmd)}']\n{output.strip()}"
        )
    return dst_xcframework


def archive_xcframework(xcframework_path, output_zip):
    """
    Zip an xcframework with fixed timestamps and preserved file modes.

    Symlinks inside framework bundles are stored as links.
    """
    xcframework_path = Path(xcframework_path)
    output_zip = Path(output_zip)
    if not xcframework_path.exists():
        raise CompositionError(f"XCFramework does not exist: {xcframework_path}")
    output_zip.parent.mkdir(parents=True, exist_ok=True)
    if output_zip.exists():
        output_zip.unlink()

    entries = sorted(
        (p for p in xcframework_path.rglob("*") if p.is_file() or p.is_symlink()),
        key=lambda p: str(p.relative_to(xcframework_path.parent)),
    )
    with zipfile.ZipFile(output_zip, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for file_path in entries:
            arcname = file_path.relative_to(xcframework_path.parent).as_posix()
            info = zipfile.ZipInfo(filename=arcname)
            info.date_time = (1980, 1, 1, 0, 0, 0)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.create_system = 3
            mode = file_path.lstat().st_mode
            if file_path.is_symlink():
                info.external_attr = (stat.S_IMODE(mode) | stat.S_IFLNK) << 16
                archive.writestr(info, os.readlink(file_path))
            else:
                info.external_attr = (stat.S_IMODE(mode) | stat.S_IFREG) << 16
                archive.writestr(info, file_path.read_bytes())
    print(f"==> Archived {xcframework_path.name} into {output_zip}")
    return output_zip


def check_library_architecture(library_path, label=None):
    """
    Print and return the architectures of a built binary.

    Returns:
        list: architecture names, None if the file is missing
    """
    library_path = Path(library_path)
    if not library_path.exists():
        print(f"WARNING: Library not found: {library_path}")
        return None
    archs = get_library_archs(library_path)
    size = library_path.stat().st_size / (1024 * 1024)
    print(f"{label or library_path.name}: {' '.join(archs) or 'unknown'} ({size:.2f} MB)")
    return archs
