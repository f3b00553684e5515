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

import shlex
import shutil
import subprocess

DEFAULT_TIMEOUT_SECOND = 10


def decode_bytes(input: bytes) -> str:
    if input is None:
        return ""
    return input.decode("UTF-8", errors="replace")


def format_command(command) -> str:
    return " ".join(shlex.quote(str(x)) for x in command)


def find_tool(name):
    return shutil.which(name)


def exec_command(command, cwd=None):
    """
    Run a command and capture its output.

    Args:
        command: Argument list, the first item is the executable
        cwd: Working directory

    Returns:
        tuple: (exit_code, output) with stdout and stderr combined
    """
    compile_popen = subprocess.run(
        [str(x) for x in command],
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    )
    return compile_popen.returncode, decode_bytes(compile_popen.stdout)


def exec_command_with_timeout_second(
    command, timeout_second=DEFAULT_TIMEOUT_SECOND, cwd=None
):
    # only used for quick probes, builds never time out
    try:
        compile_popen = subprocess.run(
            [str(x) for x in command],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout_second,
        )
    except subprocess.TimeoutExpired:
        return -9, f"Failed for timeout({timeout_second}s): {format_command(command)}"
    except OSError as e:
        return 127, str(e)
    return compile_popen.returncode, decode_bytes(compile_popen.stdout)


def tool_version(tool, version_args, timeout_second=DEFAULT_TIMEOUT_SECOND) -> str:
    """First line of '<tool> <version_args>', empty if the probe fails."""
    err_code, output = exec_command_with_timeout_second(
        [tool] + list(version_args), timeout_second=timeout_second
    )
    if err_code != 0 or not output.strip():
        return ""
    return output.strip().splitlines()[0]


def stream_command(command, cwd=None, pretty=False):
    """
    Run a long command with its output shown on the terminal.

    When pretty is set the output is piped through xcpretty. The return code
    is the first non-zero status of the pipeline.
    """
    command = [str(x) for x in command]
    print(f"$ {format_command(command)}")
    if not pretty:
        return subprocess.call(command, cwd=cwd)

    producer = subprocess.Popen(
        command, cwd=cwd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT
    )
    consumer = subprocess.Popen(["xcpretty"], stdin=producer.stdout)
    # let xcpretty own the read end of the pipe
    producer.stdout.close()
    consumer_code = consumer.wait()
    producer_code = producer.wait()
    return producer_code or consumer_code
