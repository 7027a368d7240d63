from __future__ import annotations

import subprocess
import sys


def _run(args: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(args, capture_output=True, text=True, check=False)


def test_cli_help_smoke():
    cmds = [
        [sys.executable, "-m", "counselchat.apps.chat_cli", "--help"],
        [sys.executable, "-m", "counselchat.apps.api_server", "--help"],
        [sys.executable, "-m", "counselchat.apps.reset", "--help"],
    ]
    for cmd in cmds:
        proc = _run(cmd)
        assert proc.returncode == 0, proc.stderr
        assert "--config" in proc.stdout
