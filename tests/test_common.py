"""
Script: tests/test_common.py
What: Tests shared helpers in `promote_tools/common.py`.
Doing: Checks env readers, command error wrapping, and the skopeo login/copy argument lists.
Why: Every command relies on these helpers for config, failures, and registry calls.
Goal: Keep secrets out of argv and command failures readable in workflow logs.
"""

from __future__ import annotations

import os
import subprocess
import unittest
from unittest import mock

from promote_tools.common import (
    PromoteToolError,
    env_flag,
    require_env,
    run_cmd,
    skopeo_copy,
    skopeo_login,
    split_csv,
)


class EnvTests(unittest.TestCase):
    def test_require_env_treats_empty_as_missing(self) -> None:
        with mock.patch.dict(os.environ, {"IMAGE_TAG_PREFIX": ""}):
            with self.assertRaises(PromoteToolError):
                require_env("IMAGE_TAG_PREFIX")

    def test_env_flag(self) -> None:
        with mock.patch.dict(os.environ, {"SKIP_CHECK_WAIT": "True"}):
            self.assertTrue(env_flag("SKIP_CHECK_WAIT"))
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertFalse(env_flag("SKIP_CHECK_WAIT"))

    def test_split_csv_drops_blanks(self) -> None:
        self.assertEqual(split_csv(" success, skipped ,,"), ["success", "skipped"])


class RunCmdTests(unittest.TestCase):
    def test_failure_message_has_command_and_stderr(self) -> None:
        error = subprocess.CalledProcessError(1, ["skopeo"], stderr="unauthorized")
        with mock.patch("promote_tools.common.subprocess.run", side_effect=error):
            with self.assertRaises(PromoteToolError) as ctx:
                run_cmd(["skopeo", "copy", "docker://a/b:c", "docker://d/e:f"])
        self.assertIn("Command failed: skopeo copy docker://a/b:c docker://d/e:f", str(ctx.exception))
        self.assertIn("unauthorized", str(ctx.exception))

    def test_input_text_goes_to_stdin(self) -> None:
        with mock.patch("promote_tools.common.subprocess.run") as run:
            run.return_value.stdout = ""
            run_cmd(["skopeo", "login", "--password-stdin", "docker.io"], input_text="hub-token")
        self.assertEqual(run.call_args.kwargs["input"], "hub-token")
        self.assertNotIn("hub-token", run.call_args.args[0])

    def test_missing_binary_raises_tool_error(self) -> None:
        with mock.patch("promote_tools.common.subprocess.run", side_effect=FileNotFoundError()):
            with self.assertRaises(PromoteToolError):
                run_cmd(["skopeo", "--version"])


class SkopeoTests(unittest.TestCase):
    def test_login_sends_password_on_stdin(self) -> None:
        with mock.patch("promote_tools.common.run_cmd") as run:
            skopeo_login("docker.io", username="aptosbot", password="hub-token")
        run.assert_called_once_with(
            ["skopeo", "login", "--username", "aptosbot", "--password-stdin", "docker.io"],
            input_text="hub-token",
        )

    def test_copy_keeps_all_platforms(self) -> None:
        with mock.patch("promote_tools.common.run_cmd") as run:
            skopeo_copy("docker://a/b:c", "docker://d/e:f")
        self.assertEqual(
            run.call_args.args[0],
            ["skopeo", "copy", "--retry-times", "3", "--all", "docker://a/b:c", "docker://d/e:f"],
        )


if __name__ == "__main__":
    unittest.main()
