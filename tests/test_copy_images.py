"""
Script: tests/test_copy_images.py
What: Tests step order and abort behavior of `promote_tools/copy_images.py`.
Doing: Replaces each step with a recorder and checks which steps ran.
Why: Credentials and pushes must never run before the upstream build passed.
Goal: Keep the job sequential and fail-closed.
"""

from __future__ import annotations

import io
import os
import unittest
from contextlib import redirect_stdout
from unittest import mock

from promote_tools.common import PromoteToolError
from promote_tools.copy_images import job_steps, main, run_steps


class JobStepsTests(unittest.TestCase):
    def test_waits_before_logins_and_push(self) -> None:
        names = [name for name, _ in job_steps(skip_check_wait=False)]
        self.assertEqual(
            names,
            [
                "Wait for images to have been built",
                "Log in to Artifact Registry",
                "Log in to ECR",
                "Log in to Docker Hub",
                "Push image tags",
            ],
        )

    def test_skip_check_wait_drops_only_the_wait_step(self) -> None:
        names = [name for name, _ in job_steps(skip_check_wait=True)]
        self.assertNotIn("Wait for images to have been built", names)
        self.assertEqual(len(names), 4)


class RunStepsTests(unittest.TestCase):
    def test_failed_step_stops_remaining_steps(self) -> None:
        ran: list[str] = []

        def _fail() -> None:
            ran.append("wait")
            raise PromoteToolError("check failed")

        steps = [("wait", _fail), ("push", lambda: ran.append("push"))]
        with redirect_stdout(io.StringIO()) as output, self.assertRaises(PromoteToolError):
            run_steps(steps)

        self.assertEqual(ran, ["wait"])
        # Log group is closed even when the step fails.
        self.assertTrue(output.getvalue().rstrip().endswith("::endgroup::"))


class MainTests(unittest.TestCase):
    def test_rejects_unknown_image_before_running_steps(self) -> None:
        env = {"IMAGE_NAME": "not-an-image", "IMAGE_TAG_PREFIX": "devnet"}
        with mock.patch.dict(os.environ, env), mock.patch(
            "promote_tools.copy_images.run_steps"
        ) as run:
            with self.assertRaises(PromoteToolError):
                main()
        run.assert_not_called()

    def test_runs_all_steps_for_valid_image(self) -> None:
        env = {"IMAGE_NAME": "indexer", "IMAGE_TAG_PREFIX": "devnet", "SKIP_CHECK_WAIT": "false"}
        with mock.patch.dict(os.environ, env), mock.patch(
            "promote_tools.copy_images.run_steps"
        ) as run, redirect_stdout(io.StringIO()):
            main()
        steps = run.call_args.args[0]
        self.assertEqual(steps[0][0], "Wait for images to have been built")


if __name__ == "__main__":
    unittest.main()
