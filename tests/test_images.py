"""
Script: tests/test_images.py
What: Tests the promoted image list in `promote_tools/images.py`.
Doing: Checks list shape, membership validation, and the JSON matrix step output.
Why: The workflow matrix and the push step must agree on which images exist.
Goal: Keep the image enumeration non-empty, unique, and exported correctly.
"""

from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from promote_tools.common import PromoteToolError
from promote_tools.images import IMAGE_NAMES, image_matrix_json, main, validate_image_name


class ImageNamesTests(unittest.TestCase):
    def test_image_list_is_non_empty_and_unique(self) -> None:
        self.assertTrue(IMAGE_NAMES)
        self.assertEqual(len(IMAGE_NAMES), len(set(IMAGE_NAMES)))

    def test_accepts_known_image(self) -> None:
        self.assertEqual(validate_image_name("node-checker"), "node-checker")

    def test_rejects_unknown_image(self) -> None:
        with self.assertRaises(PromoteToolError):
            validate_image_name("validator-testing")

    def test_matrix_json_round_trips_to_image_list(self) -> None:
        self.assertEqual(json.loads(image_matrix_json()), list(IMAGE_NAMES))
        self.assertNotIn(" ", image_matrix_json())

    def test_main_writes_github_output(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            output_path = Path(temp_dir) / "github_output"
            with mock.patch.dict(os.environ, {"GITHUB_OUTPUT": str(output_path)}):
                main()
            self.assertEqual(
                output_path.read_text(encoding="utf-8"),
                f"image_names={image_matrix_json()}\n",
            )


if __name__ == "__main__":
    unittest.main()
