"""Unit tests for substitution module."""

import os
import unittest
from unittest.mock import patch

from buildtree.substitution import (
    PLACEHOLDER_PATTERN,
    substitute_all,
    substitute_arguments,
    substitute_environment,
    substitute_workspace,
)


class TestPlaceholderPattern(unittest.TestCase):
    def test_pattern_allows_whitespace(self):
        """Test pattern tolerates extra whitespace."""
        for text in ["{{ws.root}}", "{{ ws.root }}", "{{  ws  .  root  }}"]:
            with self.subTest(text=text):
                match = PLACEHOLDER_PATTERN.search(text)
                self.assertIsNotNone(match)
                self.assertEqual(match.groups(), ("ws", "root"))

    def test_pattern_rejects_unknown_prefix(self):
        self.assertIsNone(PLACEHOLDER_PATTERN.search("{{ var.name }}"))

    def test_pattern_requires_valid_identifier(self):
        for name in ["123foo", "foo-bar", "foo bar"]:
            with self.subTest(name=name):
                self.assertIsNone(PLACEHOLDER_PATTERN.search(f"{{{{ arg.{name} }}}}"))


class TestSubstituteArguments(unittest.TestCase):
    def test_substitutes_values(self):
        self.assertEqual(
            substitute_arguments("push --source {{ arg.source }} -n {{ arg.retries }}", {"source": "feed", "retries": 3}),
            "push --source feed -n 3",
        )

    def test_leaves_other_prefixes(self):
        self.assertEqual(
            substitute_arguments("{{ ws.root }}/{{ arg.name }}", {"name": "x"}), "{{ ws.root }}/x"
        )

    def test_undefined_argument(self):
        with self.assertRaises(ValueError) as cm:
            substitute_arguments("{{ arg.missing }}", {})
        self.assertIn("Argument 'missing' is not defined", str(cm.exception))


class TestSubstituteEnvironment(unittest.TestCase):
    def test_substitutes_variable(self):
        with patch.dict(os.environ, {"BUILD_NUMBER": "42"}):
            self.assertEqual(substitute_environment("v1.0.{{ env.BUILD_NUMBER }}"), "v1.0.42")

    def test_unset_variable(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                substitute_environment("{{ env.BUILD_NUMBER }}")


class TestSubstituteWorkspace(unittest.TestCase):
    def test_substitutes_known_values(self):
        values = {"root": "/src", "configuration": "Debug"}
        self.assertEqual(
            substitute_workspace("{{ ws.root }}/bin/{{ ws.configuration }}", values), "/src/bin/Debug"
        )

    def test_unknown_value_lists_known(self):
        with self.assertRaises(ValueError) as cm:
            substitute_workspace("{{ ws.solution }}", {"root": "/src", "artifacts": "/out"})
        self.assertIn("Known values: artifacts, root", str(cm.exception))


class TestSubstituteAll(unittest.TestCase):
    def test_all_prefixes(self):
        with patch.dict(os.environ, {"FEED": "nightly"}):
            result = substitute_all(
                "{{ arg.project }} {{ ws.configuration }} {{ env.FEED }}",
                {"project": "Core"},
                {"configuration": "Release"},
            )
        self.assertEqual(result, "Core Release nightly")

    def test_argument_values_are_not_rescanned(self):
        """Test a value that looks like a placeholder is left alone."""
        result = substitute_all("{{ arg.text }}", {"text": "{{ ws.root }}"}, {})
        self.assertEqual(result, "{{ ws.root }}")


if __name__ == "__main__":
    unittest.main()
