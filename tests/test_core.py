"""
Unit tests for the core data structures and error taxonomy.
"""

import unittest

import numpy as np

from core.base import FileOutcome, VolumeData
from core.errors import (
    ErrorKind,
    FormatUnrecognized,
    Issue,
    SerializationFailure,
    VolumeReadError,
    error_kind_of,
)


class TestVolumeData(unittest.TestCase):

    def test_dimensions(self):
        self.assertEqual(VolumeData().dimensions, (0, 0, 0))
        self.assertEqual(VolumeData(raw_data=np.zeros((2, 3, 4))).dimensions, (2, 3, 4))

    def test_derive_shares_geometry_and_copies_bookkeeping(self):
        source = VolumeData(
            raw_data=np.zeros((2, 2, 2)),
            spacing=(0.5, 0.5, 1.0),
            origin=(1.0, 0.0, 0.0),
            metadata={"SourceFile": "a.foct"},
            issues=[Issue(ErrorKind.DATA_INTEGRITY, "1 NaN/Inf samples replaced by 0")],
        )
        derived = source.derive(np.ones((2, 2, 2)), Enhancement="adaptive")

        self.assertEqual(derived.spacing, source.spacing)
        self.assertEqual(derived.origin, source.origin)
        self.assertEqual(derived.metadata, {"SourceFile": "a.foct", "Enhancement": "adaptive"})
        self.assertNotIn("Enhancement", source.metadata)
        self.assertEqual(derived.issues, source.issues)

        derived.issues.append(Issue(ErrorKind.DEGENERATE_RANGE, "constant"))
        self.assertEqual(len(source.issues), 1)


class TestFileOutcome(unittest.TestCase):

    def test_success(self):
        outcome = FileOutcome.success("a.foct", None, mode="enhance")
        self.assertTrue(outcome.ok)
        self.assertIsNone(outcome.error_kind)
        self.assertEqual(outcome.issues, [])
        self.assertEqual(outcome.matched, {})

    def test_failed(self):
        outcome = FileOutcome.failed("b.foct", ErrorKind.IO, "missing", mode="recover")
        self.assertFalse(outcome.ok)
        self.assertIs(outcome.error_kind, ErrorKind.IO)
        self.assertEqual(outcome.message, "missing")
        self.assertEqual(outcome.mode, "recover")


class TestErrors(unittest.TestCase):

    def test_error_kinds(self):
        self.assertIs(error_kind_of(VolumeReadError("x")), ErrorKind.IO)
        self.assertIs(error_kind_of(FormatUnrecognized(10, 4)), ErrorKind.FORMAT_UNRECOGNIZED)
        self.assertIs(error_kind_of(SerializationFailure("x")), ErrorKind.SERIALIZATION_FAILURE)
        self.assertIs(error_kind_of(FileNotFoundError("x")), ErrorKind.IO)
        self.assertIs(error_kind_of(RuntimeError("x")), ErrorKind.INTERNAL)

    def test_format_unrecognized_message(self):
        exc = FormatUnrecognized(10, 4)
        self.assertEqual(exc.byte_length, 10)
        self.assertEqual(exc.element_size, 4)
        self.assertIn("10 bytes", str(exc))
        self.assertEqual(str(FormatUnrecognized(10, 4, "custom")), "custom")

    def test_error_kind_values(self):
        self.assertEqual(ErrorKind.IO.value, "IOError")
        self.assertEqual(ErrorKind.TARGET_UNAVAILABLE.value, "TargetUnavailable")


if __name__ == "__main__":
    unittest.main()
