"""Failure taxonomy: classification, user messages, result invariant."""
import unittest

from fusion.services.image_generation.base import (
    ConfigurationError,
    DownloadError,
    FusedImage,
    GenerationResult,
    ImageReadError,
    InputValidationError,
    NoImageProducedError,
    SafetyBlockedError,
    TransportError,
)
from fusion.services.image_generation.failure_types import FailureType, classify_failure, user_message


class TestClassifyFailure(unittest.TestCase):
    def test_typed_errors(self):
        cases = {
            ConfigurationError("x"): FailureType.CONFIGURATION,
            TransportError("x"): FailureType.TRANSPORT,
            SafetyBlockedError("x"): FailureType.SAFETY_BLOCKED,
            NoImageProducedError("x"): FailureType.NO_IMAGE_PRODUCED,
            InputValidationError("x"): FailureType.VALIDATION,
            ImageReadError("x"): FailureType.VALIDATION,
            DownloadError("x"): FailureType.DOWNLOAD,
        }
        for exc, expected in cases.items():
            self.assertEqual(classify_failure(exc), expected, type(exc).__name__)

    def test_unknown_exception_is_transport(self):
        self.assertEqual(classify_failure(RuntimeError("socket closed")), FailureType.TRANSPORT)
        self.assertEqual(classify_failure(KeyError("candidates")), FailureType.TRANSPORT)

    def test_every_kind_has_message(self):
        for kind in FailureType:
            message = user_message(kind)
            self.assertTrue(message.title)
            self.assertTrue(message.message)

    def test_distinct_safety_copy(self):
        self.assertEqual(user_message(FailureType.SAFETY_BLOCKED).title, "Content Policy Violation")
        self.assertNotEqual(
            user_message(FailureType.SAFETY_BLOCKED).message,
            user_message(FailureType.TRANSPORT).message,
        )
        self.assertIn("right-click", user_message(FailureType.DOWNLOAD).message)


class TestGenerationResult(unittest.TestCase):
    def test_exactly_one_side(self):
        image = FusedImage(media_type="image/png", data="QQ==")
        self.assertTrue(GenerationResult(image=image).ok)
        self.assertFalse(GenerationResult(failure_type=FailureType.TRANSPORT).ok)
        with self.assertRaises(ValueError):
            GenerationResult()
        with self.assertRaises(ValueError):
            GenerationResult(image=image, failure_type=FailureType.TRANSPORT)
