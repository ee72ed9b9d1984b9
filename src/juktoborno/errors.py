"""Exception hierarchy for the classification pipeline.

Every pipeline stage raises one of these to its immediate caller. The HTTP
layer maps them to status codes in :mod:`juktoborno.api.middleware`.
"""

from __future__ import annotations


class JuktobornoError(Exception):
    """Base class for all pipeline errors."""


class LoadError(JuktobornoError):
    """The label mapping table could not be read or decoded."""


class ModelLoadError(JuktobornoError):
    """The model artifact is missing, unreachable, or corrupt."""


class DecodeError(JuktobornoError, ValueError):
    """The input image could not be decoded."""


class ShapeMismatchError(JuktobornoError):
    """A tensor does not match the loaded model's declared input shape."""


class NotLoadedError(JuktobornoError):
    """Inference was attempted before a successful model load."""


class InvalidArgumentError(JuktobornoError, ValueError):
    """A caller violated an argument contract (e.g. non-positive top_k)."""


class InferenceTimeoutError(JuktobornoError, TimeoutError):
    """Loading or inference exceeded its configured time bound."""
