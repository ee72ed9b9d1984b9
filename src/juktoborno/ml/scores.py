"""Interpretation of raw model output scores.

Model builds in use disagree on their output convention: some end with a
softmax layer and emit probabilities, others emit raw logits. The convention
is detected on every call from the sum of the scores.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from juktoborno.errors import InvalidArgumentError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

PROBABILITY_SUM_TOLERANCE: float = 0.1


def softmax(logits: NDArray[np.float64]) -> NDArray[np.float64]:
    """Numerically stable softmax over a 1-D vector."""
    exp = np.exp(logits - logits.max())
    result: NDArray[np.float64] = exp / exp.sum()
    return result


def looks_like_probabilities(scores: NDArray[np.float64]) -> bool:
    """True if the scores already sum to 1.0 within the tolerance."""
    return bool(abs(float(scores.sum()) - 1.0) <= PROBABILITY_SUM_TOLERANCE)


def interpret(raw_scores: Sequence[float] | NDArray[np.floating]) -> NDArray[np.float64]:
    """Return a probability-like vector the same length as ``raw_scores``.

    Scores summing to within 0.1 of 1.0 pass through unchanged; anything
    else is treated as logits and softmaxed.

    Raises:
        InvalidArgumentError: If ``raw_scores`` is empty or holds NaN or
            infinite values.
    """
    scores = np.asarray(raw_scores, dtype=np.float64).ravel()
    if scores.size == 0:
        raise InvalidArgumentError("Cannot interpret an empty score vector")
    if not np.all(np.isfinite(scores)):
        raise InvalidArgumentError("Score vector contains non-finite values")

    if looks_like_probabilities(scores):
        return scores.copy()
    return softmax(scores)
