"""Top-K ranking of interpreted scores joined with label metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from juktoborno.errors import InvalidArgumentError

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    from numpy.typing import NDArray

    from juktoborno.ml.labels import LabelTable


@dataclass(frozen=True)
class RankedPrediction:
    """A single ranked class with its confidence and display metadata."""

    class_index: int
    confidence: float
    display_label: str
    description: str
    group: str


@dataclass(frozen=True)
class ClassificationResult:
    """Ordered predictions, best first."""

    predictions: tuple[RankedPrediction, ...]

    @property
    def primary(self) -> RankedPrediction:
        """The single highest-ranked prediction."""
        return self.predictions[0]

    def __len__(self) -> int:
        return len(self.predictions)


def rank(
    scores: Sequence[float] | NDArray[np.floating],
    label_table: LabelTable,
    top_k: int,
) -> ClassificationResult:
    """Sort scores descending (ties by ascending class index) and keep the top ``top_k``.

    ``top_k`` larger than the number of classes is clamped.

    Raises:
        InvalidArgumentError: If ``top_k`` is not positive or ``scores`` is empty.
    """
    if top_k <= 0:
        raise InvalidArgumentError(f"top_k must be positive, got {top_k}")

    confidences = [float(score) for score in scores]
    if not confidences:
        raise InvalidArgumentError("Cannot rank an empty score vector")

    order = sorted(range(len(confidences)), key=lambda idx: (-confidences[idx], idx))

    predictions: list[RankedPrediction] = []
    for idx in order[:top_k]:
        entry = label_table.entry_for(idx)
        predictions.append(
            RankedPrediction(
                class_index=idx,
                confidence=confidences[idx],
                display_label=entry.display_label,
                description=entry.description,
                group=entry.group,
            )
        )
    return ClassificationResult(predictions=tuple(predictions))
