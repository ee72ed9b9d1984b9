"""Class index to juktoborno label mapping.

The mapping ships as a CSV next to the model artifact::

    class_number,typed_juktoborno,described,folder
    0,ক্ক,ক + ক,folder_001

Columns are read by position after the header row. Rows with missing text
fields degrade to empty strings. Rows without a usable class index are
skipped.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING

import pandas as pd

from juktoborno.errors import LoadError

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

MAPPING_COLUMNS = ("class_number", "typed_juktoborno", "described", "folder")


@dataclass(frozen=True)
class LabelMappingEntry:
    """Display metadata for a single model class."""

    class_index: int
    display_label: str
    description: str
    group: str

    @classmethod
    def fallback(cls, class_index: int) -> LabelMappingEntry:
        """Synthetic entry for a class index with no mapping row."""
        return cls(class_index=class_index, display_label=f"Class {class_index}", description="", group="")


def read_mappings(source: str | Path | IO[str]) -> dict[int, LabelMappingEntry]:
    """Read a mapping CSV into entries keyed by class index. The first row is a header.

    Raises:
        OSError, ValueError: Propagated from ``pd.read_csv``.
    """
    try:
        df = pd.read_csv(
            source,
            header=0,
            names=list(MAPPING_COLUMNS),
            index_col=False,
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        return {}
    return parse_frame(df)


def parse_frame(df: pd.DataFrame) -> dict[int, LabelMappingEntry]:
    """Apply the degrade rules to a raw mapping frame."""
    df = df.fillna("")
    for column in MAPPING_COLUMNS:
        df[column] = df[column].astype(str).str.strip()
    df = df[(df != "").any(axis=1)]

    is_integer = df["class_number"].str.fullmatch(r"[+-]?\d+").astype(bool)
    for row, raw in df.loc[~is_integer, "class_number"].items():
        logger.warning("Skipping mapping row %d: invalid class index %r", row + 2, raw)
    df = df[is_integer].assign(class_index=lambda frame: frame["class_number"].astype(int))

    negative = df["class_index"] < 0
    for row, class_index in df.loc[negative, "class_index"].items():
        logger.warning("Skipping mapping row %d: negative class index %d", row + 2, class_index)
    df = df[~negative]

    duplicated = df["class_index"].duplicated(keep="first")
    for row, class_index in df.loc[duplicated, "class_index"].items():
        logger.warning("Duplicate mapping for class %d on row %d ignored", class_index, row + 2)
    df = df[~duplicated]

    return {
        int(record.class_index): LabelMappingEntry(
            class_index=int(record.class_index),
            display_label=record.typed_juktoborno,
            description=record.described,
            group=record.folder,
        )
        for record in df.itertuples(index=False)
    }


class LabelTable:
    """Process-wide, load-once label lookup shared by all classification requests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, LabelMappingEntry] | None = None

    @property
    def is_loaded(self) -> bool:
        return self._entries is not None

    def __len__(self) -> int:
        return len(self._entries) if self._entries is not None else 0

    def load(self, source: str | Path | IO[str]) -> dict[int, LabelMappingEntry]:
        """Populate the table from a CSV path or text stream.

        Repeated calls return the cached table without touching ``source``.

        Raises:
            LoadError: If the source cannot be opened or is not valid UTF-8 CSV.
        """
        with self._lock:
            if self._entries is not None:
                return self._entries

            try:
                entries = read_mappings(source)
            except (OSError, UnicodeDecodeError, pd.errors.ParserError, ValueError) as exc:
                raise LoadError(f"Could not load label mappings from {source!r}: {exc}") from exc

            self._entries = entries
            logger.info("Loaded %d label mappings", len(entries))
            return entries

    def lookup(self, class_index: int) -> LabelMappingEntry | None:
        """Return the entry for ``class_index``, or None if unmapped."""
        if self._entries is None:
            return None
        return self._entries.get(class_index)

    def entry_for(self, class_index: int) -> LabelMappingEntry:
        """Return the entry for ``class_index``, substituting a synthetic label if unmapped."""
        entry = self.lookup(class_index)
        if entry is None:
            return LabelMappingEntry.fallback(class_index)
        return entry
