"""Extra display delay for words carrying punctuation.

Listeners pause after sentence ends and commas, so highlighting such words
late matches perceived speech better. Offsets are in milliseconds.
"""

import re

PUNCTUATION_PATTERN = re.compile(r"[.!?,:;\"'\-]")

DEFAULT_OFFSETS: dict[str, float] = {
    "sentence_end": 200.0,
    "comma": 150.0,
    "quote": 100.0,
    "dash": 100.0,
}

MAX_OFFSET_MS = 500.0


class PunctuationOffsets:
    """Mutable table of per-kind punctuation offsets.

    Each SyncEstimator owns its own table, so adjusting one engine never
    changes another.
    """

    def __init__(self, offsets: dict[str, float] | None = None) -> None:
        self._offsets = dict(DEFAULT_OFFSETS)
        if offsets:
            for kind, value in offsets.items():
                self.set(kind, value)

    def get(self, kind: str) -> float:
        return self._offsets.get(kind, 0.0)

    def set(self, kind: str, offset_ms: float) -> float:
        """Set the offset for `kind`, clamped to [0, 500] ms.

        Raises:
            KeyError: If `kind` is not a known punctuation kind.
        """
        if kind not in self._offsets:
            raise KeyError(f"Unknown punctuation kind '{kind}'")
        clamped = max(0.0, min(MAX_OFFSET_MS, float(offset_ms)))
        self._offsets[kind] = clamped
        return clamped

    def as_dict(self) -> dict[str, float]:
        return dict(self._offsets)

    def offset_for(self, word: str) -> float:
        """Delay for `word` based on the punctuation it carries."""
        if not word or not PUNCTUATION_PATTERN.search(word):
            return 0.0
        if word.endswith((".", "!", "?")):
            return self._offsets["sentence_end"]
        if word.endswith((",", ";")):
            return self._offsets["comma"]
        if '"' in word or "'" in word:
            return self._offsets["quote"]
        if "-" in word:
            return self._offsets["dash"]
        return 0.0
