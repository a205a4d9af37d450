"""Content drift reporting between the stored copy and a fresh network read."""

from __future__ import annotations

from dataclasses import dataclass

PREVIEW_LENGTH = 100


@dataclass(frozen=True)
class ContentDiff:
    """Summary of how incoming content differs from what was stored.

    ``similarity_percent`` is the share of positions holding the same
    character, relative to the longer of the two payloads.
    """

    changed: bool
    previous_length: int
    new_length: int
    size_delta: int
    similarity_percent: float
    previous_preview: str
    new_preview: str

    def to_log(self) -> dict[str, object]:
        return {
            "changed": self.changed,
            "previous_length": self.previous_length,
            "new_length": self.new_length,
            "size_delta": self.size_delta,
            "similarity_percent": self.similarity_percent,
            "previous_preview": self.previous_preview,
            "new_preview": self.new_preview,
        }


def compute_content_diff(previous: str, new: str) -> ContentDiff:
    """
    Compare two payloads position by position.

    Examples:
        >>> diff = compute_content_diff("abcd", "abXd")
        >>> diff.changed, diff.similarity_percent
        (True, 75.0)
        >>> compute_content_diff("same", "same").changed
        False
    """
    longest = max(len(previous), len(new))
    matches = sum(1 for old_char, new_char in zip(previous, new) if old_char == new_char)
    similarity = 100.0 if longest == 0 else round(matches / longest * 100, 1)

    return ContentDiff(
        changed=previous != new,
        previous_length=len(previous),
        new_length=len(new),
        size_delta=len(new) - len(previous),
        similarity_percent=similarity,
        previous_preview=previous[:PREVIEW_LENGTH],
        new_preview=new[:PREVIEW_LENGTH],
    )


__all__ = ["ContentDiff", "compute_content_diff"]
