"""Pure utility for generating unified diffs between two text strings"""

import difflib


def unified_diff(
    old: str,
    new: str,
    from_label: str = "original",
    to_label: str = "roundtrip",
    context: int = 3,
    ) -> list[str]:
    """Return unified diff lines comparing old to new. Empty list if identical.

    Lines keep their newlines; join with '' for display.
    """
    old_lines = old.splitlines(keepends=True)
    new_lines = new.splitlines(keepends=True)
    return list(
        difflib.unified_diff(old_lines, new_lines, fromfile=from_label, tofile=to_label, n=context)
    )
