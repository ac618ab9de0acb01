from __future__ import annotations


class ProgressTracker:
    """Counts errors found and wrong clicks for the current session."""

    total: int
    max_wrong: int
    errors_found: int
    wrong_attempts: int

    def __init__(self, total: int = 7, max_wrong: int = 3) -> None:
        self.reset(total, max_wrong)

    def reset(self, total: int, max_wrong: int) -> None:
        self.total = total
        self.max_wrong = max_wrong
        self.errors_found = 0
        self.wrong_attempts = 0
        self._found: set[int] = set()

    def already_found(self, index: int) -> bool:
        return index in self._found

    def record_error(self, index: int) -> bool:
        """Count a found error. Returns True when all errors have been found."""
        self._found.add(index)
        self.errors_found = min(self.total, self.errors_found + 1)
        return self.all_found

    def record_wrong_attempt(self) -> bool:
        """Count a wrong click. Returns True when the limit has been reached."""
        self.wrong_attempts = min(self.max_wrong, self.wrong_attempts + 1)
        return self.out_of_attempts

    @property
    def all_found(self) -> bool:
        return self.errors_found >= self.total

    @property
    def out_of_attempts(self) -> bool:
        return self.wrong_attempts >= self.max_wrong

    @property
    def found_indices(self) -> frozenset[int]:
        return frozenset(self._found)
