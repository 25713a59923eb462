from typing import Protocol


class CodeHasherPort(Protocol):
    def hash(self, code: str) -> str:
        """One-way adaptive hash of the numeric code."""

    def compare(self, code: str, digest: str) -> bool:
        """Constant-time check of `code` against `digest`."""
