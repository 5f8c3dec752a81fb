"""Discrete, totally ordered time steps."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Timeline:
    """A finite sequence of steps addressed by index or label.

    Steps are positions ``0 .. len - 1``; labels default to ``t0, t1, ...``.
    """

    labels: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def of_length(cls, count: int) -> "Timeline":
        if count <= 0:
            raise ValueError("a timeline needs at least one step")
        return cls(labels=tuple(f"t{i}" for i in range(count)))

    @classmethod
    def from_labels(cls, labels: list[str]) -> "Timeline":
        if not labels:
            raise ValueError("a timeline needs at least one step")
        if len(set(labels)) != len(labels):
            raise ValueError("step labels must be unique")
        return cls(labels=tuple(str(label) for label in labels))

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def first(self) -> int:
        return 0

    @property
    def last(self) -> int:
        return len(self.labels) - 1

    def is_first(self, index: int) -> bool:
        return index == self.first

    def is_last(self, index: int) -> bool:
        return index == self.last

    def next(self, index: int) -> int | None:
        """Successor step, or None at the last step."""
        return None if index >= self.last else index + 1

    def prev(self, index: int) -> int | None:
        """Predecessor step, or None at the first step."""
        return None if index <= self.first else index - 1

    def label(self, index: int) -> str:
        return self.labels[index]

    def resolve(self, ref: int | str) -> int:
        """Map a step reference (index or label) to an index."""
        if isinstance(ref, bool):
            raise ValueError(f"invalid step reference: {ref!r}")
        if isinstance(ref, int):
            if 0 <= ref < len(self.labels):
                return ref
            raise ValueError(f"step index out of range: {ref}")
        text = str(ref).strip()
        if text in self.labels:
            return self.labels.index(text)
        if text.isdigit():
            return self.resolve(int(text))
        raise ValueError(f"unknown step: {ref!r}")
