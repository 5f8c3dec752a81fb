"""
Violation event logging for online monitoring.

This module provides:
- ViolationEvent envelopes for findings emitted while a step stream runs
- Append-only logging in JSON Lines format
- Filtered reading and human-readable formatting
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .history.rules import Violation
from .models import EntityKind, EntityRef


@dataclass
class ViolationEvent:
    """A single finding with the time it was observed."""

    timestamp: str
    violation: Violation
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = {"timestamp": self.timestamp, "violation": self.violation.to_dict()}
        if self.metadata:
            d["metadata"] = self.metadata
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "ViolationEvent":
        """Create from dictionary."""
        v = data["violation"]
        entity = None
        if v.get("entity"):
            kind, _, name = str(v["entity"]).partition(":")
            entity = EntityRef(EntityKind(kind), name)
        return cls(
            timestamp=data["timestamp"],
            violation=Violation(
                level=v["level"],
                rule=v["rule"],
                message=v.get("message", ""),
                entity=entity,
                step=v.get("step"),
                invariant=v.get("invariant"),
            ),
            metadata=data.get("metadata", {}),
        )


def log_event(
    log_path: Path,
    violation: Violation,
    metadata: dict[str, Any] | None = None,
) -> ViolationEvent:
    """
    Append a finding to the event log.

    Args:
        log_path: Path to the JSON Lines log file (parents are created)
        violation: The finding to record
        metadata: Additional context (e.g. snapshot path)

    Returns:
        The created event envelope
    """
    envelope = ViolationEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        violation=violation,
        metadata=metadata or {},
    )
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(envelope.to_dict()) + "\n")
    return envelope


def read_events_log(
    log_path: Path,
    last_n: int | None = None,
    rules: list[str] | None = None,
) -> list[ViolationEvent]:
    """
    Read events from the log with optional filtering.

    Args:
        log_path: Path to the JSON Lines log file
        last_n: If specified, return only the last N entries
        rules: Filter to specific rule ids

    Returns:
        List of event envelopes (oldest first)
    """
    if not log_path.exists():
        return []

    entries = []
    with log_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                envelope = ViolationEvent.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, ValueError):
                continue  # Skip malformed lines
            if rules and envelope.violation.rule not in rules:
                continue
            entries.append(envelope)

    if last_n is not None:
        return entries[-last_n:]
    return entries


def format_event(envelope: ViolationEvent) -> str:
    """Format an event envelope for human-readable display."""
    v = envelope.violation
    icon = {"error": "x", "warning": "!", "info": "i"}.get(v.level, "?")
    step = f"@{v.step}" if v.step is not None else ""
    target = str(v.entity) if v.entity else "history"
    lines = [f"{icon} [{v.rule}] {target}{step}", f"  {v.message}"]
    if v.invariant:
        lines.append(f"  invariant: {v.invariant}")
    return "\n".join(lines)
