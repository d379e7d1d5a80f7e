"""
Gemeinsame Bausteine aller Flows: Schritt-Status, Schritt-Protokoll
und die Textform für den Log-Eintrag ("<Schritt> [Erfolg]").
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from mgomanager.config import LOCAL_TZ


class FlowStepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"
    SKIPPED = "skipped"


_STATUS_LABELS = {
    FlowStepStatus.SUCCESS: "Erfolg",
    FlowStepStatus.WARNING: "Warnung",
    FlowStepStatus.FAILED: "Fehler",
    FlowStepStatus.SKIPPED: "Übersprungen",
}


@dataclass
class FlowStep:
    """Ein einzelner Schritt im Flow."""
    name: str
    status: FlowStepStatus = FlowStepStatus.PENDING
    detail: str = ""
    duration_ms: int = 0


def start_step(step: FlowStep) -> int:
    step.status = FlowStepStatus.RUNNING
    return now_ms()


def finish_step(step: FlowStep, status: FlowStepStatus, started: int, detail: str = "") -> None:
    step.status = status
    step.detail = detail
    step.duration_ms = now_ms() - started


def fail_open_steps(steps: list[FlowStep], detail: str) -> None:
    """Laufenden Schritt auf FAILED, alle ausstehenden auf SKIPPED."""
    for step in steps:
        if step.status == FlowStepStatus.RUNNING:
            step.status = FlowStepStatus.FAILED
            step.detail = detail
        elif step.status == FlowStepStatus.PENDING:
            step.status = FlowStepStatus.SKIPPED


def step_summary(steps: list[FlowStep]) -> str:
    parts = []
    for s in steps:
        icon = {"success": "+", "warning": "~", "failed": "!", "skipped": "-"}.get(s.status.value, "?")
        parts.append(f"[{icon}] {s.name}")
    return " | ".join(parts)


def render_steps(title: str, steps: list[FlowStep]) -> str:
    """Mehrzeiliger Protokolltext für den details-Teil des Log-Eintrags."""
    lines = [title, ""]
    for i, s in enumerate(steps, start=1):
        if s.status == FlowStepStatus.PENDING:
            continue
        label = _STATUS_LABELS.get(s.status, s.status.value)
        lines.append(f"{i}. {s.name} .. [{label}]")
        if s.detail and s.status in (FlowStepStatus.FAILED, FlowStepStatus.WARNING):
            lines.append(f"Fehlerdetails: {s.detail}")
    return "\n".join(lines)


def now_ms() -> int:
    """Aktuelle Zeit in Millisekunden."""
    return int(datetime.now(LOCAL_TZ).timestamp() * 1000)


def now_iso() -> str:
    return datetime.now(LOCAL_TZ).isoformat()
