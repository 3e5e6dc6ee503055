from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import RLock
from typing import Any, Dict, List, Optional

from questline.core.errors import GameRuleError


class TaskKind(str, Enum):
    NARRATION = "narration"
    PLAYER_DECISION = "player_decision"
    HINT = "hint"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    TaskStatus.QUEUED: {TaskStatus.RUNNING},
    TaskStatus.RUNNING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}

# Fields that may still be written after a task reaches a terminal status.
FORENSIC_FIELDS = {"discarded_reason", "submitted", "submit_error"}


@dataclass(slots=True)
class DecisionTask:
    task_id: str
    game_id: str
    kind: TaskKind
    model: str
    player_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    status: TaskStatus = TaskStatus.QUEUED
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    issued_phase: Optional[str] = None
    issued_round: Optional[int] = None
    discarded_reason: Optional[str] = None
    submitted: bool = False
    submit_error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def terminal(self) -> bool:
        return self.status in {TaskStatus.COMPLETED, TaskStatus.FAILED}

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "game_id": self.game_id,
            "player_id": self.player_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "model": self.model,
            "payload": dict(self.payload),
            "result": self.result,
            "error": self.error,
            "issued_phase": self.issued_phase,
            "issued_round": self.issued_round,
            "discarded_reason": self.discarded_reason,
            "submitted": self.submitted,
            "submit_error": self.submit_error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class TaskStore:
    """In-memory decision task table with guarded status transitions."""

    def __init__(self) -> None:
        self._tasks: Dict[str, DecisionTask] = {}
        self._lock = RLock()

    def queue(
        self,
        game_id: str,
        kind: TaskKind,
        model: str,
        player_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        issued_phase: Optional[str] = None,
        issued_round: Optional[int] = None,
    ) -> DecisionTask:
        task = DecisionTask(
            task_id=uuid.uuid4().hex,
            game_id=game_id,
            kind=kind,
            model=model,
            player_id=player_id,
            payload=dict(payload or {}),
            issued_phase=issued_phase,
            issued_round=issued_round,
        )
        with self._lock:
            self._tasks[task.task_id] = task
        return task

    def get(self, task_id: str) -> Optional[DecisionTask]:
        with self._lock:
            return self._tasks.get(task_id)

    def must_get(self, task_id: str) -> DecisionTask:
        task = self.get(task_id)
        if task is None:
            raise KeyError(f"task not found: {task_id}")
        return task

    def _transition(self, task_id: str, status: TaskStatus) -> DecisionTask:
        with self._lock:
            task = self.must_get(task_id)
            if status not in _ALLOWED_TRANSITIONS[task.status]:
                raise GameRuleError(f"illegal task transition {task.status.value} -> {status.value}")
            task.status = status
            return task

    def mark_running(self, task_id: str) -> DecisionTask:
        task = self._transition(task_id, TaskStatus.RUNNING)
        task.started_at = datetime.utcnow()
        return task

    def complete(self, task_id: str, result: Dict[str, Any]) -> DecisionTask:
        task = self._transition(task_id, TaskStatus.COMPLETED)
        task.result = result
        task.finished_at = datetime.utcnow()
        return task

    def fail(self, task_id: str, error: str) -> DecisionTask:
        task = self._transition(task_id, TaskStatus.FAILED)
        task.error = error
        task.finished_at = datetime.utcnow()
        return task

    def annotate(self, task_id: str, **fields: Any) -> DecisionTask:
        with self._lock:
            task = self.must_get(task_id)
            unknown = set(fields) - FORENSIC_FIELDS
            if unknown:
                raise GameRuleError(f"not a forensic field: {', '.join(sorted(unknown))}")
            for name, value in fields.items():
                setattr(task, name, value)
            return task

    def by_game(self, game_id: str, status: Optional[TaskStatus] = None) -> List[DecisionTask]:
        with self._lock:
            tasks = [t for t in self._tasks.values() if t.game_id == game_id]
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        return tasks

    def by_status(self, status: TaskStatus) -> List[DecisionTask]:
        with self._lock:
            return [t for t in self._tasks.values() if t.status == status]
