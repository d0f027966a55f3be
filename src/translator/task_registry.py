"""Registry enforcing at most one active task per session."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from common.cancellation import CancellationToken
from common.schemas import TaskKind
from common.utils import TaskIdUtils

logger = logging.getLogger(__name__)


@dataclass
class Task:
    """In-memory handle of one running job."""

    task_id: str
    session_key: str
    kind: TaskKind
    generation: int
    cancellation_token: CancellationToken = field(default_factory=CancellationToken)


class TaskRegistry:
    """
    Maps each session to its single live task.

    Registering a task for a session that already has one bumps the
    generation and cancels the previous task's token. All mutation happens on
    the event loop thread, so no locking is needed.
    """

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._generation = 0

    def register(
        self, session_key: str, kind: TaskKind, task_id: Optional[str] = None
    ) -> Task:
        """
        Register a new task as the session's sole active task.

        Args:
            session_key: Session the task belongs to
            kind: Kind of work
            task_id: Optional explicit id, generated when omitted

        Returns:
            The registered task
        """
        self._generation += 1
        task = Task(
            task_id=task_id or TaskIdUtils.generate_task_id(kind.value),
            session_key=session_key,
            kind=kind,
            generation=self._generation,
        )

        previous = self._tasks.get(session_key)
        if previous is not None:
            previous.cancellation_token.cancel(f"preempted by {task.task_id}")
            logger.info(
                f"🔄 Task preempted for {session_key}: "
                f"{previous.task_id} -> {task.task_id}"
            )

        self._tasks[session_key] = task
        return task

    def is_active(self, task: Task) -> bool:
        """Whether ``task`` is still the active task of its session."""
        current = self._tasks.get(task.session_key)
        return (
            current is not None
            and current.task_id == task.task_id
            and current.generation == task.generation
        )

    def release(self, task: Task) -> bool:
        """
        Drop ``task`` from the registry if it is still active.

        Returns:
            True if the task was removed
        """
        if not self.is_active(task):
            return False
        del self._tasks[task.session_key]
        return True

    def get(self, session_key: str) -> Optional[Task]:
        return self._tasks.get(session_key)

    def abort_session(self, session_key: str, reason: str = "aborted") -> bool:
        """
        Cancel and drop the active task of a session.

        Returns:
            True if a task was aborted
        """
        task = self._tasks.pop(session_key, None)
        if task is None:
            return False
        task.cancellation_token.cancel(reason)
        logger.info(f"🛑 Task aborted for {session_key}: {task.task_id} ({reason})")
        return True

    def abort_all(self, reason: str = "shutdown") -> int:
        """Cancel every active task. Returns the number aborted."""
        session_keys = list(self._tasks)
        for session_key in session_keys:
            self.abort_session(session_key, reason)
        return len(session_keys)

    def active_sessions(self) -> List[str]:
        return list(self._tasks)
