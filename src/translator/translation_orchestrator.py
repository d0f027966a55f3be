"""Translation orchestration: one active job per session, resumable chunk loop."""

import asyncio
import inspect
import logging
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set

from common.errors import TaskCancelledError, classify_error, is_retryable_error
from common.retry_utils import RetryExecutor
from common.schemas import (
    EventType,
    JobSnapshot,
    JobStatus,
    RefineJobRequest,
    Segment,
    SourceChunkCheckpoint,
    TaskKind,
    TokenUsage,
    TranslateJobRequest,
    TranslationConfig,
)
from common.transcript_parser import (
    build_transcript_fingerprint,
    filter_new_segments,
    plan_chunks,
)
from common.utils import MathUtils
from translator.checkpoint_builder import build_source_chunk_checkpoints
from translator.error_handler import describe_job_error
from translator.event_helpers import EventBus, create_job_event
from translator.job_store import JobStore
from translator.resume_resolver import clamp_chunk_index, resolve_resume_state
from translator.save_queue import PartialSaveQueue
from translator.schemas import ChunkContext, JobOutcome
from translator.task_registry import Task, TaskRegistry

logger = logging.getLogger(__name__)


def build_previous_context(segments: List[Segment], count: int) -> Optional[str]:
    """
    Join the text of the last ``count`` segments into a rolling context.

    Returns:
        Context string, or None when there is nothing to carry over
    """
    if count <= 0 or not segments:
        return None
    context = " ".join(segment.text for segment in segments[-count:]).strip()
    return context or None


class JobHandle:
    """Handle returned when a job starts; the result arrives via ``wait``."""

    def __init__(self, task: Task, job: "asyncio.Task[JobOutcome]"):
        self.task = task
        self._job = job

    @property
    def task_id(self) -> str:
        return self.task.task_id

    @property
    def session_key(self) -> str:
        return self.task.session_key

    def done(self) -> bool:
        return self._job.done()

    async def wait(self) -> JobOutcome:
        """Wait for the job to finish and return its outcome."""
        return await self._job

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Request cooperative cancellation of the job."""
        self.task.cancellation_token.cancel(reason)


class TaskOrchestrator:
    """
    Runs translate and refine jobs with at most one active job per session.

    Starting a job for a session that already has one preempts it: the old
    task's token is cancelled and the new job waits for the old one to wind
    down before reading the job store. Chunks run strictly in order; each
    completed chunk queues a partial snapshot and the finished job writes a
    final one. Aborts and failures are returned as outcomes, never raised.
    """

    def __init__(
        self,
        job_store: JobStore,
        translator: Any,
        usage_sink: Any = None,
        event_bus: Optional[EventBus] = None,
        is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    ):
        """
        Initialize the orchestrator.

        Args:
            job_store: Snapshot persistence
            translator: Chunk translator exposing translate_chunk() and refine()
            usage_sink: Optional object with record(usage), sync or async
            event_bus: Optional bus receiving job events
            is_retryable: Retry classifier handed to RetryExecutor
        """
        self.job_store = job_store
        self.translator = translator
        self.usage_sink = usage_sink
        self.event_bus = event_bus
        self.is_retryable = is_retryable
        self.registry = TaskRegistry()
        self._session_jobs: Dict[str, asyncio.Task] = {}
        self._jobs: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start_translate(self, request: TranslateJobRequest) -> JobHandle:
        """
        Begin or resume translating a transcript.

        Returns immediately. Registration happens before any suspension point,
        so a job started right after this call preempts this one.
        """
        return self._start(
            request.session_key,
            TaskKind.TRANSLATE,
            lambda task, previous: self._run_translate(task, request, previous),
        )

    def start_refine(self, request: RefineJobRequest) -> JobHandle:
        """Begin re-segmenting a draft translation against the original timing."""
        return self._start(
            request.session_key,
            TaskKind.REFINE,
            lambda task, previous: self._run_refine(task, request, previous),
        )

    def abort_session(self, session_key: str, reason: str = "aborted by caller") -> bool:
        """Cancel the active job of a session. Returns True if one was running."""
        return self.registry.abort_session(session_key, reason)

    async def abort_and_wait(
        self, session_key: str, reason: str = "aborted by caller"
    ) -> bool:
        """
        Cancel the active job of a session and wait until it has wound down.

        Once this returns, the job's queued partial saves have been written,
        so the session's snapshot can be deleted without being written back.

        Returns:
            True if a running job was aborted
        """
        aborted = self.registry.abort_session(session_key, reason)
        job = self._session_jobs.get(session_key)
        if job is not None and not job.done():
            await asyncio.wait({job})
        return aborted

    def is_running(self, session_key: str) -> bool:
        return self.registry.get(session_key) is not None

    async def shutdown(self) -> None:
        """Abort every job and wait for all of them to wind down."""
        aborted = self.registry.abort_all("shutdown")
        if self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)
        logger.info(f"🛑 Orchestrator shut down ({aborted} job(s) aborted)")

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def _start(self, session_key: str, kind: TaskKind, runner) -> JobHandle:
        previous_job = self._session_jobs.get(session_key)
        task = self.registry.register(session_key, kind)

        job = asyncio.create_task(runner(task, previous_job))
        self._session_jobs[session_key] = job
        self._jobs.add(job)
        job.add_done_callback(partial(self._forget_job, session_key))

        logger.info(f"🚀 Started {kind.value} job {task.task_id} for {session_key}")
        return JobHandle(task, job)

    def _forget_job(self, session_key: str, job: asyncio.Task) -> None:
        self._jobs.discard(job)
        if self._session_jobs.get(session_key) is job:
            del self._session_jobs[session_key]

    def _ensure_active(self, task: Task) -> None:
        if not self.registry.is_active(task):
            raise TaskCancelledError(f"Task {task.task_id} is no longer active")
        task.cancellation_token.raise_if_cancelled()

    async def _wait_for_previous(
        self, task: Task, previous_job: Optional[asyncio.Task]
    ) -> None:
        if previous_job is not None and not previous_job.done():
            logger.info(
                f"⏳ Waiting for preempted job of {task.session_key} to wind down"
            )
            await asyncio.wait({previous_job})
        self._ensure_active(task)

    async def _emit(
        self, event_type: EventType, task: Task, payload: Optional[Dict[str, Any]] = None
    ) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(
            create_job_event(event_type, task.session_key, task.task_id, payload)
        )

    def _retry_notifier(self, task: Task, phase: str, chunk_index: int):
        async def notify(attempt: int, delay: float, error: Exception) -> None:
            await self._emit(
                EventType.RETRYING,
                task,
                {
                    "attempt": attempt,
                    "delay": delay,
                    "phase": phase,
                    "chunk_index": chunk_index,
                    "error": str(error),
                },
            )

        return notify

    async def _record_usage(self, usage: TokenUsage) -> None:
        if self.usage_sink is None:
            return
        try:
            result = self.usage_sink.record(usage)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"⚠️  Failed to record token usage: {e}")

    async def _load_snapshot(self, session_key: str) -> Optional[JobSnapshot]:
        try:
            return await self.job_store.load(session_key)
        except Exception as e:
            logger.warning(f"⚠️  Failed to load snapshot, starting fresh: {e}")
            return None

    def _retry_executor(self, config: TranslationConfig) -> RetryExecutor:
        return RetryExecutor(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            is_retryable=self.is_retryable,
        )

    async def _finish_aborted(self, task: Task, usage: TokenUsage) -> JobOutcome:
        logger.info(f"🛑 Job {task.task_id} aborted for {task.session_key}")
        await self._emit(EventType.ABORTED, task)
        return JobOutcome(
            status=JobStatus.ABORTED,
            task_id=task.task_id,
            session_key=task.session_key,
            usage=usage,
        )

    async def _finish_failed(
        self, task: Task, error: Exception, usage: TokenUsage
    ) -> JobOutcome:
        status, message = describe_job_error(error)
        error_code = classify_error(error).value
        await self._emit(
            EventType.FAILED,
            task,
            {"error": message, "error_code": error_code, "status": status},
        )
        return JobOutcome(
            status=JobStatus.FAILED,
            task_id=task.task_id,
            session_key=task.session_key,
            usage=usage,
            error=message,
            error_code=error_code,
        )

    # ------------------------------------------------------------------
    # Translate
    # ------------------------------------------------------------------

    @staticmethod
    def _is_cache_hit(cached: Optional[JobSnapshot], fingerprint: str) -> bool:
        if cached is None or cached.is_partial:
            return False
        return (
            cached.is_refined
            or not cached.transcript_fingerprint
            or cached.transcript_fingerprint == fingerprint
        )

    @staticmethod
    def _build_snapshot(
        request: TranslateJobRequest,
        translations: List[Segment],
        is_partial: bool,
        completed_chunk_count: int,
        fingerprint: str,
        checkpoints: List[SourceChunkCheckpoint],
    ) -> JobSnapshot:
        return JobSnapshot(
            session_key=request.session_key,
            content_id=request.content_id,
            translations=list(translations),
            is_partial=is_partial,
            completed_chunk_count=completed_chunk_count,
            transcript_fingerprint=fingerprint,
            source_chunk_checkpoints=list(checkpoints),
            title=request.title,
            source_lang=request.source_lang,
            target_lang=request.target_lang,
        )

    async def _run_translate(
        self,
        task: Task,
        request: TranslateJobRequest,
        previous_job: Optional[asyncio.Task],
    ) -> JobOutcome:
        token = task.cancellation_token
        config = request.config
        usage = TokenUsage()
        save_queue: Optional[PartialSaveQueue] = None

        try:
            await self._wait_for_previous(task, previous_job)

            chunks = plan_chunks(
                request.segments, config.soft_token_limit, config.hard_token_limit
            )
            total_chunks = len(chunks)
            fingerprint = build_transcript_fingerprint(request.segments)
            checkpoints = build_source_chunk_checkpoints(chunks)

            translations: List[Segment] = []
            start_index = 0
            previous_context: Optional[str] = None

            if request.resume_hints is not None:
                hints = request.resume_hints
                start_index = clamp_chunk_index(hints.start_chunk_index, total_chunks)
                translations = list(hints.initial_translations)
                previous_context = hints.initial_previous_context
                logger.info(f"🔄 Resuming from caller hints at chunk {start_index}")
            else:
                cached = await self._load_snapshot(task.session_key)
                self._ensure_active(task)

                if self._is_cache_hit(cached, fingerprint):
                    logger.info(f"✅ Serving {task.session_key} from cache")
                    await self._emit(
                        EventType.COMPLETED,
                        task,
                        {
                            "segments": [s.model_dump() for s in cached.translations],
                            "usage": usage.model_dump(),
                            "from_cache": True,
                        },
                    )
                    return JobOutcome(
                        status=JobStatus.COMPLETED,
                        task_id=task.task_id,
                        session_key=task.session_key,
                        segments=list(cached.translations),
                        usage=usage,
                        from_cache=True,
                    )

                if cached is not None and config.resume_enabled:
                    resolution = resolve_resume_state(cached, chunks, fingerprint)
                    start_index = resolution.start_chunk_index
                    translations = list(resolution.initial_translations)
                    logger.info(
                        f"🔄 Resuming {task.session_key} at chunk "
                        f"{start_index + 1}/{total_chunks} ({resolution.reason})"
                    )
                elif cached is not None:
                    logger.info(
                        f"Resume disabled, restarting {task.session_key} from chunk 1"
                    )

            if previous_context is None:
                previous_context = build_previous_context(
                    translations, config.context_segments
                )

            save_queue = PartialSaveQueue(
                self.job_store,
                task.session_key,
                index_registered=start_index > 0 or bool(translations),
            )
            executor = self._retry_executor(config)

            for chunk_index in range(start_index, total_chunks):
                self._ensure_active(task)

                chunk_context = ChunkContext(
                    target_lang=request.target_lang,
                    source_lang=request.source_lang,
                    thinking_level=config.thinking_level,
                    previous_context=previous_context,
                    chunk_index=chunk_index,
                    total_chunks=total_chunks,
                )
                logger.info(
                    f"🔄 Translating chunk {chunk_index + 1}/{total_chunks} "
                    f"({len(chunks[chunk_index])} segments)"
                )
                result = await executor.run(
                    partial(
                        self.translator.translate_chunk,
                        chunks[chunk_index],
                        chunk_context,
                        token,
                    ),
                    on_retry=self._retry_notifier(task, "translate", chunk_index),
                    cancellation_token=token,
                )

                fresh = filter_new_segments(translations, result.segments)
                translations.extend(fresh)
                usage.add(result.usage)
                await self._record_usage(result.usage)
                previous_context = (
                    build_previous_context(translations, config.context_segments)
                    or previous_context
                )

                save_queue.enqueue(
                    self._build_snapshot(
                        request,
                        translations,
                        is_partial=True,
                        completed_chunk_count=chunk_index + 1,
                        fingerprint=fingerprint,
                        checkpoints=checkpoints[: chunk_index + 1],
                    )
                )
                logger.info(
                    f"✅ Completed chunk {chunk_index + 1}/{total_chunks} "
                    f"({len(fresh)} new segments)"
                )
                await self._emit(
                    EventType.CHUNK_COMPLETED,
                    task,
                    {
                        "chunk_index": chunk_index,
                        "total_chunks": total_chunks,
                        "completed_chunks": chunk_index + 1,
                        "progress": MathUtils.calculate_percentage(
                            chunk_index + 1, total_chunks
                        ),
                        "segments": [s.model_dump() for s in fresh],
                    },
                )

                if chunk_index < total_chunks - 1 and config.inter_chunk_delay > 0:
                    await token.sleep(config.inter_chunk_delay)

            await save_queue.drain()
            await self.job_store.save_full(
                task.session_key,
                self._build_snapshot(
                    request,
                    translations,
                    is_partial=False,
                    completed_chunk_count=total_chunks,
                    fingerprint=fingerprint,
                    checkpoints=checkpoints,
                ),
            )

            logger.info(
                f"✅ Job {task.task_id} completed: {len(translations)} segments "
                f"(in: {usage.input_tokens}, out: {usage.billable_output_tokens})"
            )
            await self._emit(
                EventType.COMPLETED,
                task,
                {
                    "segments": [s.model_dump() for s in translations],
                    "usage": usage.model_dump(),
                    "from_cache": False,
                },
            )
            return JobOutcome(
                status=JobStatus.COMPLETED,
                task_id=task.task_id,
                session_key=task.session_key,
                segments=translations,
                usage=usage,
            )

        except TaskCancelledError:
            if save_queue is not None:
                await save_queue.drain()
            return await self._finish_aborted(task, usage)
        except Exception as e:
            if save_queue is not None:
                await save_queue.drain()
            logger.error(f"❌ Job {task.task_id} failed: {e}")
            return await self._finish_failed(task, e, usage)
        finally:
            self.registry.release(task)

    # ------------------------------------------------------------------
    # Refine
    # ------------------------------------------------------------------

    async def _resolve_draft_text(self, request: RefineJobRequest) -> str:
        if request.draft_text:
            return request.draft_text

        cached = await self._load_snapshot(request.session_key)
        if cached is None or not cached.translations:
            raise ValueError(
                f"No draft translation available to refine for {request.session_key}"
            )
        return " ".join(segment.text for segment in cached.translations)

    async def _run_refine(
        self,
        task: Task,
        request: RefineJobRequest,
        previous_job: Optional[asyncio.Task],
    ) -> JobOutcome:
        token = task.cancellation_token
        usage = TokenUsage()

        try:
            await self._wait_for_previous(task, previous_job)
            draft_text = await self._resolve_draft_text(request)
            self._ensure_active(task)

            executor = self._retry_executor(request.config)
            result = await executor.run(
                partial(
                    self.translator.refine,
                    request.original_segments,
                    draft_text,
                    token,
                    request.config.thinking_level,
                ),
                on_retry=self._retry_notifier(task, "refine", 0),
                cancellation_token=token,
            )
            usage.add(result.usage)
            await self._record_usage(result.usage)
            self._ensure_active(task)

            await self.job_store.save_full(
                task.session_key,
                JobSnapshot(
                    session_key=request.session_key,
                    content_id=request.content_id,
                    translations=list(result.segments),
                    is_partial=False,
                    is_refined=True,
                    title=request.title,
                    source_lang=request.source_lang,
                    target_lang=request.target_lang,
                ),
            )

            logger.info(
                f"✅ Refine job {task.task_id} completed: {len(result.segments)} segments"
            )
            await self._emit(
                EventType.COMPLETED,
                task,
                {
                    "segments": [s.model_dump() for s in result.segments],
                    "usage": usage.model_dump(),
                    "from_cache": False,
                    "is_refined": True,
                },
            )
            return JobOutcome(
                status=JobStatus.COMPLETED,
                task_id=task.task_id,
                session_key=task.session_key,
                segments=list(result.segments),
                usage=usage,
            )

        except TaskCancelledError:
            return await self._finish_aborted(task, usage)
        except Exception as e:
            logger.error(f"❌ Refine job {task.task_id} failed: {e}")
            return await self._finish_failed(task, e, usage)
        finally:
            self.registry.release(task)
