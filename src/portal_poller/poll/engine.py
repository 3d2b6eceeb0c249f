"""Poll engine — async event loop driving all active poll jobs.

Each job owns its own ``PollController``. The loop always services the most
overdue job, awaits its fetch, then feeds the payload back into the
controller, so observations for one controller never overlap.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from .. import debug
from ..api import PortalClient
from ..visibility import VisibilitySignal, get_signal
from .controller import PollController
from .policy import PollPolicy

log = logging.getLogger(__name__)

Fetcher = Callable[["PollJob"], Awaitable[Any]]


def new_id() -> str:
    return str(uuid.uuid4())[:8]


@dataclass
class PollJob:
    id: str
    name: str
    path: str
    params: dict = field(default_factory=dict)
    policy: PollPolicy = field(default_factory=PollPolicy)
    status: str = "polling"
    # runtime state
    controller: PollController = field(default=None)
    visibility: VisibilitySignal = field(default=None, repr=False)
    created_at: float = field(default_factory=time.time)
    last_fetch_at: float | None = None    # monotonic, end of last fetch attempt
    last_success_at: float | None = None  # wall clock
    last_payload: Any = None
    last_error: str | None = None
    fetch_count: int = 0
    error_count: int = 0
    _force: bool = False

    def __post_init__(self):
        if self.controller is None:
            self.controller = PollController(self.policy, visibility=self.visibility, name=self.id)

    def due_at(self) -> float | None:
        """Monotonic time of the next fetch, or None while paused."""
        interval_ms = self.controller.recommended_interval()
        if interval_ms is None:
            return None
        if self._force or self.last_fetch_at is None:
            return 0.0
        return self.last_fetch_at + interval_ms / 1000

    def describe(self) -> dict:
        return {
            "poll_id": self.id,
            "name": self.name,
            "path": self.path,
            "params": self.params,
            "status": self.status,
            "fetch_count": self.fetch_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_success_at": self.last_success_at,
            **self.controller.snapshot(),
        }


class PollEngine:
    """Manages all active poll jobs in a single async loop."""

    def __init__(self, fetcher: Fetcher = None, client: PortalClient = None, visibility: VisibilitySignal = None):
        self.jobs: dict[str, PollJob] = {}
        self.visibility = visibility or get_signal()
        self._client = client
        self._fetcher = fetcher or self._fetch_from_portal
        self._task: asyncio.Task | None = None
        self._wake_event = asyncio.Event()
        self.visibility.add_listener(self._on_visibility_change)

    @property
    def client(self) -> PortalClient | None:
        return self._client

    async def _fetch_from_portal(self, job: PollJob) -> Any:
        if self._client is None:
            self._client = PortalClient()
        return await self._client.get_json(job.path, job.params, poll_id=job.id)

    def _on_visibility_change(self, visible: bool):
        self._wake_event.set()

    def create_job(self, name: str, path: str, params: dict = None, policy: PollPolicy = None) -> PollJob:
        job = PollJob(
            id=new_id(),
            name=name,
            path=path,
            params=dict(params or {}),
            policy=policy or PollPolicy(),
            visibility=self.visibility,
        )
        self.add_job(job)
        return job

    def add_job(self, job: PollJob):
        self.jobs[job.id] = job
        log.info(f"Added poll job {job.id}: {job.name} → {job.path} every {job.policy.initial_interval_ms}ms")
        debug.log_poll_event(job.id, "CREATED", f"name={job.name}, path={job.path}, policy={job.policy}")
        self._wake_event.set()
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_loop())
        else:
            log.debug("Loop already running, new job will be picked up")

    def get_job(self, job_id: str) -> PollJob | None:
        return self.jobs.get(job_id)

    def cancel_job(self, job_id: str) -> PollJob | None:
        job = self.jobs.pop(job_id, None)
        if job is None:
            return None
        job.status = "cancelled"
        job.controller.dispose()
        log.info(f"Cancelled poll job {job_id}")
        debug.log_poll_event(job_id, "CANCELLED")
        self._wake_event.set()
        return job

    def refresh_job(self, job_id: str) -> PollJob | None:
        """Manual refresh: drop backoff and fetch as soon as the job is visible."""
        job = self.jobs.get(job_id)
        if job is None:
            return None
        job.controller.reset_interval()
        job._force = True
        debug.log_poll_event(job_id, "REFRESH", f"interval reset to {job.controller.current_interval_ms}ms")
        self._wake_event.set()
        return job

    async def close(self):
        """Stop the loop and dispose every controller."""
        self.visibility.remove_listener(self._on_visibility_change)
        for job_id in list(self.jobs):
            self.cancel_job(job_id)
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    def _next_due(self) -> tuple[float, PollJob] | None:
        best = None
        for job in self.jobs.values():
            at = job.due_at()
            if at is not None and (best is None or at < best[0]):
                best = (at, job)
        return best

    async def _run_loop(self):
        log.info("Poll engine loop started")
        while self.jobs:
            self._wake_event.clear()
            next_due = self._next_due()

            if next_due is None:
                # Every job is paused; sleep until visibility or the job set changes
                await self._wake_event.wait()
                continue

            due_at, job = next_due
            wait_time = due_at - time.monotonic()
            if wait_time > 0:
                try:
                    await asyncio.wait_for(self._wake_event.wait(), timeout=wait_time)
                except asyncio.TimeoutError:
                    pass
                continue

            await self._poll(job)

        log.info("Poll engine loop ended (no active jobs)")

    async def _poll(self, job: PollJob):
        job._force = False
        job.fetch_count += 1
        try:
            payload = await self._fetcher(job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.error_count += 1
            job.last_error = str(e)
            log.warning(f"Job {job.id}: fetch failed: {e}")
            debug.log("ERROR", f"[{job.id}] fetch failed: {e}")
            return
        finally:
            job.last_fetch_at = time.monotonic()

        job.last_error = None
        job.last_payload = payload
        job.last_success_at = time.time()
        # No-op if the job was cancelled while the fetch was in flight
        job.controller.on_data_observed(payload)
        log.debug(f"Job {job.id}: next fetch in {job.controller.recommended_interval()}ms")
