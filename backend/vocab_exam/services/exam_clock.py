import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from vocab_exam.core.config import settings
from vocab_exam.core.exceptions import CollaboratorError, VocabExamError
from vocab_exam.models.exam_session import ExamSession, ExamState
from vocab_exam.services.exam_service import ExamService

logger = logging.getLogger(__name__)

OnTick = Callable[[ExamSession], Awaitable[None]]
OnError = Callable[[VocabExamError], Awaitable[None]]


class ExamClock:
    """
    Feeds one tick per interval into ExamService for a single exam.

    Every listener sees each ticked session. A failed tick is reported to
    the listeners' ``on_error`` and stops the clock; it is not retried. A
    later successful submit can ``start`` it again. The clock also stops
    once the exam has no live session, e.g. after completion.
    """

    def __init__(
        self,
        service: ExamService,
        exam_id: str,
        on_tick: Optional[OnTick] = None,
        interval: Optional[float] = None,
        on_error: Optional[OnError] = None,
    ):
        self.service = service
        self.exam_id = exam_id
        self.interval = settings.TICK_INTERVAL_SECONDS if interval is None else interval
        self._listeners: List[Tuple[OnTick, Optional[OnError]]] = []
        self._task: Optional[asyncio.Task] = None
        self._restart = asyncio.Event()
        if on_tick is not None or on_error is not None:
            self.add_listener(on_tick, on_error)

    def add_listener(self, on_tick: Optional[OnTick], on_error: Optional[OnError] = None) -> None:
        self._listeners.append((on_tick, on_error))

    def remove_listener(self, on_tick: OnTick) -> None:
        self._listeners = [entry for entry in self._listeners if entry[0] is not on_tick]

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def restart(self) -> None:
        """Begin a fresh interval, used when the student moves to a new word"""
        self._restart.set()

    async def _wait_interval(self) -> bool:
        """Sleep one interval; False when it was cut short by ``restart``"""
        try:
            await asyncio.wait_for(self._restart.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return True
        self._restart.clear()
        return False

    def _word_index(self) -> Optional[int]:
        session = self.service.sessions.get(self.exam_id)
        return session.word_index if session is not None else None

    async def run(self) -> None:
        while True:
            word_index = self._word_index()
            if word_index is None:
                logger.info("Exam %s: no live session, clock stopped", self.exam_id)
                return
            if not await self._wait_interval():
                continue
            if self._word_index() != word_index:
                # Submitted without ``restart``, the new word gets a full interval
                continue

            try:
                session = await asyncio.to_thread(self.service.tick, self.exam_id)
            except VocabExamError as e:
                if isinstance(e, CollaboratorError):
                    logger.error("Exam %s: clock stopped, %s", self.exam_id, e.message)
                else:
                    logger.info("Exam %s: clock stopped, %s", self.exam_id, e.message)
                await self._notify_error(e)
                return

            if session is None:
                return
            for on_tick, _ in list(self._listeners):
                if on_tick is not None:
                    await on_tick(session)
            if session.state == ExamState.COMPLETED:
                return

    async def _notify_error(self, error: VocabExamError) -> None:
        for _, on_error in list(self._listeners):
            if on_error is not None:
                await on_error(error)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._restart.clear()
            self._task = asyncio.create_task(self.run())
        return self._task

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def stop(self) -> None:
        if self._task is None:
            return
        task = self._task
        self.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Exam %s: clock failed", self.exam_id)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


class ClockRegistry:
    """At most one clock per exam, shared by every connection watching it"""

    def __init__(self, service: ExamService, interval: Optional[float] = None):
        self.service = service
        self.interval = interval
        self._clocks: Dict[str, ExamClock] = {}

    def attach(
        self, exam_id: str, on_tick: OnTick, on_error: Optional[OnError] = None
    ) -> ExamClock:
        """Add a listener to the exam's clock, starting it if needed"""
        clock = self._clocks.get(exam_id)
        if clock is None:
            clock = ExamClock(self.service, exam_id, interval=self.interval)
            self._clocks[exam_id] = clock
        else:
            logger.info("Exam %s: reusing the running clock", exam_id)
        clock.add_listener(on_tick, on_error)
        clock.start()
        return clock

    def detach(self, exam_id: str, on_tick: OnTick) -> int:
        """Remove a listener; the clock is cancelled with its last listener.

        Returns the number of listeners left.
        """
        clock = self._clocks.get(exam_id)
        if clock is None:
            return 0
        clock.remove_listener(on_tick)
        if clock.listener_count:
            return clock.listener_count
        del self._clocks[exam_id]
        clock.cancel()
        return 0

    def get(self, exam_id: str) -> Optional[ExamClock]:
        return self._clocks.get(exam_id)
