"""
Session Engine - Core time-split logic.

Each running timesheet group has a TimerSession: an in-memory state machine
(idle -> running <-> paused -> completed) that walks the split's phases in a
loop. The session is only checkpointed to the ledger at phase boundaries:
every finalized phase becomes exactly one timesheet entry.

Entry times are derived from the phase start plus the phase length, never
from the wall-clock time a command arrived, so entries are contiguous and
do not drift however irregularly tick() is called.
"""

import asyncio
import datetime
import logging
from typing import Dict, List, Optional, Set

from timesplit.domain.errors import InvalidSplit, InvalidTransition, NonMonotonicTime, NotFound
from timesplit.domain.models import (
    SessionPreferences, SessionState, SessionStatus, TimerPhase, TimeSplit,
    TimesheetEntry, TimesheetGroup, to_timestamp_ms,
)
from timesplit.infra.db import DatabaseEngine
from timesplit.infra.config import get_settings
from timesplit.services.catalog_service import CatalogService
from timesplit.services.clock import Clock
from timesplit.services.ledger_service import TimesheetLedger

logger = logging.getLogger(__name__)


class TimerSession:
    """
    State of one group while it is active.

    Running: phase_started_at is the (possibly rebased) start of the current phase.
    Paused:  elapsed holds the time spent in the phase, paused_at the pause instant.
    """

    def __init__(self, group: TimesheetGroup, split: TimeSplit):
        self.group = group
        self.split = split
        self.state = SessionState.IDLE
        self.phase_index = 0
        self.phase_started_at: Optional[datetime.datetime] = None
        self.elapsed = datetime.timedelta(0)
        self.paused_at: Optional[datetime.datetime] = None
        self.last_seen: Optional[datetime.datetime] = None
        # One command at a time per group
        self.lock = asyncio.Lock()

    @property
    def phase(self) -> TimerPhase:
        return self.split.phases[self.phase_index]

    @property
    def next_index(self) -> int:
        return (self.phase_index + 1) % len(self.split.phases)

    def partial_interval(self, now: datetime.datetime) -> Optional[tuple]:
        """The unfinished part of the current phase, or None if it is empty"""
        if self.state == SessionState.RUNNING:
            start, end = self.phase_started_at, now
        elif self.state == SessionState.PAUSED:
            start, end = self.paused_at - self.elapsed, self.paused_at
        else:
            return None
        if end <= start:
            return None
        return start, end


class SessionEngine:
    """
    Drives timesheet groups through their time split.

    Commands take an explicit `now`; when omitted the engine's clock is used.
    Time must never go backwards for a given group.
    """

    def __init__(self, engine: Optional[DatabaseEngine] = None,
                 catalog: Optional[CatalogService] = None,
                 ledger: Optional[TimesheetLedger] = None,
                 clock: Optional[Clock] = None,
                 preferences: Optional[SessionPreferences] = None):
        self.catalog = catalog or CatalogService(engine)
        self.ledger = ledger or TimesheetLedger(engine)
        if clock is None or preferences is None:
            settings = get_settings()
            clock = clock or Clock(settings.clock_offset)
            preferences = preferences or settings.preferences
        self.clock = clock
        self.preferences = preferences
        self.sessions: Dict[int, TimerSession] = {}
        # Stopped groups; their sessions are dropped
        self.completed: Set[int] = set()

    def _now(self, now: Optional[datetime.datetime]) -> datetime.datetime:
        return to_timestamp_ms(now) if now is not None else self.clock.now()

    def get_session(self, group_id: int) -> TimerSession:
        if group_id in self.completed:
            raise InvalidTransition(f"Timesheet group {group_id} is completed")
        session = self.sessions.get(group_id)
        if session is None:
            raise NotFound(f"No session for timesheet group {group_id}")
        return session

    def _observe(self, session: TimerSession, now: datetime.datetime) -> None:
        if session.last_seen is not None and now < session.last_seen:
            logger.warning(
                f"Group {session.group.id}: rejected time {now}, last seen {session.last_seen}"
            )
            raise NonMonotonicTime(
                f"{now} is earlier than the last timestamp {session.last_seen} "
                f"of group {session.group.id}"
            )

    @staticmethod
    def _require(session: TimerSession, command: str, *states: SessionState) -> None:
        if session.state not in states:
            raise InvalidTransition(
                f"Cannot {command} group {session.group.id} while {session.state.value}"
            )

    async def start(self, time_split_id: int,
                    now: Optional[datetime.datetime] = None) -> TimesheetGroup:
        """
        Start a new session on a split.

        Raises:
            NotFound: unknown split
            InvalidSplit: split is deleted, has no phases or its cycle has zero length
        """
        now = self._now(now)
        split = await self.catalog.get_time_split(time_split_id, include_deleted=True)
        if split.deleted:
            raise InvalidSplit(f"Time split {time_split_id} is deleted")
        if not split.phases:
            raise InvalidSplit(f"Time split {time_split_id} has no phases")
        if split.cycle_length <= datetime.timedelta(0):
            raise InvalidSplit(f"Time split {time_split_id} has a zero-length cycle")

        group = await self.ledger.create_group(split.id)
        session = TimerSession(group, split)
        session.state = SessionState.RUNNING
        session.phase_index = 0
        session.phase_started_at = now
        session.last_seen = now
        self.sessions[group.id] = session

        logger.info(f"Started group {group.id} on split {split.id} ({split.name}) at {now}")
        return group

    async def _finalize(self, session: TimerSession, start: datetime.datetime,
                        end: datetime.datetime, work: bool) -> TimesheetEntry:
        entry = TimesheetEntry(
            timesheet_group=session.group.id, start_time=start, end_time=end, work=work
        )
        return await self.ledger.append(session.group.id, entry)

    async def _catch_up(self, session: TimerSession,
                        now: datetime.datetime) -> List[TimesheetEntry]:
        """
        Finalize every phase that has fully elapsed by `now`, looping the cycle.

        Each entry is stored before the session advances, so a failed append
        leaves the session at the start of the phase that could not be stored.
        """
        finalized = []
        while True:
            phase = session.phase
            phase_end = to_timestamp_ms(session.phase_started_at + phase.length)
            if phase_end > now:
                break
            if phase_end > session.phase_started_at:
                finalized.append(
                    await self._finalize(session, session.phase_started_at, phase_end, phase.work)
                )
            # Zero-length phases are passed over without an entry
            session.phase_index = session.next_index
            session.phase_started_at = phase_end
        return finalized

    async def tick(self, group_id: int,
                   now: Optional[datetime.datetime] = None) -> List[TimesheetEntry]:
        """
        Advance a running session to `now`.

        Returns:
            The entries finalized by this call, possibly several after a long gap.
        """
        now = self._now(now)
        session = self.get_session(group_id)
        async with session.lock:
            self._observe(session, now)
            self._require(session, "tick", SessionState.RUNNING, SessionState.PAUSED)
            finalized = []
            if session.state == SessionState.RUNNING:
                finalized = await self._catch_up(session, now)
            session.last_seen = now
            return finalized

    async def pause(self, group_id: int,
                    now: Optional[datetime.datetime] = None) -> List[TimesheetEntry]:
        """
        Pause the current phase.

        Phases that already ended are finalized first; the unfinished part of
        the current phase is not recorded.
        """
        now = self._now(now)
        session = self.get_session(group_id)
        async with session.lock:
            self._observe(session, now)
            self._require(session, "pause", SessionState.RUNNING)
            finalized = await self._catch_up(session, now)

            session.elapsed = now - session.phase_started_at
            session.paused_at = now
            session.phase_started_at = None
            session.state = SessionState.PAUSED
            session.last_seen = now

            logger.info(
                f"Paused group {group_id} in phase {session.phase_index} "
                f"({session.phase.name}) after {session.elapsed}"
            )
            return finalized

    async def resume(self, group_id: int, now: Optional[datetime.datetime] = None) -> None:
        """Resume the paused phase; time already spent in it still counts"""
        now = self._now(now)
        session = self.get_session(group_id)
        async with session.lock:
            self._observe(session, now)
            self._require(session, "resume", SessionState.PAUSED)

            session.phase_started_at = now - session.elapsed
            session.elapsed = datetime.timedelta(0)
            session.paused_at = None
            session.state = SessionState.RUNNING
            session.last_seen = now

            logger.info(f"Resumed group {group_id} in phase {session.phase_index}")

    async def skip(self, group_id: int,
                   now: Optional[datetime.datetime] = None) -> List[TimesheetEntry]:
        """
        Jump to the next phase, which starts at `now`.

        The unfinished part of the skipped phase is recorded as a short entry
        when preferences.record_partial_on_skip is set.
        """
        now = self._now(now)
        session = self.get_session(group_id)
        async with session.lock:
            self._observe(session, now)
            self._require(session, "skip", SessionState.RUNNING, SessionState.PAUSED)

            finalized = []
            if session.state == SessionState.RUNNING:
                finalized = await self._catch_up(session, now)

            partial = session.partial_interval(now)
            if partial and self.preferences.record_partial_on_skip:
                finalized.append(await self._finalize(session, *partial, session.phase.work))

            logger.info(f"Group {group_id} skipped phase {session.phase_index} ({session.phase.name})")
            session.phase_index = session.next_index
            session.phase_started_at = now
            session.elapsed = datetime.timedelta(0)
            session.paused_at = None
            session.state = SessionState.RUNNING
            session.last_seen = now
            return finalized

    async def stop(self, group_id: int,
                   now: Optional[datetime.datetime] = None) -> List[TimesheetEntry]:
        """
        End the session for good. The group accepts no further entries.

        The unfinished part of the current phase is recorded when
        preferences.record_partial_on_stop is set.
        """
        now = self._now(now)
        session = self.get_session(group_id)
        async with session.lock:
            self._observe(session, now)
            self._require(session, "stop", SessionState.IDLE, SessionState.RUNNING,
                          SessionState.PAUSED)

            finalized = []
            if session.state == SessionState.RUNNING:
                finalized = await self._catch_up(session, now)

            partial = session.partial_interval(now)
            if partial and self.preferences.record_partial_on_stop:
                finalized.append(await self._finalize(session, *partial, session.phase.work))

            session.state = SessionState.COMPLETED
            self.completed.add(group_id)
            del self.sessions[group_id]

            logger.info(f"Stopped group {group_id} at {now}")
            return finalized

    def status(self, group_id: int, now: Optional[datetime.datetime] = None) -> SessionStatus:
        """Snapshot of a session, including time left in the current phase"""
        now = self._now(now)
        if group_id in self.completed:
            return SessionStatus(group_id=group_id, state=SessionState.COMPLETED, phase_index=0)
        session = self.get_session(group_id)

        if session.state == SessionState.IDLE:
            return SessionStatus(group_id=group_id, state=session.state,
                                 phase_index=session.phase_index)

        phase = session.phase
        if session.state == SessionState.RUNNING:
            elapsed = max(now - session.phase_started_at, datetime.timedelta(0))
        else:
            elapsed = session.elapsed
        return SessionStatus(
            group_id=group_id,
            state=session.state,
            phase_index=session.phase_index,
            phase_name=phase.name,
            work=phase.work,
            elapsed=elapsed,
            remaining=max(phase.length - elapsed, datetime.timedelta(0)),
        )

    def is_tracking(self, group_id: int) -> bool:
        """Check if the group is running (not paused or finished)"""
        session = self.sessions.get(group_id)
        return session is not None and session.state == SessionState.RUNNING
