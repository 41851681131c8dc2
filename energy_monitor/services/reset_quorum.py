"""
Reset Quorum Tracker

Clearing a device's energy counters needs one vote per channel. Votes are
collected in a reset session (``voting``); the vote that reaches quorum moves
it to ``executing``. The device picks the command up on its next poll, which
completes the session. A ballot that is never finished expires after
``RESET_SESSION_TTL_HOURS`` and the next vote opens a fresh one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor import crud
from energy_monitor.core.config import Settings, settings
from energy_monitor.core.timeutils import as_utc, utcnow
from energy_monitor.errors import (
    ConflictError,
    DeviceNotFoundError,
    DuplicateVoteError,
    ResetPendingError,
    TransportError,
)
from energy_monitor.models.device import Device
from energy_monitor.models.reset import (
    STATUS_COMPLETED,
    STATUS_EXECUTING,
    STATUS_EXPIRED,
    STATUS_VOTING,
    ResetSession,
    ResetVote,
)
from energy_monitor.schemas.esp32 import ResetCommandResponse
from energy_monitor.schemas.reset import ResetSessionRead, ResetStatus, VoterRead
from energy_monitor.services.reading_cache import ReadingCache
from energy_monitor.services.realtime import RealtimePublisher, device_topic

logger = logging.getLogger(__name__)

RESET_UPDATE_EVENT = "reset_update"
RESET_COMMAND_MESSAGE = "Energy reset command - clear all energy counters"


@dataclass(slots=True, frozen=True)
class VoteOutcome:
    votes_received: int
    required_votes: int
    reset_triggered: bool


class ResetQuorumTracker:
    def __init__(
        self,
        publisher: RealtimePublisher,
        cache: ReadingCache,
        config: Settings | None = None,
    ) -> None:
        self._publisher = publisher
        self._cache = cache
        self._config = config or settings

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self._config.reset_session_ttl_hours)

    async def cast_vote(self, session: AsyncSession, device_id: str, user_id: str) -> VoteOutcome:
        device = await crud.get_device(session, device_id)
        if device is None:
            raise DeviceNotFoundError(f"Device {device_id} not found")

        if await self._find_session(session, device_id, STATUS_EXECUTING) is not None:
            raise ResetPendingError()

        ballot = await self._open_session(session, device)

        # Lock the ballot so concurrent votes serialise on the count below
        locked = (
            await session.execute(
                select(ResetSession)
                .where(ResetSession.id == ballot.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        if locked.status != STATUS_VOTING:
            await session.rollback()
            raise ResetPendingError()

        session.add(ResetVote(session_id=locked.id, device_id=device_id, user_id=user_id))
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            logger.info("Duplicate reset vote rejected", extra={"device_id": device_id, "user_id": user_id})
            raise DuplicateVoteError()

        count = await session.scalar(
            select(func.count()).select_from(ResetVote).where(ResetVote.session_id == locked.id)
        )
        locked.votes_received = int(count or 0)
        required_votes = locked.required_votes

        triggered = locked.votes_received >= required_votes
        if triggered:
            locked.status = STATUS_EXECUTING
            locked.reset_executed_at = utcnow()
        await session.commit()

        outcome = VoteOutcome(
            votes_received=locked.votes_received,
            required_votes=required_votes,
            reset_triggered=triggered,
        )
        logger.info(
            f"Reset vote {outcome.votes_received}/{outcome.required_votes} for {device_id}"
            + (" - quorum reached" if triggered else ""),
            extra={"device_id": device_id, "user_id": user_id, "session_id": locked.id},
        )
        await self._notify(
            device_id,
            {
                "session_id": locked.id,
                "status": locked.status,
                "votes_received": outcome.votes_received,
                "required_votes": outcome.required_votes,
                "reset_triggered": triggered,
            },
        )
        return outcome

    async def status(self, session: AsyncSession, device_id: str) -> ResetStatus:
        device = await crud.get_device(session, device_id)
        if device is None:
            raise DeviceNotFoundError(f"Device {device_id} not found")

        ballot = await self._active_session(session, device_id)
        if ballot is None:
            ballot = await self._find_session(session, device_id, STATUS_EXECUTING)
        if ballot is None:
            return ResetStatus(session=None, votes=[], required_votes=device.channel_count, votes_received=0)

        result = await session.execute(
            select(ResetVote).where(ResetVote.session_id == ballot.id).order_by(ResetVote.voted_at.asc(), ResetVote.id.asc())
        )
        votes = list(result.scalars().all())
        profiles = await crud.get_profiles(session, [vote.user_id for vote in votes])

        return ResetStatus(
            session=ResetSessionRead.model_validate(ballot),
            votes=[
                VoterRead(
                    user_id=vote.user_id,
                    voted_at=vote.voted_at,
                    display_name=profiles[vote.user_id].full_name if vote.user_id in profiles else None,
                )
                for vote in votes
            ],
            required_votes=ballot.required_votes,
            votes_received=len(votes),
        )

    async def poll_reset_command(self, session: AsyncSession, device_id: str) -> ResetCommandResponse:
        """Hand a pending reset to the device and complete its session.

        The poll is the acknowledgement. Until a poll reaches the server the
        session stays ``executing``, and zeroing the counters twice on the
        device is harmless.
        """

        result = await session.execute(
            select(ResetSession)
            .where(ResetSession.device_id == device_id, ResetSession.status == STATUS_EXECUTING)
            .order_by(ResetSession.created_at.asc())
            .with_for_update()
        )
        pending = list(result.scalars().all())
        if not pending:
            return ResetCommandResponse(reset_command=False)

        completed_at = utcnow()
        for ballot in pending:
            ballot.status = STATUS_COMPLETED
            if ballot.reset_executed_at is None:
                ballot.reset_executed_at = completed_at
        await session.execute(
            delete(ResetVote).where(ResetVote.session_id.in_([ballot.id for ballot in pending]))
        )
        await session.commit()

        evicted = self._cache.evict_device(device_id)
        logger.info(
            f"Reset command delivered to {device_id}",
            extra={"device_id": device_id, "sessions": [ballot.id for ballot in pending], "evicted": evicted},
        )
        await self._notify(device_id, {"session_id": pending[-1].id, "status": STATUS_COMPLETED})
        return ResetCommandResponse(reset_command=True, message=RESET_COMMAND_MESSAGE)

    async def _find_session(self, session: AsyncSession, device_id: str, status: str) -> ResetSession | None:
        result = await session.execute(
            select(ResetSession)
            .where(ResetSession.device_id == device_id, ResetSession.status == status)
            .order_by(ResetSession.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _active_session(self, session: AsyncSession, device_id: str) -> ResetSession | None:
        ballot = await self._find_session(session, device_id, STATUS_VOTING)
        if ballot is None or as_utc(ballot.expires_at) <= utcnow():
            return None
        return ballot

    async def _open_session(self, session: AsyncSession, device: Device) -> ResetSession:
        """Return the device's active ballot, opening a new one when needed."""

        device_id = device.device_id
        required_votes = device.channel_count
        ballot = await self._find_session(session, device_id, STATUS_VOTING)
        now = utcnow()
        if ballot is not None and as_utc(ballot.expires_at) > now:
            return ballot

        if ballot is not None:
            logger.info(
                "Expiring stale reset session",
                extra={"device_id": device_id, "session_id": ballot.id},
            )
            ballot.status = STATUS_EXPIRED
            await session.flush()

        fresh = ResetSession(
            device_id=device_id,
            required_votes=required_votes,
            votes_received=0,
            status=STATUS_VOTING,
            created_at=now,
            expires_at=now + self.session_ttl,
        )
        session.add(fresh)
        try:
            await session.commit()
        except IntegrityError:
            # Lost the race to open the ballot; use the winner's
            await session.rollback()
            ballot = await self._active_session(session, device_id)
            if ballot is None:
                raise ConflictError("Could not open a reset session, please retry")
            return ballot

        logger.info(
            "Opened reset session",
            extra={"device_id": device_id, "session_id": fresh.id, "required_votes": required_votes},
        )
        return fresh

    async def _notify(self, device_id: str, payload: dict[str, Any]) -> None:
        try:
            await self._publisher.publish(
                device_topic(device_id, self._config),
                {"event": RESET_UPDATE_EVENT, "payload": {"device_id": device_id, **payload}},
            )
        except TransportError as exc:
            # The vote or acknowledgement is already committed
            logger.error(f"Failed to publish reset update for {device_id}: {exc}")
