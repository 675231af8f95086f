"""Persistent per-chat conversation state.

Every webhook delivery rebuilds its view of the conversation from this table
and writes it back before replying. Nothing guards concurrent writers for the
same chat: the last upsert wins.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from pydantic import ValidationError
from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.chat_session import ChatSession
from ..schemas.session_state import (
    ChatSessionRead,
    MenuState,
    PendingAuthState,
    dump_state,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _load(session: AsyncSession, chat_id: int) -> Optional[ChatSession]:
    result = await session.execute(select(ChatSession).where(ChatSession.chat_id == chat_id))
    return result.scalars().first()


async def get_session(
    session: AsyncSession,
    chat_id: int,
    *,
    ttl_seconds: int,
    now: Optional[datetime] = None,
) -> Optional[ChatSessionRead]:
    """Return the chat's stored session, or ``None`` when absent.

    A pending challenge older than ``ttl_seconds`` is deleted and reported as
    absent, the same as a chat that never started. Unreadable state on a
    verified session falls back to the idle menu.
    """
    record = await _load(session, chat_id)
    if record is None:
        return None

    try:
        snapshot = ChatSessionRead.model_validate(record)
    except ValidationError:
        snapshot = None

    if record.verified:
        if snapshot is None or not isinstance(snapshot.state, MenuState):
            logger.warning("Chat %s had unreadable menu state; resetting to idle.", chat_id)
            return ChatSessionRead(
                chat_id=record.chat_id,
                account_id=record.account_id,
                verified=True,
                username=record.username,
                state=MenuState.idle(),
            )
        return snapshot

    state = snapshot.state if snapshot else None
    if not isinstance(state, PendingAuthState) or state.is_expired(now or _utcnow(), ttl_seconds):
        logger.info("Discarding stale pending session for chat %s.", chat_id)
        await session.delete(record)
        await session.commit()
        return None
    return snapshot


async def set_state(
    session: AsyncSession,
    chat_id: int,
    state: PendingAuthState | MenuState,
    *,
    username: Optional[str] = None,
) -> None:
    """Upsert the state for a chat, keeping its verification and account binding."""
    payload = dump_state(state)
    now = _utcnow()
    stmt = insert(ChatSession).values(
        id=uuid4(),
        chat_id=chat_id,
        verified=False,
        username=username,
        state=payload,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ChatSession.chat_id],
        set_={"state": payload, "updated_at": now},
    )
    await session.execute(stmt)
    await session.commit()


async def clear_pending(session: AsyncSession, chat_id: int) -> None:
    """Drop an unverified challenge; a verified binding is left untouched."""
    await session.execute(
        delete(ChatSession).where(ChatSession.chat_id == chat_id, ChatSession.verified.is_(False))
    )
    await session.commit()


async def delete_session(session: AsyncSession, chat_id: int) -> bool:
    result = await session.execute(delete(ChatSession).where(ChatSession.chat_id == chat_id))
    await session.commit()
    return bool(result.rowcount)


async def find_verified_for_account(
    session: AsyncSession, account_id: UUID
) -> Optional[ChatSessionRead]:
    result = await session.execute(
        select(ChatSession).where(
            ChatSession.account_id == account_id,
            ChatSession.verified.is_(True),
        )
    )
    record = result.scalars().first()
    if record is None:
        return None
    return ChatSessionRead(
        chat_id=record.chat_id,
        account_id=record.account_id,
        verified=True,
        username=record.username,
        state=MenuState.idle(),
    )


async def bind_verified(
    session: AsyncSession,
    chat_id: int,
    account_id: UUID,
    *,
    username: Optional[str] = None,
) -> ChatSessionRead:
    """Evict any session bound to the account or the chat and bind this chat.

    The delete and the insert share one database transaction, so no reader
    observes a moment where the account has two devices or the chat has a
    half-written binding.
    """
    state = MenuState.idle()
    try:
        await session.execute(
            delete(ChatSession).where(
                or_(ChatSession.account_id == account_id, ChatSession.chat_id == chat_id)
            )
        )
        session.add(
            ChatSession(
                id=uuid4(),
                chat_id=chat_id,
                account_id=account_id,
                verified=True,
                username=username,
                state=dump_state(state),
            )
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return ChatSessionRead(
        chat_id=chat_id,
        account_id=account_id,
        verified=True,
        username=username,
        state=state,
    )
