"""
Directory lookups: notification destination and requester attribution.
"""

from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.directory.models import Group, Member


class DirectoryProtocol(Protocol):
    """Lookups the call engine needs from the surrounding application."""

    async def get_notification_destination(self, group_id: UUID) -> str | None:
        """Return the chat id summaries for this group go to, if configured."""
        ...

    async def get_member(self, member_id: UUID) -> Member | None:
        """Return a member by id."""
        ...


class DirectoryRepository:
    """Repository for group and member lookups."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_group(self, group_id: UUID) -> Group | None:
        stmt = select(Group).where(Group.id == group_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_member(self, member_id: UUID) -> Member | None:
        stmt = select(Member).where(Member.id == member_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_notification_destination(self, group_id: UUID) -> str | None:
        group = await self.get_group(group_id)
        if group is None:
            return None
        return group.notification_chat_id or None
