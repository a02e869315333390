"""Thread service for chat history management."""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from promptiq.core.exceptions import ThreadNotFoundError
from promptiq.core.logging import get_logger
from promptiq.models.thread import Message, MessageRole, Thread

logger = get_logger("threads")


class ThreadService:
    """Service for managing threads and their messages."""

    def __init__(self, db: AsyncSession, default_title: str = "New Thread"):
        self.db = db
        self.default_title = default_title

    async def create_thread(
        self,
        user_id: str,
        title: str | None = None,
    ) -> Thread:
        """Create a new thread."""
        thread = Thread(user_id=user_id, title=title or self.default_title)
        self.db.add(thread)
        await self.db.commit()
        await self.db.refresh(thread)
        logger.info(f"Created thread {thread.id} for user {user_id}")
        return thread

    async def create_or_reuse_thread(
        self,
        user_id: str,
        reuse_empty: bool = True,
    ) -> tuple[Thread, bool]:
        """
        Return a thread to start a new chat in.

        When ``reuse_empty`` is set, the user's most recent thread is handed
        back if it has no messages yet instead of creating another one.

        Returns:
            The thread and whether it was reused.
        """
        if reuse_empty:
            latest = await self.get_latest_thread(user_id)
            if latest is not None and await self.count_messages(latest.id) == 0:
                logger.debug(f"Reusing empty thread {latest.id} for user {user_id}")
                return latest, True

        return await self.create_thread(user_id), False

    async def get_latest_thread(self, user_id: str) -> Thread | None:
        """Get the user's most recently created thread."""
        query = (
            select(Thread)
            .where(Thread.user_id == user_id)
            .order_by(Thread.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_thread(self, thread_id: str) -> Thread | None:
        """Get a thread by ID."""
        result = await self.db.execute(select(Thread).where(Thread.id == thread_id))
        return result.scalar_one_or_none()

    async def get_thread_for_user(self, thread_id: str, user_id: str) -> Thread:
        """
        Get a thread owned by the given user.

        Raises:
            ThreadNotFoundError: If the thread is missing or owned by someone else.
        """
        thread = await self.get_thread(thread_id)
        if thread is None or thread.user_id != user_id:
            raise ThreadNotFoundError(thread_id)
        return thread

    async def list_threads(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Thread]:
        """List the user's threads, newest first."""
        query = (
            select(Thread)
            .where(Thread.user_id == user_id)
            .order_by(Thread.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def append_message(
        self,
        thread_id: str,
        user_id: str,
        role: MessageRole,
        content: str,
        model: str | None = None,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
    ) -> Message:
        """Append a message to a thread the user owns."""
        await self.get_thread_for_user(thread_id, user_id)

        message = Message(
            thread_id=thread_id,
            user_id=user_id,
            role=role,
            content=content,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_messages(self, thread_id: str, limit: int = 500) -> list[Message]:
        """Get a thread's messages in temporal order."""
        query = (
            select(Message)
            .where(Message.thread_id == thread_id)
            .order_by(Message.created_at)
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_messages(self, thread_id: str) -> int:
        """Count the messages stored for a thread."""
        result = await self.db.execute(
            select(func.count(Message.id)).where(Message.thread_id == thread_id)
        )
        return int(result.scalar_one())
