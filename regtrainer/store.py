from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from .models import TrainingSession


async def save_session(
    sessionmaker: async_sessionmaker,
    content: str,
    *,
    title: str = "Training Session",
    file_name: Optional[str] = None,
) -> str:
    async with sessionmaker() as session:
        record = TrainingSession(title=title, file_name=file_name, content=content)
        session.add(record)
        await session.commit()
        return record.id


async def get_session_content(
    sessionmaker: async_sessionmaker, session_id: str
) -> Optional[str]:
    async with sessionmaker() as session:
        record = await session.get(TrainingSession, session_id)
    return record.content if record else None
