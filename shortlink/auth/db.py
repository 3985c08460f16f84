from fastapi import Depends
from fastapi_users.db import SQLAlchemyBaseUserTableUUID, SQLAlchemyUserDatabase
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import relationship
from shortlink.database.base import Base
from shortlink.database.database import engine, get_async_session
from shortlink.links.models import ShortLink

class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "user"

    short_links = relationship(ShortLink, back_populates="owner")

async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_users_db(session: AsyncSession = Depends(get_async_session)):
    yield SQLAlchemyUserDatabase(session, User)
