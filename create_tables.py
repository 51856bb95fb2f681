#!/usr/bin/env python3
"""
PM Hub table creation (+ optional demo seed)

Usage:
    python create_tables.py            # create tables
    python create_tables.py --seed     # create tables, add a demo user/project, print a token
"""
import argparse
import asyncio
import uuid

from pmhub.core.config import settings
from pmhub.core.database import build_engine, build_session_factory, init_models
from pmhub.core.security import create_access_token
from pmhub.models import Project, User
from pmhub.repositories.project_repository import ProjectRepository
from pmhub.repositories.user_repository import UserRepository

DEMO_EMAIL = "demo@example.com"


async def main(seed: bool) -> None:
    engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    await init_models(engine)
    print(f"Tables created on {settings.DATABASE_URL}")

    if seed:
        session_factory = build_session_factory(engine)
        async with session_factory() as session:
            users = UserRepository(session)
            user = await users.get_by_email(DEMO_EMAIL)
            if not user:
                user = await users.create(User(id=str(uuid.uuid4()), name="Demo User", email=DEMO_EMAIL))
            project = await ProjectRepository(session).create(
                Project(id=str(uuid.uuid4()), name="Demo Project", owner_id=user.id)
            )
        print(f"Demo user:    {user.id} ({user.email})")
        print(f"Demo project: {project.id}")
        print(f"Token:        {create_access_token(user.id)}")

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="PM Hub table creation")
    parser.add_argument("--seed", action="store_true", help="insert a demo user and project")
    args = parser.parse_args()
    asyncio.run(main(args.seed))
