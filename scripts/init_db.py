"""Database initialization script."""
import asyncio
import sys
from pathlib import Path

from sqlalchemy import text

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from similarity_service.core.database import engine, Base
from similarity_service import models  # noqa: F401  registers tables


async def init_db():
    """Create the pgvector extension and all tables."""
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
    print("✓ Database schema created successfully")


if __name__ == "__main__":
    asyncio.run(init_db())
