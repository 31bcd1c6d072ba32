import logging

from motor.motor_asyncio import AsyncIOMotorClient

from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

client: AsyncIOMotorClient = None
db = None


async def connect_db():
    global client, db
    client = AsyncIOMotorClient(settings.mongo_uri, serverSelectionTimeoutMS=5000)
    db = client[settings.mongo_db_name]
    # Create indexes
    await db.analysis_jobs.create_index("id", unique=True)
    await db.analyses.create_index("id", unique=True)
    await db.analyses.create_index([("domain", 1), ("created_at", -1)])
    logger.info(f"Connected to MongoDB: {settings.mongo_db_name}")


async def close_db():
    global client, db
    if client:
        client.close()
        client = None
        db = None
        logger.info("MongoDB connection closed")


def get_db():
    return db
