from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

# Duplicate-send claims expire after a day; the TTL monitor prunes them.
EMAIL_LEDGER_TTL_SECONDS = 24 * 60 * 60


class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for submissions, the email ledger and audit logs."""
        try:
            # Current onboarding submissions
            await self.db.onboarding_submissions.create_index("id", unique=True)
            await self.db.onboarding_submissions.create_index("stripe_session_id", sparse=True)
            await self.db.onboarding_submissions.create_index([("payment_status", 1), ("created_at", -1)])

            # Legacy form submissions (older schema generation)
            try:
                await self.db.form_submissions.create_index("id", unique=True)
            except Exception:
                pass  # Legacy rows may predate the unique index
            await self.db.form_submissions.create_index("stripe_session_id", sparse=True)

            # Email duplicate-send ledger, shared by every process instance
            await self.db.email_send_ledger.create_index("key", unique=True)
            await self.db.email_send_ledger.create_index(
                "last_sent_at", expireAfterSeconds=EMAIL_LEDGER_TTL_SECONDS
            )

            # Audit log indexes
            await self.db.audit_logs.create_index([("resource_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")


# Global database instance
database = Database()
