"""Base command class for shared CLI setup/teardown."""

from sqlalchemy.orm import sessionmaker

from ledgerly.database import build_engine
from ledgerly.settings import settings


class CliCommand:
    """Base class for all CLI commands with shared setup/teardown."""

    def __init__(self):
        self.engine = None
        self.Session = None
        self.db = None

    def setup_db(self):
        """Initialize database connection."""
        self.engine = build_engine(settings.database_url)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

    def cleanup_db(self):
        """Close database connection."""
        if self.db:
            self.db.close()

    def execute(self):
        """Command body - override in subclasses."""
        raise NotImplementedError

    def run(self):
        """Open a session, execute the command and always close the session."""
        self.setup_db()
        try:
            return self.execute()
        finally:
            self.cleanup_db()

    def __enter__(self):
        self.setup_db()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup_db()
