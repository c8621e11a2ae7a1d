"""Create all database tables"""
import logging
from control_plane.db.session import engine
# Importing the package registers every model with Base.metadata
from control_plane.models import Base

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_tables():
    logger.info("Creating all database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("All tables created successfully!")


if __name__ == "__main__":
    create_tables()
