"""
One-shot expiry sweep, for cron jobs when the in-process sweep is disabled.
"""

import sys
import os

# Add project root to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError

from app.database.database import get_session
from app.services.expiry import run_expiry_sweep
from app.utils.logger import logger, setup_logging


def run_sweep():
    """
    Expire overdue donations and pending claims once, then exit.
    """
    setup_logging()
    logger.info("Starting expiry sweep...")

    # Get a database session manually
    session_generator = get_session()
    db = next(session_generator)

    try:
        summary = run_expiry_sweep(db)
        logger.info(f"Expiry sweep completed: {summary.as_dict()}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"A database error occurred during the expiry sweep: {e}")
        sys.exit(1)
    finally:
        session_generator.close()


if __name__ == "__main__":
    run_sweep()
