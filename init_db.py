"""
Database Initialization and Integrity Checker
Ensures every fee service table exists and a portal admin can log in
"""

import sys
import logging
from sqlalchemy import inspect
from datetime import datetime

from db_single import get_session, create_tables, init_database
import db_single
from models import Base, User
import fee_models  # noqa: F401  (registers fee tables on Base.metadata)

logger = logging.getLogger(__name__)


def get_existing_tables(engine):
    """Get list of existing tables in database"""
    return set(inspect(engine).get_table_names())


def get_expected_tables():
    """Get list of tables defined in models"""
    return set(Base.metadata.tables.keys())


def create_default_admin_user():
    """Create default portal admin user if no users exist"""
    session = get_session()
    try:
        if session.query(User).count() == 0:
            admin = User(
                username='admin',
                email='admin@school.com',
                role='portal_admin',
                first_name='Portal',
                last_name='Admin',
                is_active=True
            )
            admin.set_password('admin123')  # Change this in production!

            session.add(admin)
            session.commit()

            logger.warning("Created default admin user 'admin' - change its password immediately")
            return True
        return False
    except Exception as e:
        session.rollback()
        logger.error(f"Could not create default admin user: {e}")
        return False
    finally:
        session.close()


def initialize_database(config=None, verbose=True):
    """
    Create missing tables and the default admin
    Returns: (success: bool, created_tables: list)
    """
    if verbose:
        logger.info(f"Database initialization started at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    try:
        if config is not None or db_single.ENGINE is None:
            init_database(config)
        engine = db_single.ENGINE

        existing_tables = get_existing_tables(engine)
        created_tables = sorted(get_expected_tables() - existing_tables)

        create_tables(engine)

        if not existing_tables or 'users' in created_tables:
            create_default_admin_user()

        if verbose:
            if created_tables:
                logger.info(f"[OK] Created {len(created_tables)} tables: {', '.join(created_tables)}")
            else:
                logger.info("[OK] Database integrity verified - all tables present")

        return True, created_tables

    except Exception as e:
        logger.error(f"[ERROR] Database initialization failed: {e}")
        return False, []


def run_on_startup(config=None):
    """Wrapper function to run on application startup"""
    success, _ = initialize_database(config, verbose=True)

    if not success:
        logger.warning("Database initialization failed! Check the database configuration.")
        return False

    return True


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    success = run_on_startup()
    sys.exit(0 if success else 1)
