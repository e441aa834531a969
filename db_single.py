"""
Database management for single database multi-tenant system
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from config import Config
from models import Base, Tenant
import logging

logger = logging.getLogger(__name__)

# Global engine and session factory
ENGINE = None
SessionLocal = None

def init_database(config=None):
    """Initialize database engine and session factory"""
    global ENGINE, SessionLocal

    config = config or Config()
    database_uri = config.get_database_uri()

    if ENGINE is not None:
        ENGINE.dispose()

    ENGINE = create_engine(
        database_uri,
        **config.SQLALCHEMY_ENGINE_OPTIONS
    )

    SessionLocal = sessionmaker(bind=ENGINE, autoflush=False, autocommit=False)

    logger.info(f"Database initialized: {ENGINE.url.render_as_string(hide_password=True)}")
    return ENGINE, SessionLocal

def get_session():
    """Get a database session"""
    if SessionLocal is None:
        init_database()
    return SessionLocal()

def create_tables(engine=None):
    """Create every table registered on Base.metadata that does not exist yet"""
    # Fee models register themselves on Base.metadata when imported
    import fee_models  # noqa: F401

    engine = engine or ENGINE
    if engine is None:
        engine, _ = init_database()
    Base.metadata.create_all(engine)

def create_school(slug: str, name: str) -> tuple[bool, str]:
    """
    Create a new school (tenant)

    Args:
        slug: URL-friendly identifier (e.g., 'xyz')
        name: Full school name (e.g., 'XYZ Public School')

    Returns:
        tuple: (success: bool, message: str)
    """
    session = get_session()
    try:
        existing = session.query(Tenant).filter_by(slug=slug).first()
        if existing:
            return False, f"School with slug '{slug}' already exists"

        school = Tenant(
            slug=slug,
            name=name,
            is_active=True
        )
        session.add(school)
        session.commit()

        logger.info(f"✅ Created school: {name} ({slug})")
        return True, f"School '{name}' created successfully with slug '{slug}'"

    except Exception as e:
        session.rollback()
        logger.error(f"❌ Failed to create school: {e}")
        return False, f"Error creating school: {str(e)}"
    finally:
        session.close()

def get_tenant_by_slug(session, slug: str):
    """Active tenant for a URL slug, or None"""
    return session.query(Tenant).filter_by(slug=slug, is_active=True).first()

def list_schools() -> list:
    """List all schools/tenants"""
    session = get_session()
    try:
        schools = session.query(Tenant).filter_by(is_active=True).order_by(Tenant.name).all()
        return schools
    finally:
        session.close()
