"""Database engine, scoped session and schema helpers."""
from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
IdType = BigInteger().with_variant(Integer, 'sqlite')

# Global session and engine
engine = None
db_session = None


def init_db(app):
    """Create the engine and the request-scoped session for the app."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,
    }
    if not database_uri.startswith('sqlite'):
        engine_options.update(pool_size=10, max_overflow=20)

    engine = create_engine(database_uri, **engine_options)

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table known to the models package."""
    import roomshop.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop every table known to the models package."""
    import roomshop.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
