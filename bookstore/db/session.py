from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy import create_engine

class Base(DeclarativeBase): pass

def build_engine(dsn: str, echo: bool = False):
    if dsn.startswith('sqlite'):
        kwargs = {'connect_args': {'check_same_thread': False}}
        # in-memory databases live as long as their single connection
        if dsn in ('sqlite://', 'sqlite:///:memory:') or ':memory:' in dsn:
            kwargs['poolclass'] = StaticPool
        return create_engine(dsn, echo=echo, **kwargs)
    return create_engine(dsn, echo=echo, pool_pre_ping=True)

def build_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
