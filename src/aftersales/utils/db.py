from protean.domain import Domain
from sqlalchemy import create_engine, select

_RDBMS_PROVIDERS = ("sqlite", "postgresql")


def is_relational(dao) -> bool:
    return dao.provider.conn_info["provider"] in _RDBMS_PROVIDERS


def locked_version(dao, identifier) -> int | None:
    """Read the stored `_version` of one record.

    On relational providers the row is read with SELECT ... FOR UPDATE in the
    unit of work's session, so the lock is held until that unit of work ends
    and a second writer waits here, then sees the committed version.
    """
    if is_relational(dao):
        model = dao.database_model_cls
        statement = (
            select(model._version)
            .where(model.id == str(identifier))
            .with_for_update()
        )
        return dao._get_session().execute(statement).scalar_one_or_none()

    records = dao.query.filter(id=str(identifier)).all().items
    return records[0]._version if records else None


def flush(dao) -> None:
    """Send pending writes so constraint violations surface at the call site"""
    if is_relational(dao):
        dao._get_session().flush()


def _register_models(domain: Domain, provider) -> None:
    # Touching `_dao` builds the SQLAlchemy model for each registered element
    for registry in (domain.registry.aggregates, domain.registry.entities):
        for _, record in registry.items():
            if record.cls.meta_.provider == provider.name:
                domain.repository_for(record.cls)._dao  # noqa: B018


def setup_db(domain: Domain):
    """Create tables for every relational provider configured on the domain"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in _RDBMS_PROVIDERS:
                engine = create_engine(provider.conn_info["database_uri"])
                _register_models(domain, provider)
                provider._metadata.create_all(engine)


def drop_db(domain: Domain):
    """Drop tables created by `setup_db`"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in _RDBMS_PROVIDERS:
                engine = create_engine(provider.conn_info["database_uri"])
                provider._metadata.drop_all(engine)
