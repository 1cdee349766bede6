from protean.domain import Domain
from sqlalchemy import create_engine


def _register_models(domain: Domain, provider_name: str) -> None:
    # Touching a repository's DAO registers the element's table with the provider metadata
    registry = domain.registry
    for records in (registry.aggregates, registry.entities, registry.projections):
        for _, record in records.items():
            if record.cls.meta_.provider == provider_name:
                domain.repository_for(record.cls)._dao  # noqa: B018


def setup_db(domain: Domain):
    """Create database tables for every element of the domain"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in ("sqlite", "postgresql"):
                engine = create_engine(provider.conn_info["database_uri"])
                _register_models(domain, provider.name)
                provider._metadata.create_all(engine)


def drop_db(domain: Domain):
    """Drop database tables of the domain"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in ("sqlite", "postgresql"):
                engine = create_engine(provider.conn_info["database_uri"])
                _register_models(domain, provider.name)
                provider._metadata.drop_all(engine)
