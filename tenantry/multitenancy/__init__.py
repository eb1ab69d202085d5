"""
Multi-tenant isolation for PostgreSQL.

Each tenant lives in its own database or its own schema. An adapter owns
one session's resolution context and moves it between tenants, so all
following queries on that session address the active tenant's data.

Key Components:
    - IsolationStrategy: DATABASE, SCHEMA or SCHEMA_CLONE
    - TenancyConfig: Static configuration read once per adapter
    - TenantAdapter: create / drop / switch / reset / scoped
    - ConnectionContext: The active tenant and its resolution order
    - SchemaCloner: Seeds tenant schemas from the template schema
    - create_adapter / open_adapter: Strategy-driven construction

Example:
    from tenantry.multitenancy import (
        IsolationStrategy, TenancyConfig, open_adapter,
    )

    config = TenancyConfig(
        strategy=IsolationStrategy.SCHEMA,
        persistent_schemas=("shared",),
    )

    async with open_adapter(engine, config) as adapter:
        await adapter.create("acme")
        async with adapter.scoped("acme"):
            ...  # search_path is "acme", "shared"
"""

from tenantry.multitenancy.errors import (
    ConfigurationError,
    ErrorKind,
    ImportFailed,
    InvalidIdentifier,
    TenantExists,
    TenantNotFound,
    TenantryError,
)
from tenantry.multitenancy.identifiers import (
    quote_identifier,
    render_search_path,
    validate_identifier,
)
from tenantry.multitenancy.config import (
    IsolationStrategy,
    TenancyConfig,
)
from tenantry.multitenancy.context import (
    ConnectionContext,
    TenantScope,
    run_with_tenant,
    with_tenant,
)
from tenantry.multitenancy.session import (
    BackingStoreError,
    SQLAlchemySession,
    StoreErrorKind,
    TenantSession,
)
from tenantry.multitenancy.excluded import ExcludedModels
from tenantry.multitenancy.cloner import (
    DumpError,
    PgDump,
    SchemaCloner,
    SchemaDumper,
    patch_search_path,
)
from tenantry.multitenancy.adapters import (
    DatabaseAdapter,
    ProvisionOutcome,
    SchemaAdapter,
    SchemaCloneAdapter,
    TenantAdapter,
)
from tenantry.multitenancy.factory import (
    build_adapter,
    create_adapter,
    open_adapter,
)

__all__ = [
    # Errors
    "ConfigurationError",
    "ErrorKind",
    "ImportFailed",
    "InvalidIdentifier",
    "TenantExists",
    "TenantNotFound",
    "TenantryError",
    # Identifiers
    "quote_identifier",
    "render_search_path",
    "validate_identifier",
    # Configuration
    "IsolationStrategy",
    "TenancyConfig",
    # Context
    "ConnectionContext",
    "TenantScope",
    "run_with_tenant",
    "with_tenant",
    # Session
    "BackingStoreError",
    "SQLAlchemySession",
    "StoreErrorKind",
    "TenantSession",
    # Excluded models
    "ExcludedModels",
    # Cloning
    "DumpError",
    "PgDump",
    "SchemaCloner",
    "SchemaDumper",
    "patch_search_path",
    # Adapters
    "DatabaseAdapter",
    "ProvisionOutcome",
    "SchemaAdapter",
    "SchemaCloneAdapter",
    "TenantAdapter",
    # Factory
    "build_adapter",
    "create_adapter",
    "open_adapter",
]
