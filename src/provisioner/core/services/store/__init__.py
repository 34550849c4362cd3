from .provisioning_store import (
    SCHEMA_VERSION,
    ProvisioningStore,
    ProvisioningStoreRegistry,
    close_all,
    create_store_engine,
    get_provisioning_store,
    utc_now,
)

__all__ = [
    "SCHEMA_VERSION",
    "ProvisioningStore",
    "ProvisioningStoreRegistry",
    "close_all",
    "create_store_engine",
    "get_provisioning_store",
    "utc_now",
]
