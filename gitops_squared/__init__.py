"""gitops-squared: declared infrastructure state as versioned OCI artifacts.

Each declaration becomes an immutable artifact version in an OCI registry;
an in-memory catalog of the latest live resources is assembled into one
Flux-consumable artifact and rebuilt from the registry on restart.
"""

__version__ = "0.1.0"
__description__ = "Resource versioning and catalog aggregation over an OCI registry"

from gitops_squared.core.catalog_service import CatalogService, MutationResult
from gitops_squared.core.store_client import ArtifactStoreClient

__all__ = ["ArtifactStoreClient", "CatalogService", "MutationResult", "__version__"]
