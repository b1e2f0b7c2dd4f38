"""Resource graph — Desired-state builder.

Turns a :class:`DeploymentConfig` into the fixed seven-node graph:

    service-account/app-runner
    secret/db-password
    secret/encryption-key
    database-instance/app-db                 <- db-password
    role-binding/cloudsql-client             <- service account, database
    role-binding/secret-accessor             <- service account, both secrets
    compute-service/app                      <- everything above

``use_custom_image`` swaps the compute service's image attributes between
two variants; it never changes the shape of the graph.
"""

from __future__ import annotations

from typing import Any, Mapping

from infra_reconciler.config import DeploymentConfig
from infra_reconciler.graph.dag import ResourceGraph
from infra_reconciler.graph.models import Resource, ResourceKind, resource_id

PREBUILT_IMAGE = "ghcr.io/infra-reconciler/app:stable"
SECRET_LENGTH = 32
DATABASE_VERSION = "POSTGRES_15"

SERVICE_ACCOUNT_ID = resource_id(ResourceKind.SERVICE_ACCOUNT, "app-runner")
DB_PASSWORD_ID = resource_id(ResourceKind.SECRET, "db-password")
ENCRYPTION_KEY_ID = resource_id(ResourceKind.SECRET, "encryption-key")
DATABASE_ID = resource_id(ResourceKind.DATABASE_INSTANCE, "app-db")
CLOUDSQL_BINDING_ID = resource_id(ResourceKind.ROLE_BINDING, "cloudsql-client")
SECRET_BINDING_ID = resource_id(ResourceKind.ROLE_BINDING, "secret-accessor")
COMPUTE_SERVICE_ID = resource_id(ResourceKind.COMPUTE_SERVICE, "app")


def image_attributes(config: DeploymentConfig) -> dict[str, Any]:
    """Return the image-source variant for the compute service."""
    if config.use_custom_image:
        return {
            "image_source": "custom",
            "image": (
                f"{config.region}-docker.pkg.dev/{config.project_id}/app/app:latest"
            ),
        }
    return {"image_source": "prebuilt", "image": PREBUILT_IMAGE}


def _secret(name: str, config: DeploymentConfig) -> Resource:
    return Resource(
        kind=ResourceKind.SECRET,
        name=name,
        attributes={
            "project": config.project_id,
            "secret_id": name,
            "replication": "automatic",
            "length": SECRET_LENGTH,
        },
    )


def build_resources(config: DeploymentConfig) -> list[Resource]:
    """Return the seven desired resources in declaration order."""
    service_account_email = (
        f"app-runner@{config.project_id}.iam.gserviceaccount.com"
    )
    connection_name = f"{config.project_id}:{config.region}:app-db"

    service_account = Resource(
        kind=ResourceKind.SERVICE_ACCOUNT,
        name="app-runner",
        attributes={
            "project": config.project_id,
            "account_id": "app-runner",
            "display_name": "App runtime identity",
            "email": service_account_email,
        },
    )
    database = Resource(
        kind=ResourceKind.DATABASE_INSTANCE,
        name="app-db",
        attributes={
            "project": config.project_id,
            "region": config.region,
            "database_version": DATABASE_VERSION,
            "tier": config.db_tier,
            "database": "app",
            "user": "app",
            "password_secret": DB_PASSWORD_ID,
            "deletion_protection": False,
        },
        depends_on=[DB_PASSWORD_ID],
    )
    cloudsql_binding = Resource(
        kind=ResourceKind.ROLE_BINDING,
        name="cloudsql-client",
        attributes={
            "project": config.project_id,
            "role": "roles/cloudsql.client",
            "member": f"serviceAccount:{service_account_email}",
        },
        depends_on=[SERVICE_ACCOUNT_ID, DATABASE_ID],
    )
    secret_binding = Resource(
        kind=ResourceKind.ROLE_BINDING,
        name="secret-accessor",
        attributes={
            "project": config.project_id,
            "role": "roles/secretmanager.secretAccessor",
            "member": f"serviceAccount:{service_account_email}",
        },
        depends_on=[SERVICE_ACCOUNT_ID, DB_PASSWORD_ID, ENCRYPTION_KEY_ID],
    )
    service = Resource(
        kind=ResourceKind.COMPUTE_SERVICE,
        name="app",
        attributes={
            "project": config.project_id,
            "region": config.region,
            **image_attributes(config),
            "service_account": service_account_email,
            "min_instances": config.min_instances,
            "max_instances": config.max_instances,
            "custom_domain": config.custom_domain,
            "cloudsql_instance": connection_name,
            "env": {
                "DB_CONNECTION_NAME": connection_name,
                "DB_NAME": "app",
                "DB_USER": "app",
            },
            "secret_env": {
                "DB_PASSWORD": DB_PASSWORD_ID,
                "ENCRYPTION_KEY": ENCRYPTION_KEY_ID,
            },
        },
        depends_on=[
            SERVICE_ACCOUNT_ID,
            DB_PASSWORD_ID,
            ENCRYPTION_KEY_ID,
            DATABASE_ID,
            CLOUDSQL_BINDING_ID,
            SECRET_BINDING_ID,
        ],
    )

    return [
        service_account,
        _secret("db-password", config),
        _secret("encryption-key", config),
        database,
        cloudsql_binding,
        secret_binding,
        service,
    ]


def build_resource_graph(config: DeploymentConfig | Mapping[str, Any]) -> ResourceGraph:
    """Validate *config* and build the desired :class:`ResourceGraph`.

    Raises:
        ValidationError: The configuration is incomplete or malformed.
        CycleError:      The dependency edges form a cycle.
    """
    if not isinstance(config, DeploymentConfig):
        config = DeploymentConfig.from_mapping(config)
    config.require_complete()
    return ResourceGraph(build_resources(config))
