"""Create the workspace and collections on first start."""

import logging

from jaeger_docstore.errors import UpstreamError
from jaeger_docstore.models import StoreConfig
from jaeger_docstore.store.base import DocumentStore

logger = logging.getLogger(__name__)

_NOT_FOUND = 404
_CONFLICT = 409


class SchemaProvisioner:
    """Idempotent create-if-missing for the configured workspace and collections.

    Retention is only set when a collection is created; existing collections
    are left untouched.
    """

    def __init__(self, store: DocumentStore, config: StoreConfig) -> None:
        self.store = store
        self.config = config

    async def provision(self) -> None:
        if not self.config.create:
            logger.debug("Skipping workspace and collection creation")
            return
        logger.debug("Creating workspace and collections")

        await self.ensure_workspace(self.config.workspace)
        for collection in (self.config.spans, self.config.operations):
            await self.ensure_collection(self.config.workspace, collection)

    async def ensure_workspace(self, workspace: str) -> None:
        try:
            await self.store.get_workspace(workspace)
            logger.debug("Workspace %s exists", workspace)
            return
        except UpstreamError as exc:
            if exc.status_code != _NOT_FOUND:
                raise

        try:
            await self.store.create_workspace(workspace)
        except UpstreamError as exc:
            if exc.status_code != _CONFLICT:
                raise
            logger.debug("Workspace %s created concurrently", workspace)
            return
        logger.info("Created workspace %s", workspace)

    async def ensure_collection(self, workspace: str, collection: str) -> None:
        try:
            await self.store.get_collection(workspace, collection)
            logger.debug("Collection %s.%s exists", workspace, collection)
            return
        except UpstreamError as exc:
            if exc.status_code != _NOT_FOUND:
                raise

        try:
            await self.store.create_collection(workspace, collection, self.config.retention_secs)
        except UpstreamError as exc:
            if exc.status_code != _CONFLICT:
                raise
            logger.debug("Collection %s.%s created concurrently", workspace, collection)
            return
        logger.info(
            "Created collection %s.%s (retention %ds)",
            workspace,
            collection,
            self.config.retention_secs,
        )
