"""Cosmos DB backend for sessions, messages, windows and the conversation directory."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
import asyncio
import structlog
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos import PartitionKey
from azure.cosmos import exceptions as cosmos_exceptions
from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    ServiceRequestError,
    ServiceRequestTimeoutError,
    ServiceResponseTimeoutError,
)
from azure.identity.aio import DefaultAzureCredential

from src.conversation_store.config import Settings, settings as default_settings
from src.conversation_store.errors import (
    BackendError,
    BackendTransientError,
    BackendUnavailable,
    DuplicateMessageError,
)
from src.conversation_store.models import (
    Conversation,
    ConversationWindow,
    Message,
    MessageRole,
    Session,
    StoreStats,
    conversation_document_id,
    format_timestamp,
    session_document_id,
    window_document_id,
)
from src.conversation_store.models.conversation import CONVERSATION_DOCUMENT_TYPE
from src.conversation_store.models.message import MESSAGE_DOCUMENT_TYPE
from src.conversation_store.models.session import SESSION_DOCUMENT_TYPE
from src.conversation_store.models.window import WINDOW_DOCUMENT_TYPE
from src.conversation_store.services.backend import ConversationBackend

logger = structlog.get_logger(__name__)

# Status codes that mean "this call failed, try again later"
_TRANSIENT_STATUS_CODES = {408, 429, 449, 500, 503}
# Status codes that mean "this process cannot talk to the account at all"
_UNAVAILABLE_STATUS_CODES = {401, 403}


class CosmosBackend(ConversationBackend):
    """
    Async Cosmos DB backend.

    One container holds every document kind, partitioned by ``tenant_id`` and
    discriminated by ``document_type``. Point operations always pass the exact
    partition key; only owner lookup and stats run cross-partition.
    """

    name = "cosmos"

    def __init__(self, config: Optional[Settings] = None, container: Optional[ContainerProxy] = None):
        """Initialize Cosmos DB backend.

        Args:
            config: Settings to read endpoint/database/container from
            container: Pre-built container client (skips client creation)
        """
        self.config = config or default_settings
        self.endpoint = self.config.COSMOS_DB_ENDPOINT
        self.database_name = self.config.COSMOS_DB_DATABASE_NAME
        self.container_name = self.config.COSMOS_DB_CONTAINER_NAME
        self.partition_key_path = self.config.COSMOS_DB_PARTITION_KEY_PATH

        self._client: Optional[CosmosClient] = None
        self._credential: Optional[DefaultAzureCredential] = None
        self._database = None
        self._container: Optional[ContainerProxy] = container

        if not self.endpoint and container is None:
            logger.warning("cosmos_db_not_configured", reason="COSMOS_DB_ENDPOINT not set")

    # ========================================================================
    # Connection lifecycle
    # ========================================================================

    def _connect(self) -> None:
        """Create client objects. No network traffic happens here."""
        if self._container is not None:
            return
        self._connect_client_only()
        self._database = self._client.get_database_client(self.database_name)
        self._container = self._database.get_container_client(self.container_name)
        logger.info("cosmos_db_initialized",
                    endpoint=self.endpoint,
                    database=self.database_name,
                    container=self.container_name)

    def _require_container(self) -> ContainerProxy:
        if self._container is None:
            self._connect()
        return self._container

    async def probe(self) -> None:
        """Read the container once; any failure here means degraded mode."""
        try:
            container = self._require_container()
            async with self._guard("probe"):
                try:
                    await container.read()
                except cosmos_exceptions.CosmosResourceNotFoundError as e:
                    raise BackendUnavailable(
                        f"Container {self.database_name}/{self.container_name} not found",
                        operation="probe",
                        status_code=404,
                    ) from e
        except BackendTransientError as e:
            # A backend that cannot answer a probe is not usable at startup
            raise BackendUnavailable(e.message, operation="probe", status_code=e.status_code) from e
        logger.info("cosmos_db_probe_ok", database=self.database_name, container=self.container_name)

    async def close(self) -> None:
        """Close Cosmos DB connection."""
        if self._client:
            await self._client.close()
        if self._credential:
            await self._credential.close()

    async def ensure_container(self) -> None:
        """Create the database and container if they do not exist."""
        self._connect_client_only()
        async with self._guard("ensure_container"):
            database = await self._client.create_database_if_not_exists(
                id=self.database_name,
                offer_throughput=self.config.COSMOS_DB_THROUGHPUT,
            )
            self._database = database
            self._container = await database.create_container_if_not_exists(
                id=self.container_name,
                partition_key=PartitionKey(path=self.partition_key_path),
                default_ttl=self.config.DOCUMENT_TTL_SECONDS,
                indexing_policy=self.indexing_policy(),
            )
        logger.info("cosmos_container_ready",
                    database=self.database_name,
                    container=self.container_name,
                    partition_key=self.partition_key_path,
                    default_ttl=self.config.DOCUMENT_TTL_SECONDS)

    def _connect_client_only(self) -> None:
        if self._client is not None:
            return
        if not self.endpoint:
            raise BackendUnavailable("COSMOS_DB_ENDPOINT not set", operation="connect")
        if self.config.COSMOS_DB_KEY:
            self._client = CosmosClient(self.endpoint, credential=self.config.COSMOS_DB_KEY)
        else:
            # Use managed identity for authentication
            self._credential = DefaultAzureCredential()
            self._client = CosmosClient(self.endpoint, credential=self._credential)

    @staticmethod
    def indexing_policy() -> Dict[str, Any]:
        """Composite indexes backing the ordered partition queries."""
        return {
            "indexingMode": "consistent",
            "automatic": True,
            "includedPaths": [{"path": "/*"}],
            "excludedPaths": [{"path": '/"_etag"/?'}],
            "compositeIndexes": [
                [
                    {"path": "/conversation_id", "order": "ascending"},
                    {"path": "/created_at", "order": "descending"},
                ],
                [
                    {"path": "/tenant_id", "order": "ascending"},
                    {"path": "/last_activity_at", "order": "descending"},
                ],
            ],
        }

    # ========================================================================
    # Error translation
    # ========================================================================

    @staticmethod
    def _classify(operation: str, error: Exception) -> BackendError:
        """Map SDK/transport exceptions onto the store's error kinds."""
        if isinstance(error, BackendError):
            return error
        if isinstance(error, cosmos_exceptions.CosmosHttpResponseError):
            status = error.status_code
            if status in _UNAVAILABLE_STATUS_CODES:
                return BackendUnavailable(str(error), operation=operation, status_code=status)
            return BackendTransientError(str(error), operation=operation, status_code=status)
        if isinstance(error, ClientAuthenticationError):
            return BackendUnavailable(str(error), operation=operation)
        if isinstance(error, (ServiceRequestTimeoutError, ServiceResponseTimeoutError, asyncio.TimeoutError)):
            return BackendTransientError(str(error) or "timeout", operation=operation)
        if isinstance(error, ServiceRequestError):
            # Request never reached the service: DNS, refused connection, TLS
            return BackendUnavailable(str(error), operation=operation)
        if isinstance(error, AzureError):
            return BackendTransientError(str(error), operation=operation)
        return BackendTransientError(f"{type(error).__name__}: {error}", operation=operation)

    @asynccontextmanager
    async def _guard(self, operation: str, **context):
        try:
            yield
        except BackendError:
            raise
        except Exception as e:
            error = self._classify(operation, e)
            logger.warning("cosmos_operation_failed",
                           operation=operation,
                           error_kind=type(error).__name__,
                           status_code=error.status_code,
                           error=str(e),
                           **context)
            raise error from e

    async def _query(
        self,
        operation: str,
        query: str,
        parameters: List[Dict[str, Any]],
        partition_key: Optional[str] = None,
    ) -> List[Any]:
        container = self._require_container()
        kwargs: Dict[str, Any] = {"query": query, "parameters": parameters}
        if partition_key is not None:
            kwargs["partition_key"] = partition_key

        items = []
        async with self._guard(operation, partition_key=partition_key):
            async for item in container.query_items(**kwargs):
                items.append(item)
        return items

    async def _read(self, operation: str, document_id: str, tenant_id: str) -> Optional[Dict[str, Any]]:
        container = self._require_container()
        async with self._guard(operation, document_id=document_id, tenant_id=tenant_id):
            try:
                return await container.read_item(item=document_id, partition_key=tenant_id)
            except cosmos_exceptions.CosmosResourceNotFoundError:
                return None

    async def _upsert(self, operation: str, body: Dict[str, Any]) -> Dict[str, Any]:
        container = self._require_container()
        async with self._guard(operation, document_id=body.get("id"), tenant_id=body.get("tenant_id")):
            return await container.upsert_item(body=body)

    async def _delete(self, operation: str, document_id: str, tenant_id: str) -> bool:
        container = self._require_container()
        async with self._guard(operation, document_id=document_id, tenant_id=tenant_id):
            try:
                await container.delete_item(item=document_id, partition_key=tenant_id)
                return True
            except cosmos_exceptions.CosmosResourceNotFoundError:
                return False

    # ========================================================================
    # Sessions
    # ========================================================================

    async def upsert_session(self, session: Session) -> Session:
        await self._upsert("upsert_session", session.model_dump(mode="json"))
        logger.debug("session_written", tenant_id=session.tenant_id)
        return session

    async def read_session(self, tenant_id: str) -> Optional[Session]:
        item = await self._read("read_session", session_document_id(tenant_id), tenant_id)
        return Session.model_validate(item) if item else None

    async def delete_session(self, tenant_id: str) -> bool:
        return await self._delete("delete_session", session_document_id(tenant_id), tenant_id)

    # ========================================================================
    # Messages
    # ========================================================================

    async def create_message(self, message: Message) -> Message:
        container = self._require_container()
        async with self._guard("create_message", conversation_id=message.conversation_id, tenant_id=message.tenant_id):
            try:
                await container.create_item(body=message.model_dump(mode="json"))
            except cosmos_exceptions.CosmosResourceExistsError as e:
                raise DuplicateMessageError(message.id) from e
        logger.debug("message_written",
                     tenant_id=message.tenant_id,
                     conversation_id=message.conversation_id,
                     role=message.role.value)
        return message

    async def query_messages(
        self,
        conversation_id: str,
        tenant_id: str,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[Message]:
        query = (
            "SELECT * FROM c "
            "WHERE c.document_type = @document_type "
            "AND c.conversation_id = @conversation_id"
        )
        parameters = [
            {"name": "@document_type", "value": MESSAGE_DOCUMENT_TYPE},
            {"name": "@conversation_id", "value": conversation_id},
        ]
        if before is not None:
            query += " AND c.created_at < @before"
            parameters.append({"name": "@before", "value": format_timestamp(before)})
        query += f" ORDER BY c.created_at DESC OFFSET 0 LIMIT {int(limit)}"

        items = await self._query("query_messages", query, parameters, partition_key=tenant_id)
        messages = [Message.model_validate(item) for item in items]
        messages.reverse()
        return messages

    async def list_message_ids(self, conversation_id: str, tenant_id: str) -> List[str]:
        items = await self._query(
            "list_message_ids",
            "SELECT VALUE c.id FROM c "
            "WHERE c.document_type = @document_type AND c.conversation_id = @conversation_id",
            [
                {"name": "@document_type", "value": MESSAGE_DOCUMENT_TYPE},
                {"name": "@conversation_id", "value": conversation_id},
            ],
            partition_key=tenant_id,
        )
        return list(items)

    async def delete_message(self, message_id: str, tenant_id: str) -> bool:
        return await self._delete("delete_message", message_id, tenant_id)

    # ========================================================================
    # Windows
    # ========================================================================

    async def read_window(self, conversation_id: str, tenant_id: str) -> Optional[ConversationWindow]:
        item = await self._read("read_window", window_document_id(conversation_id), tenant_id)
        return ConversationWindow.model_validate(item) if item else None

    async def upsert_window(self, window: ConversationWindow) -> ConversationWindow:
        await self._upsert("upsert_window", window.model_dump(mode="json"))
        return window

    async def delete_window(self, conversation_id: str, tenant_id: str) -> bool:
        return await self._delete("delete_window", window_document_id(conversation_id), tenant_id)

    # ========================================================================
    # Directory
    # ========================================================================

    async def read_conversation(self, conversation_id: str, tenant_id: str) -> Optional[Conversation]:
        item = await self._read("read_conversation", conversation_document_id(conversation_id), tenant_id)
        return Conversation.model_validate(item) if item else None

    async def create_conversation(self, conversation: Conversation) -> Optional[Conversation]:
        container = self._require_container()
        async with self._guard("create_conversation",
                               conversation_id=conversation.conversation_id,
                               tenant_id=conversation.tenant_id):
            try:
                await container.create_item(body=conversation.model_dump(mode="json"))
            except cosmos_exceptions.CosmosResourceExistsError:
                return None
        return conversation

    async def upsert_conversation(self, conversation: Conversation) -> Conversation:
        await self._upsert("upsert_conversation", conversation.model_dump(mode="json"))
        return conversation

    async def list_conversations(self, tenant_id: str, limit: int, active_only: bool = True) -> List[Conversation]:
        query = "SELECT * FROM c WHERE c.document_type = @document_type"
        if active_only:
            query += " AND c.is_active = true"
        query += f" ORDER BY c.last_activity_at DESC OFFSET 0 LIMIT {int(limit)}"

        items = await self._query(
            "list_conversations",
            query,
            [{"name": "@document_type", "value": CONVERSATION_DOCUMENT_TYPE}],
            partition_key=tenant_id,
        )
        return [Conversation.model_validate(item) for item in items]

    async def delete_conversation(self, conversation_id: str, tenant_id: str) -> bool:
        return await self._delete("delete_conversation", conversation_document_id(conversation_id), tenant_id)

    # ========================================================================
    # Cross-partition
    # ========================================================================

    async def find_conversation_owner(self, conversation_id: str) -> Optional[str]:
        items = await self._query(
            "find_conversation_owner",
            "SELECT TOP 1 VALUE c.tenant_id FROM c WHERE c.id = @id",
            [{"name": "@id", "value": conversation_document_id(conversation_id)}],
        )
        return items[0] if items else None

    async def _scalar(self, label: str, query: str, parameters: List[Dict[str, Any]]) -> Optional[Any]:
        """Run one aggregate; a transient failure only blanks this figure."""
        try:
            items = await self._query(f"stats_{label}", query, parameters)
        except BackendTransientError as e:
            logger.warning("stats_query_failed", label=label, error=e.message)
            return None
        return items[0] if items else None

    async def collect_stats(self) -> StoreStats:
        def by_type(document_type: str) -> List[Dict[str, Any]]:
            return [{"name": "@document_type", "value": document_type}]

        def by_role(role: MessageRole) -> List[Dict[str, Any]]:
            return by_type(MESSAGE_DOCUMENT_TYPE) + [{"name": "@role", "value": role.value}]

        count_typed = "SELECT VALUE COUNT(1) FROM c WHERE c.document_type = @document_type"
        count_role = count_typed + " AND c.role = @role"

        avg_window = await self._scalar(
            "avg_window_entries",
            "SELECT VALUE AVG(ARRAY_LENGTH(c.entries)) FROM c WHERE c.document_type = @document_type",
            by_type(WINDOW_DOCUMENT_TYPE),
        )

        return StoreStats(
            backend=self.name,
            total_documents=await self._scalar("total_documents", "SELECT VALUE COUNT(1) FROM c", []),
            sessions=await self._scalar("sessions", count_typed, by_type(SESSION_DOCUMENT_TYPE)),
            conversations=await self._scalar("conversations", count_typed, by_type(CONVERSATION_DOCUMENT_TYPE)),
            active_conversations=await self._scalar(
                "active_conversations",
                count_typed + " AND c.is_active = true",
                by_type(CONVERSATION_DOCUMENT_TYPE),
            ),
            windows=await self._scalar("windows", count_typed, by_type(WINDOW_DOCUMENT_TYPE)),
            user_messages=await self._scalar("user_messages", count_role, by_role(MessageRole.USER)),
            assistant_messages=await self._scalar("assistant_messages", count_role, by_role(MessageRole.ASSISTANT)),
            system_messages=await self._scalar("system_messages", count_role, by_role(MessageRole.SYSTEM)),
            avg_window_entries=round(avg_window, 2) if avg_window is not None else 0.0,
            recent_activity=await self._scalar(
                "recent_activity",
                "SELECT TOP 1 VALUE c.created_at FROM c "
                "WHERE c.document_type = @document_type ORDER BY c.created_at DESC",
                by_type(MESSAGE_DOCUMENT_TYPE),
            ),
        )
