"""
Firestore Storage Implementation

DESIGN DECISION: The remote backend is a Firestore project the user owns.
1. Each device signs in anonymously; its data lives under its own namespace
   artifacts/<app_id>/users/<uid>/album_<collection>
2. One standing listener per collection pushes the entire collection on
   every change - the store replaces slices, it never patches them
3. Writes are plain round-trips: their effect becomes visible only when the
   listener re-delivers the collection (eventual consistency)

TRADEOFFS:
- Anonymous sessions mean data is tied to the device's session, not a person
- A delete may briefly "come back" if an older snapshot is still in flight
- Listener callbacks run on the client's threads; they only hand snapshots
  to the SnapshotChannel, all state changes happen on the event loop
"""

import asyncio
import functools
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
from google.api_core import exceptions as api_exceptions
from google.auth import credentials as ga_credentials
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
import structlog
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.audit import AuditLogger
from src.config import FirebaseSettings, get_settings
from src.models.records import (
    SETTINGS_DOCUMENT_ID,
    Collection,
    ProjectSettings,
    parse_records,
)
from src.models.store import CollectionSnapshot, RemoteConfig, StoreMode
from src.services.storage.channel import SnapshotChannel
from src.services.storage.interface import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    SerializationError,
    StorageBackend,
    StorageError,
    StoreNotReadyError,
)
from src.state import StoreState


logger = structlog.get_logger(__name__)

# Transient API errors worth retrying for idempotent writes
TRANSIENT_ERRORS = (
    api_exceptions.ServiceUnavailable,
    api_exceptions.DeadlineExceeded,
    api_exceptions.InternalServerError,
)


# =============================================================================
# AUTHENTICATION
# =============================================================================

class FirebaseSession(BaseModel):
    """An anonymous user session."""

    user_id: str = Field(..., min_length=1)
    id_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    expires_at: datetime


class FirebaseAuthClient:
    """
    Anonymous sign-in against the Firebase identity REST API.

    Handles token refresh for long-lived listener connections.
    """

    def __init__(
        self,
        config: RemoteConfig,
        settings: Optional[FirebaseSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sync_transport: Optional[httpx.BaseTransport] = None,
    ):
        self._config = config
        self._settings = settings or get_settings().firebase
        self._transport = transport
        self._sync_transport = sync_transport

    @staticmethod
    def _session_from(payload: Mapping[str, Any], *, refresh: bool = False) -> FirebaseSession:
        # The secure-token endpoint answers in snake_case
        keys = (
            ("user_id", "id_token", "refresh_token", "expires_in")
            if refresh
            else ("localId", "idToken", "refreshToken", "expiresIn")
        )
        user_id, id_token, refresh_token, expires_in = (payload.get(k) for k in keys)
        if not (user_id and id_token and refresh_token):
            raise AuthenticationError("Missing token or user id in sign-in response")
        try:
            lifetime = int(expires_in or 3600)
        except (TypeError, ValueError):
            lifetime = 3600
        return FirebaseSession(
            user_id=user_id,
            id_token=id_token,
            refresh_token=refresh_token,
            expires_at=datetime.utcnow() + timedelta(seconds=lifetime),
        )

    async def sign_in_anonymously(self) -> FirebaseSession:
        """
        Create an anonymous session.

        Raises:
            AuthenticationError: If the service rejected the sign-in
            NetworkError: If the service could not be reached
        """
        try:
            return await self._sign_up()
        except httpx.TransportError as e:
            raise NetworkError(f"Identity service unreachable: {e}") from e

    async def _sign_up(self) -> FirebaseSession:
        retrying = retry(
            stop=stop_after_attempt(self._settings.auth_max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        return await retrying(self._post_sign_up)()

    async def _post_sign_up(self) -> FirebaseSession:
        url = f"{self._settings.identity_url.rstrip('/')}/accounts:signUp"
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self._settings.request_timeout_seconds,
        ) as client:
            r = await client.post(
                url,
                params={"key": self._config.api_key},
                json={"returnSecureToken": True},
            )
        if r.is_error:
            raise AuthenticationError(f"Anonymous sign-in failed: {r.status_code} {r.text}")
        try:
            payload = r.json()
        except ValueError as e:
            raise AuthenticationError(f"Unreadable sign-in response: {e}") from e
        return self._session_from(payload)

    def refresh_session(self, refresh_token: str) -> FirebaseSession:
        """
        Exchange a refresh token for a fresh ID token.

        Called from the Firestore client's threads, hence synchronous.
        """
        url = f"{self._settings.secure_token_url.rstrip('/')}/token"
        try:
            with httpx.Client(
                transport=self._sync_transport,
                timeout=self._settings.request_timeout_seconds,
            ) as client:
                r = client.post(
                    url,
                    params={"key": self._config.api_key},
                    data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                )
        except httpx.TransportError as e:
            raise NetworkError(f"Token service unreachable: {e}") from e
        if r.is_error:
            raise AuthenticationError(f"Token refresh failed: {r.status_code} {r.text}")
        return self._session_from(r.json(), refresh=True)


class FirebaseCredentials(ga_credentials.Credentials):
    """google-auth credentials backed by an anonymous Firebase session."""

    def __init__(
        self,
        session: FirebaseSession,
        refresher: Callable[[str], FirebaseSession],
    ):
        super().__init__()
        self._refresher = refresher
        self._apply_session(session)

    def _apply_session(self, session: FirebaseSession) -> None:
        self.token = session.id_token
        self.expiry = session.expires_at
        self._refresh_token = session.refresh_token

    def refresh(self, request: Any) -> None:
        try:
            self._apply_session(self._refresher(self._refresh_token))
        except StorageError as e:
            raise auth_exceptions.RefreshError(str(e)) from e


def build_firestore_client(
    config: RemoteConfig,
    session: FirebaseSession,
    auth_client: FirebaseAuthClient,
) -> firestore.Client:
    """Default factory: a Firestore client acting as the anonymous user."""
    credentials = FirebaseCredentials(session, auth_client.refresh_session)
    return firestore.Client(project=config.project_id, credentials=credentials)


# =============================================================================
# BACKEND
# =============================================================================

ClientFactory = Callable[[RemoteConfig, FirebaseSession, FirebaseAuthClient], Any]


class FirestoreBackend(StorageBackend):
    """Remote backend with live, full-collection subscriptions."""

    mode = StoreMode.REMOTE

    def __init__(
        self,
        config: RemoteConfig,
        app_id: str,
        settings: Optional[FirebaseSettings] = None,
        auth_client: Optional[FirebaseAuthClient] = None,
        client_factory: ClientFactory = build_firestore_client,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._config = config
        self._app_id = app_id
        self._settings = settings or get_settings().firebase
        self._auth = auth_client or FirebaseAuthClient(config, self._settings)
        self._client_factory = client_factory
        self._audit_logger = audit_logger or AuditLogger()

        self._client: Any = None
        self._session: Optional[FirebaseSession] = None
        self._state: Optional[StoreState] = None
        self._channel: Optional[SnapshotChannel] = None
        self._consumer: Optional[asyncio.Task] = None
        self._watches: list[Any] = []

    @property
    def user_id(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    # ---------- lifecycle ----------
    async def start(self, state: StoreState) -> None:
        """Sign in, acquire the client and open one listener per collection."""
        self._session = await self._auth.sign_in_anonymously()
        try:
            self._client = self._client_factory(self._config, self._session, self._auth)
        except Exception as e:
            raise NetworkError(f"Failed to create Firestore client: {e}") from e

        self._state = state
        self._channel = SnapshotChannel()
        self._consumer = asyncio.create_task(self._consume(self._channel))
        try:
            for collection in Collection:
                watch = self._collection(collection).on_snapshot(
                    functools.partial(self._on_snapshot, self._channel, collection)
                )
                self._watches.append(watch)
        except Exception as e:
            await self.close()
            raise NetworkError(f"Failed to subscribe to remote collections: {e}") from e

    async def close(self) -> None:
        """Tear down listeners; nothing is applied to state afterwards."""
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.close()

        watches, self._watches = self._watches, []
        for watch in watches:
            try:
                watch.unsubscribe()
            except Exception as e:
                logger.warning("unsubscribe_failed", error=str(e))
        if watches:
            self._audit_logger.log_subscriptions_closed(len(watches))

        consumer, self._consumer = self._consumer, None
        if consumer is not None and not consumer.done():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass

        self._state = None

    # ---------- subscriptions ----------
    @staticmethod
    def _on_snapshot(
        channel: SnapshotChannel,
        collection: Collection,
        docs: list[Any],
        changes: Any,
        read_time: Any,
    ) -> None:
        """Listener callback (client thread): hand the full collection over."""
        documents = []
        for doc in docs:
            data = doc.to_dict() or {}
            documents.append({**data, "id": doc.id})
        channel.publish(CollectionSnapshot(collection=collection, documents=documents))

    async def _consume(self, channel: SnapshotChannel) -> None:
        async for batch in channel:
            for snapshot in batch:
                if channel.closed or self._state is None:
                    return
                try:
                    self._apply(snapshot)
                except Exception:
                    logger.exception("snapshot_apply_failed", collection=snapshot.collection.value)

    def _apply(self, snapshot: CollectionSnapshot) -> None:
        collection = snapshot.collection
        documents = snapshot.documents
        settings: Optional[ProjectSettings] = None

        if collection is Collection.TASKS:
            settings_docs = [d for d in documents if d.get("id") == SETTINGS_DOCUMENT_ID]
            documents = [d for d in documents if d.get("id") != SETTINGS_DOCUMENT_ID]
            if settings_docs:
                settings = ProjectSettings.from_document(settings_docs[0])

        records, skipped = parse_records(collection.record_model, documents)
        self._audit_logger.log_skipped_documents(collection.value, skipped)

        self._state.replace_slices({collection: records}, settings=settings)
        self._audit_logger.log_snapshot_applied(collection.value, len(records))

    # ---------- mutations ----------
    async def add(self, collection: Collection, item: Mapping[str, Any]) -> str:
        ref = self._collection(collection)
        payload = {**item, "createdAt": firestore.SERVER_TIMESTAMP}
        _, doc_ref = await self._round_trip(lambda: ref.add(payload))
        return doc_ref.id

    async def update(
        self,
        collection: Collection,
        record_id: str,
        fields: Mapping[str, Any],
    ) -> None:
        doc_ref = self._collection(collection).document(record_id)
        await self._round_trip(self._retrying(lambda: doc_ref.update(dict(fields))))

    async def delete(self, collection: Collection, record_id: str) -> None:
        doc_ref = self._collection(collection).document(record_id)
        await self._round_trip(self._retrying(doc_ref.delete))

    async def save_settings(self, fields: Mapping[str, Any]) -> None:
        doc_ref = self._collection(Collection.TASKS).document(SETTINGS_DOCUMENT_ID)
        await self._round_trip(self._retrying(lambda: doc_ref.set(dict(fields), merge=True)))

    # ---------- helpers ----------
    def _collection(self, collection: Collection) -> Any:
        if self._client is None or self._session is None:
            raise StoreNotReadyError("Remote backend is not started")
        return self._client.collection(
            "artifacts", self._app_id, "users", self._session.user_id, collection.remote_name
        )

    @staticmethod
    def _retrying(call: Callable[[], Any]) -> Callable[[], Any]:
        """Retry idempotent writes on transient API errors."""
        return retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        )(call)

    async def _round_trip(self, call: Callable[[], Any]) -> Any:
        """Run a blocking client call off the loop, bounded and error-mapped."""
        if self._state is None:
            raise StoreNotReadyError("Remote backend is not started")
        pending: Awaitable[Any] = asyncio.to_thread(call)
        try:
            return await asyncio.wait_for(pending, timeout=self._settings.write_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Remote write timed out after {self._settings.write_timeout_seconds}s"
            ) from e
        except api_exceptions.NotFound as e:
            raise NotFoundError(str(e)) from e
        except (api_exceptions.Unauthenticated, api_exceptions.PermissionDenied) as e:
            raise AuthenticationError(str(e)) from e
        except (api_exceptions.GoogleAPIError, ConnectionError) as e:
            raise NetworkError(str(e)) from e
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Payload rejected by client: {e}") from e
