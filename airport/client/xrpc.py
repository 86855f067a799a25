"""XRPC implementation of the RemoteCapabilityClient over ``requests``.

Source and target accounts share one DID, so calls are routed by role rather
than by account id:

- source session: export, list/get blob, get preferences, signature request
  and signing, deactivation, expected counts
- target session: import, upload blob, put preferences, operation submit,
  activation, status

Every non-2xx response and every transport failure is raised as a
:class:`RemoteError` whose message went through :func:`normalize_error`.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import BaseModel, ConfigDict, Field

from airport.client.errors import (
    BlobTooLargeError,
    NotAuthenticatedError,
    RemoteError,
    TransportError,
    normalize_error,
)
from airport.models.status import AccountStatus, CreatedAccount

logger = logging.getLogger(__name__)

CAR_CONTENT_TYPE = "application/vnd.ipld.car"
_BLOB_PAGE_SIZE = 500
_CHUNK_SIZE = 64 * 1024


class ProviderSession(BaseModel):
    """An authenticated session against one provider."""

    model_config = ConfigDict(frozen=True)

    service: str
    did: str
    handle: str = ""
    access_jwt: str = Field(default="", repr=False)

    @property
    def base_url(self) -> str:
        return self.service.rstrip("/")


def _error_code(response: requests.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return None


class XrpcCapabilityClient:
    """Provider client for one migration.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    blob_size_limit:
        Maximum size of a single blob download, in bytes.
    http:
        A ``requests.Session`` to reuse.  A new one is created if not provided.
    """

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        blob_size_limit: int = 200 * 1024 * 1024,
        http: requests.Session | None = None,
    ) -> None:
        self._timeout = timeout
        self._blob_size_limit = blob_size_limit
        self._http = http or requests.Session()
        self._source: ProviderSession | None = None
        self._target: ProviderSession | None = None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def login(self, service: str, identifier: str, password: str) -> ProviderSession:
        """Authenticate against the source provider."""
        anonymous = ProviderSession(service=service, did="")
        data = self._json(
            self._call(
                anonymous,
                "POST",
                "com.atproto.server.createSession",
                json={"identifier": identifier, "password": password},
                fallback="Failed to log in",
            ),
            "com.atproto.server.createSession",
        )
        self._source = ProviderSession(
            service=service,
            did=data["did"],
            handle=data.get("handle", ""),
            access_jwt=data["accessJwt"],
        )
        logger.info("Logged in to %s as %s", service, self._source.did)
        return self._source

    def login_target(self, service: str, password: str) -> ProviderSession:
        """Open a session on an already-created target account."""
        source = self.source
        data = self._json(
            self._call(
                ProviderSession(service=service, did=source.did),
                "POST",
                "com.atproto.server.createSession",
                json={"identifier": source.did, "password": password},
                fallback="Failed to log in to target account",
                authenticated=False,
            ),
            "com.atproto.server.createSession",
        )
        self._target = ProviderSession(
            service=service,
            did=data["did"],
            handle=data.get("handle", ""),
            access_jwt=data["accessJwt"],
        )
        return self._target

    def use_sessions(
        self,
        source: ProviderSession,
        target: ProviderSession | None = None,
    ) -> None:
        """Attach already-established sessions (e.g. restored from a session store)."""
        self._source = source
        self._target = target

    @property
    def source(self) -> ProviderSession:
        if self._source is None:
            raise NotAuthenticatedError("Not logged in to the source provider")
        return self._source

    @property
    def target(self) -> ProviderSession:
        if self._target is None:
            raise NotAuthenticatedError("Target account has not been created")
        return self._target

    @property
    def source_account_id(self) -> str:
        return self.source.did

    @property
    def target_account_id(self) -> str | None:
        return self._target.did if self._target is not None else None

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------

    def create_account(
        self,
        target_service: str,
        handle: str,
        email: str,
        password: str,
        invite: str | None = None,
    ) -> CreatedAccount:
        """Create the target account, keeping the source DID.

        If the target already holds an account for this DID (a previous
        attempt got this far), a session is opened on it instead.
        """
        source = self.source
        pending_target = ProviderSession(service=target_service, did=source.did)

        describe = self._json(
            self._call(
                pending_target,
                "GET",
                "com.atproto.server.describeServer",
                fallback="Failed to describe target server",
                authenticated=False,
            ),
            "com.atproto.server.describeServer",
        )
        service_auth = self._json(
            self._call(
                source,
                "GET",
                "com.atproto.server.getServiceAuth",
                params={
                    "aud": describe["did"],
                    "lxm": "com.atproto.server.createAccount",
                },
                fallback="Failed to obtain service auth",
            ),
            "com.atproto.server.getServiceAuth",
        )

        body: dict[str, Any] = {
            "handle": handle,
            "email": email,
            "password": password,
            "did": source.did,
        }
        if invite:
            body["inviteCode"] = invite

        try:
            response = self._call(
                pending_target,
                "POST",
                "com.atproto.server.createAccount",
                json=body,
                auth_token=service_auth["token"],
                fallback="Failed to create account",
            )
        except RemoteError as exc:
            if exc.code != "AlreadyExists":
                raise
            logger.info(
                "Account %s already exists on %s; resuming with a new session",
                source.did,
                target_service,
            )
            response = self._call(
                pending_target,
                "POST",
                "com.atproto.server.createSession",
                json={"identifier": source.did, "password": password},
                fallback="Failed to log in to existing target account",
                authenticated=False,
            )

        data = self._json(response, "com.atproto.server.createAccount")
        self._target = ProviderSession(
            service=target_service,
            did=data["did"],
            handle=data.get("handle", handle),
            access_jwt=data["accessJwt"],
        )
        return CreatedAccount(account_id=self._target.did, handle=self._target.handle)

    def activate_account(self, account_id: str) -> None:
        target = self._check_role(self.target, account_id)
        self._call(
            target, "POST", "com.atproto.server.activateAccount",
            fallback="Failed to activate account",
        )

    def deactivate_account(self, account_id: str) -> None:
        source = self._check_role(self.source, account_id)
        self._call(
            source, "POST", "com.atproto.server.deactivateAccount",
            json={},
            fallback="Failed to deactivate account",
        )

    def check_account_status(self, account_id: str) -> AccountStatus:
        target = self._check_role(self.target, account_id)
        return self._account_status(target)

    def expected_counts(self) -> tuple[int, int]:
        status = self._account_status(self.source)
        return status.indexed_records, status.expected_blobs

    def _account_status(self, session: ProviderSession) -> AccountStatus:
        data = self._json(
            self._call(
                session, "GET", "com.atproto.server.checkAccountStatus",
                fallback="Failed to check account status",
            ),
            "com.atproto.server.checkAccountStatus",
        )
        return AccountStatus.model_validate(data)

    # ------------------------------------------------------------------
    # Data transfer
    # ------------------------------------------------------------------

    def export_repository(self, source_account_id: str) -> bytes:
        source = self._check_role(self.source, source_account_id)
        response = self._call(
            source, "GET", "com.atproto.sync.getRepo",
            params={"did": source.did},
            fallback="Failed to export repository",
        )
        return response.content

    def import_repository(self, target_account_id: str, car_bytes: bytes) -> None:
        target = self._check_role(self.target, target_account_id)
        self._call(
            target, "POST", "com.atproto.repo.importRepo",
            data=car_bytes,
            content_type=CAR_CONTENT_TYPE,
            fallback="Failed to migrate repo",
        )

    def list_blobs(self, source_account_id: str) -> list[str]:
        source = self._check_role(self.source, source_account_id)
        cids: list[str] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"did": source.did, "limit": _BLOB_PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            page = self._json(
                self._call(
                    source, "GET", "com.atproto.sync.listBlobs",
                    params=params,
                    fallback="Failed to list blobs",
                ),
                "com.atproto.sync.listBlobs",
            )
            cids.extend(page.get("cids", []))
            cursor = page.get("cursor")
            if not cursor or not page.get("cids"):
                return cids

    def get_blob(self, source_account_id: str, cid: str) -> tuple[bytes, str]:
        source = self._check_role(self.source, source_account_id)
        response = self._call(
            source, "GET", "com.atproto.sync.getBlob",
            params={"did": source.did, "cid": cid},
            stream=True,
            fallback=f"Failed to download blob {cid}",
        )
        mime_type = response.headers.get("Content-Type", "application/octet-stream")
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > self._blob_size_limit:
            response.close()
            raise BlobTooLargeError(
                f"Blob {cid} is {int(declared)} bytes, over the "
                f"{self._blob_size_limit} byte limit"
            )

        chunks: list[bytes] = []
        received = 0
        try:
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                received += len(chunk)
                if received > self._blob_size_limit:
                    raise BlobTooLargeError(
                        f"Blob {cid} exceeds the {self._blob_size_limit} byte limit"
                    )
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise TransportError(f"Failed to download blob {cid}: {exc}") from exc
        finally:
            response.close()
        return b"".join(chunks), mime_type

    def upload_blob(self, target_account_id: str, data: bytes, mime_type: str) -> None:
        target = self._check_role(self.target, target_account_id)
        self._call(
            target, "POST", "com.atproto.repo.uploadBlob",
            data=data,
            content_type=mime_type,
            fallback="Failed to migrate blobs",
        )

    def get_preferences(self, source_account_id: str) -> list[dict[str, Any]]:
        source = self._check_role(self.source, source_account_id)
        data = self._json(
            self._call(
                source, "GET", "app.bsky.actor.getPreferences",
                fallback="Failed to read preferences",
            ),
            "app.bsky.actor.getPreferences",
        )
        return list(data.get("preferences", []))

    def put_preferences(
        self, target_account_id: str, preferences: list[dict[str, Any]]
    ) -> None:
        target = self._check_role(self.target, target_account_id)
        self._call(
            target, "POST", "app.bsky.actor.putPreferences",
            json={"preferences": preferences},
            fallback="Failed to migrate preferences",
        )

    # ------------------------------------------------------------------
    # Identity re-keying
    # ------------------------------------------------------------------

    def request_identity_operation_signature(self, source_account_id: str) -> None:
        source = self._check_role(self.source, source_account_id)
        self._call(
            source, "POST", "com.atproto.identity.requestPlcOperationSignature",
            fallback="Failed to request identity migration",
        )

    def sign_identity_operation(
        self, source_account_id: str, token: str
    ) -> dict[str, Any]:
        """Sign the re-keying operation with the e-mailed token.

        The operation points the DID at the target's recommended rotation
        keys, verification methods, handle and service endpoint.
        """
        source = self._check_role(self.source, source_account_id)
        credentials = self._json(
            self._call(
                self.target, "GET",
                "com.atproto.identity.getRecommendedDidCredentials",
                fallback="Failed to read recommended identity credentials",
            ),
            "com.atproto.identity.getRecommendedDidCredentials",
        )
        signed = self._json(
            self._call(
                source, "POST", "com.atproto.identity.signPlcOperation",
                json={"token": token, **credentials},
                fallback="Failed to complete identity migration",
            ),
            "com.atproto.identity.signPlcOperation",
        )
        return signed["operation"]

    def submit_identity_operation(self, signed_operation: dict[str, Any]) -> None:
        self._call(
            self.target, "POST", "com.atproto.identity.submitPlcOperation",
            json={"operation": signed_operation},
            fallback="Failed to submit identity operation",
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @staticmethod
    def _check_role(session: ProviderSession, account_id: str) -> ProviderSession:
        if account_id != session.did:
            raise RemoteError(
                f"Account {account_id} does not match the session for {session.did}"
            )
        return session

    def _call(
        self,
        session: ProviderSession,
        method: str,
        nsid: str,
        *,
        fallback: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: bytes | None = None,
        content_type: str | None = None,
        auth_token: str | None = None,
        authenticated: bool = True,
        stream: bool = False,
    ) -> requests.Response:
        url = f"{session.base_url}/xrpc/{nsid}"
        headers: dict[str, str] = {}
        token = auth_token or (session.access_jwt if authenticated else "")
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if content_type:
            headers["Content-Type"] = content_type

        logger.debug("%s %s", method, url)
        try:
            response = self._http.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                headers=headers,
                timeout=self._timeout,
                stream=stream,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{fallback}: {exc}") from exc

        if not response.ok:
            message = normalize_error(response.text, fallback)
            code = _error_code(response)
            logger.warning("%s failed (%s): %s", nsid, response.status_code, message)
            raise RemoteError(message, status=response.status_code, code=code)
        return response

    @staticmethod
    def _json(response: requests.Response, nsid: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteError(f"Invalid response from server during {nsid}") from exc
        if not isinstance(data, dict):
            raise RemoteError(f"Invalid response from server during {nsid}")
        return data
