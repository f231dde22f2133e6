"""HTTP client for negotiating resumable upload sessions with the signer service."""

from dataclasses import dataclass
from typing import Optional

import httpx
from pydantic import ValidationError as SchemaValidationError

from common.constants import (
    CANCEL_ENDPOINT_TEMPLATE,
    COMPLETE_ENDPOINT,
    INIT_ENDPOINT,
    SESSION_TIMEOUT_SECONDS,
)
from common.logging_config import get_logger
from common.types import UploadDescriptor
from uploader.exceptions import SessionError, SessionExpiredError
from uploader.schemas import (
    SessionCompleteRequest,
    SessionInitRequest,
    SessionInitResponse,
)

logger = get_logger(__name__)

_EXPIRED_STATUSES = (401, 403, 404, 410)


@dataclass(frozen=True)
class UploadSession:
    """A negotiated resumable upload session."""
    upload_id: str
    upload_url: str
    resume_url: str
    expires_at: Optional[str] = None


class UploadSessionNegotiator:
    """
    Opens, confirms and releases upload sessions with the external signer.

    Never retries: negotiation failures are usually not transient (expired
    auth, exhausted quota), so the caller owns the retry decision.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        auth_token: Optional[str] = None,
        timeout: float = SESSION_TIMEOUT_SECONDS,
        init_path: str = INIT_ENDPOINT,
        complete_path: str = COMPLETE_ENDPOINT,
        cancel_path_template: str = CANCEL_ENDPOINT_TEMPLATE,
    ):
        """
        Initialize negotiator.

        Args:
            client: Async HTTP client whose base_url points at the signer
            auth_token: Optional opaque bearer token passed through as-is
            timeout: Per-request timeout in seconds
            init_path: Session init endpoint path
            complete_path: Session completion endpoint path
            cancel_path_template: Cancel endpoint path with {upload_id} placeholder
        """
        self.client = client
        self.auth_token = auth_token
        self.timeout = timeout
        self.init_path = init_path
        self.complete_path = complete_path
        self.cancel_path_template = cancel_path_template

    def _headers(self) -> dict:
        headers = {'Content-Type': 'application/json'}
        if self.auth_token:
            headers['Authorization'] = f'Bearer {self.auth_token}'
        return headers

    async def _post(self, path: str, payload: dict, action: str) -> httpx.Response:
        try:
            response = await self.client.post(
                path,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Signer request failed: {action} error={type(e).__name__}: {e}")
            raise SessionError(f"Failed to {action}: {type(e).__name__}") from e

        if response.status_code in _EXPIRED_STATUSES:
            logger.warning(f"Signer rejected request: {action} status={response.status_code}")
            raise SessionExpiredError(
                f"Failed to {action}: session not authorized (HTTP {response.status_code})"
            )
        if not response.is_success:
            logger.warning(f"Signer request unsuccessful: {action} status={response.status_code}")
            raise SessionError(
                f"Failed to {action}: {response.reason_phrase or 'HTTP ' + str(response.status_code)}"
            )
        return response

    async def open(self, descriptor: UploadDescriptor) -> UploadSession:
        """
        Obtain a resumable upload session for a validated descriptor.

        Args:
            descriptor: Upload to open a session for

        Returns:
            UploadSession with the session endpoint

        Raises:
            SessionError: On any non-success response or transport failure
        """
        request = SessionInitRequest(
            video_id=descriptor.upload_id,
            filename=descriptor.file_name,
            size=descriptor.declared_size,
            content_type=descriptor.declared_type,
        )
        logger.info(
            f"Opening upload session [upload_id={descriptor.upload_id}] "
            f"[file={descriptor.file_name}] [size={descriptor.declared_size}]"
        )
        response = await self._post(
            self.init_path, request.model_dump(by_alias=True), "initialize upload"
        )

        try:
            body = SessionInitResponse.model_validate(response.json())
        except (ValueError, SchemaValidationError) as e:
            raise SessionError("Failed to initialize upload: malformed signer response") from e

        logger.info(f"Upload session opened [upload_id={descriptor.upload_id}]")
        return UploadSession(
            upload_id=descriptor.upload_id,
            upload_url=body.upload_url,
            resume_url=body.resume_url or body.upload_url,
            expires_at=body.expires_at,
        )

    async def confirm(self, upload_id: str) -> dict:
        """
        Ask the signer to confirm that the uploaded object is durable.

        Args:
            upload_id: Upload to confirm

        Returns:
            Parsed JSON body of the confirmation (empty dict if none)

        Raises:
            SessionError: If the signer does not confirm
        """
        request = SessionCompleteRequest(video_id=upload_id)
        response = await self._post(
            self.complete_path, request.model_dump(by_alias=True), "complete upload"
        )
        logger.info(f"Upload confirmed by signer [upload_id={upload_id}]")
        try:
            return response.json()
        except ValueError:
            return {}

    async def release(self, upload_id: str) -> bool:
        """
        Best-effort notification that an upload was cancelled.

        Args:
            upload_id: Upload to release

        Returns:
            True if the signer acknowledged, False otherwise (never raises)
        """
        path = self.cancel_path_template.format(upload_id=upload_id)
        try:
            response = await self.client.delete(path, headers=self._headers(), timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to cancel on backend [upload_id={upload_id}]: {e}")
            return False

        if not response.is_success:
            logger.warning(
                f"Failed to cancel on backend [upload_id={upload_id}] status={response.status_code}"
            )
            return False
        return True
