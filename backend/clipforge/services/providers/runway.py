"""Runway video generation provider (useapi.net gateway).

Endpoints used:
  POST /assets/?name=...          raw image upload → assetId
  POST /assets                    image by URL     → assetId
  POST /gen4/create               image + text job → taskId
  POST /gen4turbo/create          text-only job    → taskId
  GET  /tasks/{taskId}            job status
  POST /accounts/{email}          account activation → jwt

Job ids look like ``user:<id>-runwayml:<email>-task:<uuid>`` and are passed
back to the status endpoint exactly as received.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from clipforge.models.remote_job import (
    REMOTE_COMPLETED,
    REMOTE_FAILED,
    REMOTE_PENDING,
    REMOTE_PROCESSING,
    RemoteJobResult,
)
from clipforge.models.task import GenerationOptions
from clipforge.services.errors import (
    ClipforgeError,
    CredentialError,
    HttpError,
    InvalidResponse,
    UnsupportedMediaType,
)
from clipforge.services.http_retry import RetryClient

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.useapi.net/v1/runwayml"
DEFAULT_MAX_JOBS = 5
DEFAULT_IMAGE_PROMPT = "Generate a smooth video from this image"

SUPPORTED_IMAGE_TYPES = ("image/png", "image/jpeg", "image/gif", "image/webp")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm")

_STATUS_ALIASES = {
    "succeeded": REMOTE_COMPLETED,
    "success": REMOTE_COMPLETED,
    "failed": REMOTE_FAILED,
    "failure": REMOTE_FAILED,
    "canceled": REMOTE_FAILED,
    "pending": REMOTE_PROCESSING,
    "running": REMOTE_PROCESSING,
    "in_progress": REMOTE_PROCESSING,
}

_CREDIT_KEYWORDS = ("credit", "insufficient", "balance")


# ---------------------------------------------------------------------------
# Response normalization
# ---------------------------------------------------------------------------

def extract_job_id(payload: dict[str, Any]) -> str:
    """Find the job id in a job-creation response.

    Probed in order: top-level ``taskId``, nested ``task.taskId``, top-level
    ``id``. The nested shape has been observed in the wild but is not in the
    gateway documentation, so it is probed but never preferred.
    """
    task_id = payload.get("taskId")
    if not task_id:
        nested = payload.get("task")
        if isinstance(nested, dict):
            task_id = nested.get("taskId")
    if not task_id:
        task_id = payload.get("id")
    if not task_id:
        raise InvalidResponse(f"Provider response has no job id: {payload}")
    return str(task_id)


def normalize_status(raw: str | None) -> str:
    status = (raw or REMOTE_PENDING).lower()
    return _STATUS_ALIASES.get(status, status)


def find_video_url(artifacts: list[dict[str, Any]] | None) -> str | None:
    """Return the url of the first video-typed or video-extension artifact."""
    for artifact in artifacts or []:
        if not isinstance(artifact, dict):
            continue
        url = artifact.get("url")
        if not url:
            continue
        if artifact.get("type") == "video" or url.lower().endswith(VIDEO_EXTENSIONS):
            return url
    return None


def _error_text(error: Any) -> str | None:
    if isinstance(error, dict):
        return error.get("errorMessage") or error.get("message") or error.get("reason")
    if isinstance(error, str):
        return error
    return None


def parse_job_status(payload: dict[str, Any], job_id: str) -> RemoteJobResult:
    """Normalize a status response in either the flat or the nested shape."""
    body = payload.get("task") if isinstance(payload.get("task"), dict) else payload
    artifacts = body.get("artifacts") or []
    return RemoteJobResult(
        job_id=str(body.get("taskId") or body.get("id") or job_id),
        status=normalize_status(body.get("status")),
        video_url=find_video_url(artifacts),
        error=_error_text(body.get("error")),
        progress_ratio=body.get("progressRatio"),
        artifacts=artifacts,
    )


def _default_asset_name() -> str:
    return f"image_{uuid.uuid4().hex[:8]}"


def _is_credit_message(message: str) -> bool:
    lowered = message.lower()
    return any(word in lowered for word in _CREDIT_KEYWORDS)


@dataclass
class AccountSetup:
    """Result of a successful account activation."""
    email: str
    max_jobs: int
    jwt: dict[str, Any] | None = None


@dataclass
class CreditStatus:
    """Best-effort credit signal. Defaults to ``has_credits=True``."""
    has_credits: bool
    credits: int | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class RunwayClient:
    """Provider client built once at startup and shared by all tasks."""

    def __init__(
        self,
        http: RetryClient,
        api_token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        email: str = "",
        password: str = "",
        max_jobs: int = DEFAULT_MAX_JOBS,
    ) -> None:
        if not api_token:
            raise CredentialError("Runway API token is required")
        self._http = http
        self._api_token = api_token
        self.base_url = base_url.rstrip("/")
        self._email = email
        self._password = password
        self.max_jobs = max_jobs
        self._jwt: dict[str, Any] | None = None
        self._configured = False
        self._setup_attempted = False
        self._setup_lock = asyncio.Lock()

    @property
    def account_configured(self) -> bool:
        return self._configured

    def _headers(self, content_type: str | None = "application/json") -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._api_token}"}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    async def _call(self, action: str, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return its JSON body, raising HttpError on non-2xx."""
        response = await self._http.request(method, f"{self.base_url}{path}", **kwargs)
        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise InvalidResponse(f"{action}: response is not JSON") from e

        detail = response.text
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            detail = _error_text(data["error"]) or str(data["error"])
        logger.error("%s failed: HTTP %d %s", action, response.status_code, detail)
        raise HttpError(
            f"{action} failed: {detail or response.reason_phrase}",
            status_code=response.status_code,
            detail=detail,
        )

    # -- account --------------------------------------------------------

    async def setup_account(self, email: str, password: str) -> AccountSetup:
        """Activate the Runway account behind the gateway token.

        Raises CredentialError when credentials are missing or rejected.
        """
        if not email or not password:
            raise CredentialError("Email and password are required to set up the Runway account")

        logger.info("Setting up Runway account for %s", email)
        try:
            data = await self._call(
                "Account setup",
                "POST",
                f"/accounts/{quote(email, safe='@')}",
                headers=self._headers(),
                json={"email": email, "password": password, "maxJobs": self.max_jobs},
            )
        except HttpError as e:
            raise CredentialError(str(e)) from e

        jwt = data.get("jwt")
        if jwt:
            self._jwt = jwt
            self._configured = True
            logger.info("Runway account configured")
        else:
            logger.warning("Account setup response has no JWT")
        return AccountSetup(
            email=data.get("email", email),
            max_jobs=data.get("maxJobs", self.max_jobs),
            jwt=jwt,
        )

    async def ensure_account_configured(self) -> None:
        """Run the one-time account setup; failures are logged, never raised."""
        if self._configured or self._setup_attempted:
            return
        if not self._email or not self._password:
            logger.debug("Runway account credentials not configured, skipping setup")
            return
        async with self._setup_lock:
            if self._configured or self._setup_attempted:
                return
            self._setup_attempted = True
            try:
                await self.setup_account(self._email, self._password)
            except ClipforgeError as e:
                # The gateway often works without explicit activation.
                logger.warning("Runway account setup failed (non-fatal): %s", e)

    async def check_credits(self) -> CreditStatus:
        """Best-effort credit check; fails open."""
        if self._configured and self._jwt:
            return CreditStatus(has_credits=True)
        if not self._email or not self._password:
            return CreditStatus(has_credits=True)
        try:
            await self.setup_account(self._email, self._password)
        except CredentialError as e:
            message = str(e)
            if _is_credit_message(message):
                return CreditStatus(has_credits=False, error=message)
            return CreditStatus(has_credits=True, error=message)
        except Exception as e:
            logger.error("Credit check failed: %s", e)
            return CreditStatus(has_credits=True, error="Could not verify credits")
        return CreditStatus(has_credits=True)

    # -- assets ---------------------------------------------------------

    async def upload_image(self, data: bytes, content_type: str, name: str | None = None) -> str:
        """Upload raw image bytes and return the asset id."""
        await self.ensure_account_configured()

        if content_type not in SUPPORTED_IMAGE_TYPES:
            raise UnsupportedMediaType(
                f"Unsupported file type: {content_type}. "
                f"Supported types: {', '.join(SUPPORTED_IMAGE_TYPES)}"
            )

        name = name or _default_asset_name()
        result = await self._call(
            "Image upload",
            "POST",
            f"/assets/?name={quote(name)}",
            headers=self._headers(content_type),
            content=data,
        )
        return self._asset_id(result)

    async def upload_image_from_url(self, image_url: str, name: str | None = None) -> str:
        """Register an image by URL and return the asset id."""
        await self.ensure_account_configured()

        result = await self._call(
            "Image upload",
            "POST",
            "/assets",
            headers=self._headers(),
            json={"name": name or _default_asset_name(), "mediaType": "image", "url": image_url},
        )
        return self._asset_id(result)

    @staticmethod
    def _asset_id(payload: dict[str, Any]) -> str:
        asset_id = payload.get("assetId")
        if not asset_id:
            raise InvalidResponse(f"Upload response has no assetId: {payload}")
        return str(asset_id)

    # -- jobs -----------------------------------------------------------

    def _job_body(self, text_prompt: str, options: GenerationOptions) -> dict[str, Any]:
        body: dict[str, Any] = {
            "text_prompt": text_prompt,
            "aspect_ratio": options.aspect_ratio,
            "seconds": options.seconds,
            "maxJobs": self.max_jobs,
        }
        if options.seed:
            body["seed"] = options.seed
        if options.explore_mode:
            body["exploreMode"] = True
        if options.reply_url:
            body["replyUrl"] = options.reply_url
        if options.reply_ref:
            body["replyRef"] = options.reply_ref
        return body

    async def create_job(self, asset_id: str, text_prompt: str, options: GenerationOptions) -> str:
        """Create an image+text job (Gen-4) and return its id."""
        await self.ensure_account_configured()

        body = self._job_body(text_prompt or DEFAULT_IMAGE_PROMPT, options)
        body["firstImage_assetId"] = asset_id
        logger.info("Creating Gen-4 job asset=%s seconds=%s", asset_id, options.seconds)

        data = await self._call("Video generation", "POST", "/gen4/create", headers=self._headers(), json=body)
        job_id = extract_job_id(data)
        logger.info("Runway job created: %s", job_id)
        return job_id

    async def create_text_job(self, text_prompt: str, options: GenerationOptions) -> str:
        """Create a text-only job (Gen-4 Turbo) and return its id."""
        await self.ensure_account_configured()

        body = self._job_body(text_prompt, options)
        logger.info("Creating Gen-4 Turbo text job seconds=%s", options.seconds)

        data = await self._call("Video generation", "POST", "/gen4turbo/create", headers=self._headers(), json=body)
        job_id = extract_job_id(data)
        logger.info("Runway text job created: %s", job_id)
        return job_id

    async def get_job_status(self, job_id: str) -> RemoteJobResult:
        """Fetch and normalize the status of ``job_id``."""
        if not job_id:
            raise ValueError("job_id must not be empty")

        # Full id goes into the path as-is; the gateway parses it.
        data = await self._call(
            "Status check",
            "GET",
            f"/tasks/{job_id}",
            headers=self._headers(content_type=None),
        )
        result = parse_job_status(data, job_id)
        logger.debug("Runway job %s: %s", job_id, result.status)
        return result

