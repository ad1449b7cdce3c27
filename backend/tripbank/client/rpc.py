"""TripBank API client — typed httpx adapter with domain error mapping."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from tripbank.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    StorageLimitError,
    TransientRPCError,
    TripBankError,
    UnauthorizedError,
)
from tripbank.schemas.auth import SyncUserRequest, UserResponse
from tripbank.schemas.grid import (
    BatchGridUpdateRequest,
    BatchGridUpdateResponse,
    GridPositionModel,
    GridPositionUpdate,
)
from tripbank.schemas.media import CreateMediaRequest, MediaItemResponse, UpdateMediaRequest
from tripbank.schemas.moment import CreateMomentRequest, MomentResponse, UpdateMomentRequest
from tripbank.schemas.sharing import JoinRequest, JoinResponse, PermissionResponse, ShareLinkResponse
from tripbank.schemas.storage import (
    FileUrlResponse,
    RecalculateResponse,
    StorageUsageResponse,
    SubscriptionResponse,
    SubscriptionUpdateRequest,
    UploadCheckResponse,
    UploadResponse,
    UploadSlotResponse,
)
from tripbank.schemas.trip import (
    CreateTripRequest,
    PublicPreviewResponse,
    TripDetailResponse,
    TripResponse,
    UpdateTripRequest,
)
from tripbank.services.grid_layout import GridPosition

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], "str | None | Awaitable[str | None]"]

_IDEMPOTENT = {"GET", "PUT", "DELETE"}


def _error_for(response: httpx.Response) -> TripBankError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    detail = body.get("detail") if isinstance(body, dict) else None
    if not isinstance(detail, str):
        detail = str(detail) if detail else response.reason_phrase or f"HTTP {response.status_code}"

    status = response.status_code
    if status in (401, 403):
        return UnauthorizedError(detail)
    if status == 404:
        return NotFoundError(detail)
    if status == 409:
        return ConflictError(detail)
    if status == 413:
        return StorageLimitError(
            detail,
            required_bytes=int(body.get("required_bytes", 0)),
            remaining_bytes=int(body.get("remaining_bytes", 0)),
            upgrade=bool(body.get("upgrade", False)),
        )
    if status in (400, 422):
        return InvalidRequestError(detail)
    if status >= 500:
        return TransientRPCError(detail)
    return TripBankError(detail)


class TripBankClient:
    """
    One method per backend operation, each a single HTTP round trip.

    Failures come back as the same TripBankError subclasses the services
    raise. Only transient failures of idempotent calls are retried, and only
    when `retries` > 0.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider | None = None,
        timeout: float = 30.0,
        retries: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._timeout = timeout
        self._retries = retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "TripBankClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def _headers(self) -> dict[str, str]:
        if self._token_provider is None:
            return {}
        token = self._token_provider()
        if inspect.isawaitable(token):
            token = await token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        content: bytes | None = None,
        auth: bool = True,
    ) -> Any:
        client = await self._get_client()
        headers = await self._headers() if auth else {}
        json_body = body.model_dump(mode="json", exclude_unset=True) if hasattr(body, "model_dump") else body
        attempts = 1 + (self._retries if method in _IDEMPOTENT else 0)

        for attempt in range(attempts):
            try:
                resp = await client.request(method, path, json=json_body, content=content, headers=headers)
            except httpx.RequestError as e:
                error: TripBankError = TransientRPCError(f"{method} {path} failed: {e.__class__.__name__}")
            else:
                if resp.is_success:
                    return resp.json() if resp.content else None
                error = _error_for(resp)

            if not isinstance(error, TransientRPCError) or attempt == attempts - 1:
                raise error
            logger.warning(f"{method} {path} transient failure, retrying ({attempt + 1}/{attempts - 1})")
            await asyncio.sleep(0.5 * 2 ** attempt)

    # ─── Auth ───

    async def sync_user(self, req: SyncUserRequest) -> UserResponse:
        return UserResponse.model_validate(await self._request("POST", "/api/auth/sync", req))

    async def me(self) -> UserResponse:
        return UserResponse.model_validate(await self._request("GET", "/api/auth/me"))

    # ─── Trips ───

    async def create_trip(self, req: CreateTripRequest) -> TripResponse:
        return TripResponse.model_validate(await self._request("POST", "/api/trips", req))

    async def list_trips(self) -> list[TripResponse]:
        return [TripResponse.model_validate(t) for t in await self._request("GET", "/api/trips")]

    async def shared_trips(self) -> list[TripResponse]:
        return [TripResponse.model_validate(t) for t in await self._request("GET", "/api/trips/shared")]

    async def get_trip(self, trip_id: str) -> TripDetailResponse:
        return TripDetailResponse.model_validate(await self._request("GET", f"/api/trips/{trip_id}"))

    async def update_trip(self, trip_id: str, req: UpdateTripRequest) -> TripResponse:
        return TripResponse.model_validate(await self._request("PATCH", f"/api/trips/{trip_id}", req))

    async def delete_trip(self, trip_id: str) -> None:
        await self._request("DELETE", f"/api/trips/{trip_id}")

    # ─── Moments ───

    async def add_moment(self, trip_id: str, req: CreateMomentRequest) -> MomentResponse:
        return MomentResponse.model_validate(await self._request("POST", f"/api/trips/{trip_id}/moments", req))

    async def list_moments(self, trip_id: str) -> list[MomentResponse]:
        data = await self._request("GET", f"/api/trips/{trip_id}/moments")
        return [MomentResponse.model_validate(m) for m in data]

    async def update_moment(self, moment_id: str, req: UpdateMomentRequest) -> MomentResponse:
        return MomentResponse.model_validate(await self._request("PATCH", f"/api/moments/{moment_id}", req))

    async def delete_moment(self, moment_id: str) -> None:
        await self._request("DELETE", f"/api/moments/{moment_id}")

    async def update_grid_position(self, moment_id: str, position: GridPosition) -> MomentResponse:
        body = GridPositionModel.from_position(position)
        return MomentResponse.model_validate(
            await self._request("PUT", f"/api/moments/{moment_id}/grid-position", body)
        )

    async def batch_update_grid_positions(self, updates: list[tuple[str, GridPosition]]) -> int:
        """Persist a reflow in one call; the server applies all of it or none."""
        body = BatchGridUpdateRequest(updates=[
            GridPositionUpdate(moment_id=moment_id, grid_position=GridPositionModel.from_position(position))
            for moment_id, position in updates
        ])
        data = await self._request("PUT", "/api/moments/grid-positions", body)
        return BatchGridUpdateResponse.model_validate(data).updated

    # ─── Media ───

    async def add_media_item(self, trip_id: str, req: CreateMediaRequest) -> MediaItemResponse:
        return MediaItemResponse.model_validate(await self._request("POST", f"/api/trips/{trip_id}/media", req))

    async def list_media(self, trip_id: str) -> list[MediaItemResponse]:
        data = await self._request("GET", f"/api/trips/{trip_id}/media")
        return [MediaItemResponse.model_validate(m) for m in data]

    async def update_media_item(self, media_item_id: str, req: UpdateMediaRequest) -> MediaItemResponse:
        return MediaItemResponse.model_validate(
            await self._request("PATCH", f"/api/media/{media_item_id}", req)
        )

    async def delete_media_item(self, media_item_id: str) -> None:
        await self._request("DELETE", f"/api/media/{media_item_id}")

    # ─── Sharing ───

    async def generate_share_link(self, trip_id: str) -> ShareLinkResponse:
        return ShareLinkResponse.model_validate(await self._request("POST", f"/api/trips/{trip_id}/share-link"))

    async def disable_share_link(self, trip_id: str) -> None:
        await self._request("DELETE", f"/api/trips/{trip_id}/share-link")

    async def join_trip(self, slug_or_code: str) -> JoinResponse:
        data = await self._request("POST", "/api/join", JoinRequest(slug_or_code=slug_or_code))
        return JoinResponse.model_validate(data)

    async def list_permissions(self, trip_id: str) -> list[PermissionResponse]:
        data = await self._request("GET", f"/api/trips/{trip_id}/permissions")
        return [PermissionResponse.model_validate(p) for p in data]

    async def update_permission(self, trip_id: str, user_id: str, new_role: str) -> None:
        await self._request("PATCH", f"/api/trips/{trip_id}/permissions/{user_id}", {"new_role": new_role})

    async def remove_access(self, trip_id: str, user_id: str) -> None:
        await self._request("DELETE", f"/api/trips/{trip_id}/permissions/{user_id}")

    async def get_public_preview(self, slug_or_code: str) -> PublicPreviewResponse:
        data = await self._request("GET", f"/api/public/trips/{slug_or_code}", auth=False)
        return PublicPreviewResponse.model_validate(data)

    # ─── Storage ───

    async def get_storage_usage(self) -> StorageUsageResponse:
        return StorageUsageResponse.model_validate(await self._request("GET", "/api/storage/usage"))

    async def check_upload(self, file_size: int) -> UploadCheckResponse:
        data = await self._request("POST", "/api/storage/check", {"file_size": file_size})
        return UploadCheckResponse.model_validate(data)

    async def recalculate_storage(self) -> RecalculateResponse:
        return RecalculateResponse.model_validate(await self._request("POST", "/api/storage/recalculate"))

    async def get_subscription(self) -> SubscriptionResponse:
        return SubscriptionResponse.model_validate(await self._request("GET", "/api/storage/subscription"))

    async def update_subscription(self, req: SubscriptionUpdateRequest) -> SubscriptionResponse:
        data = await self._request("PUT", "/api/storage/subscription", req)
        return SubscriptionResponse.model_validate(data)

    # ─── Files ───

    async def request_upload_url(self) -> UploadSlotResponse:
        return UploadSlotResponse.model_validate(await self._request("POST", "/api/files/upload-url"))

    async def upload_file(self, data: bytes) -> UploadResponse:
        """Request a slot and push `data` to it."""
        slot = await self.request_upload_url()
        result = await self._request("POST", f"/api/files/upload/{slot.token}", content=data, auth=False)
        return UploadResponse.model_validate(result)

    async def get_file_url(self, storage_id: str) -> str:
        return FileUrlResponse.model_validate(await self._request("GET", f"/api/files/{storage_id}/url")).url
