from datetime import date

import httpx
import pytest

from tripbank.client.canvas import CanvasController, canvas_moments_from
from tripbank.client.rpc import TripBankClient
from tripbank.config import settings
from tripbank.dependencies import create_access_token
from tripbank.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    StorageLimitError,
    TransientRPCError,
    UnauthorizedError,
)
from tripbank.main import app
from tripbank.schemas.media import CreateMediaRequest
from tripbank.schemas.moment import CreateMomentRequest
from tripbank.schemas.grid import GridSizeModel
from tripbank.schemas.trip import CreateTripRequest
from tripbank.services.grid_layout import GridPosition
from tripbank.services.permission_service import Role

from conftest import at


def make_client(user_id: str, **kwargs) -> TripBankClient:
    return TripBankClient(
        "http://test",
        token_provider=lambda: create_access_token(user_id),
        transport=httpx.ASGITransport(app=app),
        **kwargs,
    )


@pytest.fixture
async def owner(client):
    async with make_client("owner") as rpc:
        yield rpc


@pytest.fixture
async def alice(client):
    async def token():
        return create_access_token("alice")

    async with TripBankClient("http://test", token_provider=token, transport=httpx.ASGITransport(app=app)) as rpc:
        yield rpc


def trip_body(**fields) -> CreateTripRequest:
    return CreateTripRequest(title="Kyoto in Autumn", start_date=date(2025, 11, 1), end_date=date(2025, 11, 8), **fields)


async def test_error_mapping(owner, alice, monkeypatch):
    trip = await owner.create_trip(trip_body(id="trip-kyoto"))

    with pytest.raises(ConflictError):
        await owner.create_trip(trip_body(id="trip-kyoto"))
    with pytest.raises(NotFoundError):
        await owner.get_trip("missing")
    with pytest.raises(UnauthorizedError) as denied:
        await alice.get_trip(trip.id)
    assert denied.value.detail == "You don't have access to this trip"
    with pytest.raises(InvalidRequestError):
        await owner.update_permission(trip.id, "alice", "owner")

    monkeypatch.setattr(settings, "free_storage_limit_bytes", 100)
    with pytest.raises(StorageLimitError) as too_big:
        await owner.add_media_item(trip.id, CreateMediaRequest(timestamp=at(0), file_size=250))
    assert (too_big.value.required_bytes, too_big.value.remaining_bytes) == (250, 100)


async def test_unauthenticated_client_gets_unauthorized(client):
    async with TripBankClient("http://test", transport=httpx.ASGITransport(app=app)) as anonymous:
        with pytest.raises(UnauthorizedError):
            await anonymous.list_trips()


async def test_sharing_flow_through_client(owner, alice):
    trip = await owner.create_trip(trip_body())
    link = await owner.generate_share_link(trip.id)

    joined = await alice.join_trip(link.share_code)
    assert (joined.trip_id, joined.already_member, joined.role) == (trip.id, False, "viewer")
    assert (await alice.join_trip(link.share_code)).already_member

    shared = await alice.shared_trips()
    assert [t.user_role for t in shared] == ["viewer"]
    preview = await alice.get_public_preview(link.share_slug)
    assert preview.trip.trip_id == trip.id


async def test_drag_is_persisted_through_batch_commit(owner):
    trip = await owner.create_trip(trip_body())
    for minutes, (width, height) in enumerate([(1, 1.5), (1, 1.5), (2, 2.0)]):
        await owner.add_moment(
            trip.id,
            CreateMomentRequest(title=f"m{minutes + 1}", timestamp=at(minutes), size=GridSizeModel(width=width, height=height)),
        )

    detail = await owner.get_trip(trip.id)
    controller = CanvasController(
        owner.batch_update_grid_positions,
        role=Role(detail.trip.user_role),
        canvas_width=400,
    )
    controller.on_server_snapshot(canvas_moments_from(detail.moments))
    ids = {m.title: m.id for m in detail.moments}

    assert controller.begin_drag(ids["m2"])
    controller.drag_moved(-189, 0)
    outcome = await controller.end_drag()
    assert outcome.ok and outcome.updated == 3

    saved = {m.title: m.grid_position.to_position() for m in await owner.list_moments(trip.id)}
    assert saved["m2"] == GridPosition(0, 0.0, 1, 1.5)
    assert saved["m1"] == GridPosition(1, 0.0, 1, 1.5)
    assert not saved["m3"].overlaps(saved["m1"]) and not saved["m3"].overlaps(saved["m2"])


async def test_viewer_commit_is_rejected_and_rolled_back(owner, alice):
    trip = await owner.create_trip(trip_body())
    moment = await owner.add_moment(trip.id, CreateMomentRequest(title="Fushimi Inari", timestamp=at(0)))
    link = await owner.generate_share_link(trip.id)
    await alice.join_trip(link.share_slug)

    with pytest.raises(UnauthorizedError):
        await alice.batch_update_grid_positions([(moment.id, GridPosition(1, 0.0, 1, 1.0))])

    # A stale role on the client only shows up as a rejected commit.
    detail = await alice.get_trip(trip.id)
    controller = CanvasController(alice.batch_update_grid_positions, role=Role.COLLABORATOR, canvas_width=400)
    controller.on_server_snapshot(canvas_moments_from(detail.moments))
    controller.begin_drag(moment.id)
    controller.drag_moved(200, 0)
    outcome = await controller.end_drag()

    assert not outcome.ok
    assert isinstance(outcome.error, UnauthorizedError)
    assert controller.store.visible_moments[0].grid_position == GridPosition(0, 0.0, 1, 1.0)


async def test_upload_file_round_trip(owner):
    uploaded = await owner.upload_file(b"png-bytes")
    assert uploaded.size == 9
    assert (await owner.get_file_url(uploaded.storage_id)).endswith(uploaded.storage_id)


# ─── Transport failures ───


def mock_client(handler, **kwargs) -> TripBankClient:
    return TripBankClient("http://test", token_provider=lambda: "t", transport=httpx.MockTransport(handler), **kwargs)


async def test_server_errors_are_transient_and_retried_for_idempotent_calls():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        if len(calls) == 1:
            return httpx.Response(503, json={"detail": "busy"})
        return httpx.Response(200, json=[])

    async with mock_client(handler, retries=1) as rpc:
        assert await rpc.list_trips() == []
    assert calls == ["GET", "GET"]


async def test_non_idempotent_calls_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(502, text="bad gateway")

    async with mock_client(handler, retries=3) as rpc:
        with pytest.raises(TransientRPCError):
            await rpc.create_trip(trip_body())
    assert calls == ["POST"]


async def test_connection_errors_become_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(handler) as rpc:
        with pytest.raises(TransientRPCError):
            await rpc.get_storage_usage()


async def test_bearer_token_is_sent():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"success": True, "updated": 1})

    async with mock_client(handler) as rpc:
        assert await rpc.batch_update_grid_positions([("m1", GridPosition(0, 1.0, 1, 1.0))]) == 1
    assert seen["auth"] == "Bearer t"
