"""Tests for core.services.provisioning (the orchestrator)."""

from __future__ import annotations

import asyncio
import logging

import pytest

from core.domain.models import BroadcastConfig, Credentials, DevicePage, DeviceRecord, PollResult
from core.domain.region import Region
from core.errors import (
    ArrivalTimeoutError,
    AuthError,
    BroadcastError,
    CloudApiError,
    CloudTransportError,
    PollError,
    ProvisioningBusyError,
    ProvisioningCancelledError,
    QueryError,
    TokenError,
    ValidationError,
)
from core.services.provisioning import ProvisioningOrchestrator
from fakes import StubBroadcaster, StubCloud, failing_on, matched


def _orchestrator(credentials, cloud, broadcaster, clock, **kwargs) -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(
        credentials,
        cloud=cloud,
        broadcaster=broadcaster,
        poll_interval=1.0,
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


async def _ready(credentials, cloud, broadcaster, clock, **kwargs) -> ProvisioningOrchestrator:
    orchestrator = _orchestrator(credentials, cloud, broadcaster, clock, **kwargs)
    await orchestrator.init()
    return orchestrator


class TestInit:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("email", "password"),
        [(None, "pw"), ("a@b.com", None), ("", ""), ("   ", "pw"), (None, None)],
    )
    async def test_missing_account_fields_fail_before_network(self, broadcaster, clock, email, password):
        cloud = StubCloud()
        orchestrator = _orchestrator(Credentials(email=email, password=password), cloud, broadcaster, clock)

        with pytest.raises(ValidationError):
            await orchestrator.init()

        assert cloud.calls == []

    @pytest.mark.asyncio
    async def test_each_init_replaces_the_session(self, credentials, broadcaster, clock):
        cloud = StubCloud()
        orchestrator = _orchestrator(credentials, cloud, broadcaster, clock)

        first = await orchestrator.init()
        second = await orchestrator.init()

        assert first.uid == "uid-1"
        assert second.uid == "uid-2"
        assert orchestrator.session == second

    @pytest.mark.asyncio
    async def test_rejected_login_raises_auth_error(self, credentials, broadcaster, clock):
        cloud = StubCloud(login_error=CloudApiError("bad password", code="USER_PASSWD_WRONG"))
        orchestrator = _orchestrator(credentials, cloud, broadcaster, clock)

        with pytest.raises(AuthError) as excinfo:
            await orchestrator.init()

        assert isinstance(excinfo.value.__cause__, CloudApiError)
        assert orchestrator.session is None

    @pytest.mark.asyncio
    async def test_network_failure_raises_auth_error(self, credentials, broadcaster, clock):
        cloud = StubCloud(login_error=CloudTransportError("connection refused"))
        orchestrator = _orchestrator(credentials, cloud, broadcaster, clock)

        with pytest.raises(AuthError):
            await orchestrator.init()


class TestLinkDevice:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("ssid", ["", "  ", None])
    async def test_empty_ssid_has_no_side_effects(self, credentials, broadcaster, clock, ssid):
        cloud = StubCloud()
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(ValidationError):
            await orchestrator.link_device(ssid, "secret")

        assert "token" not in cloud.calls
        assert broadcaster.started == []
        assert broadcaster.stops == 0

    @pytest.mark.asyncio
    async def test_requires_init(self, credentials, broadcaster, clock):
        cloud = StubCloud()
        orchestrator = _orchestrator(credentials, cloud, broadcaster, clock)

        with pytest.raises(ValidationError):
            await orchestrator.link_device("home-wifi", "secret")

        assert cloud.calls == []

    @pytest.mark.asyncio
    async def test_first_poll_match_returns_devices_and_cleans_up_once(self, credentials, broadcaster, clock):
        cloud = StubCloud(on_poll=lambda n: matched("dev-1"))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        devices = await orchestrator.link_device("home-wifi", "secret", device_count=1, timeout_seconds=5)

        assert [d.id for d in devices] == ["dev-1"]
        assert cloud.polls == 1
        assert broadcaster.stops == 1
        assert broadcaster.releases == 1

    @pytest.mark.asyncio
    async def test_broadcasts_token_and_wifi_credentials(self, credentials, broadcaster, clock):
        cloud = StubCloud(on_poll=lambda n: matched("dev-1"))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        await orchestrator.link_device("home-wifi", "secret")

        (config,) = broadcaster.started
        assert config.ssid == "home-wifi"
        assert config.wifi_password == "secret"
        assert config.token == "tok123"
        assert config.secret == "s3cr"
        assert cloud.calls == ["login", "token", "poll"]

    @pytest.mark.asyncio
    async def test_timeout_cleans_up_once(self, credentials, broadcaster, clock):
        cloud = StubCloud(on_poll=lambda n: matched("dev-1"))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(ArrivalTimeoutError) as excinfo:
            await orchestrator.link_device("home-wifi", "secret", device_count=3, timeout_seconds=5)

        assert 4 <= cloud.polls <= 6
        assert excinfo.value.detected == 1
        assert excinfo.value.target == 3
        assert broadcaster.stops == 1
        assert broadcaster.releases == 1

    @pytest.mark.asyncio
    async def test_poll_failure_stops_polling_and_cleans_up_once(self, credentials, broadcaster, clock):
        cloud = StubCloud(on_poll=failing_on(3))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(PollError):
            await orchestrator.link_device("home-wifi", "secret", timeout_seconds=60)

        assert cloud.polls == 3
        assert broadcaster.stops == 1
        assert broadcaster.releases == 1

    @pytest.mark.asyncio
    async def test_token_failure_cleans_up_without_broadcasting(self, credentials, broadcaster, clock):
        cloud = StubCloud(token_error=CloudApiError("quota exceeded"))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(TokenError):
            await orchestrator.link_device("home-wifi", "secret")

        assert broadcaster.started == []
        assert cloud.polls == 0
        assert broadcaster.stops == 1
        assert broadcaster.releases == 1

    @pytest.mark.asyncio
    async def test_broadcast_start_failure_is_cleaned_up(self, credentials, clock):
        broadcaster = StubBroadcaster(start_error=OSError("no broadcast interface"))
        cloud = StubCloud()
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(BroadcastError):
            await orchestrator.link_device("home-wifi", "secret")

        assert cloud.polls == 0
        assert broadcaster.releases == 1

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_mask_success(self, credentials, clock, caplog):
        broadcaster = StubBroadcaster(stop_error=RuntimeError("stop blew up"))
        cloud = StubCloud(on_poll=lambda n: matched("dev-1"))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with caplog.at_level(logging.WARNING, logger="core.services.broadcast"):
            devices = await orchestrator.link_device("home-wifi", "secret")

        assert [d.id for d in devices] == ["dev-1"]
        assert broadcaster.releases == 1
        assert "stop blew up" in caplog.text

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_mask_primary_error(self, credentials, clock):
        broadcaster = StubBroadcaster(release_error=OSError("socket already gone"))
        cloud = StubCloud(on_poll=failing_on(1))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(PollError) as excinfo:
            await orchestrator.link_device("home-wifi", "secret")

        assert any("socket already gone" in note for note in excinfo.value.__notes__)

    @pytest.mark.asyncio
    async def test_concurrent_link_is_rejected(self, credentials, broadcaster):
        release = asyncio.Event()

        async def slow_poll() -> PollResult:
            await release.wait()
            return matched("dev-1")

        cloud = StubCloud(on_poll=lambda n: slow_poll())
        orchestrator = ProvisioningOrchestrator(credentials, cloud=cloud, broadcaster=broadcaster)
        await orchestrator.init()

        first = asyncio.create_task(orchestrator.link_device("home-wifi", "secret", timeout_seconds=5))
        while cloud.polls == 0:
            await asyncio.sleep(0)

        with pytest.raises(ProvisioningBusyError):
            await orchestrator.link_device("home-wifi", "secret")

        release.set()
        devices = await first
        assert [d.id for d in devices] == ["dev-1"]
        assert broadcaster.stops == 1
        assert broadcaster.releases == 1

    @pytest.mark.asyncio
    async def test_task_cancellation_still_cleans_up(self, credentials, broadcaster):
        never = asyncio.Event()

        async def hanging_poll() -> PollResult:
            await never.wait()
            return PollResult()

        cloud = StubCloud(on_poll=lambda n: hanging_poll())
        orchestrator = ProvisioningOrchestrator(credentials, cloud=cloud, broadcaster=broadcaster)
        await orchestrator.init()

        task = asyncio.create_task(orchestrator.link_device("home-wifi", "secret"))
        while cloud.polls == 0:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert broadcaster.stops == 1
        assert broadcaster.releases == 1

    @pytest.mark.asyncio
    async def test_cancel_event_cleans_up_once(self, credentials, broadcaster, clock):
        cancel = asyncio.Event()

        def on_poll(n: int) -> PollResult:
            if n == 2:
                cancel.set()
            return PollResult()

        cloud = StubCloud(on_poll=on_poll)
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(ProvisioningCancelledError):
            await orchestrator.link_device("home-wifi", "secret", timeout_seconds=30, cancel_event=cancel)

        assert cloud.polls == 2
        assert broadcaster.stops == 1
        assert broadcaster.releases == 1

    @pytest.mark.asyncio
    async def test_can_link_again_after_a_failure(self, credentials, broadcaster, clock):
        cloud = StubCloud(on_poll=failing_on(1, before=lambda n: matched("dev-9")))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(PollError):
            await orchestrator.link_device("home-wifi", "secret")
        devices = await orchestrator.link_device("home-wifi", "secret")

        assert [d.id for d in devices] == ["dev-9"]
        assert broadcaster.stops == 2
        assert broadcaster.releases == 2

    @pytest.mark.asyncio
    async def test_device_reporting_after_two_seconds(self, broadcaster, clock):
        cloud = StubCloud(on_poll=lambda n: matched("dev-1") if clock.now >= 2 else PollResult())
        orchestrator = await _ready(
            Credentials(email="a@b.com", password="pw"), cloud, broadcaster, clock
        )

        devices = await orchestrator.link_device("home-wifi", "secret", device_count=1, timeout_seconds=5)

        assert [d.model_dump(include={"id"}) for d in devices] == [{"id": "dev-1"}]
        assert clock.now <= 5
        assert cloud.polls == 3


class TestGetLinkedDevices:
    @pytest.mark.asyncio
    async def test_passes_filter_and_page(self, credentials, broadcaster, clock):
        page = DevicePage(devices=[DeviceRecord(id="dev-1")], page_number=2, page_size=10, total=21)
        cloud = StubCloud(list_result=page)
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        result = await orchestrator.get_linked_devices(["dev-1"], page_number=2, page_size=10)

        assert result == page
        _, ids, page_number, page_size = cloud.list_args
        assert (ids, page_number, page_size) == (["dev-1"], 2, 10)
        assert broadcaster.releases == 0

    @pytest.mark.asyncio
    async def test_cloud_failure_raises_query_error(self, credentials, broadcaster, clock):
        cloud = StubCloud(list_error=CloudApiError("permission deny", code="1106"))
        orchestrator = await _ready(credentials, cloud, broadcaster, clock)

        with pytest.raises(QueryError):
            await orchestrator.get_linked_devices()

    @pytest.mark.asyncio
    async def test_requires_init(self, credentials, broadcaster, clock):
        orchestrator = _orchestrator(credentials, StubCloud(), broadcaster, clock)

        with pytest.raises(ValidationError):
            await orchestrator.get_linked_devices()


@pytest.mark.asyncio
async def test_async_context_closes_cloud_client(credentials, broadcaster, clock):
    cloud = StubCloud()

    async with _orchestrator(credentials, cloud, broadcaster, clock) as orchestrator:
        await orchestrator.init()

    assert cloud.closed
    assert broadcaster.releases == 0


@pytest.mark.asyncio
async def test_closing_after_a_link_does_not_release_twice(credentials, broadcaster, clock):
    cloud = StubCloud(on_poll=lambda n: matched("dev-1"))

    async with _orchestrator(credentials, cloud, broadcaster, clock) as orchestrator:
        await orchestrator.init()
        await orchestrator.link_device("home-wifi", "secret")

    assert cloud.closed
    assert (broadcaster.stops, broadcaster.releases) == (1, 1)


@pytest.mark.asyncio
async def test_closing_releases_a_broadcast_left_active(credentials, broadcaster, clock):
    orchestrator = _orchestrator(credentials, StubCloud(), broadcaster, clock)
    await orchestrator._broadcast.start(
        BroadcastConfig(region=Region.AMERICAS, token="tok", secret="sec", ssid="home-wifi")
    )

    await orchestrator.aclose()

    assert broadcaster.releases == 1
