"""Unit tests for ProvisioningService: suspending and resuming logins."""

from datetime import timedelta

import pytest

from src.provisioner.core.errors import TransportError
from src.provisioner.core.models import PROCEED, DelayReason, Suspended
from src.provisioner.core.services.directory import DirectoryClient
from src.provisioner.core.services.continuation import continuation_key
from src.provisioner.core.services.provisioning_service import (
    REFRESH_MARGIN_SECONDS,
    refresh_seconds,
)
from tests.fixtures.core import LOCAL_ID


class TestAuthenticate:
    """Test running the pipeline for a login."""

    @pytest.mark.asyncio
    async def test_new_account_suspends_and_stores_request(
        self, service, directory, session_storage, clock, login_request
    ):
        result = await service.authenticate(login_request())

        assert isinstance(result, Suspended)
        assert result.reason is DelayReason.CREATED
        assert result.delay_until == clock() + timedelta(seconds=600)
        assert "jdoe" in directory.users

        pending = await service.pending(result.token)
        assert pending is not None
        assert pending.delay_until == result.delay_until
        assert pending.delay_reason is DelayReason.CREATED
        assert pending.restart_url == "https://idp.test/resume"
        assert await session_storage.exists(continuation_key(result.token))

    @pytest.mark.asyncio
    async def test_existing_account_proceeds(self, service, directory, login_request):
        directory.add_user("jdoe", "John", "Doe")

        assert await service.authenticate(login_request()) is PROCEED

    @pytest.mark.asyncio
    async def test_tokens_are_unique(self, service, directory, login_request):
        first = await service.authenticate(login_request())
        second = await service.authenticate(login_request())

        assert isinstance(second, Suspended)
        assert second.reason is DelayReason.DEFAULT
        assert first.token != second.token


class TestResume:
    """Test resuming a suspended login."""

    @pytest.mark.asyncio
    async def test_unknown_token(self, service):
        assert await service.resume("no-such-state") is None

    @pytest.mark.asyncio
    async def test_resume_before_delay_suspends_again(
        self, service, directory, clock, login_request
    ):
        first = await service.authenticate(login_request())
        clock.advance(60)

        result = await service.resume(first.token)

        assert isinstance(result, Suspended)
        assert result.reason is DelayReason.DEFAULT
        assert result.delay_until == first.delay_until
        assert result.token != first.token
        assert await service.pending(first.token) is None
        assert len(directory.calls("POST", directory.users_path)) == 1

    @pytest.mark.asyncio
    async def test_resume_after_delay_proceeds(
        self, service, directory, store, clock, login_request
    ):
        first = await service.authenticate(login_request())
        clock.advance(601)

        result = await service.resume(first.token)

        assert result is PROCEED
        assert await service.pending(first.token) is None
        assert store.get_record(LOCAL_ID).delay_until < clock()
        assert len(directory.calls("POST", directory.users_path)) == 1

    @pytest.mark.asyncio
    async def test_failed_resume_keeps_suspended_login(
        self, service, session_storage, clock, login_request, monkeypatch
    ):
        first = await service.authenticate(login_request())
        clock.advance(700)

        async def unreachable(self, method, path, body=None):
            raise TransportError("Timed out talking to the directory")

        with monkeypatch.context() as patch:
            patch.setattr(DirectoryClient, "request", unreachable)
            with pytest.raises(TransportError):
                await service.resume(first.token)

        assert await session_storage.exists(continuation_key(first.token))
        assert await service.resume(first.token) is PROCEED
        assert not await session_storage.exists(continuation_key(first.token))

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, service, clock, login_request):
        first = await service.authenticate(login_request())
        clock.advance(601)

        await service.resume(first.token)

        assert await service.resume(first.token) is None


class TestRefreshSeconds:
    def test_adds_margin(self, clock):
        now = clock()

        assert refresh_seconds(now + timedelta(seconds=30), now) == 30 + REFRESH_MARGIN_SECONDS

    def test_just_passed_still_refreshes(self, clock):
        now = clock()

        assert refresh_seconds(now - timedelta(seconds=2), now) == REFRESH_MARGIN_SECONDS - 2

    def test_long_overdue(self, clock):
        now = clock()

        assert refresh_seconds(now - timedelta(seconds=60), now) is None
