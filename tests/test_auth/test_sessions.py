"""Tests for the authorization session registry (protosite.auth.sessions)."""

from __future__ import annotations

import asyncio

import pytest

from protosite.auth.sessions import SessionState, SessionStore

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]

TTL = 600.0


@pytest.fixture
def store(clock) -> SessionStore:
    return SessionStore(ttl=TTL, clock=clock)


class TestCreate:
    async def test_token_has_256_bits(self, store):
        session = await store.create()
        assert len(session.state) == 64
        int(session.state, 16)

    async def test_tokens_are_unique(self, store):
        tokens = {(await store.create()).state for _ in range(50)}
        assert len(tokens) == 50

    async def test_new_session_is_pending(self, store):
        session = await store.create()
        status = await store.poll(session.state)
        assert status.state is SessionState.PENDING
        assert status.credential is None
        assert status.authenticated is False

    async def test_create_sweeps_expired_sessions(self, store, clock):
        old = await store.create()
        clock.advance(TTL + 1)
        await store.create()
        assert len(store) == 1
        assert (await store.poll(old.state)).state is SessionState.NOT_FOUND

    async def test_create_keeps_live_sessions(self, store, clock):
        await store.create()
        clock.advance(TTL - 1)
        await store.create()
        assert len(store) == 2


class TestPoll:
    async def test_unknown_token_not_found(self, store):
        status = await store.poll("does-not-exist")
        assert status.state is SessionState.NOT_FOUND

    async def test_authorized_after_credential(self, store):
        session = await store.create()
        assert await store.attach_credential(session.state, "gho_abc") is True
        status = await store.poll(session.state)
        assert status.state is SessionState.AUTHORIZED
        assert status.credential == "gho_abc"
        assert status.authenticated is True

    async def test_poll_just_before_ttl_is_live(self, store, clock):
        session = await store.create()
        clock.advance(9 * 60 + 59)
        assert (await store.poll(session.state)).state is SessionState.PENDING

    async def test_poll_after_ttl_expires_and_deletes(self, store, clock):
        session = await store.create()
        clock.advance(10 * 60 + 1)
        assert (await store.poll(session.state)).state is SessionState.EXPIRED
        assert len(store) == 0
        assert (await store.poll(session.state)).state is SessionState.NOT_FOUND

    async def test_authorized_session_still_expires(self, store, clock):
        session = await store.create()
        await store.attach_credential(session.state, "gho_abc")
        clock.advance(TTL + 1)
        assert (await store.poll(session.state)).state is SessionState.EXPIRED


class TestAttachCredential:
    async def test_unknown_state(self, store):
        assert await store.attach_credential("nope", "gho_abc") is False

    async def test_expired_state(self, store, clock):
        session = await store.create()
        clock.advance(TTL + 1)
        assert await store.attach_credential(session.state, "gho_abc") is False

    async def test_credential_attached_only_once(self, store):
        session = await store.create()
        assert await store.attach_credential(session.state, "first") is True
        assert await store.attach_credential(session.state, "second") is False
        assert (await store.poll(session.state)).credential == "first"

    async def test_concurrent_attach_single_winner(self, store):
        session = await store.create()
        results = await asyncio.gather(
            *(store.attach_credential(session.state, f"token-{i}") for i in range(10))
        )
        assert results.count(True) == 1


class TestLookupAndDiscard:
    async def test_lookup_does_not_delete_expired(self, store, clock):
        session = await store.create()
        clock.advance(TTL + 1)
        assert (await store.lookup(session.state)).state is SessionState.EXPIRED
        assert len(store) == 1

    async def test_discard(self, store):
        session = await store.create()
        await store.discard(session.state)
        assert len(store) == 0
        await store.discard(session.state)
