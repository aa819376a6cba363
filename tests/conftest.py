import itertools

import pytest

from backend import RoomDirectory
from connections import ConnectionRegistry
from signaling import SignalingEngine
from tests.fakes import CREDENTIAL, FakeChannel, FakeClock, ManualScheduler


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def directory(clock, scheduler):
    return RoomDirectory(grace_seconds=60, stale_seconds=3600, clock=clock, scheduler=scheduler)


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def engine(directory, registry):
    ids = (f"u{suffix}" for suffix in itertools.chain("ABCDEFGHIJ", map(str, itertools.count())))
    return SignalingEngine(
        credential=CREDENTIAL,
        directory=directory,
        registry=registry,
        id_factory=lambda: next(ids),
    )


@pytest.fixture
def join(engine):
    """Open a session on a fresh channel and send a join for it."""

    def _join(room_id="r1", name=None, credential=CREDENTIAL, **extra):
        channel = FakeChannel(name or room_id)
        session = engine.connect(channel)
        envelope = {"type": "join", "roomId": room_id, "credential": credential}
        envelope.update(extra)
        engine.handle_envelope(session, envelope)
        return session, channel

    return _join
