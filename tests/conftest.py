"""
Goal: Shared fakes for the credential and dispatcher tests (no network, no browser).
"""
from concurrent.futures import Future

import pytest

from spotify_bridge.auth.oauth import Status
from spotify_bridge.services.loop import EventLoopThread


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeScheduler:
    def __init__(self):
        self.calls = []

    def __call__(self, delay, callback):
        self.calls.append((delay, callback))

    def fire_all(self):
        calls, self.calls = self.calls, []
        for _, callback in calls:
            callback()


class FakeFlow:
    """Stands in for AuthorizationCodeFlow; tests decide how refreshes resolve."""

    def __init__(self, clock):
        self.clock = clock
        self.client_id = ""
        self.client_secret = ""
        self.refresh_token = ""
        self.access_token = ""
        self.expiration_at = None
        self.status_changed = None
        self.expiration_changed = None
        self.refresh_token_changed = None
        self.authorize_with_browser = None
        self.modify_parameters = None
        self.loop = None
        self.grants = 0
        self.refreshes = 0
        self.on_refresh = None

    def grant(self):
        self.grants += 1
        f = Future()
        f.set_result("https://accounts.example/authorize")
        return f

    def refresh_access_token(self):
        self.refreshes += 1
        f = Future()
        if self.on_refresh is not None:
            try:
                f.set_result(self.on_refresh(self))
            except Exception as e:
                f.set_exception(e)
        return f

    def complete(self, expires_in=3600, refresh_token=None):
        self.access_token = "access"
        self.expiration_at = self.clock() + expires_in
        self.expiration_changed(self.expiration_at)
        if refresh_token and refresh_token != self.refresh_token:
            self.refresh_token = refresh_token
            self.refresh_token_changed(refresh_token)
        self.status_changed(Status.GRANTED)
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def fake_flow(clock):
    return FakeFlow(clock)


@pytest.fixture
def loop_thread():
    lt = EventLoopThread(name="test-loop")
    yield lt
    lt.stop()
