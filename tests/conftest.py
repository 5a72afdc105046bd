from __future__ import annotations

import pytest

from carnav.modules.navigation.session import NavigationSession
from tests.fakes import EventRecorder, FakeGeocoder, FakePositionSource, FakeRouter, make_route


@pytest.fixture
def position_source() -> FakePositionSource:
    return FakePositionSource()


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def router() -> FakeRouter:
    return FakeRouter(default=make_route())


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def session(position_source, geocoder, router, recorder) -> NavigationSession:
    nav_session = NavigationSession(position_source, geocoder, router, fit_padding_px=100, navigate_zoom=18.0)
    nav_session.subscribe(recorder)
    yield nav_session
    nav_session.close()
