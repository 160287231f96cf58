"""
Shared fixtures: a controllable clock and a launcher context rooted in tmp_path.
"""

import asyncio
import socket
import sys
import time

import pytest

from lanplay_launcher.config import LauncherConfig
from lanplay_launcher.state import ActivityClock, LauncherContext

RELAY = "example.com:11451"


class FakeTime:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float):
        self.value += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def config(tmp_path):
    return LauncherConfig(relay=RELAY, base_dir=tmp_path, platform="linux")


@pytest.fixture
def context(config, fake_time):
    return LauncherContext(config, clock=ActivityClock(now=fake_time))


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01):
    """Poll predicate until it is truthy or fail the test"""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not met in time")
        await asyncio.sleep(interval)


posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="uses /bin/sh scripts")


def write_script(path, body: str):
    """Write an executable shell script standing in for lan-play"""
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return path
