"""
Shared fixtures: an in-memory object store and a fake decoder process.
"""

import re
import subprocess
import threading
import time
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from frame_sampler.config.loader import _load_yaml
from frame_sampler.modules.storage import ObjectStore


class FakeObjectStore(ObjectStore):
    """
    Thread-safe in-memory store that records peak concurrency.

    ``fail_keys`` makes puts/fetches of those keys raise; ``delay`` makes
    every call sleep so overlapping calls can be observed. ``delays`` sets a
    per-key sleep that takes precedence over ``delay``.
    """

    def __init__(self, objects: Optional[dict] = None, fail_keys=(), delay: float = 0.0, delays=None):
        self.objects = dict(objects or {})  # (bucket, key) -> bytes
        self.fail_keys = set(fail_keys)
        self.delay = delay
        self.delays = dict(delays or {})
        self.puts: list[tuple[str, str]] = []
        self.fetches: list[tuple[str, str]] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self._lock = threading.Lock()

    def _enter(self):
        with self._lock:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def _exit(self):
        with self._lock:
            self.in_flight -= 1

    def _sleep(self, key):
        seconds = self.delays.get(key, self.delay)
        if seconds:
            time.sleep(seconds)

    def fetch_object(self, bucket, key, local_path):
        self._enter()
        try:
            self._sleep(key)
            with self._lock:
                self.fetches.append((bucket, key))
            if key in self.fail_keys:
                raise ConnectionError(f"fetch refused for {key}")
            if (bucket, key) not in self.objects:
                raise KeyError(f"NoSuchKey: {key}")
            Path(local_path).write_bytes(self.objects[(bucket, key)])
            return f'"etag-{key}"'
        finally:
            self._exit()

    def put_object(self, bucket, key, local_path):
        self._enter()
        try:
            self._sleep(key)
            if key in self.fail_keys:
                raise ConnectionError(f"put refused for {key}")
            data = Path(local_path).read_bytes()
            with self._lock:
                self.objects[(bucket, key)] = data
                self.puts.append((bucket, key))
            return f'"etag-{key}"'
        finally:
            self._exit()


def make_decoder(colors, returncode: int = 0, stderr: str = "", skip=()):
    """
    Build a runner standing in for ffmpeg.

    Writes one solid-colour image per entry of ``colors`` into the cwd,
    named from the output pattern (last argv element). Ordinals in ``skip``
    are not written.
    """
    calls = []

    def runner(cmd, cwd=None, **kwargs):
        calls.append({"cmd": cmd, "cwd": cwd, **kwargs})
        if returncode == 0:
            pattern = cmd[-1]
            match = re.match(r"^(.*)%0(\d+)d\.(\w+)$", pattern)
            prefix, width, ext = match.group(1), int(match.group(2)), match.group(3)
            for ordinal, color in enumerate(colors, start=1):
                if ordinal in skip:
                    continue
                img = Image.new("RGB", (32, 24), color)
                img.save(Path(cwd) / f"{prefix}{ordinal:0{width}d}.{ext}", "JPEG" if ext == "jpg" else "PNG")
        return subprocess.CompletedProcess(cmd, returncode, stdout=None, stderr=stderr)

    runner.calls = calls
    return runner


@pytest.fixture
def fake_store():
    return FakeObjectStore()


@pytest.fixture(autouse=True)
def clean_config_cache(monkeypatch):
    """Isolate tests from the caller's environment and the YAML cache."""
    for var in (
        "CHANGE_THRESHOLD", "UPLOAD_CONCURRENCY_LIMIT", "FRAME_SAMPLER_CONFIG",
        "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "CLOUDFLARE_ACCOUNT_ID", "S3_ENDPOINT_URL", "LOG_FILE",
    ):
        monkeypatch.delenv(var, raising=False)
    _load_yaml.cache_clear()
    yield
    _load_yaml.cache_clear()
