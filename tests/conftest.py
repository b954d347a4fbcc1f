import asyncio

import pytest
from fastapi.testclient import TestClient

from reviewer.api import create_app, limiter
from reviewer.backends import InferenceBackend
from reviewer.config import Settings

# Disable rate limiting for all tests
limiter.enabled = False

REVIEW_TEXT = "Consider adding type hints and a docstring. " * 20


class FakeBackend(InferenceBackend):
    name = "Fake"
    provider = "fake"

    def __init__(self, reply=REVIEW_TEXT, delay=0, error=None, models=None):
        super().__init__("http://fake.test", "test-model")
        self.reply = reply
        self.delay = delay
        self.error = error
        self.models = models if models is not None else ["test-model"]
        self.prompts = []
        self.cancelled = False

    async def _complete(self, prompt):
        self.prompts.append(prompt)
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error:
            raise self.error
        return self.reply

    async def list_models(self):
        if isinstance(self.models, Exception):
            raise self.models
        return self.models


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        UPLOAD_DIR=str(tmp_path / "uploads"),
        REVIEWS_DIR=str(tmp_path / "reviews"),
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_client():
    def _make(settings, backend):
        return TestClient(create_app(settings, backend))
    return _make


@pytest.fixture
def client(make_client, settings, backend):
    return make_client(settings, backend)


@pytest.fixture
def py_file():
    # 50 bytes of valid Python
    return ("add.py", b"def add(a, b):\n    return a + b\n\nprint(add(1, 2))\n", "text/x-python")


@pytest.fixture
def make_backend():
    return FakeBackend
