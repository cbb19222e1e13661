import asyncio
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import main
from services.budget_service import InMemoryBudgetLedger
from services.errors import ExternalServiceError
from services.fal_service import ExternalCallResult, GeneratedImage, TryOnClient


class FakeTryOnClient(TryOnClient):
    """Records every call; optionally fails one step or slows composition"""

    def __init__(self, fail_on=None, compose_delay=0.0, error=None):
        self.calls = []
        self.fail_on = fail_on
        self.compose_delay = compose_delay
        self.error = error

    def _maybe_fail(self, step):
        if self.fail_on == step:
            raise self.error or ExternalServiceError(f"{step} failed: boom", step=step)

    async def upload_binary(self, data, filename):
        self.calls.append(("upload", filename))
        self._maybe_fail("upload")
        return f"https://files.test/{filename}"

    async def generate_image(self, prompt):
        self.calls.append(("generate", prompt))
        self._maybe_fail("generate")
        return GeneratedImage(url="https://files.test/generated-garment.png")

    async def compose_tryon(self, human_url, garment_url, garment_type):
        self.calls.append(("compose", human_url, garment_url, garment_type))
        if self.compose_delay:
            await asyncio.sleep(self.compose_delay)
        self._maybe_fail("compose")
        return ExternalCallResult(
            image_url="https://files.test/result.png",
            width=768,
            height=1024,
            seed=42,
            nsfw_flag=False,
        )

    def steps(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def ledger():
    return InMemoryBudgetLedger("0.50")


@pytest.fixture
def fake_client():
    return FakeTryOnClient()


@pytest.fixture
def png_bytes():
    buffer = BytesIO()
    Image.new("RGB", (8, 8), "red").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def api(ledger, fake_client):
    main.app.dependency_overrides[main.get_budget_ledger] = lambda: ledger
    main.app.dependency_overrides[main.get_tryon_client] = lambda: fake_client
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
