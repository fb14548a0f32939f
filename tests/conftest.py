import io
import threading
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, List, Optional, Tuple

import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image

from pixelpipe.core.config import Settings
from pixelpipe.core.storage import StorageLayout
from pixelpipe.engines import Collaborators, IBackgroundRemover, LanczosUpscaler, PillowCodec
from pixelpipe.main import create_app
from pixelpipe.pipeline.orchestrator import ImagePipeline


def make_image_bytes(fmt: str = "PNG", size: Tuple[int, int] = (8, 6), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def list_files(directory: Path) -> List[Path]:
    return sorted(p for p in directory.iterdir()) if directory.exists() else []


class FakeBackgroundRemover(IBackgroundRemover):
    """Makes the left half transparent and records the sizes it was given."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.input_sizes: List[Tuple[int, int]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def remove(self, data: bytes) -> bytes:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            with Image.open(io.BytesIO(data)) as image:
                self.input_sizes.append(image.size)
                rgba = image.convert("RGBA")
            mask = Image.new("L", rgba.size, 255)
            mask.paste(0, (0, 0, rgba.width // 2, rgba.height))
            rgba.putalpha(mask)
            buffer = io.BytesIO()
            rgba.save(buffer, format="PNG")
            return buffer.getvalue()
        finally:
            with self._lock:
                self.active -= 1


class FailingBackgroundRemover(IBackgroundRemover):

    def __init__(self, fail_when: Optional[Tuple[int, int]] = None):
        # Fail only for images of this size; None fails every call
        self.fail_when = fail_when

    def remove(self, data: bytes) -> bytes:
        with Image.open(io.BytesIO(data)) as image:
            size = image.size
        if self.fail_when is None or size == self.fail_when:
            raise RuntimeError("segmentation model crashed")
        return FakeBackgroundRemover().remove(data)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        UPLOAD_DIR=tmp_path / "uploads",
        OUTPUT_DIR=tmp_path / "output",
        TEMP_DIR=tmp_path / "temp",
        PUBLIC_DIR=tmp_path / "public",
        UPSCALE_BACKEND="lanczos",
        LOG_FORMAT_JSON=False,
        BATCH_CONCURRENCY=2,
    )


@pytest.fixture
def storage(settings: Settings) -> StorageLayout:
    layout = StorageLayout.from_settings(settings)
    layout.ensure()
    return layout


@pytest.fixture
def remover() -> FakeBackgroundRemover:
    return FakeBackgroundRemover()


@pytest.fixture
def collaborators(remover: FakeBackgroundRemover) -> Collaborators:
    return Collaborators(
        codec=PillowCodec(),
        upscaler=LanczosUpscaler(scale=4),
        background_remover=remover
    )


@pytest.fixture
def pipeline(storage: StorageLayout, collaborators: Collaborators) -> ImagePipeline:
    return ImagePipeline(storage, collaborators)


@asynccontextmanager
async def running_client(app) -> AsyncGenerator[AsyncClient, None]:
    # Trigger lifespan events (startup/shutdown)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac


@pytest.fixture
async def client(settings: Settings, collaborators: Collaborators) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings=settings, collaborators=collaborators)
    async with running_client(app) as ac:
        yield ac
