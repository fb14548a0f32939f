from pathlib import Path

import pytest

from pixelpipe.core.exceptions import (
    NoOperationSelectedError,
    ProcessingError,
    UnsupportedFormatError,
)
from pixelpipe.engines import Collaborators, LanczosUpscaler, PillowCodec
from pixelpipe.pipeline.orchestrator import ImagePipeline
from pixelpipe.pipeline.schemas import ProcessingFlags, ProcessingRequest, UploadedImage
from tests.conftest import (
    FailingBackgroundRemover,
    list_files,
    make_image_bytes,
    open_image,
)

UPSCALE = ProcessingFlags(upscale=True)
REMOVE_BG = ProcessingFlags(remove_background=True)
BOTH = ProcessingFlags(upscale=True, remove_background=True)


def save_upload(storage, extension: str, data: bytes) -> Path:
    return storage.save_upload(storage.new_work_id(), extension, data)


def assert_storage_empty(storage):
    for directory in storage.directories:
        assert list_files(directory) == [], f"{directory} not empty"


class RecordingUpscaler(LanczosUpscaler):
    """Snapshots the upload directory when called."""

    def __init__(self, storage):
        super().__init__(scale=4)
        self.storage = storage
        self.upload_snapshots = []
        self.calls = []

    def upscale(self, input_path, output_path):
        self.upload_snapshots.append([p.name for p in list_files(self.storage.upload_dir)])
        self.calls.append((input_path, output_path))
        return super().upscale(input_path, output_path)


class BrokenUpscaler(LanczosUpscaler):

    def upscale(self, input_path, output_path):
        raise RuntimeError("CUDA out of memory")


@pytest.mark.asyncio
async def test_png_upscale_only(pipeline, storage, remover):
    source = save_upload(storage, ".png", make_image_bytes("PNG", size=(8, 6)))

    output_path = await pipeline.process(source, ".png", UPSCALE)

    assert output_path == storage.output_path(source.stem)
    assert list_files(storage.upload_dir) == []
    data = await pipeline.take_artifact(output_path)
    assert open_image(data).size == (32, 24)
    assert remover.input_sizes == []
    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_jpeg_remove_background_only(pipeline, storage):
    source = save_upload(storage, ".jpg", make_image_bytes("JPEG", size=(10, 10)))

    output_path = await pipeline.process(source, ".jpg", REMOVE_BG)

    image = open_image(await pipeline.take_artifact(output_path))
    assert image.size == (10, 10)
    assert image.mode == "RGBA"
    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_both_flags_upscale_before_background_removal(pipeline, storage, remover):
    source = save_upload(storage, ".png", make_image_bytes("PNG", size=(8, 6)))

    output_path = await pipeline.process(source, ".png", BOTH)

    # Segmentation saw the upscaled image
    assert remover.input_sizes == [(32, 24)]
    image = open_image(await pipeline.take_artifact(output_path))
    assert image.size == (32, 24)
    assert image.mode == "RGBA"
    assert image.getpixel((0, 0))[3] == 0
    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_superseded_upload_deleted_before_next_stage(storage, remover):
    upscaler = RecordingUpscaler(storage)
    pipeline = ImagePipeline(storage, Collaborators(PillowCodec(), upscaler, remover))
    source = save_upload(storage, ".jpeg", make_image_bytes("JPEG"))

    output_path = await pipeline.process(source, ".jpeg", BOTH)

    work_id = source.stem
    assert upscaler.upload_snapshots == [[f"{work_id}.png"]]
    assert upscaler.calls == [(storage.normalized_path(work_id), storage.upscaled_path(work_id))]
    assert list_files(storage.temp_dir) == []
    assert list_files(storage.output_dir) == [output_path]
    await pipeline.take_artifact(output_path)


@pytest.mark.asyncio
async def test_png_passes_through_without_extra_file(storage, remover):
    upscaler = RecordingUpscaler(storage)
    pipeline = ImagePipeline(storage, Collaborators(PillowCodec(), upscaler, remover))
    source = save_upload(storage, ".png", make_image_bytes("PNG"))

    output_path = await pipeline.process(source, ".png", UPSCALE)

    assert upscaler.calls == [(source, storage.output_path(source.stem))]
    assert upscaler.upload_snapshots == [[source.name]]
    await pipeline.take_artifact(output_path)


@pytest.mark.asyncio
@pytest.mark.parametrize("extension", [".PNG", ".JPG", ".Jpeg"])
async def test_extension_check_is_case_insensitive(pipeline, storage, extension):
    fmt = "PNG" if extension.lower() == ".png" else "JPEG"
    source = save_upload(storage, extension, make_image_bytes(fmt))

    output_path = await pipeline.process(source, extension, UPSCALE)

    assert open_image(await pipeline.take_artifact(output_path)).size == (32, 24)
    assert_storage_empty(storage)


@pytest.mark.asyncio
@pytest.mark.parametrize("extension", [".gif", ".webp", ""])
async def test_unsupported_format_deletes_upload(pipeline, storage, extension):
    source = save_upload(storage, extension, b"GIF89a not really")

    with pytest.raises(UnsupportedFormatError):
        await pipeline.process(source, extension, UPSCALE)

    assert not source.exists()
    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_no_operation_deletes_upload(pipeline, storage):
    source = save_upload(storage, ".png", make_image_bytes())

    with pytest.raises(NoOperationSelectedError):
        await pipeline.process(source, ".png", ProcessingFlags())

    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_background_failure_cleans_every_artifact(storage):
    pipeline = ImagePipeline(
        storage,
        Collaborators(PillowCodec(), LanczosUpscaler(scale=4), FailingBackgroundRemover())
    )
    source = save_upload(storage, ".jpg", make_image_bytes("JPEG"))

    with pytest.raises(ProcessingError) as exc_info:
        await pipeline.process(source, ".jpg", BOTH)

    assert exc_info.value.stage == "remove_background"
    assert isinstance(exc_info.value.cause, RuntimeError)
    assert exc_info.value.public_message == "Failed to process image"
    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_upscale_failure_cleans_normalized_file(storage, remover):
    pipeline = ImagePipeline(storage, Collaborators(PillowCodec(), BrokenUpscaler(), remover))
    source = save_upload(storage, ".jpg", make_image_bytes("JPEG"))

    with pytest.raises(ProcessingError) as exc_info:
        await pipeline.process(source, ".jpg", UPSCALE)

    assert exc_info.value.stage == "upscale"
    assert remover.input_sizes == []
    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_corrupt_jpeg_fails_in_normalize(pipeline, storage):
    source = save_upload(storage, ".jpg", b"definitely not a jpeg")

    with pytest.raises(ProcessingError) as exc_info:
        await pipeline.process(source, ".jpg", REMOVE_BG)

    assert exc_info.value.stage == "normalize"
    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_same_image_twice_uses_independent_paths(storage, remover):
    upscaler = RecordingUpscaler(storage)
    pipeline = ImagePipeline(storage, Collaborators(PillowCodec(), upscaler, remover))
    request = ProcessingRequest(
        image=UploadedImage(filename="photo.png", data=make_image_bytes()),
        flags=UPSCALE
    )

    first = await pipeline.run(request)
    second = await pipeline.run(request)

    assert first == second
    (in_1, out_1), (in_2, out_2) = upscaler.calls
    assert {in_1, out_1}.isdisjoint({in_2, out_2})
    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_run_rejects_no_operation_before_saving(pipeline, storage):
    request = ProcessingRequest(
        image=UploadedImage(filename="photo.png", data=make_image_bytes()),
        flags=ProcessingFlags()
    )

    with pytest.raises(NoOperationSelectedError):
        await pipeline.run(request)

    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_take_artifact_missing_file(pipeline, storage):
    with pytest.raises(ProcessingError) as exc_info:
        await pipeline.take_artifact(storage.output_path("does-not-exist"))

    assert exc_info.value.stage == "handoff"


@pytest.mark.asyncio
async def test_run_rejects_overlong_extension_before_saving(pipeline, storage):
    request = ProcessingRequest(
        image=UploadedImage(filename="a." + "g" * 300, data=make_image_bytes()),
        flags=UPSCALE
    )

    with pytest.raises(UnsupportedFormatError):
        await pipeline.run(request)

    assert_storage_empty(storage)


@pytest.mark.asyncio
async def test_take_artifact_deletes_file_when_read_fails(pipeline, storage, monkeypatch):
    artifact = storage.output_path(storage.new_work_id())
    artifact.write_bytes(make_image_bytes())

    def unreadable(self):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "read_bytes", unreadable)

    with pytest.raises(ProcessingError) as exc_info:
        await pipeline.take_artifact(artifact)

    assert exc_info.value.stage == "handoff"
    assert not artifact.exists()
