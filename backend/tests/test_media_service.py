"""
Tests for the Cloudinary uploader using an in-process httpx transport.
"""
import httpx
import pytest

from core.errors import UpstreamFailure
from services.media_service import MediaUploader, sign_params


def _temp_image(tmp_path, name="avatar.png"):
    path = tmp_path / name
    path.write_bytes(b"fake-image-bytes")
    return path


def test_sign_params_is_order_independent():
    a = sign_params({"timestamp": "1", "folder": "accounts"}, "secret")
    b = sign_params({"folder": "accounts", "timestamp": "1"}, "secret")
    assert a == b
    assert a != sign_params({"folder": "accounts", "timestamp": "1"}, "other")


@pytest.mark.asyncio
async def test_upload_returns_secure_url_and_removes_file(settings, tmp_path):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return httpx.Response(200, json={"secure_url": "https://res.cloudinary.com/demo/a.png", "url": "http://x"})

    uploader = MediaUploader(settings, transport=httpx.MockTransport(handler))
    path = _temp_image(tmp_path)

    url = await uploader.upload(path)

    assert url == "https://res.cloudinary.com/demo/a.png"
    assert seen["url"] == f"{settings.CLOUDINARY_UPLOAD_URL}/{settings.CLOUDINARY_CLOUD_NAME}/auto/upload"
    assert b"signature" in seen["body"]
    assert b"fake-image-bytes" in seen["body"]
    assert not path.exists()


@pytest.mark.asyncio
async def test_rejected_upload_raises_and_removes_file(settings, tmp_path):
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": {"message": "boom"}}))
    uploader = MediaUploader(settings, transport=transport)
    path = _temp_image(tmp_path)

    with pytest.raises(UpstreamFailure) as exc_info:
        await uploader.upload(path)

    assert exc_info.value.status_code == 502
    assert not path.exists()


@pytest.mark.asyncio
async def test_transport_error_raises(settings, tmp_path):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    uploader = MediaUploader(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamFailure):
        await uploader.upload(_temp_image(tmp_path))


@pytest.mark.asyncio
async def test_response_without_url_raises(settings, tmp_path):
    uploader = MediaUploader(settings, transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))
    with pytest.raises(UpstreamFailure):
        await uploader.upload(_temp_image(tmp_path))


@pytest.mark.asyncio
async def test_missing_configuration(settings, tmp_path):
    unconfigured = settings.model_copy(update={"CLOUDINARY_CLOUD_NAME": None})
    path = _temp_image(tmp_path)
    with pytest.raises(UpstreamFailure):
        await MediaUploader(unconfigured).upload(path)
    assert not path.exists()


@pytest.mark.asyncio
async def test_missing_source_file(settings, tmp_path):
    with pytest.raises(UpstreamFailure) as exc_info:
        await MediaUploader(settings).upload(tmp_path / "nope.png")
    assert exc_info.value.status_code == 400
