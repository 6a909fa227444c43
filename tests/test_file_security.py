import base64

import pytest
from fastapi import HTTPException

from sidebyside.core import file_security
from sidebyside.models.voting import MediaType


def test_media_type_for_known_types():
    assert file_security.media_type_for("image/png") == MediaType.IMAGE
    assert file_security.media_type_for("video/quicktime") == MediaType.VIDEO


def test_media_type_for_rejects_unknown_type():
    with pytest.raises(HTTPException) as exc_info:
        file_security.media_type_for("application/pdf")
    assert exc_info.value.status_code == 400


def test_extension_must_match_media_kind():
    assert file_security.validate_extension("Shot.PNG", MediaType.IMAGE) == ".png"
    with pytest.raises(HTTPException):
        file_security.validate_extension("clip.mp4", MediaType.IMAGE)
    with pytest.raises(HTTPException):
        file_security.validate_extension("noext", MediaType.VIDEO)


def test_size_limits():
    file_security.validate_size(file_security.MAX_IMAGE_SIZE, MediaType.IMAGE)
    file_security.validate_size(file_security.MAX_IMAGE_SIZE + 1, MediaType.VIDEO)

    with pytest.raises(HTTPException):
        file_security.validate_size(file_security.MAX_IMAGE_SIZE + 1, MediaType.IMAGE)
    with pytest.raises(HTTPException):
        file_security.validate_size(file_security.MAX_VIDEO_SIZE + 1, MediaType.VIDEO)
    with pytest.raises(HTTPException):
        file_security.validate_size(0, MediaType.IMAGE)


def test_decode_data_url():
    payload = base64.b64encode(b"hello").decode()
    mime, data = file_security.decode_data_url(f"data:image/PNG;base64,{payload}")

    assert mime == "image/png"
    assert data == b"hello"


@pytest.mark.parametrize("value", [
    "not a data url",
    "data:image/png,plain-text",
    "data:image/png;base64,@@@",
    None,
])
def test_decode_data_url_rejects_garbage(value):
    with pytest.raises(HTTPException) as exc_info:
        file_security.decode_data_url(value)
    assert exc_info.value.status_code == 400


def test_sanitize_filename_keeps_pixel_ratio_suffix():
    assert file_security.sanitize_filename("../../etc/shot @2x.PNG") == "shot_@2x.png"


def test_sanitize_filename_keeps_decimal_pixel_ratio():
    assert file_security.sanitize_filename("shot@1.5x.png") == "shot@1.5x.png"
    assert file_security.sanitize_filename("...hidden.png") == "hidden.png"


@pytest.mark.parametrize("key,expected", [
    ("abc_0_deadbeef.png", True),
    ("abc-1.mp4", True),
    ("../secret.png", False),
    ("a/b.png", False),
    ("a..png", False),
    ("noextension", False),
    ("bad name.png", False),
])
def test_is_safe_storage_key(key, expected):
    assert file_security.is_safe_storage_key(key) is expected


def test_content_type_for_key():
    assert file_security.content_type_for_key("x.webm") == "video/webm"
    assert file_security.content_type_for_key("x.txt") is None
