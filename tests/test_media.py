import base64

import pytest

from spark.errors import AttachmentError
from spark.media import extension_for, guess_mime_type, load_attachment, save_media
from spark.models import InlineData


def test_load_attachment_encodes_file(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(b"\x89PNG fake")

    media = load_attachment(path)

    assert media.mime_type == "image/png"
    assert base64.b64decode(media.data) == b"\x89PNG fake"


def test_unknown_extension_falls_back(tmp_path):
    path = tmp_path / "blob.unknownext"
    path.write_bytes(b"x")
    assert load_attachment(path).mime_type == "application/octet-stream"
    assert guess_mime_type("notes.txt") == "text/plain"


def test_missing_attachment(tmp_path):
    with pytest.raises(AttachmentError):
        load_attachment(tmp_path / "nope.png")


def test_save_media_never_overwrites(tmp_path):
    media = InlineData(data=base64.b64encode(b"img").decode("ascii"), mime_type="image/jpeg")

    first = save_media(media, tmp_path)
    second = save_media(media, tmp_path)

    assert first.name == "generated-image.jpeg"
    assert second.name == "generated-image-1.jpeg"
    assert second.read_bytes() == b"img"


def test_extension_for():
    assert extension_for("image/png") == "png"
    assert extension_for("audio/wav; codecs=1") == "wav"
    assert extension_for("weird") == "png"
