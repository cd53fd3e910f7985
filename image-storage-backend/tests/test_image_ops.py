import io

import pytest
from PIL import Image

from conftest import b64, encode, photo_bytes, photo_image
from imagestore.errors import DecodeError, EncodeError, UnsupportedFormatError
from imagestore.image_ops import (
    compute_target_size,
    decode_image,
    encode_options,
    payload_length,
    payload_to_bytes,
    strip_data_url,
    transform_image,
)
from imagestore.models import OutputFormat


@pytest.mark.parametrize("fmt, expected", [("JPEG", "jpeg"), ("PNG", "png"), ("WEBP", "webp")])
def test_decode_reports_size_and_format(fmt, expected):
    decoded = decode_image(photo_bytes(120, 80, fmt=fmt))
    assert (decoded.width, decoded.height) == (120, 80)
    assert decoded.format == expected


@pytest.mark.parametrize("data", [b"", b"definitely not an image", b"\x89PNG\r\n\x1a\n" + b"\x00" * 20])
def test_decode_rejects_garbage(data):
    with pytest.raises(DecodeError):
        decode_image(data)


def test_decode_rejects_truncated_jpeg():
    data = photo_bytes(200, 100)
    with pytest.raises(DecodeError):
        decode_image(data[: len(data) // 3])


def test_payload_helpers_handle_data_urls():
    raw = photo_bytes(10, 10)
    text = b64(raw)
    assert strip_data_url(f"data:image/jpeg;base64,{text}") == text
    assert payload_to_bytes(f"data:image/jpeg;base64,{text}") == raw
    assert payload_to_bytes(raw) is raw
    assert payload_length(text) == len(text)
    assert payload_length(raw) == len(text)


def test_invalid_base64_is_a_decode_error():
    with pytest.raises(DecodeError):
        payload_to_bytes("abc")


@pytest.mark.parametrize(
    "size, target, keep_ratio, expected",
    [
        ((2000, 1000), None, True, (2000, 1000)),
        ((2000, 1000), 1000, True, (1000, 500)),
        ((2000, 1000), 2000, True, (2000, 1000)),
        ((2000, 1000), 4000, True, (2000, 1000)),
        ((333, 777), 100, True, (100, 233)),
        ((1001, 3), 500, True, (500, 1)),
        ((333, 777), 100, False, (100, 233)),
        ((300, 200), 299, False, (299, 199)),
        ((300, 200), 500, False, (300, 200)),
    ],
)
def test_compute_target_size(size, target, keep_ratio, expected):
    assert compute_target_size(size[0], size[1], target, keep_ratio) == expected


@pytest.mark.parametrize("output_format", list(OutputFormat))
def test_transform_without_resize_keeps_dimensions(output_format):
    decoded = decode_image(photo_bytes(64, 48))
    encoded = transform_image(decoded, quality=80, output_format=output_format)
    with Image.open(io.BytesIO(encoded.data)) as out:
        assert out.size == (64, 48)
        assert out.format == output_format.pil_format
    assert (encoded.width, encoded.height) == (64, 48)


def test_transform_resizes_with_aspect_ratio():
    decoded = decode_image(photo_bytes(400, 300))
    encoded = transform_image(decoded, target_width=100, quality=80, output_format="webp")
    with Image.open(io.BytesIO(encoded.data)) as out:
        assert out.size == (100, 75)


def test_transform_never_enlarges():
    decoded = decode_image(photo_bytes(100, 50))
    encoded = transform_image(decoded, target_width=400, output_format="png")
    assert (encoded.width, encoded.height) == (100, 50)


def test_transform_accepts_jpg_alias():
    decoded = decode_image(photo_bytes(20, 20))
    encoded = transform_image(decoded, output_format="JPG")
    with Image.open(io.BytesIO(encoded.data)) as out:
        assert out.format == "JPEG"


@pytest.mark.parametrize("value", ["gif", "tiff", "", None, 3])
def test_unsupported_format_is_named(value):
    decoded = decode_image(photo_bytes(20, 20))
    with pytest.raises(UnsupportedFormatError) as excinfo:
        transform_image(decoded, output_format=value)
    assert str(value) in str(excinfo.value)
    assert excinfo.value.code == "unsupported_format"


def test_encoder_limits_raise_encode_error():
    decoded = decode_image(encode(photo_image(17000, 4), "PNG"))
    with pytest.raises(EncodeError) as excinfo:
        transform_image(decoded, output_format="webp")
    assert excinfo.value.code == "encode_error"
    assert "17000x4" in str(excinfo.value)


def test_jpeg_params_use_full_chroma_and_flatten_alpha():
    img = Image.new("RGBA", (8, 8), (255, 0, 0, 128))
    prepared, params = encode_options(img, OutputFormat.JPEG, 70)
    assert prepared.mode == "RGB"
    assert params["subsampling"] == 0
    assert params["quality"] == 70
    assert params["optimize"] is True


def test_webp_params_are_lossy_high_effort():
    _, params = encode_options(Image.new("RGB", (4, 4)), "webp", 55)
    assert params == {"quality": 55, "method": 6, "lossless": False}


def test_png_uses_palette_for_few_colours():
    img = Image.new("RGB", (32, 32), (10, 20, 30))
    img.paste((200, 100, 0), (0, 0, 16, 16))
    prepared, params = encode_options(img, OutputFormat.PNG, 100)
    assert prepared.mode == "P"
    assert params["compress_level"] == 9
    rgb = prepared.convert("RGB")
    for xy, colour in (((0, 0), (200, 100, 0)), ((20, 20), (10, 20, 30))):
        assert all(abs(a - b) <= 2 for a, b in zip(rgb.getpixel(xy), colour))


def test_png_keeps_truecolour_at_full_quality():
    prepared, _ = encode_options(photo_image(64, 64), OutputFormat.PNG, 100)
    assert prepared.mode == "RGB"


def test_png_quantises_below_full_quality():
    prepared, _ = encode_options(photo_image(64, 64), OutputFormat.PNG, 50)
    assert prepared.mode == "P"
    assert len(prepared.getcolors(256)) <= 128


def test_transparent_png_survives_webp_and_png():
    img = Image.new("RGBA", (40, 20), (0, 0, 0, 0))
    img.paste((0, 128, 255, 255), (0, 0, 20, 20))
    decoded = decode_image(encode(img, "PNG"))
    for fmt in ("png", "webp"):
        encoded = transform_image(decoded, quality=90, output_format=fmt)
        with Image.open(io.BytesIO(encoded.data)) as out:
            rgba = out.convert("RGBA")
            assert rgba.getpixel((30, 10))[3] == 0
            assert rgba.getpixel((5, 10))[3] == 255
