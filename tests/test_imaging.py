import asyncio
import io

import pytest
from PIL import Image

from fieldops.workflow.accumulator import FieldAccumulator
from fieldops.workflow.errors import ImageLimitError, InvalidUploadError, UploadError
from fieldops.workflow.imaging import output_content_type, watermark_image, watermark_lines
from fieldops.workflow.uploads import NO_GPS_WARNING, remove_image, storage_key, upload_image

from conftest import make_image


class SpyStorage:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = {}
        self.deleted = []

    def upload(self, key, data, content_type):
        if self.fail:
            raise ConnectionError("storage unreachable")
        self.uploads[key] = (data, content_type)
        return key

    def get_public_url(self, key):
        return f"http://testserver/files/local/{key}"

    def delete(self, key):
        self.deleted.append(key)


def darkness(pixel):
    return sum(pixel[:3])


def test_watermark_lines_use_eight_decimals():
    assert watermark_lines(18.5209, 73.8567) == ("Lat: 18.52090000", "Lng: 73.85670000")
    assert watermark_lines(-1.5, 2, decimals=2) == ("Lat: -1.50", "Lng: 2.00")


def test_watermark_draws_into_the_bottom_left_corner():
    original = make_image("JPEG", (640, 480))
    marked = watermark_image(original, 18.5209, 73.8567)
    assert marked != original

    im = Image.open(io.BytesIO(marked))
    assert im.format == "JPEG"
    assert im.size == (640, 480)
    src = Image.open(io.BytesIO(original)).convert("RGB")
    # box padding left of the text vs. the untouched top-right corner
    assert darkness(im.getpixel((6, 474))) < darkness(src.getpixel((6, 474))) - 60
    assert abs(darkness(im.getpixel((630, 10))) - darkness(src.getpixel((630, 10)))) < 15


def test_png_stays_png():
    marked = watermark_image(make_image("PNG"), 1.0, 2.0)
    assert Image.open(io.BytesIO(marked)).format == "PNG"
    assert output_content_type(marked) == "image/png"
    assert output_content_type(watermark_image(make_image("JPEG"), 1.0, 2.0)) == "image/jpeg"


def test_unreadable_bytes_are_rejected():
    with pytest.raises(InvalidUploadError) as exc:
        watermark_image(b"not an image", 1.0, 2.0, field="before_image_url")
    assert exc.value.field == "before_image_url"


def test_storage_key_layout():
    key = storage_key("before_image_url", "image/jpeg")
    assert key.startswith("service_reports/before_image_url_")
    assert key.endswith(".jpg")
    assert storage_key("after_image_url", "", "site.png").endswith(".png")


def test_upload_with_position_is_watermarked():
    acc = FieldAccumulator({"latitude": 18.5209, "longitude": 73.8567})
    storage = SpyStorage()
    original = make_image()
    result = asyncio.run(upload_image(acc, storage, "before_image_url", original, "image/jpeg", "before.jpg"))

    assert result.watermarked
    assert result.warning is None
    stored, content_type = storage.uploads[result.key]
    assert stored != original
    assert content_type == "image/jpeg"
    assert acc.get("before_image_url") == result.url


def test_upload_without_position_keeps_original_bytes_and_warns():
    acc = FieldAccumulator()
    storage = SpyStorage()
    original = make_image()
    result = asyncio.run(upload_image(acc, storage, "after_image_url", original, "image/jpeg"))

    assert not result.watermarked
    assert result.warning == NO_GPS_WARNING
    assert storage.uploads[result.key][0] == original
    assert acc.get("after_image_url") == result.url


def test_non_image_files_are_rejected_before_upload():
    storage = SpyStorage()
    with pytest.raises(InvalidUploadError):
        asyncio.run(upload_image(FieldAccumulator(), storage, "before_image_url", b"%PDF-1.4", "application/pdf"))
    with pytest.raises(InvalidUploadError):
        asyncio.run(upload_image(FieldAccumulator(), storage, "colour_image", make_image(), "image/jpeg"))
    assert storage.uploads == {}


def test_eleventh_raw_power_image_is_rejected_before_upload():
    existing = [f"http://testserver/files/local/raw_{i}.jpg" for i in range(10)]
    acc = FieldAccumulator({"raw_power_supply_images": existing})
    storage = SpyStorage()
    with pytest.raises(ImageLimitError):
        asyncio.run(upload_image(acc, storage, "raw_power_supply_images", make_image(), "image/jpeg"))
    assert storage.uploads == {}
    assert acc.get("raw_power_supply_images") == existing


def test_raw_power_images_append():
    acc = FieldAccumulator({"raw_power_supply_images": ["http://testserver/files/local/raw_0.jpg"]})
    result = asyncio.run(upload_image(acc, SpyStorage(), "raw_power_supply_images", make_image(), "image/jpeg"))
    assert acc.get("raw_power_supply_images") == ["http://testserver/files/local/raw_0.jpg", result.url]


def test_storage_failure_leaves_the_record_untouched():
    acc = FieldAccumulator({"before_image_url": "http://testserver/files/local/old.jpg"})
    with pytest.raises(UploadError) as exc:
        asyncio.run(upload_image(acc, SpyStorage(fail=True), "before_image_url", make_image(), "image/jpeg"))
    assert exc.value.status_code == 502
    assert acc.get("before_image_url") == "http://testserver/files/local/old.jpg"


def test_remove_image():
    acc = FieldAccumulator({
        "before_image_url": "http://testserver/files/local/before.jpg",
        "raw_power_supply_images": ["a", "b", "c"],
    })
    remove_image(acc, "before_image_url")
    assert acc.get("before_image_url") is None

    with pytest.raises(InvalidUploadError):
        remove_image(acc, "raw_power_supply_images")
    with pytest.raises(InvalidUploadError):
        remove_image(acc, "raw_power_supply_images", 3)
    remove_image(acc, "raw_power_supply_images", 1)
    assert acc.get("raw_power_supply_images") == ["a", "c"]
