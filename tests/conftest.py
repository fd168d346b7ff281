from io import BytesIO
from typing import Any, Callable

import pytest
from PIL import Image

from mediaingest.core.config import get_settings
from mediaingest.core.hooks import WILDCARD, Hooks
from mediaingest.core.storage import LocalStorage
from mediaingest.services.files import Files


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    for key in ("MEDIAINGEST_YOUTUBE_API_KEY", "MEDIAINGEST_ROOT", "MEDIAINGEST_ENV"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MEDIAINGEST_ENVIRONMENT", "test")
    monkeypatch.setenv("MEDIAINGEST_LOG_LEVEL", "debug")
    monkeypatch.setenv("MEDIAINGEST_STORAGE_BACKEND", "local")
    monkeypatch.setenv("MEDIAINGEST_STORAGE_ROOT", str(tmp_path / "media"))
    monkeypatch.setenv("MEDIAINGEST_THUMBNAIL_SIZE", "64")
    monkeypatch.setenv("MEDIAINGEST_THUMBNAIL_QUALITY", "80")
    monkeypatch.setenv("MEDIAINGEST_THUMBNAIL_CROP_ENABLED", "true")
    monkeypatch.setenv("MEDIAINGEST_FILE_NAMING", "original")

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings():
    return get_settings()


@pytest.fixture()
def storage(settings):
    return LocalStorage(settings.storage_root)


@pytest.fixture()
def events() -> list[tuple[str, dict]]:
    return []


@pytest.fixture()
def hooks(events):
    registry = Hooks()
    registry.subscribe(WILDCARD, lambda event, payload: events.append((event, dict(payload))))
    return registry


@pytest.fixture()
def files(settings, storage, hooks):
    return Files(settings, storage, hooks=hooks)


@pytest.fixture()
def make_image() -> Callable[..., bytes]:
    def _make(fmt: str = "JPEG", size: tuple[int, int] = (320, 240), color: Any = (200, 40, 40), mode: str = "RGB") -> bytes:
        out = BytesIO()
        Image.new(mode, size, color).save(out, fmt)
        return out.getvalue()

    return _make


def _iptc_dataset(dataset: int, value: str) -> bytes:
    encoded = value.encode("utf-8")
    return b"\x1c\x02" + bytes([dataset]) + len(encoded).to_bytes(2, "big") + encoded


@pytest.fixture()
def iptc_jpeg(make_image) -> Callable[..., bytes]:
    """Build a JPEG carrying a Photoshop APP13 segment with IPTC records.

    Each keyword argument maps an IPTC dataset number to one value or a list
    of values (for repeated fields such as keywords).
    """

    def _build(datasets: dict[int, Any], size: tuple[int, int] = (300, 200)) -> bytes:
        records = b""
        for dataset, values in datasets.items():
            for value in values if isinstance(values, list) else [values]:
                records += _iptc_dataset(dataset, value)
        if len(records) % 2:
            records += b"\x00"
        resource = b"8BIM" + (0x0404).to_bytes(2, "big") + b"\x00\x00" + len(records).to_bytes(4, "big") + records
        segment = b"Photoshop 3.0\x00" + resource
        app13 = b"\xff\xed" + (len(segment) + 2).to_bytes(2, "big") + segment
        jpeg = make_image("JPEG", size)
        return jpeg[:2] + app13 + jpeg[2:]

    return _build
