from __future__ import annotations

import subprocess
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Dict, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from mediaingest.core.errors import UnidentifiableMedia
from mediaingest.core.logging import get_logger

__all__ = [
    "THUMBNAIL_DIR",
    "THUMBNAIL_EXTENSIONS",
    "THUMBNAIL_PREFIX",
    "generate_thumbnail",
    "qualifies_for_thumbnail",
    "thumbnail_key",
]

THUMBNAIL_DIR = "thumbs/"
THUMBNAIL_PREFIX = f"{THUMBNAIL_DIR}THUMB_"
THUMBNAIL_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "tif", "tiff", "psd", "pdf"})

# Pillow encoder per source extension; psd and pdf are rasterised to PNG.
_OUTPUT_FORMATS: Dict[str, str] = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "gif": "GIF",
    "tif": "TIFF",
    "tiff": "TIFF",
    "psd": "PNG",
    "pdf": "PNG",
}

PDF_RENDER_TIMEOUT_S = 30

logger = get_logger(component="thumbnails")


def thumbnail_key(name: str) -> str:
    return f"{THUMBNAIL_PREFIX}{name}"


def qualifies_for_thumbnail(extension: str) -> bool:
    return extension.lower() in THUMBNAIL_EXTENSIONS


def generate_thumbnail(
    buffer: bytes,
    extension: str,
    size: int,
    *,
    crop: bool,
    quality: int,
) -> Optional[bytes]:
    """Return a resized re-encoding of ``buffer`` or ``None`` when the type has no thumbnail.

    Args:
        buffer: The primary asset bytes.
        extension: The extension of the stored name, any case.
        size: Target length of the longer edge (or of the square side when cropping).
        crop: Center-crop to a ``size`` x ``size`` square.
        quality: Encoder quality (0-100) used for JPEG output.

    Returns:
        The encoded thumbnail, or ``None`` when the extension does not qualify
        or a PDF could not be rasterised because poppler is missing.

    Raises:
        UnidentifiableMedia: The buffer could not be decoded.
    """
    extension = extension.lower()
    if extension not in THUMBNAIL_EXTENSIONS:
        return None

    if extension == "pdf":
        raster = _rasterise_pdf(buffer, size)
        if raster is None:
            return None
        buffer = raster

    output_format = _OUTPUT_FORMATS[extension]
    try:
        with Image.open(BytesIO(buffer)) as source:
            source.load()
            image = _prepare_mode(source, output_format)
            if crop:
                image = ImageOps.fit(image, (size, size), method=Image.Resampling.LANCZOS)
            else:
                image = image.resize(_scaled_size(image.size, size), Image.Resampling.LANCZOS)
            return _encode(image, output_format, quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise UnidentifiableMedia(f"unable to decode {extension} image: {exc}") from exc


def _scaled_size(dimensions: Tuple[int, int], size: int) -> Tuple[int, int]:
    width, height = dimensions
    ratio = size / max(width, height)
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def _prepare_mode(image: Image.Image, output_format: str) -> Image.Image:
    if output_format == "JPEG":
        return image.convert("RGB") if image.mode != "RGB" else image.copy()
    if output_format == "GIF":
        # Palette images resize with nearest-neighbour and keep their transparency index.
        return image.copy() if image.mode in ("P", "L") else image.convert("RGB")
    if image.mode not in ("RGB", "RGBA", "L"):
        return image.convert("RGBA")
    return image.copy()


def _encode(image: Image.Image, output_format: str, quality: int) -> bytes:
    out = BytesIO()
    if output_format == "JPEG":
        image.save(out, output_format, quality=quality, optimize=True)
    elif output_format == "PNG":
        image.save(out, output_format, optimize=True)
    else:
        image.save(out, output_format)
    return out.getvalue()


def _rasterise_pdf(buffer: bytes, size: int) -> Optional[bytes]:
    """Render the first PDF page to PNG with poppler's ``pdftoppm``."""
    with tempfile.TemporaryDirectory(prefix="mediaingest-pdf-") as workdir:
        source = Path(workdir) / "source.pdf"
        source.write_bytes(buffer)
        prefix = Path(workdir) / "page"
        command = [
            "pdftoppm",
            "-png",
            "-f",
            "1",
            "-l",
            "1",
            "-singlefile",
            "-scale-to",
            str(size),
            str(source),
            str(prefix),
        ]
        try:
            subprocess.run(
                command,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=PDF_RENDER_TIMEOUT_S,
            )
        except FileNotFoundError:
            logger.warning("pdf_rasteriser_missing", command=command[0])
            return None
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.decode("utf-8", errors="replace").strip() if exc.stderr else ""
            raise UnidentifiableMedia(f"unable to render pdf: {stderr or exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise UnidentifiableMedia("pdf rendering timed out") from exc
        return prefix.with_suffix(".png").read_bytes()
