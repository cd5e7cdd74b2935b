"""Turn statement PDFs and photos into JPEG images the vision model accepts."""
import base64
import io
import logging

import pdfplumber
from pdf2image import convert_from_bytes
from PIL import Image, ImageOps
from pillow_heif import register_heif_opener
from pypdf import PdfReader

logger = logging.getLogger("pdf_processor")

# HEIC/HEIF uploads (iPhone photos) decode through Pillow once the opener is registered
register_heif_opener()

RENDER_DPI = 150
VISION_MAX_PIXELS_LONG_SIDE = 2000
# Vision input: max 4MB base64 per image
VISION_MAX_BASE64_CHARS = 4_000_000
VISION_JPEG_QUALITIES = (85, 70, 55, 40)
MIN_LONG_SIDE = 256


class RenderError(RuntimeError):
    pass


class PdfRenderError(RenderError):
    pass


class ImageDecodeError(RenderError):
    pass


def pdf_to_page_images(pdf_bytes: bytes, max_pages: int) -> list[str]:
    """
    Render every page of the PDF to a base64 JPEG. All pages are returned so that a
    single request covers the whole statement; more than max_pages is an error.
    """
    pages = count_pages(pdf_bytes)
    if pages == 0:
        raise PdfRenderError("PDF has no readable pages")
    if pages > max_pages:
        raise PdfRenderError(f"PDF has {pages} pages, at most {max_pages} are supported")
    try:
        images = convert_from_bytes(pdf_bytes, dpi=RENDER_DPI)
    except Exception as e:
        err_msg = str(e).strip()
        if "poppler" in err_msg.lower() or "page count" in err_msg.lower():
            raise PdfRenderError(
                "PDF to image failed: poppler is required. "
                "Install it (e.g. brew install poppler on macOS, apt install poppler-utils on Linux)."
            ) from e
        raise PdfRenderError(f"PDF to image failed: {err_msg}") from e
    logger.info("pdf_to_page_images: rendered %d pages at %d dpi", len(images), RENDER_DPI)
    return [image_to_base64_jpeg(img) for img in images]


def image_bytes_to_base64_jpeg(content: bytes) -> str:
    """Decode an uploaded photo or scan (JPEG, PNG, WEBP, HEIC) and re-encode it as a base64 JPEG."""
    try:
        with Image.open(io.BytesIO(content)) as img:
            img.load()
            # Phone photos store rotation in EXIF
            upright = ImageOps.exif_transpose(img)
            encoded = image_to_base64_jpeg(upright)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Image could not be decoded: {e}") from e
    logger.info("image_bytes_to_base64_jpeg: %d bytes in, %d base64 chars out", len(content), len(encoded))
    return encoded


def count_pages(pdf_bytes: bytes) -> int:
    stream = io.BytesIO(pdf_bytes)
    try:
        with pdfplumber.open(stream) as pdf:
            return len(pdf.pages)
    except Exception:
        logger.debug("count_pages: pdfplumber could not open the PDF, trying pypdf")
    try:
        stream.seek(0)
        return len(PdfReader(stream).pages)
    except Exception:
        return 0


def _encode_jpeg(img: Image.Image, quality: int) -> str:
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def image_to_base64_jpeg(
    img: Image.Image,
    max_long_side: int = VISION_MAX_PIXELS_LONG_SIDE,
    max_chars: int = VISION_MAX_BASE64_CHARS,
) -> str:
    """
    Resize to max_long_side and encode as JPEG base64 no longer than max_chars,
    lowering quality and then size until it fits.
    """
    w, h = img.size
    if max(w, h) > max_long_side:
        ratio = max_long_side / max(w, h)
        img = img.resize((int(w * ratio), int(h * ratio)), Image.Resampling.LANCZOS)
    if img.mode != "RGB":
        img = img.convert("RGB")
    while True:
        for quality in VISION_JPEG_QUALITIES:
            encoded = _encode_jpeg(img, quality)
            if len(encoded) <= max_chars:
                return encoded
        w, h = img.size
        if max(w, h) <= MIN_LONG_SIDE:
            return encoded
        img = img.resize((max(1, int(w * 0.75)), max(1, int(h * 0.75))), Image.Resampling.LANCZOS)
