"""Watermarked preview generation for uploaded images."""

from io import BytesIO
from typing import NamedTuple

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

PREVIEW_SIZE = (1200, 630)  # Open Graph card size
LETTERBOX_COLOR = (10, 16, 24)
WATERMARK_TEXT = 'SAMPLE'
WATERMARK_FILL = (255, 255, 255, 64)  # 25% white
WATERMARK_FONT_SIZE = 110
JPEG_QUALITY = 85

class PreviewError(Exception):
    """Raised when an upload cannot be decoded as an image."""
    pass

class Previews(NamedTuple):
    """Encoded preview images."""
    card: bytes       # cover crop for sale pages and link unfurls
    checkout: bytes   # letter-boxed so tall images are not cut on the checkout page

def _load_font(size: int):
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)

def _watermark(image: Image.Image) -> Image.Image:
    overlay = Image.new('RGBA', image.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    center = (image.size[0] // 2, image.size[1] // 2)
    draw.text(center, WATERMARK_TEXT, font=_load_font(WATERMARK_FONT_SIZE), fill=WATERMARK_FILL, anchor='mm')
    return Image.alpha_composite(image.convert('RGBA'), overlay).convert('RGB')

def _encode(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format='JPEG', quality=JPEG_QUALITY)
    return buffer.getvalue()

def render_previews(image_bytes: bytes) -> Previews:
    """Render the sale page and checkout previews of an original.

    Args:
        image_bytes: Encoded original image

    Returns:
        Previews with both JPEG encodings

    Raises:
        PreviewError: If the bytes are not a readable image
    """
    try:
        original = Image.open(BytesIO(image_bytes))
        original = ImageOps.exif_transpose(original).convert('RGB')
    except (UnidentifiedImageError, OSError) as e:
        raise PreviewError(f"Unreadable image: {e}")

    card = ImageOps.fit(original, PREVIEW_SIZE, method=Image.LANCZOS)
    checkout = ImageOps.pad(original, PREVIEW_SIZE, method=Image.LANCZOS, color=LETTERBOX_COLOR)

    return Previews(
        card=_encode(_watermark(card)),
        checkout=_encode(_watermark(checkout)),
    )
