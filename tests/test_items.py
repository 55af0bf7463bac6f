"""Tests for items, uploads and previews."""

from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from items import (
    ItemManager, ItemError, InvalidPriceError, InvalidLocatorError, public_view, new_slug
)
from items.previews import render_previews, PreviewError, PREVIEW_SIZE
from items.upload import ItemUploader, UploadError, MAX_UPLOAD_BYTES
from users import LegalProfile

def png_bytes(size=(800, 1600), color=(200, 30, 30)) -> bytes:
    buffer = BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()

@pytest.fixture
def manager():
    return ItemManager(pool=MagicMock(), min_price=1)

def test_validate_accepts_valid_item(manager):
    """Test a valid item passes validation."""
    manager.validate('Sunset', 1000, None, 'originals/a.jpg', 'standard')

@pytest.mark.parametrize("price", [0, -5, 1.5, True])
def test_validate_rejects_bad_price(manager, price):
    """Test that prices must be integers at or above the minimum."""
    with pytest.raises(InvalidPriceError):
        manager.validate('Sunset', price, None, 'originals/a.jpg', 'standard')

@pytest.mark.parametrize("file_path,s3_key", [(None, None), ('uploads/a.jpg', 'originals/a.jpg')])
def test_validate_requires_exactly_one_locator(manager, file_path, s3_key):
    """Test the file path and object key exclusivity."""
    with pytest.raises(InvalidLocatorError):
        manager.validate('Sunset', 1000, file_path, s3_key, 'standard')

def test_validate_rejects_unknown_license(manager):
    """Test that license presets are restricted."""
    with pytest.raises(ItemError):
        manager.validate('Sunset', 1000, None, 'originals/a.jpg', 'unlimited')

def test_public_view_hides_locators():
    """Test that sale data never exposes storage locations or owners."""
    view = public_view({'slug': 'abc', 'title': 'Sunset', 'price': 1000, 'file_path': 'uploads/a.jpg',
                        's3_key': 'originals/a.jpg', 'owner_user_id': 'u'})
    assert view['slug'] == 'abc'
    assert 'file_path' not in view and 's3_key' not in view and 'owner_user_id' not in view

def test_new_slug():
    """Test slug shape."""
    slug = new_slug()
    assert len(slug) == 10
    assert slug != new_slug()

def test_render_previews():
    """Test both previews are 1200x630 JPEGs."""
    previews = render_previews(png_bytes())
    for encoded in previews:
        image = Image.open(BytesIO(encoded))
        assert image.format == 'JPEG'
        assert image.size == PREVIEW_SIZE

def test_render_previews_rejects_non_images():
    """Test that undecodable bytes are rejected."""
    with pytest.raises(PreviewError):
        render_previews(b'not an image')

@pytest.mark.asyncio
async def test_upload_to_local_disk(items, tmp_path):
    """Test an upload without an object store keeps the original on disk."""
    uploader = ItemUploader(items, None, uploads_dir=str(tmp_path / 'uploads'), previews_dir=str(tmp_path / 'previews'))

    item = await uploader.upload(png_bytes(), 'image/png', 'Sunset', 1000, None, attest_owner=True)

    assert item['s3_key'] is None
    assert (tmp_path / 'uploads').joinpath(item['file_path'].split('/')[-1]).exists()
    assert item['preview_path'] == f"/previews/{item['slug']}-preview.jpg"
    assert (tmp_path / 'previews' / f"{item['slug']}-checkout.jpg").exists()

@pytest.mark.asyncio
async def test_upload_to_object_store(items, tmp_path):
    """Test an upload with an object store stores the original under originals/."""
    store = MagicMock()
    store.put = AsyncMock()
    uploader = ItemUploader(items, store, previews_dir=str(tmp_path))

    item = await uploader.upload(png_bytes(), 'image/png', 'Sunset', 1000, None, attest_owner=True)

    assert item['file_path'] is None
    assert item['s3_key'].startswith('originals/')
    store.put.assert_awaited_once()

@pytest.mark.asyncio
@pytest.mark.parametrize("body,content_type,attest", [
    (b'%PDF', 'application/pdf', True),
    (b'', 'image/png', True),
    (b'x' * (MAX_UPLOAD_BYTES + 1), 'image/png', True),
    (png_bytes(), 'image/png', False),
    (b'garbage', 'image/png', True),
])
async def test_upload_rejections(items, tmp_path, body, content_type, attest):
    """Test the upload acceptance rules."""
    uploader = ItemUploader(items, None, uploads_dir=str(tmp_path), previews_dir=str(tmp_path))
    with pytest.raises(UploadError):
        await uploader.upload(body, content_type, 'Sunset', 1000, None, attest_owner=attest)
    assert items.rows == {}

def test_legal_profile_sanitized():
    """Test that individuals never keep business-only fields."""
    profile = LegalProfile(seller_type='individual', name=' Aki ', responsible='Boss', invoice_reg_no='T123')
    clean = profile.sanitized()
    assert clean.name == 'Aki'
    assert clean.responsible == ''
    assert clean.invoice_reg_no == ''
    assert clean.is_complete

def test_business_profile_completeness():
    """Test the required business disclosure fields."""
    partial = LegalProfile(seller_type='business', name='Studio', address='Tokyo', published=True)
    assert not partial.is_complete
    assert partial.model_copy(update={'email': 'studio@example.com'}).is_complete
