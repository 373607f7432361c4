"""
Settings service: company branding and bank display settings.

Both are JSON blobs in the ``app_setting`` table under fixed keys, one
pair per user, last writer wins. Renderers receive them as explicit
``CompanySettings``/``BankSettings`` objects loaded once per render.
"""
import base64
import json
import logging
from dataclasses import asdict, dataclass, fields
from io import BytesIO
from typing import Any, Dict, Optional

from flask import current_app, has_app_context
from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage

from app.exceptions import BusinessLogicError
from app.models import AppSetting

logger = logging.getLogger(__name__)

COMPANY_SETTINGS_KEY = 'companySettings'
BANK_SETTINGS_KEY = 'bankSettings'


@dataclass(frozen=True)
class CompanySettings:
    company_name: str = ''
    address: str = ''
    phone: str = ''
    email: str = ''
    website: str = ''
    tax_id: str = ''
    logo: str = ''   # data URI
    stamp: str = ''  # data URI (報價章)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CompanySettings':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v or '' for k, v in (data or {}).items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BankSettings:
    bankbook_image: str = ''  # data URI (存摺圖檔)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'BankSettings':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v or '' for k, v in (data or {}).items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_setting(session, user_id: str, key: str) -> Optional[Dict[str, Any]]:
    """Return the stored JSON blob for ``key`` or None."""
    row = session.query(AppSetting).filter(
        AppSetting.user_id == user_id,
        AppSetting.key == key
    ).first()
    if not row:
        return None
    try:
        return json.loads(row.value)
    except json.JSONDecodeError as e:
        logger.warning(f"[SETTINGS] Corrupt JSON for user={user_id} key={key}: {e}")
        return None


def set_setting(session, user_id: str, key: str, value: Dict[str, Any]) -> None:
    """Store the JSON blob for ``key`` (insert or overwrite)."""
    try:
        row = session.query(AppSetting).filter(
            AppSetting.user_id == user_id,
            AppSetting.key == key
        ).first()
        serialized = json.dumps(value, ensure_ascii=False)
        if row:
            row.value = serialized
        else:
            session.add(AppSetting(user_id=user_id, key=key, value=serialized))
        session.commit()
        logger.info(f"[SETTINGS] Saved {key} for user={user_id}")
    except Exception:
        session.rollback()
        raise


def _config_defaults() -> Dict[str, Any]:
    if not has_app_context():
        return {}
    return {
        'company_name': current_app.config.get('BUSINESS_NAME', ''),
        'address': current_app.config.get('BUSINESS_ADDRESS', ''),
        'phone': current_app.config.get('BUSINESS_PHONE', ''),
        'email': current_app.config.get('BUSINESS_EMAIL', ''),
        'tax_id': current_app.config.get('BUSINESS_TAX_ID', ''),
    }


def load_company_settings(session, user_id: Optional[str]) -> CompanySettings:
    """Company settings for rendering; keys never saved fall back to config."""
    data = _config_defaults()
    if user_id:
        stored = get_setting(session, user_id, COMPANY_SETTINGS_KEY) or {}
        data.update({k: v for k, v in stored.items() if v is not None})
    return CompanySettings.from_dict(data)


def load_bank_settings(session, user_id: Optional[str]) -> BankSettings:
    if not user_id:
        return BankSettings()
    return BankSettings.from_dict(get_setting(session, user_id, BANK_SETTINGS_KEY))


def save_company_settings(session, user_id: str, settings: CompanySettings) -> None:
    set_setting(session, user_id, COMPANY_SETTINGS_KEY, settings.to_dict())


def save_bank_settings(session, user_id: str, settings: BankSettings) -> None:
    set_setting(session, user_id, BANK_SETTINGS_KEY, settings.to_dict())


def image_to_data_uri(
    file: FileStorage,
    max_size: int = 2 * 1024 * 1024,
    max_dimension: int = 800,
    allowed_mime_types=None,
) -> str:
    """
    Validate an uploaded image, downscale it with Pillow and return a
    ``data:`` URI so exported documents stay self-contained.

    Raises:
        BusinessLogicError: wrong type, too large, or not decodable.
    """
    allowed_mime_types = allowed_mime_types or {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}

    if not file or not file.filename:
        raise BusinessLogicError('請選擇圖片文件')

    if file.mimetype not in allowed_mime_types:
        raise BusinessLogicError('請選擇圖片文件（PNG、JPG、GIF等）')

    raw = file.read()
    if len(raw) > max_size:
        raise BusinessLogicError(f'圖片大小不能超過 {max_size // (1024 * 1024)}MB')

    try:
        img = Image.open(BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"[SETTINGS] Rejected upload {file.filename}: {e}")
        raise BusinessLogicError('無法讀取圖片文件')

    img.thumbnail((max_dimension, max_dimension))

    output_buffer = BytesIO()
    # Keep transparency for stamps/logos, JPEG for everything else
    if img.mode in ('RGBA', 'LA', 'P'):
        img.convert('RGBA').save(output_buffer, format='PNG')
        content_type = 'image/png'
    else:
        img.convert('RGB').save(output_buffer, format='JPEG', quality=90)
        content_type = 'image/jpeg'

    encoded = base64.b64encode(output_buffer.getvalue()).decode('ascii')
    return f"data:{content_type};base64,{encoded}"
