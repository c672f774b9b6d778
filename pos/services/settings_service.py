"""Store settings service."""
import logging
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session
from pos.models import AppSettings

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'store_name', 'store_address', 'store_phone', 'store_email',
    'receipt_footer', 'default_low_stock_threshold',
)


def get_settings(session: Session) -> Optional[AppSettings]:
    """The single settings row, or None when the store was never configured."""
    return session.query(AppSettings).order_by(AppSettings.id).first()


def save_settings(session: Session, **fields) -> AppSettings:
    """Create or update the settings row with the given fields."""
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f'Unknown settings fields: {", ".join(sorted(unknown))}')
    
    settings = get_settings(session)
    if settings is None:
        settings = AppSettings(store_name=fields.get('store_name') or 'My Store')
        session.add(settings)
    for key, value in fields.items():
        setattr(settings, key, value)
    session.commit()
    logger.info(f"[SETTINGS] Store settings saved for '{settings.store_name}'")
    return settings


def serialize_settings(settings: AppSettings) -> Dict[str, Any]:
    return {
        'store_name': settings.store_name,
        'store_address': settings.store_address or '',
        'store_phone': settings.store_phone or '',
        'store_email': settings.store_email or '',
        'receipt_footer': settings.receipt_footer or '',
        'default_low_stock_threshold': settings.default_low_stock_threshold,
    }
