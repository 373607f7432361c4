"""Models package - exports all SQLAlchemy models."""
from app.models.app_user import AppUser
from app.models.app_setting import AppSetting

# Catalog
from app.models.customer import Customer
from app.models.product import Product
from app.models.staff import Staff
from app.models.bank import Bank

# Quotes
from app.models.quote import Quote, QuoteStatus, QUOTE_STATUS_LABELS
from app.models.quote_item import QuoteItem
from app.models.quote_share import QuoteShare

__all__ = [
    'AppUser', 'AppSetting',
    'Customer', 'Product', 'Staff', 'Bank',
    'Quote', 'QuoteStatus', 'QUOTE_STATUS_LABELS', 'QuoteItem', 'QuoteShare',
]
