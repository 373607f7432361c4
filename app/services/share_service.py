"""
Public share links.

A share is valid while it is active and not past ``expires_at``. Unknown,
deactivated and expired tokens all resolve to the same not-found error.
Deactivation is one-way; sharing again always mints a fresh token.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import BusinessLogicError, NotFoundError, ShareNotFoundError
from app.models import Quote, QuoteShare
from app.services.quote_aggregate import QuoteAggregate
from app.services.quote_service import assemble_quote, get_quote

logger = logging.getLogger(__name__)

SHARE_TOKEN_BYTES = 24


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_share_valid(share: Optional[QuoteShare], now: Optional[datetime] = None) -> bool:
    if share is None or not share.is_active:
        return False
    if share.expires_at is None:
        return True
    return _as_utc(share.expires_at) > _as_utc(now or utcnow())


def create_share(session: Session, user_id: str, quote_id: str,
                 expires_in_days: Optional[int] = None, now: Optional[datetime] = None) -> QuoteShare:
    """Create a new share link for one of the user's quotes."""
    try:
        quote = get_quote(session, user_id, quote_id)
        now = _as_utc(now or utcnow())
        share = QuoteShare(
            share_id=secrets.token_urlsafe(SHARE_TOKEN_BYTES),
            quote_id=quote.id,
            created_by=user_id,
            is_active=True,
            expires_at=now + timedelta(days=expires_in_days) if expires_in_days else None,
        )
        session.add(share)
        session.commit()
        logger.info(f"[SHARE] Created share for {quote.quote_number} (expires={share.expires_at})")
        return share
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[SHARE] Create failed for quote={quote_id}")
        raise BusinessLogicError('建立分享連結失敗，請稍後再試') from e


def deactivate_share(session: Session, user_id: str, share_id: str) -> QuoteShare:
    """Switch a share off for good."""
    try:
        share = session.query(QuoteShare).join(Quote, Quote.id == QuoteShare.quote_id).filter(
            QuoteShare.share_id == share_id,
            Quote.user_id == user_id
        ).first()
        if not share:
            raise NotFoundError('找不到分享連結')
        share.is_active = False
        session.commit()
        logger.info(f"[SHARE] Deactivated share for quote={share.quote_id}")
        return share
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        raise BusinessLogicError('停用分享連結失敗，請稍後再試') from e


def list_shares(session: Session, user_id: str, quote_id: str):
    quote = get_quote(session, user_id, quote_id)
    return session.query(QuoteShare).filter(
        QuoteShare.quote_id == quote.id
    ).order_by(QuoteShare.created_at.desc()).all()


def resolve_share(session: Session, share_id: str,
                  now: Optional[datetime] = None) -> Tuple[QuoteAggregate, str]:
    """
    Resolve a public token to ``(aggregate, owner_user_id)``.

    Read-only and independent of any login: every row is fetched fresh.

    Raises:
        ShareNotFoundError: unknown, inactive or expired token, or the
            quote is gone.
    """
    share = session.query(QuoteShare).filter(QuoteShare.share_id == share_id).first() if share_id else None
    if not is_share_valid(share, now):
        logger.info("[SHARE] Rejected share token")
        raise ShareNotFoundError()

    quote = session.query(Quote).filter(Quote.id == share.quote_id).first()
    if not quote:
        raise ShareNotFoundError()

    return assemble_quote(session, quote), quote.user_id
