"""
CRUD for the reference data a quote points at: customers, products,
staff and bank accounts. Every query is scoped to the owning user.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import BusinessLogicError, NotFoundError, ReferenceInUseError

logger = logging.getLogger(__name__)


def list_entities(session: Session, model, user_id: str, search: Optional[str] = None,
                  search_fields: Sequence[str] = (), order_by=None) -> List[Any]:
    query = session.query(model).filter(model.user_id == user_id)
    if search and search_fields:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(*[
            func.lower(getattr(model, name)).like(pattern) for name in search_fields
        ]))
    if order_by is not None:
        query = query.order_by(order_by)
    return query.all()


def get_entity(session: Session, model, user_id: str, entity_id: str, label: str):
    entity = session.query(model).filter(model.id == entity_id, model.user_id == user_id).first()
    if not entity:
        raise NotFoundError(f'找不到{label}')
    return entity


def create_entity(session: Session, model, user_id: str, values: Dict[str, Any], label: str):
    try:
        entity = model(user_id=user_id, **values)
        session.add(entity)
        session.commit()
        logger.info(f"[CATALOG] Created {model.__tablename__} id={entity.id} user={user_id}")
        return entity
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[CATALOG] Create {model.__tablename__} failed")
        raise BusinessLogicError(f'新增{label}失敗，請稍後再試') from e


def update_entity(session: Session, entity, values: Dict[str, Any], label: str):
    try:
        for key, value in values.items():
            setattr(entity, key, value)
        session.commit()
        return entity
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[CATALOG] Update {entity.__tablename__} id={entity.id} failed")
        raise BusinessLogicError(f'更新{label}失敗，請稍後再試') from e


def delete_entity(session: Session, model, user_id: str, entity_id: str, label: str) -> None:
    """
    Delete one row.

    Raises:
        ReferenceInUseError: a quote still references the row.
    """
    entity = get_entity(session, model, user_id, entity_id, label)
    try:
        session.delete(entity)
        session.commit()
        logger.info(f"[CATALOG] Deleted {model.__tablename__} id={entity_id}")
    except IntegrityError:
        session.rollback()
        logger.info(f"[CATALOG] {model.__tablename__} id={entity_id} still referenced, not deleted")
        raise ReferenceInUseError(label)
    except SQLAlchemyError as e:
        session.rollback()
        raise BusinessLogicError(f'刪除{label}失敗，請稍後再試') from e
