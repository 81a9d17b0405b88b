# backend/conversation_router.py

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import String, column, func, or_, select
from sqlalchemy.orm import Session

import models
import schemas
from auth import get_current_user
from chat_router import get_owned_conversation
from db import get_db

router = APIRouter(
    prefix="/chat/conversations",
    tags=["conversations"]
)

# GET /chat/conversations → paginated, searchable list for the current user
@router.get("")
def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    archived: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    query = db.query(models.Conversation).filter(models.Conversation.user_id == current_user.id)

    if archived is not None:
        query = query.filter(models.Conversation.is_archived == archived)

    if search:
        # plain substring, so LIKE wildcards in the search text match literally
        escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        # match each tag value, not the serialized JSON list
        tag = func.json_each(models.Conversation.tags).table_valued(column("value", String)).alias("tag")
        tag_match = select(tag.c.value).where(tag.c.value.ilike(pattern, escape="\\")).exists()
        query = query.filter(
            or_(
                models.Conversation.title.ilike(pattern, escape="\\"),
                tag_match,
            )
        )

    total = query.count()
    convs = (
        query.order_by(models.Conversation.last_message_at.desc(), models.Conversation.id.desc())
             .offset((page - 1) * limit)
             .limit(limit)
             .all()
    )
    return {
        "success": True,
        "data": {
            "conversations": [c.to_dict(include_messages=False) for c in convs],
            "total_pages": math.ceil(total / limit),
            "current_page": page,
            "total": total,
        },
    }

# GET /chat/conversations/{conv_id} → one conversation with its messages
@router.get("/{conv_id}")
def get_conversation(
    conv_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    conv = get_owned_conversation(db, conv_id, current_user)
    data = conv.to_dict()
    data["stats"] = conv.get_stats()
    return {"success": True, "data": {"conversation": data}}

# PUT /chat/conversations/{conv_id} → rename, retag or (un)archive
@router.put("/{conv_id}")
def update_conversation(
    conv_id: int,
    update: schemas.ConversationUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    conv = get_owned_conversation(db, conv_id, current_user)
    if update.title:
        conv.title = update.title
    if update.tags is not None:
        conv.tags = update.tags
    if update.is_archived is not None:
        conv.is_archived = update.is_archived
    db.commit()
    db.refresh(conv)
    return {
        "success": True,
        "message": "Conversation updated successfully",
        "data": {"conversation": conv.to_dict()},
    }

# DELETE /chat/conversations/{conv_id} → delete a conversation (and its messages)
@router.delete("/{conv_id}")
def delete_conversation(
    conv_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    conv = get_owned_conversation(db, conv_id, current_user)
    db.delete(conv)
    db.commit()
    return {"success": True, "message": "Conversation deleted successfully"}
