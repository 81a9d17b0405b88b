# backend/chat_router.py

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from ai_service import DEFAULT_MODELS, AIService, get_ai_service, provider_error_hint
from auth import get_current_user
from db import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/chat",
    tags=["chat"]
)

def get_owned_conversation(db: Session, conv_id: int, user: models.User) -> models.Conversation:
    conv = (
        db.query(models.Conversation)
          .filter(
            models.Conversation.id == conv_id,
            models.Conversation.user_id == user.id
          )
          .first()
    )
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conv


# ─── POST /chat ────────────────────────────────────────────────────────────────
@router.post("")
def send_message(
    body: schemas.ChatRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    ai: AIService = Depends(get_ai_service),
):
    provider = body.provider or current_user.default_ai_provider or "openai"

    # 1) Load the conversation, or start a new one
    if body.conversation_id is not None:
        conv = get_owned_conversation(db, body.conversation_id, current_user)
    else:
        conv = models.Conversation(
            user_id=current_user.id,
            title=models.DEFAULT_TITLE,
            ai_provider=provider,
            model=body.model or DEFAULT_MODELS[provider],
        )

    # a conversation's stored model only applies to the provider it was created with
    model = body.model or (conv.model if conv.ai_provider == provider else None)

    # 2) Append the user's message and ask the provider with the full transcript
    conv.add_message("user", body.message)
    try:
        reply = ai.send_message(provider, conv.history(), model)
    except Exception as e:
        logger.error("Chat error (%s, conversation %s): %s", provider, conv.id, e)
        # nothing from this request reaches the database
        db.rollback()
        raise HTTPException(status_code=500, detail=provider_error_hint(e))

    # 3) Store the assistant's reply and persist everything at once
    conv.add_message("assistant", reply["content"], reply["metadata"])
    conv.auto_generate_title()
    if conv.id is None:
        db.add(conv)
    db.commit()
    db.refresh(conv)

    return {
        "success": True,
        "data": {
            "conversation": {
                "id": conv.id,
                "title": conv.title,
                "messages": [m.to_dict() for m in conv.messages],
                "ai_provider": conv.ai_provider,
                "model": conv.model,
            },
            "response": reply["content"],
        },
    }
