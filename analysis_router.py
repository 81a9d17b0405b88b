# backend/analysis_router.py

import logging
from collections import Counter

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from ai_service import AIService, get_ai_service
from auth import get_current_user
from chat_router import get_owned_conversation
from db import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/analysis",
    tags=["analysis"]
)

NO_HISTORY_ANSWER = "You don't have any conversations yet. Start chatting to build your history!"


def _require_messages(conv: models.Conversation, action: str) -> None:
    if not conv.messages:
        raise HTTPException(status_code=400, detail=f"Cannot {action} empty conversation")


def _provider_failure(message: str, error: Exception) -> HTTPException:
    logger.error("%s: %s", message, error)
    return HTTPException(status_code=500, detail={"message": message, "error": str(error)})


# ─── POST /analysis/summarize/{conv_id} ────────────────────────────────────────
@router.post("/summarize/{conv_id}")
def summarize(
    conv_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    ai: AIService = Depends(get_ai_service),
):
    conv = get_owned_conversation(db, conv_id, current_user)
    _require_messages(conv, "summarize")

    try:
        summary = ai.generate_summary(conv.ai_provider, conv.history())
    except Exception as e:
        raise _provider_failure("Error generating summary", e)

    conv.summary = summary
    db.commit()
    return {"success": True, "data": {"summary": summary}}


# ─── POST /analysis/analyze/{conv_id} ──────────────────────────────────────────
@router.post("/analyze/{conv_id}")
def analyze(
    conv_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    ai: AIService = Depends(get_ai_service),
):
    conv = get_owned_conversation(db, conv_id, current_user)
    _require_messages(conv, "analyze")

    try:
        analysis = ai.analyze_conversation(conv.ai_provider, conv.history())
    except Exception as e:
        raise _provider_failure("Error analyzing conversation", e)

    suggested = analysis.get("suggested_tags")
    if isinstance(suggested, list) and suggested:
        conv.merge_tags(suggested)
        db.commit()

    return {"success": True, "data": {"analysis": analysis}}


# ─── POST /analysis/query ──────────────────────────────────────────────────────
@router.post("/query")
def query_history(
    body: schemas.QueryRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    ai: AIService = Depends(get_ai_service),
):
    convs = (
        db.query(models.Conversation)
          .filter(
            models.Conversation.user_id == current_user.id,
            models.Conversation.is_archived.is_(False)
          )
          .order_by(models.Conversation.last_message_at.desc())
          .limit(body.limit)
          .all()
    )
    if not convs:
        return {
            "success": True,
            "data": {"answer": NO_HISTORY_ANSWER, "conversations_analyzed": 0},
        }

    provider = body.provider or current_user.default_ai_provider or "openai"
    context = [{"title": c.title, "messages": c.history()} for c in convs]
    try:
        answer = ai.query_history(provider, body.query, context)
    except Exception as e:
        raise _provider_failure("Error querying chat history", e)

    return {
        "success": True,
        "data": {
            "answer": answer,
            "conversations_analyzed": len(convs),
            "query": body.query,
        },
    }


# ─── GET /analysis/insights ────────────────────────────────────────────────────
@router.get("/insights")
def insights(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    convs = (
        db.query(models.Conversation)
          .filter(models.Conversation.user_id == current_user.id)
          .all()
    )

    total_conversations = len(convs)
    total_messages = sum(len(c.messages) for c in convs)
    avg = total_messages / total_conversations if total_conversations else 0

    tag_counts = Counter(tag for c in convs for tag in (c.tags or []))
    provider_usage = Counter(c.ai_provider for c in convs)

    recent = sorted(convs, key=lambda c: c.last_message_at, reverse=True)[:5]

    return {
        "success": True,
        "data": {
            "statistics": {
                "total_conversations": total_conversations,
                "total_messages": total_messages,
                "avg_messages_per_conversation": round(avg, 1),
            },
            "top_tags": [{"tag": t, "count": n} for t, n in tag_counts.most_common(10)],
            "provider_usage": dict(provider_usage),
            "recent_activity": [
                {
                    "id": c.id,
                    "title": c.title,
                    "last_message_at": c.last_message_at,
                    "message_count": len(c.messages),
                }
                for c in recent
            ],
        },
    }
