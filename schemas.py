# backend/schemas.py

from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Provider = Literal["openai", "claude", "gemini", "lmstudio"]
Theme = Literal["light", "dark", "system"]

# ---------- User-related schemas ----------

class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=6)

class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

class PreferencesUpdate(BaseModel):
    default_ai_provider: Optional[Provider] = None
    theme: Optional[Theme] = None


# ---------- Conversation-related schemas ----------

class ConversationUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    tags: Optional[List[str]] = None
    is_archived: Optional[bool] = None


# ---------- Chat / analysis request schemas ----------

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    conversation_id: Optional[int] = None
    provider: Optional[Provider] = None
    model: Optional[str] = None

class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1)
    provider: Optional[Provider] = None
    limit: int = Field(10, ge=1)
