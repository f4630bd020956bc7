"""
API route for the website support chat
"""

from fastapi import APIRouter, Depends

from examprep.config import settings
from examprep.dependencies import get_support_chat
from examprep.models.schemas import ChatSupportRequest, ChatSupportResponse
from examprep.services.support_service import SupportChatService

router = APIRouter(prefix=settings.API_PREFIX, tags=["Support"])


@router.post("/chat-support", response_model=ChatSupportResponse)
async def chat_support(
    payload: ChatSupportRequest,
    support: SupportChatService = Depends(get_support_chat)
):
    """Answer a platform question using the cached website content"""
    response = await support.reply(
        payload.message,
        history=[turn.model_dump() for turn in payload.history]
    )
    return ChatSupportResponse(response=response)
