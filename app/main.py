from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from langchain_core.language_models.chat_models import BaseChatModel
from pydantic import BaseModel, ConfigDict, Field

from config.settings import Settings, get_settings
from tutor.clients.realtime import RealtimeBroker
from tutor.clients.speech import SpeechClient
from tutor.clients.uploads import stage_upload
from tutor.conversation import ConversationService, build_chat_model
from tutor.core.prompt import compose, compose_realtime
from tutor.core.sessions import SessionRegistry, run_sweeper
from tutor.curriculum import Curriculum
from tutor.errors import TutorError, UnitNotFound, UploadError, UploadTooLarge


logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger("sprachpartner")


class StartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unit_number: int = Field(..., alias="unitNumber", description="Curriculum unit to practise")


class MessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(..., alias="conversationId", min_length=1)
    message: str = Field(..., min_length=1, description="Learner's latest utterance")


class SpeechRequest(BaseModel):
    text: Optional[str] = None


def get_conversations(request: Request) -> ConversationService:
    return request.app.state.conversations


def get_speech(request: Request) -> SpeechClient:
    return request.app.state.speech


def get_broker(request: Request) -> RealtimeBroker:
    return request.app.state.broker


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


router = APIRouter()


@router.get("/api/units")
def list_units(conversations: ConversationService = Depends(get_conversations)) -> Dict[str, Any]:
    return {"units": conversations.curriculum.summaries()}


@router.get("/api/units/{unit_number}")
def get_unit(
    unit_number: int,
    conversations: ConversationService = Depends(get_conversations),
) -> Dict[str, Any]:
    unit = conversations.curriculum.get(unit_number)
    if unit is None:
        raise UnitNotFound()
    return unit.model_dump()


@router.get("/api/units/{unit_number}/instructions")
def get_instructions(
    unit_number: int,
    mode: Literal["chat", "realtime"] = "realtime",
    conversations: ConversationService = Depends(get_conversations),
) -> Dict[str, Any]:
    conversations.validate_unit(unit_number)
    unit = conversations.curriculum.get(unit_number)
    text = compose_realtime(unit) if mode == "realtime" else compose(unit)
    return {"unit": unit_number, "mode": mode, "instructions": text}


@router.post("/api/conversation/start")
def start_conversation(
    req: StartRequest,
    conversations: ConversationService = Depends(get_conversations),
) -> Dict[str, Any]:
    logger.info("Starting conversation for unit %s", req.unit_number)
    conversation_id, opening = conversations.start(req.unit_number)
    return {"conversationId": conversation_id, "message": opening}


@router.post("/api/conversation/message")
def conversation_message(
    req: MessageRequest,
    conversations: ConversationService = Depends(get_conversations),
) -> Dict[str, Any]:
    reply = conversations.message(req.conversation_id, req.message)
    return {"response": reply}


@router.post("/api/conversation/end")
def end_conversation(
    payload: Any = Body(None),
    conversations: ConversationService = Depends(get_conversations),
) -> Dict[str, Any]:
    # Any JSON body is accepted: ending a conversation never fails.
    conversation_id = payload.get("conversationId") if isinstance(payload, dict) else None
    conversations.end(str(conversation_id) if conversation_id is not None else None)
    return {"success": True}


@router.post("/api/speech-to-text")
def speech_to_text(
    audio: Optional[UploadFile] = File(None),
    speech: SpeechClient = Depends(get_speech),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    if audio is None:
        raise UploadError()

    data = audio.file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise UploadTooLarge(f"Audio file exceeds {settings.max_upload_bytes} bytes")

    suffix = Path(audio.filename or "").suffix or ".webm"
    with stage_upload(settings.upload_dir, data, suffix=suffix) as path:
        text = speech.transcribe(path)
    return {"text": text}


@router.post("/api/text-to-speech")
def text_to_speech(
    req: SpeechRequest,
    speech: SpeechClient = Depends(get_speech),
) -> Response:
    audio = speech.synthesize(req.text or "")
    return Response(content=audio, media_type=speech.media_type)


@router.get("/token")
def realtime_token(broker: RealtimeBroker = Depends(get_broker)) -> Dict[str, Any]:
    logger.info("Token endpoint requested")
    return {"value": broker.issue_ephemeral_credential()}


@router.get("/health")
def health(request: Request):
    conversations: ConversationService = request.app.state.conversations
    return {
        "status": "ok",
        "active_conversations": len(conversations.registry),
        "units": len(conversations.curriculum),
        "key_set": bool(request.app.state.settings.openai_api_key),
    }


async def handle_tutor_error(request: Request, exc: TutorError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {problems}"})


def create_app(
    settings: Optional[Settings] = None,
    curriculum: Optional[Curriculum] = None,
    chat_model: Optional[BaseChatModel] = None,
    speech: Optional[SpeechClient] = None,
    broker: Optional[RealtimeBroker] = None,
    registry: Optional[SessionRegistry] = None,
) -> FastAPI:
    settings = settings or get_settings()
    if curriculum is None:
        curriculum = Curriculum.load(settings.curriculum_path)
    if registry is None:
        registry = SessionRegistry(settings.session_ttl_seconds)
    if chat_model is None:
        chat_model = build_chat_model(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(run_sweeper(registry, settings.sweep_interval_seconds))
        logger.info(
            "Config: model=%s key_set=%s units=%s ttl=%ss sweep=%ss",
            settings.chat_model,
            bool(settings.openai_api_key),
            len(curriculum),
            settings.session_ttl_seconds,
            settings.sweep_interval_seconds,
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(title="Sprachpartner", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.conversations = ConversationService.from_settings(
        settings, curriculum, registry, chat_model
    )
    app.state.speech = speech or SpeechClient.from_settings(settings)
    app.state.broker = broker or RealtimeBroker.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(TutorError, handle_tutor_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.include_router(router)

    # Mounted last so the API routes win over the browser bundle.
    if Path(settings.static_dir).is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="public")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
