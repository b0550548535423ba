"""
FastAPI back-end for the PixelPets Telegram Mini-App
────────────────────────────────────────────────────
• Validates Telegram Web-App initData (the user id is the owner id)
• Runs the pet care engine against a pluggable data store
• REST endpoints for one-shot reads and actions, plus
      WS /pets/{id}/live – a live session with the decay timer running
• Loads secrets from a .env file in development
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import services, validate
from .actions import ActionKind
from .config import configure_logging, settings
from .errors import NotFound, PersistenceError, PixelPetsError, ValidationError
from .ledger import EconomyLedger
from .models import BudgetReport, Pet, SavingsGoal, Species, Task, UserFinances, UserStreak
from .quiz import Difficulty, HttpQuestionGenerator, Question, question_for_task
from .session import PetSession, PetSnapshot, SessionState
from .store import JsonFileStore
from .toys import Toy

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────
# 1.  FastAPI app, store, question generator
# ──────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(app.state.settings.log_level)
    yield
    if app.state.generator is not None:
        await app.state.generator.aclose()


app = FastAPI(title="PixelPets API", version="2.0", lifespan=lifespan)

app.state.settings = settings
app.state.store = JsonFileStore(settings.state_file)
app.state.generator = (
    HttpQuestionGenerator(settings.quiz_endpoint, api_key=settings.quiz_api_key)
    if settings.quiz_endpoint
    else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.allowed_origin],
    allow_methods=["POST"],
    allow_headers=["*"],
)


# ──────────────────────────────────────────────────────────
# 2.  Rate limiting + error mapping
# ──────────────────────────────────────────────────────────
def key_by_user_id(request):
    return getattr(request.state, "user_id", None) or get_remote_address(request)


limiter = Limiter(
    key_func=key_by_user_id,
    default_limits=[settings.rate_limit],
)

app.state.limiter = limiter


def ratelimit_handler(request, exc: RateLimitExceeded):
    resp = JSONResponse(
        status_code=429,
        content={"detail": "Too many taps – give your pet a second 🐢"},
    )
    resp.headers["Access-Control-Allow-Origin"] = settings.allowed_origin
    resp.headers["Access-Control-Allow-Credentials"] = "true"
    return resp


app.add_exception_handler(RateLimitExceeded, ratelimit_handler)
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RequestValidationError)
async def debug_validation(request: Request, exc: RequestValidationError):
    logger.warning("validation error on %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.exception_handler(ValidationError)
async def rejected_action(request: Request, exc: ValidationError):
    return JSONResponse(status_code=409, content={"detail": exc.reason})


@app.exception_handler(NotFound)
async def not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc) or "not found"})


@app.exception_handler(PersistenceError)
async def store_unavailable(request: Request, exc: PersistenceError):
    logger.error("store failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "could not save, try again"})


# ──────────────────────────────────────────────────────────
# 3.  Pydantic models  (request / response)
# ──────────────────────────────────────────────────────────
class InitPayload(BaseModel):
    initData: str = Field(..., description="Raw query string from WebApp")


class AdoptIn(InitPayload):
    name: str = Field(..., min_length=1, max_length=40)
    species: Species


class ActionIn(InitPayload):
    action: ActionKind


class AnswerIn(InitPayload):
    correct: bool


class QuizIn(InitPayload):
    difficulty: Difficulty = Difficulty.MEDIUM


class SavingsGoalIn(InitPayload):
    amount: int = Field(..., gt=0)


class MeOut(BaseModel):
    finances: UserFinances
    streak: Optional[UserStreak] = None
    tasks_done: int = 0


class AdoptOut(BaseModel):
    pet: Pet
    finances: UserFinances


class ReportOut(BaseModel):
    report: BudgetReport
    toys: List[Toy]


# ──────────────────────────────────────────────────────────
# 4.  Helpers
# ──────────────────────────────────────────────────────────
def authenticate(payload: InitPayload, request: Request) -> str:
    init = validate.get_init_data(payload.initData, request.app.state.settings.bot_token, request=request)
    return str(init.user.id)


def open_session(app_: FastAPI, uid: str, pet_id: str, **kwargs) -> PetSession:
    return PetSession(app_.state.store, uid, pet_id, settings=app_.state.settings, **kwargs)


# ──────────────────────────────────────────────────────────
# 5.  API routes
# ──────────────────────────────────────────────────────────
@app.post("/me", response_model=MeOut)
async def me(payload: InitPayload, request: Request):
    uid = authenticate(payload, request)
    store = request.app.state.store
    finances = await EconomyLedger(store, uid).ensure()
    return MeOut(
        finances=finances,
        streak=await store.get_streak(uid),
        tasks_done=await store.count_completed_tasks(uid),
    )


@app.post("/pets", response_model=List[Pet])
async def list_pets(payload: InitPayload, request: Request):
    uid = authenticate(payload, request)
    return await request.app.state.store.list_pets(uid)


@app.post("/pets/adopt", response_model=AdoptOut)
async def adopt(payload: AdoptIn, request: Request):
    uid = authenticate(payload, request)
    pet, finances = await services.adopt_pet(request.app.state.store, uid, payload.name, payload.species)
    return AdoptOut(pet=pet, finances=finances)


@app.post("/pets/{pet_id}/state", response_model=PetSnapshot)
async def pet_state(pet_id: str, payload: InitPayload, request: Request):
    uid = authenticate(payload, request)
    async with open_session(request.app, uid, pet_id) as session:
        return session.last_snapshot


@app.post("/pets/{pet_id}/action", response_model=PetSnapshot)
async def pet_action(pet_id: str, payload: ActionIn, request: Request):
    uid = authenticate(payload, request)
    async with open_session(request.app, uid, pet_id) as session:
        return await session.perform(payload.action)


@app.post("/pets/{pet_id}/abandon")
async def abandon(pet_id: str, payload: InitPayload, request: Request):
    uid = authenticate(payload, request)
    async with open_session(request.app, uid, pet_id) as session:
        if session.state is not SessionState.PET_LOST:
            raise ValidationError("pet is still here")
        await session.abandon()
    return {"ok": True}


@app.post("/pets/{pet_id}/report", response_model=ReportOut)
async def report(pet_id: str, payload: InitPayload, request: Request):
    uid = authenticate(payload, request)
    budget, toys = await services.pet_report(request.app.state.store, uid, pet_id)
    return ReportOut(report=budget, toys=toys)


@app.post("/pets/{pet_id}/savings-goal", response_model=SavingsGoal)
async def savings_goal(pet_id: str, payload: SavingsGoalIn, request: Request):
    uid = authenticate(payload, request)
    return await services.set_savings_goal(request.app.state.store, uid, pet_id, payload.amount)


@app.post("/tasks", response_model=List[Task])
async def list_tasks(payload: InitPayload, request: Request):
    uid = authenticate(payload, request)
    return await request.app.state.store.list_tasks(uid)


@app.post("/tasks/generate", response_model=List[Task])
async def new_tasks(payload: InitPayload, request: Request):
    uid = authenticate(payload, request)
    return await services.generate_tasks(request.app.state.store, uid)


@app.post("/tasks/{task_id}/quiz", response_model=Question)
async def quiz(task_id: str, payload: QuizIn, request: Request):
    uid = authenticate(payload, request)
    task = await request.app.state.store.get_task(task_id)
    if task is None or task.user_id != uid:
        raise NotFound(f"task {task_id}")
    if task.completed:
        raise ValidationError("task already completed")
    return await question_for_task(request.app.state.generator, difficulty=payload.difficulty)


@app.post("/pets/{pet_id}/tasks/{task_id}/answer", response_model=PetSnapshot)
async def answer(pet_id: str, task_id: str, payload: AnswerIn, request: Request):
    uid = authenticate(payload, request)
    async with open_session(request.app, uid, pet_id) as session:
        return await session.answer(task_id, payload.correct)


# ──────────────────────────────────────────────────────────
# 6.  Live pet screen
# ──────────────────────────────────────────────────────────
@app.websocket("/pets/{pet_id}/live")
async def live(websocket: WebSocket, pet_id: str, initData: str = ""):
    """
    Client messages:  {"action": "feed"} | {"task_id": "...", "correct": true}
                      | {"abandon": true}
    Server messages:  a PetSnapshot after load, every tick and every change,
                      or {"error": reason}.
    """
    try:
        init = validate.get_init_data(initData, websocket.app.state.settings.bot_token)
    except HTTPException as exc:
        await websocket.close(code=1008, reason=str(exc.detail))
        return
    uid = str(init.user.id)
    await websocket.accept()

    async def push(snapshot: PetSnapshot):
        await websocket.send_json(snapshot.model_dump(mode="json"))

    session = open_session(websocket.app, uid, pet_id, publish=push)
    try:
        async with session:
            if session.state is SessionState.READY:
                session.start()
            while True:
                message = await websocket.receive_json()
                try:
                    if message.get("abandon"):
                        await session.abandon()
                        await websocket.send_json({"removed": True})
                        break
                    if "action" in message:
                        await session.perform(ActionKind(message["action"]))
                    elif "task_id" in message:
                        await session.answer(message["task_id"], bool(message.get("correct")))
                    else:
                        await websocket.send_json({"error": "unknown message"})
                except ValidationError as exc:
                    await websocket.send_json({"error": exc.reason})
                except (PixelPetsError, RuntimeError, ValueError) as exc:
                    await websocket.send_json({"error": str(exc) or type(exc).__name__})
    except WebSocketDisconnect:
        logger.debug("live session for pet %s closed by client", pet_id)
        return
    except NotFound:
        await websocket.close(code=4404, reason="pet not found")
        return
    await websocket.close()


# ──────────────────────────────────────────────────────────
# 7.  Local dev entry point
# ──────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pixelpets.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,  # auto-reload on code change
        log_level="info",
    )
