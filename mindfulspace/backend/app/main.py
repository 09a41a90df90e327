from __future__ import annotations

import json
import logging
import os
import uuid
from collections import Counter
from dataclasses import asdict
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, create_engine, func, or_, text,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from .achievements import (
    AchievementState, achievement_payload, apply_progress, build_achievement_summary, get_achievement,
)
from .ai_provider import DEFAULT_CHAT_MODEL, BaseProvider, OpenRouterProvider, ProviderError
from .chat_pipeline import respond_to_message
from .crisis_detector import ScreeningResult, screen
from .model_catalog import DEFAULT_CACHE_SECONDS, ExpiringCache, ModelCatalog, remote_models_loader
from .mood_statistics import MoodSample, period_start, summarize, top_counts
from .streak_engine import ActivityRecord, build_streak_summary

APP_VERSION = "1.0.0"
REPO_ROOT = Path(__file__).resolve().parents[3]
load_dotenv(REPO_ROOT / ".env")

logging.basicConfig(level=os.getenv("MINDFULSPACE_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


def resolve_db_path() -> str:
    db_env = (os.getenv("MINDFULSPACE_DB_PATH") or os.getenv("DB_PATH") or "").strip()
    db_path = Path(db_env) if db_env else (REPO_ROOT / "mindfulspace.db")
    if not db_path.is_absolute():
        db_path = REPO_ROOT / db_path
    return str(db_path)


DB_PATH = resolve_db_path()
DATABASE_URL = f"sqlite:///{DB_PATH}"
SECRET_KEY = os.getenv("MINDFULSPACE_SECRET_KEY", "CHANGE_ME")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("MINDFULSPACE_TOKEN_MINUTES", str(60 * 24)))
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "").strip()
CHAT_MODEL = os.getenv("MINDFULSPACE_CHAT_MODEL", DEFAULT_CHAT_MODEL)
MODELS_CACHE_SECONDS = int(os.getenv("MINDFULSPACE_MODELS_CACHE_SECONDS", str(DEFAULT_CACHE_SECONDS)))
STREAK_LOOKBACK_DAYS = 366
CHAT_HISTORY_LIMIT = 20
JOURNAL_RECENT_DAYS = 30
MAX_JOURNAL_TAGS = 10
SESSION_PREVIEW_CHARS = 100

JOURNAL_MOODS = {
    "very_happy", "happy", "neutral", "sad", "very_sad",
    "excited", "calm", "anxious", "angry", "grateful",
}

ALLOWED_EMOTIONS = {
    "happy", "sad", "angry", "anxious", "excited", "calm",
    "frustrated", "grateful", "lonely", "confident", "overwhelmed", "content",
}

engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

chat_provider = OpenRouterProvider(OPENROUTER_API_KEY, model=CHAT_MODEL)
model_catalog = ModelCatalog(
    loader=remote_models_loader(chat_provider) if OPENROUTER_API_KEY else None,
    cache=ExpiringCache(MODELS_CACHE_SECONDS),
)


def utc_now() -> datetime:
    return datetime.utcnow()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    mood_entries = relationship("MoodEntry", back_populates="user")
    journal_entries = relationship("JournalEntry", back_populates="user")


class MoodEntry(Base):
    __tablename__ = "mood_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    mood_score = Column(Integer, nullable=False)
    emotions_json = Column(String, nullable=False, default="[]")
    activities_json = Column(String, nullable=False, default="[]")
    notes = Column(String, nullable=True)
    sleep_hours = Column(Float, nullable=True)
    energy_level = Column(Integer, nullable=True)
    stress_level = Column(Integer, nullable=True)
    social_interactions = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="mood_entries")


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=True)
    content = Column(String, nullable=False)
    mood = Column(String, nullable=True)
    tags_json = Column(String, nullable=False, default="[]")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="journal_entries")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)
    content = Column(String, nullable=False)
    metadata_json = Column(String, nullable=False, default="{}")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class CrisisEvent(Base):
    __tablename__ = "crisis_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    session_id = Column(String, nullable=True)
    source = Column(String, nullable=False, default="chat")
    message_content = Column(String, nullable=False)
    keywords_json = Column(String, nullable=False, default="[]")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    achievement_id = Column(String, nullable=False)
    progress = Column(Integer, nullable=False, default=0)
    unlocked = Column(Boolean, nullable=False, default=False)
    unlocked_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str


class RegisterRequest(BaseModel):
    email: str
    password: str


def validate_emotions(value: List[str]) -> List[str]:
    unknown = [emotion for emotion in value if emotion not in ALLOWED_EMOTIONS]
    if unknown:
        raise ValueError(f"Unknown emotions: {', '.join(unknown)}")
    return value


def validate_activities(value: List[str]) -> List[str]:
    if any(len(activity) > 100 for activity in value):
        raise ValueError("Activities must be at most 100 characters")
    return value


class MoodCreate(BaseModel):
    mood_score: int = Field(ge=1, le=10)
    emotions: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)
    activities: List[str] = Field(default_factory=list)
    sleep_hours: Optional[float] = Field(default=None, ge=0, le=24)
    energy_level: Optional[int] = Field(default=None, ge=1, le=10)
    stress_level: Optional[int] = Field(default=None, ge=1, le=10)
    social_interactions: Optional[int] = Field(default=None, ge=0, le=20)

    @field_validator("emotions")
    @classmethod
    def check_emotions(cls, value: List[str]) -> List[str]:
        return validate_emotions(value)

    @field_validator("activities")
    @classmethod
    def check_activities(cls, value: List[str]) -> List[str]:
        return validate_activities(value)


class MoodUpdate(BaseModel):
    mood_score: Optional[int] = Field(default=None, ge=1, le=10)
    emotions: Optional[List[str]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    activities: Optional[List[str]] = None
    sleep_hours: Optional[float] = Field(default=None, ge=0, le=24)
    energy_level: Optional[int] = Field(default=None, ge=1, le=10)
    stress_level: Optional[int] = Field(default=None, ge=1, le=10)
    social_interactions: Optional[int] = Field(default=None, ge=0, le=20)

    @field_validator("emotions")
    @classmethod
    def check_emotions(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return validate_emotions(value) if value is not None else value

    @field_validator("activities")
    @classmethod
    def check_activities(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return validate_activities(value) if value is not None else value


class MoodResponse(BaseModel):
    id: int
    mood_score: int
    emotions: List[str]
    notes: Optional[str]
    activities: List[str]
    sleep_hours: Optional[float]
    energy_level: Optional[int]
    stress_level: Optional[int]
    social_interactions: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime]


def validate_journal_mood(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in JOURNAL_MOODS:
        raise ValueError(f"Unknown journal mood: {value}")
    return value


def validate_tags(value: List[str]) -> List[str]:
    if any(len(tag) > 50 for tag in value):
        raise ValueError("Tags must be at most 50 characters")
    return value


def clean_tags(tags: List[str]) -> List[str]:
    return [tag.strip() for tag in tags if tag.strip()][:MAX_JOURNAL_TAGS]


class JournalCreate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=10000)
    mood: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("mood")
    @classmethod
    def check_mood(cls, value: Optional[str]) -> Optional[str]:
        return validate_journal_mood(value)

    @field_validator("tags")
    @classmethod
    def check_tags(cls, value: List[str]) -> List[str]:
        return validate_tags(value)


class JournalUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1, max_length=10000)
    mood: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("mood")
    @classmethod
    def check_mood(cls, value: Optional[str]) -> Optional[str]:
        return validate_journal_mood(value)

    @field_validator("tags")
    @classmethod
    def check_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return validate_tags(value) if value is not None else value


class JournalResponse(BaseModel):
    id: int
    title: Optional[str]
    content: str
    mood: Optional[str]
    tags: List[str]
    created_at: datetime
    updated_at: Optional[datetime] = None
    crisis_detected: bool = False


class AchievementProgressRequest(BaseModel):
    achievement_id: str = Field(min_length=1, max_length=64)
    increment: int = Field(default=1, ge=1, le=100)


class ChatMessageRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    session_id: Optional[uuid.UUID] = None


class StreakUpdateRequest(BaseModel):
    activity_type: str = Field(pattern="^(mood|journal|chat)$")


app = FastAPI(title="MindfulSpace API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


def ensure_journal_columns(bind=None) -> None:
    with (bind or engine).connect() as connection:
        journal_columns = {row[1] for row in connection.execute(text("PRAGMA table_info(journal_entries)"))}
        if "updated_at" not in journal_columns:
            connection.execute(text("ALTER TABLE journal_entries ADD COLUMN updated_at DATETIME"))
            logger.info("Added journal_entries.updated_at")
        connection.commit()


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)
    ensure_journal_columns()
    logger.info("Database ready at %s", DB_PATH)


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_chat_provider() -> BaseProvider:
    return chat_provider


def get_model_catalog() -> ModelCatalog:
    return model_catalog


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = utc_now() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise credentials_exception
    return user


def is_dev_mode() -> bool:
    value = os.getenv("MINDFULSPACE_DEV_MODE", "").strip().lower()
    alt = os.getenv("DEV_MODE", "").strip().lower()
    return value in {"1", "true", "yes", "on"} or alt in {"1", "true", "yes", "on"}


def day_bounds(day: date) -> tuple:
    start = datetime.combine(day, datetime.min.time())
    return start, start + timedelta(days=1)


def record_crisis_event(
    user_id: int,
    source: str,
    message_content: str,
    matched_keywords: List[str],
    session_id: Optional[str],
    db: Session,
) -> CrisisEvent:
    event = CrisisEvent(
        user_id=user_id,
        session_id=session_id,
        source=source,
        message_content=message_content,
        keywords_json=json.dumps(matched_keywords),
        created_at=utc_now(),
    )
    db.add(event)
    db.commit()
    logger.warning("Crisis event recorded for user %s (source=%s, session=%s)", user_id, source, session_id)
    return event


def to_mood_response(entry: MoodEntry) -> MoodResponse:
    return MoodResponse(
        id=entry.id,
        mood_score=entry.mood_score,
        emotions=json.loads(entry.emotions_json or "[]"),
        notes=entry.notes,
        activities=json.loads(entry.activities_json or "[]"),
        sleep_hours=entry.sleep_hours,
        energy_level=entry.energy_level,
        stress_level=entry.stress_level,
        social_interactions=entry.social_interactions,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def to_mood_sample(entry: MoodEntry) -> MoodSample:
    return MoodSample(
        mood_score=entry.mood_score,
        recorded_at=entry.created_at,
        emotions=json.loads(entry.emotions_json or "[]"),
        activities=json.loads(entry.activities_json or "[]"),
        sleep_hours=entry.sleep_hours,
        energy_level=entry.energy_level,
        stress_level=entry.stress_level,
    )


def to_journal_response(entry: JournalEntry, crisis_detected: bool = False) -> JournalResponse:
    return JournalResponse(
        id=entry.id,
        title=entry.title,
        content=entry.content,
        mood=entry.mood,
        tags=json.loads(entry.tags_json or "[]"),
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        crisis_detected=crisis_detected,
    )


def fetch_activity_records(user_id: int, since: datetime, db: Session) -> List[ActivityRecord]:
    sources = [
        ("mood", db.query(MoodEntry.created_at).filter(
            MoodEntry.user_id == user_id, MoodEntry.created_at >= since)),
        ("journal", db.query(JournalEntry.created_at).filter(
            JournalEntry.user_id == user_id, JournalEntry.created_at >= since)),
        ("chat", db.query(ChatMessage.created_at).filter(
            ChatMessage.user_id == user_id,
            ChatMessage.role == "user",
            ChatMessage.created_at >= since,
        )),
    ]
    records: List[ActivityRecord] = []
    for category, query in sources:
        for (created_at,) in query.all():
            records.append(ActivityRecord(user_id=user_id, category=category, occurred_at=created_at))
    return records


def fetch_chat_history(user_id: int, session_id: str, exclude_id: int, db: Session) -> List[dict]:
    rows = (
        db.query(ChatMessage)
        .filter(
            ChatMessage.user_id == user_id,
            ChatMessage.session_id == session_id,
            ChatMessage.id != exclude_id,
        )
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(CHAT_HISTORY_LIMIT - 1)
        .all()
    )
    return [{"role": row.role, "content": row.content} for row in reversed(rows)]


@app.get("/health")
def health() -> dict:
    db_status = "ok"
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception:
        db_status = "error"
    return {
        "status": "ok",
        "version": APP_VERSION,
        "db": db_status,
        "dev_mode": is_dev_mode(),
    }


@app.get("/safety/resources")
def safety_resources() -> dict:
    return {
        "us": [
            {"label": "988 Lifeline", "note": "Call or text 988 in the U.S. for immediate support."},
            {"label": "Crisis Text Line", "note": "Text HOME to 741741."},
            {"label": "Emergency", "note": "If you are in immediate danger, call 911 or local emergency services."},
        ],
        "international": [
            "International Association for Suicide Prevention: https://www.iasp.info/resources/Crisis_Centres/",
            "If you are outside the U.S., contact local emergency services or a local crisis line.",
        ],
        "safety_note": "This app is not medical advice. If you feel unsafe, seek immediate support.",
    }


@app.get("/safety/events")
def safety_events(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[dict]:
    if not is_dev_mode():
        raise HTTPException(status_code=403, detail="Developer mode disabled")
    since = utc_now() - timedelta(days=days)
    events = (
        db.query(CrisisEvent)
        .filter(CrisisEvent.user_id == user.id, CrisisEvent.created_at >= since)
        .order_by(CrisisEvent.created_at.desc())
        .limit(50)
        .all()
    )
    return [
        {
            "session_id": event.session_id,
            "source": event.source,
            "keywords_detected": json.loads(event.keywords_json or "[]"),
            "created_at": event.created_at.isoformat(),
        }
        for event in events
    ]


@app.post("/auth/register", response_model=TokenResponse)
def register_user(payload: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    if len(payload.password.encode("utf-8")) > 72:
        raise HTTPException(
            status_code=400,
            detail="Password too long (bcrypt limit is 72 bytes). Use a shorter password.",
        )
    user = User(email=payload.email, hashed_password=get_password_hash(payload.password))
    db.add(user)
    db.commit()
    db.refresh(user)
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return TokenResponse(access_token=token, token_type="bearer")


@app.post("/auth/login", response_model=TokenResponse)
def login_user(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
) -> TokenResponse:
    user = db.query(User).filter(User.email == form_data.username).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Invalid email or password")
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return TokenResponse(access_token=token, token_type="bearer")


@app.post("/mood", response_model=MoodResponse, status_code=201)
def create_mood_entry(
    payload: MoodCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> MoodResponse:
    now = utc_now()
    start, end = day_bounds(now.date())
    existing = (
        db.query(MoodEntry)
        .filter(MoodEntry.user_id == user.id, MoodEntry.created_at >= start, MoodEntry.created_at < end)
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=400,
            detail="Mood entry already exists for today. You can update your existing entry instead.",
        )
    entry = MoodEntry(
        user_id=user.id,
        mood_score=payload.mood_score,
        emotions_json=json.dumps(payload.emotions),
        notes=payload.notes.strip() if payload.notes else None,
        activities_json=json.dumps(payload.activities),
        sleep_hours=payload.sleep_hours,
        energy_level=payload.energy_level,
        stress_level=payload.stress_level,
        social_interactions=payload.social_interactions,
        created_at=now,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return to_mood_response(entry)


@app.get("/mood")
def list_mood_entries(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    min_score: Optional[int] = Query(None, ge=1, le=10),
    max_score: Optional[int] = Query(None, ge=1, le=10),
    emotions: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    query = db.query(MoodEntry).filter(MoodEntry.user_id == user.id)
    if start_date:
        query = query.filter(MoodEntry.created_at >= start_date)
    if end_date:
        query = query.filter(MoodEntry.created_at <= end_date)
    if min_score:
        query = query.filter(MoodEntry.mood_score >= min_score)
    if max_score:
        query = query.filter(MoodEntry.mood_score <= max_score)
    if emotions:
        wanted = [emotion.strip() for emotion in emotions.split(",") if emotion.strip()]
        if wanted:
            query = query.filter(or_(*[MoodEntry.emotions_json.like(f'%"{emotion}"%') for emotion in wanted]))
    total = query.count()
    entries = (
        query.order_by(MoodEntry.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = (total + limit - 1) // limit
    return {
        "entries": [to_mood_response(entry) for entry in entries],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


@app.get("/mood/analytics/overview")
def mood_analytics_overview(
    period: str = Query("30d", pattern="^(7d|30d|90d|1y)$"),
    group_by: str = Query("day", pattern="^(day|week|month)$"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    now = utc_now()
    entries = (
        db.query(MoodEntry)
        .filter(
            MoodEntry.user_id == user.id,
            MoodEntry.created_at >= period_start(period, now),
            MoodEntry.created_at <= now,
        )
        .order_by(MoodEntry.created_at.asc())
        .all()
    )
    snapshot = summarize([to_mood_sample(entry) for entry in entries], period, group_by)
    payload = asdict(snapshot)
    payload["generated_at"] = now.isoformat()
    return payload


def get_owned_mood_entry(entry_id: int, user: User, db: Session) -> MoodEntry:
    entry = db.query(MoodEntry).filter(MoodEntry.id == entry_id, MoodEntry.user_id == user.id).first()
    if entry is None:
        raise HTTPException(status_code=404, detail="Mood entry not found")
    return entry


@app.get("/mood/{entry_id}", response_model=MoodResponse)
def get_mood_entry(
    entry_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> MoodResponse:
    return to_mood_response(get_owned_mood_entry(entry_id, user, db))


@app.put("/mood/{entry_id}", response_model=MoodResponse)
def update_mood_entry(
    entry_id: int,
    payload: MoodUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> MoodResponse:
    entry = get_owned_mood_entry(entry_id, user, db)
    updates = payload.model_dump(exclude_unset=True)
    if "emotions" in updates:
        entry.emotions_json = json.dumps(updates.pop("emotions") or [])
    if "activities" in updates:
        entry.activities_json = json.dumps(updates.pop("activities") or [])
    for key, value in updates.items():
        setattr(entry, key, value)
    entry.updated_at = utc_now()
    db.commit()
    db.refresh(entry)
    return to_mood_response(entry)


@app.delete("/mood/{entry_id}")
def delete_mood_entry(
    entry_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    entry = get_owned_mood_entry(entry_id, user, db)
    db.delete(entry)
    db.commit()
    return {"message": "Mood entry deleted successfully"}


def screen_journal_content(user_id: int, content: str, db: Session) -> bool:
    screening = screen(content)
    if screening.is_crisis:
        record_crisis_event(
            user_id=user_id,
            source="journal",
            message_content=content,
            matched_keywords=screening.matched_keywords,
            session_id=None,
            db=db,
        )
    return screening.is_crisis


def get_owned_journal_entry(entry_id: int, user: User, db: Session) -> JournalEntry:
    entry = db.query(JournalEntry).filter(JournalEntry.id == entry_id, JournalEntry.user_id == user.id).first()
    if entry is None:
        raise HTTPException(status_code=404, detail="Journal entry not found")
    return entry


@app.post("/journal", response_model=JournalResponse, status_code=201)
def create_journal_entry(
    payload: JournalCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> JournalResponse:
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Journal content cannot be empty")
    entry = JournalEntry(
        user_id=user.id,
        title=payload.title.strip() if payload.title else None,
        content=content,
        mood=payload.mood,
        tags_json=json.dumps(clean_tags(payload.tags)),
        created_at=utc_now(),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    crisis_detected = screen_journal_content(user.id, content, db)
    return to_journal_response(entry, crisis_detected=crisis_detected)


@app.get("/journal", response_model=List[JournalResponse])
def list_journal_entries(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[JournalResponse]:
    since = utc_now() - timedelta(days=days)
    entries = (
        db.query(JournalEntry)
        .filter(JournalEntry.user_id == user.id, JournalEntry.created_at >= since)
        .order_by(JournalEntry.created_at.desc())
        .limit(200)
        .all()
    )
    return [to_journal_response(entry) for entry in entries]


@app.get("/journal/stats/overview")
def journal_stats_overview(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    now = utc_now()
    entries = db.query(JournalEntry.mood, JournalEntry.tags_json, JournalEntry.created_at).filter(
        JournalEntry.user_id == user.id
    ).all()
    recent_since = now - timedelta(days=JOURNAL_RECENT_DAYS)
    return {
        "total_entries": len(entries),
        "recent_entries": sum(1 for _, _, created_at in entries if created_at >= recent_since),
        "mood_distribution": dict(Counter(mood for mood, _, _ in entries if mood)),
        "top_tags": top_counts((json.loads(tags_json or "[]") for _, tags_json, _ in entries), "tag"),
        "generated_at": now.isoformat(),
    }


@app.get("/journal/{entry_id}", response_model=JournalResponse)
def get_journal_entry(
    entry_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> JournalResponse:
    return to_journal_response(get_owned_journal_entry(entry_id, user, db))


@app.put("/journal/{entry_id}", response_model=JournalResponse)
def update_journal_entry(
    entry_id: int,
    payload: JournalUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> JournalResponse:
    entry = get_owned_journal_entry(entry_id, user, db)
    updates = payload.model_dump(exclude_unset=True)
    content_changed = False
    if "content" in updates:
        content = (updates.pop("content") or "").strip()
        if not content:
            raise HTTPException(status_code=400, detail="Journal content cannot be empty")
        content_changed = content != entry.content
        entry.content = content
    if "title" in updates:
        title = updates.pop("title")
        entry.title = title.strip() if title else None
    if "tags" in updates:
        entry.tags_json = json.dumps(clean_tags(updates.pop("tags") or []))
    if "mood" in updates:
        entry.mood = updates.pop("mood")
    entry.updated_at = utc_now()
    db.commit()
    db.refresh(entry)
    crisis_detected = screen_journal_content(user.id, entry.content, db) if content_changed else False
    return to_journal_response(entry, crisis_detected=crisis_detected)


@app.delete("/journal/{entry_id}")
def delete_journal_entry(
    entry_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    entry = get_owned_journal_entry(entry_id, user, db)
    db.delete(entry)
    db.commit()
    return {"message": "Journal entry deleted successfully"}


def to_chat_payload(row: ChatMessage) -> dict:
    return {
        "id": row.id,
        "session_id": row.session_id,
        "role": row.role,
        "content": row.content,
        "metadata": json.loads(row.metadata_json or "{}"),
        "created_at": row.created_at.isoformat(),
    }


def session_preview(content: str) -> str:
    if len(content) > SESSION_PREVIEW_CHARS:
        return content[:SESSION_PREVIEW_CHARS] + "..."
    return content


@app.get("/chat")
def chat_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    rows = (
        db.query(ChatMessage)
        .filter(ChatMessage.user_id == user.id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "messages": [to_chat_payload(row) for row in reversed(rows)],
        "pagination": {"limit": limit, "offset": offset, "has_more": len(rows) == limit},
    }


@app.get("/chat/sessions")
def list_chat_sessions(
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    last_message_at = func.max(ChatMessage.created_at)
    rows = (
        db.query(
            ChatMessage.session_id,
            func.min(ChatMessage.created_at),
            last_message_at,
            func.count(ChatMessage.id),
        )
        .filter(ChatMessage.user_id == user.id)
        .group_by(ChatMessage.session_id)
        .order_by(last_message_at.desc())
        .limit(limit)
        .all()
    )
    previews = {}
    if rows:
        first_messages = (
            db.query(ChatMessage.session_id, ChatMessage.content)
            .filter(
                ChatMessage.user_id == user.id,
                ChatMessage.role == "user",
                ChatMessage.session_id.in_([row[0] for row in rows]),
            )
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
            .all()
        )
        for session_id, content in first_messages:
            previews.setdefault(session_id, session_preview(content))
    return {
        "sessions": [
            {
                "session_id": session_id,
                "created_at": created_at.isoformat(),
                "last_message_at": last_at.isoformat(),
                "message_count": count,
                "preview": previews.get(session_id, ""),
            }
            for session_id, created_at, last_at, count in rows
        ]
    }


def get_session_messages(session_id: str, user: User, db: Session) -> List[ChatMessage]:
    rows = (
        db.query(ChatMessage)
        .filter(ChatMessage.user_id == user.id, ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .all()
    )
    if not rows:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return rows


@app.get("/chat/sessions/{session_id}")
def get_chat_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    rows = get_session_messages(session_id, user, db)
    return {"session_id": session_id, "messages": [to_chat_payload(row) for row in rows]}


@app.delete("/chat/sessions/{session_id}")
def delete_chat_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    rows = get_session_messages(session_id, user, db)
    for row in rows:
        db.delete(row)
    db.commit()
    logger.info("Deleted chat session %s for user %s (%d messages)", session_id, user.id, len(rows))
    return {"message": "Session deleted successfully", "deleted_messages": len(rows)}


@app.post("/chat/message")
async def send_chat_message(
    payload: ChatMessageRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: BaseProvider = Depends(get_chat_provider),
) -> dict:
    message = payload.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    session_id = str(payload.session_id) if payload.session_id else str(uuid.uuid4())

    user_message = ChatMessage(
        user_id=user.id,
        session_id=session_id,
        role="user",
        content=message,
        created_at=utc_now(),
    )
    db.add(user_message)
    db.commit()
    db.refresh(user_message)
    history = fetch_chat_history(user.id, session_id, user_message.id, db)

    def record_crisis(screening: ScreeningResult) -> None:
        try:
            record_crisis_event(
                user_id=user.id,
                source="chat",
                message_content=message,
                matched_keywords=screening.matched_keywords,
                session_id=session_id,
                db=db,
            )
        except Exception:
            db.rollback()
            raise

    outcome = await respond_to_message(message, history, provider, record_crisis=record_crisis)

    assistant_message = ChatMessage(
        user_id=user.id,
        session_id=session_id,
        role="assistant",
        content=outcome.content,
        metadata_json=json.dumps(outcome.metadata()),
        created_at=utc_now(),
    )
    db.add(assistant_message)
    db.commit()
    db.refresh(assistant_message)

    response = {
        "message": {
            "id": assistant_message.id,
            "content": outcome.content,
            "role": "assistant",
            "session_id": session_id,
            "created_at": assistant_message.created_at.isoformat(),
            "crisis_detected": outcome.crisis_detected,
            "fallback": outcome.fallback,
        },
    }
    if outcome.token_usage is not None:
        response["usage"] = asdict(outcome.token_usage)
    return response


@app.get("/streaks/me")
def my_streaks(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    now = utc_now()
    records = fetch_activity_records(user.id, now - timedelta(days=STREAK_LOOKBACK_DAYS), db)
    return build_streak_summary(records, now)


@app.post("/streaks/update")
def update_streak(
    payload: StreakUpdateRequest,
    user: User = Depends(get_current_user),
) -> dict:
    # Streaks are computed on demand from stored activity.
    return {
        "success": True,
        "message": f"{payload.activity_type} activity recorded for streak tracking",
        "timestamp": utc_now().isoformat(),
    }


@app.get("/achievements/me")
def my_achievements(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    rows = db.query(UserAchievement).filter(UserAchievement.user_id == user.id).all()
    states = {
        row.achievement_id: AchievementState(
            progress=row.progress,
            unlocked=row.unlocked,
            unlocked_at=row.unlocked_at,
        )
        for row in rows
    }
    return build_achievement_summary(states)


@app.post("/achievements/progress")
def update_achievement_progress(
    payload: AchievementProgressRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    achievement = get_achievement(payload.achievement_id)
    if achievement is None:
        raise HTTPException(status_code=404, detail="Achievement not found")
    now = utc_now()
    row = (
        db.query(UserAchievement)
        .filter(UserAchievement.user_id == user.id, UserAchievement.achievement_id == achievement.achievement_id)
        .first()
    )
    state = None
    if row is not None:
        state = AchievementState(progress=row.progress, unlocked=row.unlocked, unlocked_at=row.unlocked_at)
    else:
        row = UserAchievement(user_id=user.id, achievement_id=achievement.achievement_id)
        db.add(row)
    update = apply_progress(achievement, state, payload.increment, now)
    row.progress = update.progress
    row.unlocked = update.unlocked
    row.unlocked_at = update.unlocked_at
    row.updated_at = now
    db.commit()
    if update.just_unlocked:
        logger.info("User %s unlocked achievement %s", user.id, achievement.achievement_id)
    return {
        "achievement_id": achievement.achievement_id,
        "progress": update.progress,
        "max_progress": achievement.max_progress,
        "unlocked": update.unlocked,
        "just_unlocked": update.just_unlocked,
        "achievement": achievement_payload(achievement),
    }


@app.get("/models")
async def list_models(
    category: str = Query("all", pattern="^(free|premium|all)$"),
    limit: int = Query(20, ge=1, le=50),
    catalog: ModelCatalog = Depends(get_model_catalog),
) -> dict:
    try:
        models = await catalog.list_models(category=category, limit=limit)
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail="Failed to fetch available models") from exc
    return {
        "models": models,
        "total": len(models),
        "limit": limit,
        "category": category,
        "mental_health_features": {
            "crisis_detection": True,
            "cbt_integration": True,
            "privacy_focused": True,
        },
    }


@app.get("/models/{model_id:path}")
async def get_model(model_id: str, catalog: ModelCatalog = Depends(get_model_catalog)) -> dict:
    try:
        model = await catalog.get_model(model_id)
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail="Failed to fetch model details") from exc
    if model is None:
        raise HTTPException(status_code=404, detail="Model not found")
    return {"model": model}
