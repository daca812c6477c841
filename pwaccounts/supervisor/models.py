from datetime import datetime
from enum import Enum
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field, field_validator


class ServerTag(str, Enum):
    MAIN = "Main"
    X = "X"


DEFAULT_SERVER = ServerTag.MAIN


def normalize_server(value) -> ServerTag:
    """Map any raw server value onto the canonical enumeration."""
    if isinstance(value, ServerTag):
        return value
    raw = str(value or "").strip().lower()
    for tag in ServerTag:
        if tag.value.lower() == raw:
            return tag
    return DEFAULT_SERVER


def new_account_id() -> str:
    return uuid.uuid4().hex


class PartialAccount(BaseModel):
    login: Optional[str] = None
    password: Optional[str] = None
    server: ServerTag = DEFAULT_SERVER
    character_name: Optional[str] = None
    description: Optional[str] = None
    owner: Optional[str] = None

    @field_validator("server", mode="before")
    @classmethod
    def _coerce_server(cls, value):
        return normalize_server(value)

    def is_complete(self) -> bool:
        return bool((self.login or "").strip()) and bool((self.password or "").strip())


class ScanCandidate(PartialAccount):
    source_path: str


class Account(BaseModel):
    id: str = Field(default_factory=new_account_id)
    login: str
    password: str
    server: ServerTag = DEFAULT_SERVER
    character_name: Optional[str] = None
    description: Optional[str] = None
    owner: Optional[str] = None
    source_script: Optional[str] = None

    @field_validator("server", mode="before")
    @classmethod
    def _coerce_server(cls, value):
        return normalize_server(value)

    @field_validator("login", "password")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        value = value.strip()
        # Launch scripts pass credentials as bare user:/pwd: arguments.
        if any(char.isspace() for char in value):
            raise ValueError("must not contain whitespace")
        return value

    @classmethod
    def from_candidate(cls, candidate: PartialAccount) -> "Account":
        """Build a storable account from a confirmed scan/import candidate."""
        return cls(
            login=candidate.login or "",
            password=candidate.password or "",
            server=candidate.server,
            character_name=candidate.character_name,
            description=candidate.description,
            owner=candidate.owner,
            source_script=getattr(candidate, "source_path", None),
        )


class ProcessState(str, Enum):
    LAUNCHING = "launching"
    RUNNING = "running"


class ProcessRecord(BaseModel):
    account_id: str
    pid: int
    login: str
    started_at: datetime
    state: ProcessState = ProcessState.RUNNING
    spawn_pid: Optional[int] = None


class LaunchRequest(BaseModel):
    account_ids: List[str]
    root_dir: Optional[str] = None
    delay_seconds: Optional[float] = None


class LaunchOutcome(BaseModel):
    account_id: str
    success: bool
    pid: Optional[int] = None
    error: Optional[dict] = None


class CloseRequest(BaseModel):
    account_ids: List[str]


class ScanRequest(BaseModel):
    root_dir: str


class LocateRequest(BaseModel):
    root_dir: Optional[str] = None


class AccountCreate(BaseModel):
    login: str
    password: str
    server: ServerTag = DEFAULT_SERVER
    character_name: Optional[str] = None
    description: Optional[str] = None
    owner: Optional[str] = None

    @field_validator("server", mode="before")
    @classmethod
    def _coerce_server(cls, value):
        return normalize_server(value)


class ImportRequest(BaseModel):
    candidates: List[PartialAccount] = Field(default_factory=list)
    content: Optional[str] = None
    format: str = "json"


class ImportResult(BaseModel):
    saved: List[Account]
    skipped: List[str]
    errors: List[dict]


class ScriptRequest(BaseModel):
    root_dir: Optional[str] = None
