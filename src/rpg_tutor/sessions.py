"""Game session state machine and answer scoring.

A session moves waiting -> active -> completed, and may be cancelled from
waiting or active. Completed and cancelled sessions accept nothing.

Functions here mutate the GameSession they are given and perform no I/O;
persisting it (with the version check) is the repository's job.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from rpg_tutor.errors import (
    InvalidArgument,
    InvalidSessionState,
    InvalidState,
    NotFound,
    PermissionDenied,
    SessionFull,
)
from rpg_tutor.game_modes import (
    QUESTIONS_PER_ROUND,
    GameMode,
    GameModeReward,
    GameModeType,
    PowerUpType,
    allows_power_ups,
    default_question_count,
    default_time_per_question,
    get_game_mode,
    get_power_up,
    rewards_for_position,
    total_rounds,
)
from rpg_tutor.log import get_logger

logger = get_logger(__name__)


class SessionStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    ACTIVE = "active"
    ELIMINATED = "eliminated"
    FINISHED = "finished"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED})

# Effects a power-up leaves on a participant until their next answer
PENDING_EFFECTS = {PowerUpType.DOUBLE_POINTS.value, PowerUpType.SHIELD.value}


@dataclass
class GameParticipant:
    user_id: str
    username: str
    level: int
    joined_at: datetime
    score: int = 0
    position: int = 0
    status: ParticipantStatus = ParticipantStatus.ACTIVE
    lives: int | None = None
    correct_streak: int = 0
    answers: int = 0
    correct_answers: int = 0
    power_ups_used: list[str] = field(default_factory=list)
    power_up_last_used: dict[str, datetime] = field(default_factory=dict)
    active_effects: list[str] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        return self.correct_answers / self.answers if self.answers else 0.0


@dataclass
class GameSessionSettings:
    question_count: int
    time_per_question: int
    difficulty: int
    power_ups_enabled: bool
    subject_id: str | None = None

    @classmethod
    def for_mode(cls, mode: GameMode, **overrides: Any) -> GameSessionSettings:
        settings = cls(
            question_count=default_question_count(mode),
            time_per_question=default_time_per_question(mode),
            difficulty=mode.difficulty,
            power_ups_enabled=allows_power_ups(mode),
            subject_id=mode.subject_id,
        )
        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(settings, key):
                raise InvalidArgument(f"unknown session setting {key!r}", {"setting": key})
            setattr(settings, key, value)
        if settings.question_count < 1:
            raise InvalidArgument("question_count must be >= 1", {"question_count": settings.question_count})
        return settings


@dataclass
class GameSession:
    id: str
    mode: GameMode
    host_id: str
    settings: GameSessionSettings
    created_at: datetime
    status: SessionStatus = SessionStatus.WAITING
    participants: list[GameParticipant] = field(default_factory=list)
    current_round: int = 0
    total_rounds: int = 1
    started_at: datetime | None = None
    ended_at: datetime | None = None
    version: int = 0

    @property
    def is_solo(self) -> bool:
        return self.mode.is_solo

    def participant(self, user_id: str) -> GameParticipant:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        raise NotFound(f"user {user_id!r} is not in session {self.id}", {"user_id": user_id, "session_id": self.id})

    def active_participants(self) -> list[GameParticipant]:
        return [p for p in self.participants if p.status is ParticipantStatus.ACTIVE]


@dataclass(frozen=True)
class ScoreResult:
    points: int
    new_total: int


@dataclass(frozen=True)
class AnswerOutcome:
    is_correct: bool
    points: int
    new_total: int
    position: int
    lives: int | None
    eliminated: bool
    round_completed: bool
    session_completed: bool


@dataclass(frozen=True)
class GameLeaderboardEntry:
    position: int
    user_id: str
    username: str
    score: int
    correct_answers: int
    accuracy: float
    status: ParticipantStatus


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_answer(
    mode: GameMode,
    is_correct: bool,
    time_spent: float,
    participant: GameParticipant,
    consecutive_correct: int = 0,
) -> ScoreResult:
    """Points for one answer under ``mode``'s scoring rules.

    ``points`` is the raw rule result (it is negative for a wrong answer in
    timed mode); ``new_total`` is the participant's score after applying it,
    never below 0. The participant is not modified.
    """
    if time_spent < 0:
        raise InvalidArgument(f"time_spent must be >= 0, got {time_spent}", {"time_spent": time_spent})
    if consecutive_correct < 0:
        raise InvalidArgument("consecutive_correct must be >= 0", {"consecutive_correct": consecutive_correct})

    if not is_correct:
        points = -mode.wrong_answer_penalty if mode.type is GameModeType.TIMED else 0
        return ScoreResult(points=points, new_total=max(0, participant.score + points))

    raw: float = mode.base_points * mode.difficulty
    if mode.type in (GameModeType.TIMED, GameModeType.COMPETITIVE):
        max_time = mode.max_answer_seconds
        raw += mode.speed_bonus_points * max(0.0, (max_time - time_spent) / max_time)
    if consecutive_correct >= mode.streak_threshold:
        raw *= 1 + mode.streak_bonus

    points = _round_half_up(raw)
    return ScoreResult(points=points, new_total=max(0, participant.score + points))


def _check_level(mode: GameMode, user_id: str, level: int) -> None:
    if level < mode.min_level:
        raise InvalidArgument(
            f"{mode.name} requires level {mode.min_level} (user {user_id} is level {level})",
            {"mode_id": mode.id, "min_level": mode.min_level, "level": level},
        )


def _new_participant(mode: GameMode, user_id: str, username: str, level: int, now: datetime) -> GameParticipant:
    lives = mode.lives if mode.type is GameModeType.SURVIVAL else None
    return GameParticipant(user_id=user_id, username=username, level=level, joined_at=now, lives=lives)


def _activate(session: GameSession, now: datetime) -> None:
    session.status = SessionStatus.ACTIVE
    session.started_at = now
    session.current_round = 1
    rank_participants(session)
    logger.debug("session %s started with %d participant(s)", session.id, len(session.participants))


def create_game_session(
    mode: GameMode,
    host_id: str,
    host_name: str,
    host_level: int,
    now: datetime,
    settings: GameSessionSettings | None = None,
    session_id: str | None = None,
) -> GameSession:
    """Open a session with the host as its first participant.

    Solo modes start immediately; others wait for players to join.
    """
    _check_level(mode, host_id, host_level)
    settings = settings or GameSessionSettings.for_mode(mode)
    session = GameSession(
        id=session_id or uuid.uuid4().hex,
        mode=mode,
        host_id=host_id,
        settings=settings,
        created_at=now,
        total_rounds=total_rounds(mode, settings.question_count),
    )
    session.participants.append(_new_participant(mode, host_id, host_name, host_level, now))
    logger.debug("session %s created for mode %s by %s", session.id, mode.id, host_id)
    if mode.is_solo:
        _activate(session, now)
    return session


def join_game_session(session: GameSession, user_id: str, username: str, level: int, now: datetime) -> GameParticipant:
    if session.status is not SessionStatus.WAITING:
        raise InvalidSessionState(
            f"session {session.id} is {session.status.value}, not accepting players",
            {"session_id": session.id, "status": session.status.value},
        )
    if any(p.user_id == user_id for p in session.participants):
        raise InvalidArgument(f"user {user_id!r} already joined session {session.id}", {"user_id": user_id})
    if len(session.participants) >= session.mode.max_participants:
        raise SessionFull(
            f"session {session.id} is full ({session.mode.max_participants} players)",
            {"session_id": session.id, "max_participants": session.mode.max_participants},
        )
    _check_level(session.mode, user_id, level)
    participant = _new_participant(session.mode, user_id, username, level, now)
    participant.position = len(session.participants) + 1
    session.participants.append(participant)
    logger.debug("user %s joined session %s", user_id, session.id)
    return participant


def start_game_session(session: GameSession, user_id: str, now: datetime) -> None:
    if user_id != session.host_id:
        raise PermissionDenied("only the host can start the game", {"session_id": session.id, "user_id": user_id})
    if session.status is not SessionStatus.WAITING:
        raise InvalidSessionState(
            f"session {session.id} is {session.status.value}, cannot start",
            {"session_id": session.id, "status": session.status.value},
        )
    needed = session.mode.min_participants
    if len(session.participants) < needed:
        raise InvalidSessionState(
            f"need at least {needed} participants to start, have {len(session.participants)}",
            {"session_id": session.id, "participants": len(session.participants), "required": needed},
        )
    _activate(session, now)


def _require_active(session: GameSession) -> None:
    if session.status is not SessionStatus.ACTIVE:
        raise InvalidSessionState(
            f"session {session.id} is {session.status.value}, not active",
            {"session_id": session.id, "status": session.status.value},
        )


def rank_participants(session: GameSession) -> None:
    """Assign positions by score, highest first. Equal scores share a position."""
    ordered = sorted(session.participants, key=lambda p: -p.score)
    previous_score = None
    position = 0
    for index, participant in enumerate(ordered, start=1):
        if participant.score != previous_score:
            position = index
            previous_score = participant.score
        participant.position = position


def _round_quota(session: GameSession) -> int:
    return session.current_round * QUESTIONS_PER_ROUND


def _round_finished(session: GameSession) -> bool:
    quota = _round_quota(session)
    remaining = session.active_participants()
    return bool(remaining) and all(p.answers >= quota for p in remaining)


def _should_end(session: GameSession, round_done: bool) -> bool:
    mode_type = session.mode.type
    if mode_type is GameModeType.TIMED:
        return False
    if mode_type is GameModeType.SURVIVAL:
        floor = 0 if session.is_solo else 1
        if len(session.active_participants()) <= floor:
            return True
    return round_done and session.current_round >= session.total_rounds


def _complete(session: GameSession, now: datetime) -> None:
    session.status = SessionStatus.COMPLETED
    session.ended_at = now
    for participant in session.active_participants():
        participant.status = ParticipantStatus.FINISHED
    rank_participants(session)
    logger.debug("session %s completed", session.id)


def submit_answer(
    session: GameSession,
    user_id: str,
    is_correct: bool,
    time_spent: float,
    now: datetime,
) -> AnswerOutcome:
    """Score one answer and advance the session.

    Updates the participant's score, streak and lives, re-ranks everyone and
    checks the mode's end condition. Outside timed mode, a participant who
    has answered the whole round waits for the others before answering again.
    """
    _require_active(session)
    participant = session.participant(user_id)
    if participant.status is not ParticipantStatus.ACTIVE:
        raise InvalidSessionState(
            f"user {user_id!r} is {participant.status.value} in session {session.id}",
            {"user_id": user_id, "status": participant.status.value},
        )
    mode = session.mode
    if mode.type is not GameModeType.TIMED and participant.answers >= _round_quota(session):
        raise InvalidSessionState(
            f"user {user_id!r} already answered round {session.current_round}",
            {"user_id": user_id, "round": session.current_round},
        )

    streak = participant.correct_streak + 1 if is_correct else 0
    result = score_answer(mode, is_correct, time_spent, participant, consecutive_correct=streak)
    points = result.points

    effects = participant.active_effects
    if is_correct and points > 0 and PowerUpType.DOUBLE_POINTS.value in effects:
        effects.remove(PowerUpType.DOUBLE_POINTS.value)
        points *= 2
    shielded = False
    if not is_correct and PowerUpType.SHIELD.value in effects and (points < 0 or participant.lives is not None):
        effects.remove(PowerUpType.SHIELD.value)
        points = 0
        shielded = True

    participant.score = max(0, participant.score + points)
    participant.answers += 1
    participant.correct_streak = streak
    if is_correct:
        participant.correct_answers += 1

    eliminated = False
    if not is_correct and participant.lives is not None and not shielded:
        participant.lives -= 1
        if participant.lives <= 0:
            participant.lives = 0
            participant.status = ParticipantStatus.ELIMINATED
            eliminated = True
            logger.debug("user %s eliminated from session %s", user_id, session.id)

    rank_participants(session)

    round_done = mode.type is not GameModeType.TIMED and _round_finished(session)
    if _should_end(session, round_done):
        _complete(session, now)
    elif round_done:
        session.current_round += 1
        logger.debug("session %s advanced to round %d", session.id, session.current_round)

    return AnswerOutcome(
        is_correct=is_correct,
        points=points,
        new_total=participant.score,
        position=participant.position,
        lives=participant.lives,
        eliminated=eliminated,
        round_completed=round_done,
        session_completed=session.status is SessionStatus.COMPLETED,
    )


def signal_time_expired(session: GameSession, now: datetime) -> None:
    """The caller's timer ran out: end an active session."""
    _require_active(session)
    _complete(session, now)


def cancel_game_session(session: GameSession, user_id: str, now: datetime, admin: bool = False) -> None:
    if not admin and user_id != session.host_id:
        raise PermissionDenied("only the host can cancel the game", {"session_id": session.id, "user_id": user_id})
    if session.status in TERMINAL_STATUSES:
        raise InvalidSessionState(
            f"session {session.id} is already {session.status.value}",
            {"session_id": session.id, "status": session.status.value},
        )
    session.status = SessionStatus.CANCELLED
    session.ended_at = now
    logger.debug("session %s cancelled by %s", session.id, user_id)


def use_power_up(session: GameSession, user_id: str, power_up_id: str, now: datetime) -> GameParticipant:
    """Apply a power-up for a participant.

    Double points and shield wait for the participant's next answer. Extra
    life only works where there are lives, and point steal takes a share
    of the leading opponent's score. Time freeze and hint are client-side
    effects and are only recorded here.
    """
    _require_active(session)
    if not session.settings.power_ups_enabled:
        raise InvalidSessionState(f"power-ups are disabled in session {session.id}", {"session_id": session.id})
    power_up = get_power_up(power_up_id)
    participant = session.participant(user_id)
    if participant.status is not ParticipantStatus.ACTIVE:
        raise InvalidSessionState(f"user {user_id!r} is {participant.status.value}", {"user_id": user_id})

    last_used = participant.power_up_last_used.get(power_up_id)
    if last_used is not None and (now - last_used).total_seconds() < power_up.cooldown_seconds:
        raise InvalidState(
            f"{power_up.name} is on cooldown",
            {"power_up_id": power_up_id, "cooldown_seconds": power_up.cooldown_seconds},
        )

    if power_up.type is PowerUpType.EXTRA_LIFE:
        if participant.lives is None:
            raise InvalidArgument(f"{power_up.name} needs a mode with lives", {"power_up_id": power_up_id})
        participant.lives += 1
    elif power_up.type is PowerUpType.STEAL_POINTS:
        opponents = [p for p in session.participants if p.user_id != user_id and p.score > 0]
        if opponents:
            leader = max(opponents, key=lambda p: p.score)
            stolen = int(leader.score * power_up.value)
            leader.score -= stolen
            participant.score += stolen
            rank_participants(session)
    elif power_up.type.value in PENDING_EFFECTS and power_up.type.value not in participant.active_effects:
        participant.active_effects.append(power_up.type.value)

    participant.power_ups_used.append(power_up_id)
    participant.power_up_last_used[power_up_id] = now
    logger.debug("user %s used %s in session %s", user_id, power_up_id, session.id)
    return participant


def build_leaderboard(session: GameSession) -> list[GameLeaderboardEntry]:
    return [
        GameLeaderboardEntry(
            position=p.position,
            user_id=p.user_id,
            username=p.username,
            score=p.score,
            correct_answers=p.correct_answers,
            accuracy=p.accuracy,
            status=p.status,
        )
        for p in sorted(session.participants, key=lambda p: (p.position, p.joined_at))
    ]


def distribute_rewards(session: GameSession) -> dict[str, list[GameModeReward]]:
    """Rewards earned by each participant of a completed session."""
    if session.status is not SessionStatus.COMPLETED:
        raise InvalidSessionState(
            f"rewards are only given for completed sessions (session {session.id} is {session.status.value})",
            {"session_id": session.id, "status": session.status.value},
        )
    return {p.user_id: rewards_for_position(session.mode, p.position) for p in session.participants}


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def session_to_dict(session: GameSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "mode_id": session.mode.id,
        "host_id": session.host_id,
        "status": session.status.value,
        "settings": {
            "question_count": session.settings.question_count,
            "time_per_question": session.settings.time_per_question,
            "difficulty": session.settings.difficulty,
            "power_ups_enabled": session.settings.power_ups_enabled,
            "subject_id": session.settings.subject_id,
        },
        "current_round": session.current_round,
        "total_rounds": session.total_rounds,
        "created_at": _dt(session.created_at),
        "started_at": _dt(session.started_at),
        "ended_at": _dt(session.ended_at),
        "version": session.version,
        "participants": [
            {
                "user_id": p.user_id,
                "username": p.username,
                "level": p.level,
                "joined_at": _dt(p.joined_at),
                "score": p.score,
                "position": p.position,
                "status": p.status.value,
                "lives": p.lives,
                "correct_streak": p.correct_streak,
                "answers": p.answers,
                "correct_answers": p.correct_answers,
                "power_ups_used": list(p.power_ups_used),
                "power_up_last_used": {k: _dt(v) for k, v in p.power_up_last_used.items()},
                "active_effects": list(p.active_effects),
            }
            for p in session.participants
        ],
    }


def session_from_dict(data: Mapping[str, Any], modes: Mapping[str, GameMode] | None = None) -> GameSession:
    mode_id = data["mode_id"]
    if modes is not None and mode_id in modes:
        mode = modes[mode_id]
    else:
        mode = get_game_mode(mode_id)
    participants = [
        GameParticipant(
            user_id=p["user_id"],
            username=p["username"],
            level=p["level"],
            joined_at=_parse_dt(p["joined_at"]),
            score=p.get("score", 0),
            position=p.get("position", 0),
            status=ParticipantStatus(p.get("status", "active")),
            lives=p.get("lives"),
            correct_streak=p.get("correct_streak", 0),
            answers=p.get("answers", 0),
            correct_answers=p.get("correct_answers", 0),
            power_ups_used=list(p.get("power_ups_used", [])),
            power_up_last_used={k: _parse_dt(v) for k, v in p.get("power_up_last_used", {}).items()},
            active_effects=list(p.get("active_effects", [])),
        )
        for p in data.get("participants", [])
    ]
    return GameSession(
        id=data["id"],
        mode=mode,
        host_id=data["host_id"],
        settings=GameSessionSettings(**data["settings"]),
        created_at=_parse_dt(data["created_at"]),
        status=SessionStatus(data["status"]),
        participants=participants,
        current_round=data.get("current_round", 0),
        total_rounds=data.get("total_rounds", 1),
        started_at=_parse_dt(data.get("started_at")),
        ended_at=_parse_dt(data.get("ended_at")),
        version=data.get("version", 0),
    )
