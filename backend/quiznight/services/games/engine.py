import logging
import random
from typing import Callable, List, Optional

from quiznight.exceptions import DuplicateAnswerError
from .grading import PENDING_REVIEW, grade
from .notifier import SessionNotifier
from .questions import ChronologyContent, Question, QuestionType
from .state import GameState, Phase, Team
from .store import SessionStore
from .timer import CountdownTimer

TickCallback = Optional[Callable[[int], None]]


class GameEngine:
    """Host-driven state machine for every live competition.

    All work on a competition happens under that competition's lock in the
    session store, including countdown ticks, which re-enter through
    :meth:`_on_timer_tick` / :meth:`_on_timer_end` and are dropped when the
    question they were started for is no longer active. Snapshot writes and
    notifier events happen after the lock is released.

    In-memory state is authoritative for live play. The snapshot is
    best-effort, so a crash can lose the last few seconds of phase changes;
    scores survive because they are recomputed from the answer ledger.
    """

    def __init__(self, repository, timer: CountdownTimer, store: SessionStore,
                 notifier: Optional[SessionNotifier] = None, logger: Optional[logging.Logger] = None,
                 rng: Optional[random.Random] = None):
        self.repository = repository
        self.timer = timer
        self.store = store
        self.notifier = notifier or SessionNotifier()
        self.logger = logger or logging.getLogger(__name__)
        self._rng = rng or random.Random()

    # ---- lifecycle ----

    def initialize(self) -> None:
        """Restore the snapshot and rebuild scores from the answer ledger."""
        sessions = self.store.load()
        for competition_id in self.store.competition_ids():
            with self.store.lock(competition_id) as state:
                for team in state.teams:
                    # No sockets survive a restart
                    team.is_connected = False
                self._refresh_scores_locked(competition_id, state)
                if state.phase == Phase.QUESTION_ACTIVE:
                    # Countdown threads are gone; the host resumes explicitly
                    state.timer_paused = True
        self.logger.info(f"[restore] competitions={len(sessions)}")
        self.store.save()

    def shutdown(self) -> None:
        self.timer.clear_all()
        self.store.save()

    def get_state(self, competition_id: str) -> GameState:
        return self.store.get(competition_id)

    def state_dict(self, competition_id: str) -> dict:
        return self.store.snapshot(competition_id)

    # ---- teams ----

    def add_team(self, competition_id: str, name: str, color: str = '') -> Team:
        with self.store.lock(competition_id) as state:
            team = state.find_team_by_name(name)
            if team is None:
                stored = self.repository.get_or_create_team(competition_id, name, color)
                team = state.find_team(stored.id)
                if team is None:
                    team = stored
                    state.teams.append(team)
                    self.logger.info(f"[team-join] competition={competition_id} team={team.id} name={name!r}")
            team.is_connected = True
        self._publish(competition_id, scores=True)
        return team

    def reconnect_team(self, competition_id: str, team_id: str) -> Optional[Team]:
        with self.store.lock(competition_id) as state:
            team = state.find_team(team_id)
            if team is None:
                team = self.repository.reconnect_team(competition_id, team_id)
                if team is None:
                    self.logger.info(f"[team-reconnect-miss] competition={competition_id} team={team_id}")
                    return None
                state.teams.append(team)
                self.logger.info(f"[team-restore] competition={competition_id} team={team_id} score={team.score}")
            team.is_connected = True
        self._publish(competition_id, scores=True)
        return team

    def update_team_connection(self, competition_id: str, team_id: str, connected: bool) -> bool:
        with self.store.lock(competition_id) as state:
            team = state.find_team(team_id)
            if team is None or team.is_connected == connected:
                return False
            team.is_connected = connected
        self._publish(competition_id, state=False, scores=True)
        return True

    def refresh_team_scores(self, competition_id: str) -> None:
        with self.store.lock(competition_id) as state:
            self._refresh_scores_locked(competition_id, state)
        self._publish(competition_id, state=False, scores=True)

    # ---- host commands ----

    def start_question(self, competition_id: str, question_id: str) -> bool:
        question = self.repository.get_question(question_id)
        if question is None:
            self.logger.info(f"[question-missing] competition={competition_id} question={question_id}")
            return False
        with self.store.lock(competition_id) as state:
            self._load_question(competition_id, state, question, Phase.QUESTION_PREVIEW)
        self._publish(competition_id)
        return True

    def start_timer(self, competition_id: str, duration_seconds: Optional[int] = None,
                    on_tick: TickCallback = None) -> bool:
        with self.store.lock(competition_id) as state:
            started = self._start_timer_locked(competition_id, state, duration_seconds, on_tick)
        if started:
            self._publish(competition_id)
        return started

    def pause_timer(self, competition_id: str) -> bool:
        with self.store.lock(competition_id) as state:
            if state.phase != Phase.QUESTION_ACTIVE or state.timer_paused:
                return False
            state.timer_paused = True
            self.timer.pause(competition_id)
        self._publish(competition_id)
        return True

    def resume_timer(self, competition_id: str) -> bool:
        with self.store.lock(competition_id) as state:
            if state.phase != Phase.QUESTION_ACTIVE or not state.timer_paused:
                return False
            state.timer_paused = False
            if self.timer.is_running(competition_id):
                self.timer.resume(competition_id)
            elif state.time_remaining > 0:
                # Restored after a restart: no countdown registered yet
                self._run_countdown(competition_id, state.current_question.id, state.time_remaining, None)
            else:
                self._end_question_locked(competition_id, state)
        self._publish(competition_id)
        return True

    def reveal_answer(self, competition_id: str) -> bool:
        with self.store.lock(competition_id) as state:
            revealed = self._reveal_locked(competition_id, state)
        if revealed:
            self._publish(competition_id)
        return revealed

    def end_question(self, competition_id: str) -> bool:
        with self.store.lock(competition_id) as state:
            if state.phase != Phase.QUESTION_ACTIVE:
                return False
            self._end_question_locked(competition_id, state)
        self._publish(competition_id)
        return True

    def set_phase(self, competition_id: str, phase) -> bool:
        """Host override: sets the phase field only, bypassing the transition table."""
        target = Phase.parse(phase)
        if target is None:
            self.logger.warning(f"[phase-invalid] competition={competition_id} phase={phase!r}")
            return False
        with self.store.lock(competition_id) as state:
            previous = state.phase
            state.phase = target
        self.logger.info(f"[phase-override] competition={competition_id} {previous.value} -> {target.value}")
        self._publish(competition_id)
        return True

    def next(self, competition_id: str, on_tick: TickCallback = None) -> Phase:
        """Advance the competition one step. Returns the resulting phase."""
        with self.store.lock(competition_id) as state:
            before = (state.phase, state.reveal_step, state.current_question.id if state.current_question else None)
            self._advance_locked(competition_id, state, on_tick)
            after = (state.phase, state.reveal_step, state.current_question.id if state.current_question else None)
            phase = state.phase
        if after != before:
            self.logger.info(f"[next] competition={competition_id} {before[0].value} -> {phase.value} "
                             f"reveal_step={after[1]}")
            self._publish(competition_id)
        return phase

    def handle_grade_decision(self, competition_id: str, answer_id: str, correct: bool) -> bool:
        with self.store.lock(competition_id) as state:
            answer = self.repository.get_answer(answer_id)
            if (answer is None or answer.get('competition_id') != competition_id
                    or answer['is_correct'] is not None):
                self.logger.info(f"[grade-skip] competition={competition_id} answer={answer_id}")
                return False
            question = self.repository.get_question(answer['question_id'])
            points = question.points if question else 0
            correct = bool(correct)
            self.repository.update_answer_grading(answer_id, correct, points if correct else 0)
            team = state.find_team(answer['team_id'])
            if team is not None:
                team.score = self.repository.get_team_score(competition_id, team.id)
                if state.current_question and state.current_question.id == answer['question_id']:
                    team.last_answer_correct = correct
        self.logger.info(f"[grade] competition={competition_id} answer={answer_id} correct={correct}")
        self._publish(competition_id, state=False, scores=True)
        return True

    # ---- players ----

    def submit_answer(self, competition_id: str, team_id: str, question_id: str, answer) -> bool:
        """Record a team's answer. Late, stale and repeated submissions are dropped (False)."""
        with self.store.lock(competition_id) as state:
            question = state.current_question
            if state.phase != Phase.QUESTION_ACTIVE or question is None or question.id != question_id:
                self.logger.debug(f"[answer-drop] competition={competition_id} team={team_id} question={question_id} "
                                  f"phase={state.phase.value}")
                return False
            team = state.find_team(team_id)
            if team is None:
                self.logger.debug(f"[answer-drop] competition={competition_id} unknown team={team_id}")
                return False
            if self.repository.has_answered(team_id, question_id):
                self.logger.info(f"[answer-duplicate] competition={competition_id} team={team_id} question={question_id}")
                return False

            result = grade(question, answer)
            if result is PENDING_REVIEW:
                is_correct, score = None, 0
            else:
                is_correct, score = result.is_correct, result.score
            try:
                self.repository.save_answer(team_id, question_id, question.round_id, answer, is_correct, score)
            except DuplicateAnswerError:
                self.logger.info(f"[answer-duplicate] competition={competition_id} team={team_id} question={question_id}")
                return False

            team.last_answer = answer
            if is_correct is not None:
                team.last_answer_correct = is_correct
                team.score += score

            # Early end once every connected team has a ledger row for this question
            answered = self.repository.get_answered_team_ids(question_id)
            connected = [t.id for t in state.teams if t.is_connected]
            if connected and all(tid in answered for tid in connected):
                self.logger.info(f"[early-end] competition={competition_id} question={question_id} "
                                 f"submitted={len(answered)} teams={len(connected)}")
                self._end_question_locked(competition_id, state)
        self._publish(competition_id, scores=True)
        return True

    # ---- internals (caller holds the competition lock) ----

    def _advance_locked(self, competition_id: str, state: GameState, on_tick: TickCallback) -> None:
        phase = state.phase
        if phase == Phase.WAITING:
            state.phase = Phase.WELCOME
        elif phase == Phase.WELCOME:
            questions = self.repository.get_questions_for_competition(competition_id)
            if questions:
                self._load_question(competition_id, state, questions[0], Phase.ROUND_START)
            else:
                state.phase = Phase.LEADERBOARD
        elif phase == Phase.ROUND_START:
            state.phase = Phase.QUESTION_PREVIEW
            state.reveal_step = 0
        elif phase == Phase.QUESTION_PREVIEW:
            question = state.current_question
            if question is None:
                return
            if question.type == QuestionType.MULTIPLE_CHOICE.value and state.reveal_step < question.option_count:
                state.reveal_step += 1
            else:
                self._start_timer_locked(competition_id, state, None, on_tick)
        elif phase == Phase.QUESTION_ACTIVE:
            self._end_question_locked(competition_id, state)
        elif phase == Phase.GRADING:
            self._reveal_locked(competition_id, state)
        elif phase == Phase.REVEAL_ANSWER:
            following = self._following_question(competition_id, state.current_question)
            if following is None or following.round_id != state.current_question.round_id:
                state.phase = Phase.ROUND_END
            else:
                self._load_question(competition_id, state, following, Phase.ROUND_START)
        elif phase == Phase.ROUND_END:
            following = self._following_question(competition_id, state.current_question)
            if following is None:
                state.phase = Phase.LEADERBOARD
            else:
                self._load_question(competition_id, state, following, Phase.ROUND_START)
        # LEADERBOARD is terminal for next(); only set_phase leaves it

    def _following_question(self, competition_id: str, current: Optional[Question]) -> Optional[Question]:
        if current is None:
            return None
        questions: List[Question] = self.repository.get_questions_for_competition(competition_id)
        ids = [q.id for q in questions]
        if current.id not in ids:
            return None
        index = ids.index(current.id)
        return questions[index + 1] if index + 1 < len(questions) else None

    def _load_question(self, competition_id: str, state: GameState, question: Question, phase: Phase) -> None:
        self.timer.stop(competition_id)
        session_question = question.copy()
        if isinstance(session_question.content, ChronologyContent):
            # One shuffle per session so every team sees the same order
            self._rng.shuffle(session_question.content.items)
        state.current_question = session_question
        state.phase = phase
        state.time_remaining = session_question.time_limit_seconds
        state.timer_paused = False
        state.reveal_step = 0
        state.reset_team_answers()
        self.logger.info(f"[question-load] competition={competition_id} question={question.id} phase={phase.value}")

    def _start_timer_locked(self, competition_id: str, state: GameState, duration_seconds: Optional[int],
                            on_tick: TickCallback) -> bool:
        if state.phase != Phase.QUESTION_PREVIEW or state.current_question is None:
            self.logger.debug(f"[timer-ignore] competition={competition_id} phase={state.phase.value}")
            return False
        if duration_seconds is None:
            duration_seconds = state.current_question.time_limit_seconds
        duration_seconds = max(0, int(duration_seconds))
        state.phase = Phase.QUESTION_ACTIVE
        state.time_remaining = duration_seconds
        state.timer_paused = False
        self._run_countdown(competition_id, state.current_question.id, duration_seconds, on_tick)
        return True

    def _run_countdown(self, competition_id: str, question_id: str, seconds: int, on_tick: TickCallback) -> None:
        self.timer.start(
            competition_id,
            seconds,
            on_tick=lambda remaining: self._on_timer_tick(competition_id, question_id, remaining, on_tick),
            on_end=lambda: self._on_timer_end(competition_id, question_id),
        )

    def _end_question_locked(self, competition_id: str, state: GameState) -> None:
        self.timer.stop(competition_id)
        state.phase = Phase.GRADING
        state.timer_paused = False

    def _reveal_locked(self, competition_id: str, state: GameState) -> bool:
        if state.phase not in (Phase.GRADING, Phase.QUESTION_ACTIVE):
            return False
        self.timer.stop(competition_id)
        state.phase = Phase.REVEAL_ANSWER
        state.timer_paused = False
        return True

    def _refresh_scores_locked(self, competition_id: str, state: GameState) -> None:
        for team in state.teams:
            team.score = self.repository.get_team_score(competition_id, team.id)

    @staticmethod
    def _is_live(state: GameState, question_id: str) -> bool:
        return (state.phase == Phase.QUESTION_ACTIVE and state.current_question is not None
                and state.current_question.id == question_id)

    # ---- countdown events ----

    def _on_timer_tick(self, competition_id: str, question_id: str, remaining: int, on_tick: TickCallback) -> None:
        with self.store.lock(competition_id) as state:
            if not self._is_live(state, question_id):
                return
            state.time_remaining = remaining
        self.notifier.timer_tick(competition_id, remaining)
        if on_tick is not None:
            on_tick(remaining)

    def _on_timer_end(self, competition_id: str, question_id: str) -> None:
        with self.store.lock(competition_id) as state:
            if not self._is_live(state, question_id):
                self.logger.info(f"[timer-abort] competition={competition_id} question={question_id} "
                                 f"phase={state.phase.value}")
                return
            state.time_remaining = 0
            self._end_question_locked(competition_id, state)
        self._publish(competition_id)

    def _publish(self, competition_id: str, state: bool = True, scores: bool = False) -> None:
        self.store.save(competition_id)
        snapshot = self.store.snapshot(competition_id)
        if state:
            self.notifier.state_changed(competition_id, snapshot)
        if scores:
            self.notifier.scores_changed(competition_id, snapshot['teams'])
