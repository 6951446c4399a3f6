"""
Player Runner
Timers and poll loops around a PlayerEngine, run as Socket.IO background tasks

Each loop pushes a fresh app context per step, so every step gets its own
database session. stop() makes every loop exit before it touches the engine
again.
"""
import logging
import threading

from livequiz.extensions import socketio
from livequiz.models.game_session import SESSION_ACTIVE, SESSION_COMPLETED
from livequiz.services.progression import (
    STATE_QUESTION, STATE_RESULTS, STATE_WAITING_FOR_OTHERS
)

logger = logging.getLogger(__name__)


class PlayerRunner:
    """Drives one engine: countdown, results hold, polls and the push listener"""

    # Push listener wakes up at least this often to notice stop()
    PUSH_WAIT_SECONDS = 0.5
    # Countdown deadlines are checked this often
    COUNTDOWN_POLL_SECONDS = 0.1

    def __init__(self, app, engine):
        self.app = app
        self.engine = engine
        self.settings = engine.settings
        self._stopped = threading.Event()
        self._started = False

    @property
    def running(self):
        return self._started and not self._stopped.is_set()

    def start(self):
        if self._started:
            return
        self._started = True
        s = self.settings
        loops = [
            (min(self.COUNTDOWN_POLL_SECONDS, s.countdown_tick_seconds), self._countdown_step),
            (s.fast_poll_seconds, self._fast_poll_step),
            (s.session_poll_seconds, self.engine.pull),
            (s.completion_poll_seconds, self.engine.check_completion),
            (s.devtools_poll_seconds, self.engine.monitor.check_devtools),
        ]
        with self.app.app_context():
            self.engine.start()
        for interval, step in loops:
            socketio.start_background_task(self._loop, interval, step)
        socketio.start_background_task(self._push_listener)
        logger.debug("Runner started for participant %s", self.engine.participant_id)

    def stop(self):
        """Cancel every loop and close the engine; idempotent"""
        if self._stopped.is_set():
            return
        self._stopped.set()
        self.engine.close()
        logger.debug("Runner stopped for participant %s", self.engine.participant_id)

    # ================= LOOPS =================

    def _loop(self, interval, step):
        while not self._stopped.is_set():
            socketio.sleep(interval)
            if self._stopped.is_set():
                break
            self._run_step(step)

    def _run_step(self, step, *args):
        with self.app.app_context():
            try:
                step(*args)
            except Exception:
                logger.exception("Runner step %s failed for participant %s",
                                 getattr(step, '__name__', step), self.engine.participant_id)

    def _countdown_step(self):
        if self.engine.state.state == STATE_QUESTION:
            self.engine.tick_if_due()

    def _fast_poll_step(self):
        state = self.engine.state.state
        if state == STATE_RESULTS:
            self.engine.advance_if_due()
        if state in (STATE_QUESTION, STATE_RESULTS):
            self.engine.reconcile()

    def _push_listener(self):
        while not self._stopped.is_set():
            self._run_step(self.engine.wait_for_events, self.PUSH_WAIT_SECONDS)
            # Yield to other green threads between waits
            socketio.sleep(0)


class LobbyWatcher:
    """Teacher-side roster refresh for one session"""

    def __init__(self, app, session_id, room, settings, roster_source):
        self.app = app
        self.session_id = session_id
        self.room = room
        self.settings = settings
        self._roster_source = roster_source
        self._stopped = threading.Event()

    def start(self):
        socketio.start_background_task(self._run)

    def stop(self):
        self._stopped.set()

    def _run(self):
        status = None
        while not self._stopped.is_set():
            with self.app.app_context():
                try:
                    status = self.refresh()
                except Exception:
                    logger.exception("Roster refresh failed for session %s", self.session_id)
            if status == SESSION_COMPLETED:
                break
            interval = (self.settings.roster_game_poll_seconds if status == SESSION_ACTIVE
                        else self.settings.roster_poll_seconds)
            socketio.sleep(interval)

    def refresh(self):
        """Emit the current roster; returns the session status"""
        roster = self._roster_source(self.session_id)
        if roster is None:
            self._stopped.set()
            return None
        socketio.emit('roster', roster, to=self.room)
        return roster['status']
