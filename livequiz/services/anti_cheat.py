"""
Anti-Cheating Monitor
Turns forwarded browser signals into categorized violation reports

The browser only forwards raw signals (key presses, focus changes, window
metrics); classification and reporting happen here. The monitor is switched
on while a question is displayed and off everywhere else.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import threading

logger = logging.getLogger(__name__)

TAB_SWITCH = 'tab_switch'
RIGHT_CLICK = 'right_click'
KEYBOARD_SHORTCUT = 'keyboard_shortcut'
DEV_TOOLS = 'dev_tools'
COPY_PASTE = 'copy_paste'
FOCUS_LOSS = 'focus_loss'

# Category switches, all on by default
DEFAULT_CATEGORIES = {
    'dev_tools': True,
    'right_click': True,
    'text_selection': True,
    'print_screen': True,
}

# (ctrl, shift, key) -> (violation type, description, gating category or None)
_KEY_RULES = {
    (False, False, 'f12'): (DEV_TOOLS, 'F12 key pressed', 'dev_tools'),
    (True, True, 'i'): (DEV_TOOLS, 'DevTools shortcut attempt', 'dev_tools'),
    (True, True, 'j'): (DEV_TOOLS, 'Console shortcut attempt', 'dev_tools'),
    (True, False, 'u'): (KEYBOARD_SHORTCUT, 'View source attempt', None),
    (True, False, 'a'): (COPY_PASTE, 'Select all attempt', 'text_selection'),
    (True, False, 'c'): (COPY_PASTE, 'Copy attempt', None),
    (True, False, 'v'): (COPY_PASTE, 'Paste attempt', None),
    (False, False, 'printscreen'): (KEYBOARD_SHORTCUT, 'Print screen attempt', 'print_screen'),
    (True, False, 'p'): (KEYBOARD_SHORTCUT, 'Print attempt', None),
    (True, False, 's'): (KEYBOARD_SHORTCUT, 'Save attempt', None),
}

# Keys that count regardless of modifiers
_BARE_KEYS = {'f12', 'printscreen'}


@dataclass(frozen=True)
class Detection:
    """One classified occurrence"""
    violation_type: str
    description: str


@dataclass(frozen=True)
class WindowMetrics:
    outer_width: int
    inner_width: int
    outer_height: int
    inner_height: int

    def exceeds(self, threshold):
        return (self.outer_width - self.inner_width > threshold or
                self.outer_height - self.inner_height > threshold)


def _flag(value):
    return bool(value) and str(value).lower() not in ('false', '0')


class AntiCheatMonitor:
    """
    Per-player signal classifier

    Args:
        reporter: callable(violation_type, description), invoked once per
            detected occurrence. Aggregation is the reporter's job.
        categories: overrides for DEFAULT_CATEGORIES
        threshold_px: outer minus inner window size that counts as open devtools
    """

    def __init__(self, reporter, categories=None, threshold_px=160):
        self._reporter = reporter
        self.categories = dict(DEFAULT_CATEGORIES)
        self.categories.update(categories or {})
        self.threshold_px = threshold_px
        self.enabled = False
        self.violation_count = 0
        self._metrics = None
        self._lock = threading.Lock()

    # ================= CONTROL =================

    def enable(self):
        self.enabled = True

    def disable(self):
        self.enabled = False

    def set_category(self, name, on):
        if name not in DEFAULT_CATEGORIES:
            raise ValueError(f"Unknown anti-cheat category {name!r}")
        self.categories[name] = bool(on)

    # ================= CLASSIFICATION =================

    def _allowed(self, category):
        return category is None or self.categories.get(category, True)

    def classify_key(self, key, ctrl=False, shift=False, meta=False):
        """Violation for a keydown, or None when the key is harmless"""
        if not key:
            return None
        name = str(key).lower()
        ctrl = bool(ctrl or meta)

        if name in _BARE_KEYS:
            rule = _KEY_RULES[(False, False, name)]
        else:
            rule = _KEY_RULES.get((ctrl, bool(shift), name))
        if rule is None:
            return None

        violation_type, description, category = rule
        if not self._allowed(category):
            return None
        return Detection(violation_type, description)

    def classify(self, signal):
        """
        Map one forwarded browser signal to a Detection

        Signal kinds: visibilitychange, blur, contextmenu, selectstart,
        keydown, dragstart. Window metrics are stored, not classified.
        """
        kind = (signal or {}).get('type')

        if kind == 'keydown':
            return self.classify_key(
                signal.get('key'),
                ctrl=_flag(signal.get('ctrl')),
                shift=_flag(signal.get('shift')),
                meta=_flag(signal.get('meta')),
            )
        if kind == 'visibilitychange':
            if _flag(signal.get('hidden')):
                return Detection(TAB_SWITCH, 'Tab switched or window minimized')
            return None
        if kind == 'blur':
            return Detection(TAB_SWITCH, 'Window lost focus')
        if kind == 'contextmenu':
            if self._allowed('right_click'):
                return Detection(RIGHT_CLICK, 'Right-click attempt')
            return None
        if kind == 'selectstart':
            if self._allowed('text_selection'):
                return Detection(COPY_PASTE, 'Text selection attempt')
            return None
        if kind == 'dragstart':
            return Detection(FOCUS_LOSS, 'Drag attempt')
        return None

    # ================= SIGNALS =================

    def handle_signal(self, signal):
        """
        Classify and report a signal while enabled

        Returns:
            Detection or None
        """
        if signal and signal.get('type') == 'window_metrics':
            self.update_metrics(signal)
            return None
        if not self.enabled:
            return None

        detection = self.classify(signal)
        if detection is not None:
            self._report(detection)
        return detection

    def update_metrics(self, data):
        try:
            metrics = WindowMetrics(
                outer_width=int(data['outer_width']),
                inner_width=int(data['inner_width']),
                outer_height=int(data['outer_height']),
                inner_height=int(data['inner_height']),
            )
        except (KeyError, TypeError, ValueError):
            logger.debug("Ignoring malformed window metrics %r", data)
            return None
        with self._lock:
            self._metrics = metrics
        return metrics

    def check_devtools(self):
        """Devtools heuristic, run once per poll; reports every poll it holds"""
        if not self.enabled or not self._allowed('dev_tools'):
            return None
        with self._lock:
            metrics = self._metrics
        if metrics is None or not metrics.exceeds(self.threshold_px):
            return None
        detection = Detection(DEV_TOOLS, 'Possible DevTools opening detected')
        self._report(detection)
        return detection

    def _report(self, detection):
        with self._lock:
            self.violation_count += 1
        logger.warning("Suspicious activity detected: %s", detection.description)
        try:
            self._reporter(detection.violation_type, detection.description)
        except Exception:
            logger.exception("Failed to report %s violation", detection.violation_type)
