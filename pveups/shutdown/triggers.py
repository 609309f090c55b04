"""
upssched event dispatch.

upssched invokes its CMDSCRIPT with the name of the timer or event that
fired. ``dispatch_event`` maps those names onto orchestrator invocations.
The timers themselves (debounce on ONBATT, cancel on ONLINE) live in
``upssched.conf``; by the time an event arrives here the wait has already
happened, so every run started from here skips the initial wait.
"""

import logging
from typing import Dict, Optional, Tuple

from pveups.shutdown.orchestrator import RunOptions

logger = logging.getLogger(__name__)


# upssched event name -> (event label for the run, log message)
TRIGGER_EVENTS: Dict[str, Tuple[str, str]] = {
    "onbatt": ("onbatt-timer", "onbatt timer expired -> starting shutdown"),
    "lowbatt": ("lowbatt", "low battery -> immediate shutdown"),
    "commbad": ("commbad", "UPS comm lost -> running shutdown"),
}

INFORMATIONAL_EVENTS = {
    "commok": "UPS comm restored",
}


def dispatch_event(name: Optional[str]) -> Optional[RunOptions]:
    """
    Translate an upssched event into run options.

    Returns:
        The options to run the orchestrator with, or None when the event
        does not start a shutdown.
    """
    event = (name or "").strip().lower()

    if event in TRIGGER_EVENTS:
        label, message = TRIGGER_EVENTS[event]
        logger.warning(message)
        return RunOptions(skip_initial_wait=True, event=label)

    if event in INFORMATIONAL_EVENTS:
        logger.info(INFORMATIONAL_EVENTS[event])
        return None

    logger.warning("Unknown upssched action: %s", name or "<empty>")
    return None
