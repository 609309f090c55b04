"""
Power state classification for the shutdown sequence.

Turns a single PowerReading into the decision whether the layered
shutdown should proceed. This is a pure function of its inputs.
"""

from dataclasses import dataclass
from enum import Enum

from .models import BOOST, ONLINE, PowerReading

REASON_ON_BATTERY = "on_battery"
REASON_ONLINE = "online"
REASON_BOOST_LOW_BATTERY = "boost_low_battery"
REASON_UNKNOWN = "upsc_failed"
REASON_UNKNOWN_OVERRIDE = "unknown_override"


class Decision(Enum):
    """Outcome of a power classification."""
    PROCEED = "proceed"
    ABSTAIN = "abstain"
    FAIL = "fail"

    @property
    def verdict(self) -> str:
        """Status-log verdict: YES, NO or UNKNOWN."""
        return {
            Decision.PROCEED: "YES",
            Decision.ABSTAIN: "NO",
            Decision.FAIL: "UNKNOWN",
        }[self]


@dataclass(frozen=True)
class PowerDecision:
    decision: Decision
    reason: str


def classify(
    reading: PowerReading,
    proceed_on_unknown: bool = False,
    boost_low_battery_threshold: float = 20,
) -> PowerDecision:
    """
    Classify a power reading.

    Args:
        reading: The UPS snapshot.
        proceed_on_unknown: Proceed when the status could not be read.
        boost_low_battery_threshold: Charge (%) at or below which an online
            UPS that is boosting is treated as failing.

    Returns:
        The decision and a short machine-readable reason.
    """
    tokens = reading.status_tokens
    if tokens is None:
        if proceed_on_unknown:
            return PowerDecision(Decision.PROCEED, REASON_UNKNOWN_OVERRIDE)
        return PowerDecision(Decision.FAIL, REASON_UNKNOWN)

    if ONLINE in tokens:
        charge = reading.battery_charge
        if BOOST in tokens and charge is not None and charge <= boost_low_battery_threshold:
            return PowerDecision(Decision.PROCEED, REASON_BOOST_LOW_BATTERY)
        return PowerDecision(Decision.ABSTAIN, REASON_ONLINE)

    return PowerDecision(Decision.PROCEED, REASON_ON_BATTERY)
