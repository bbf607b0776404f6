"""
Desktop notifications when a daemon run finishes.

Sent through notify-send where available. Notifications are best effort:
a missing or failing notifier only shows up in the daemon log.
"""

import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)

MAX_NOTIFICATION_LENGTH = 200

# run result -> (body, urgency)
_OUTCOMES = {
    "success": ("All work complete", "low"),
    "cancelled": ("Stopped", "normal"),
}


def notify(title: str, message: str, urgency: str = "normal") -> bool:
    """Send a desktop notification. Returns True if one was delivered."""
    notifier = shutil.which("notify-send")
    if notifier is None:
        logger.debug("[notify] notify-send not installed, skipping")
        return False

    cmd = [notifier, "--app-name", "ralph", "--urgency", urgency, title, message]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning(f"[notify] notify-send did not run: {e}")
        return False
    if proc.returncode != 0:
        logger.warning(f"[notify] notify-send exited {proc.returncode}: {proc.stderr.strip()}")
        return False
    return True


def notify_run_finished(workspace: str, result: str, error: str = ""):
    if result in _OUTCOMES:
        body, urgency = _OUTCOMES[result]
    else:
        error = error or "unknown error"
        if len(error) > MAX_NOTIFICATION_LENGTH:
            error = error[:MAX_NOTIFICATION_LENGTH] + "..."
        body, urgency = f"Failed: {error}", "critical"
    notify(f"ralph: {workspace}", body, urgency)
