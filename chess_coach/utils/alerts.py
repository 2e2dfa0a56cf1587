# chess_coach/utils/alerts.py
"""
Provides a custom structlog processor that surfaces user-facing events.

Any log event emitted with `user_alert=True` is formatted into a short message
and handed to every registered callback, so a UI layer can show it as an alert
without the core knowing anything about the UI.
"""
from typing import Any, List

from structlog.types import EventDict

from chess_coach.types import AlertCallback


class AlertProcessor:
    """
    A structlog processor that forwards user-facing log events to callbacks.
    """
    def __init__(self) -> None:
        self._callbacks: List[AlertCallback] = []

    def subscribe(self, callback: AlertCallback) -> None:
        """Registers a callback to receive alert messages."""
        self._callbacks.append(callback)

    def unsubscribe(self, callback: AlertCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def __call__(self, logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        """
        Processes the log event dictionary. If 'user_alert' is true, it formats
        a user-friendly message and passes it to every subscriber.
        """
        if event_dict.get('user_alert', False):
            level = event_dict.get('level', method_name).upper()
            message = event_dict.get('event', 'No message')
            detail = event_dict.get('error')
            alert_message = f"{level}: {message}" if not detail else f"{level}: {message} ({detail})"

            for callback in list(self._callbacks):
                callback(alert_message)

        # Always return the event_dict for the next processor in the chain
        return event_dict
