"""Microsoft Teams incoming-webhook sink."""

from typing import Any, Dict, List

from ..config import SinkKind
from ..models import Batch, ErrorEntry
from .base import register_sink
from .webhook import WebhookAlertSink


@register_sink(SinkKind.TEAMS)
class TeamsAlertSink(WebhookAlertSink):
    """Posts a batch as a single Adaptive Card message."""

    def build_payload(self, batch: Batch) -> Dict[str, Any]:
        visible, hidden = self._visible_entries(batch)

        body: List[Dict[str, Any]] = [{
            "type": "TextBlock",
            "size": "Large",
            "weight": "Bolder",
            "color": "Attention",
            "text": f"🚨 {self._title(batch)}",
            "wrap": True,
        }]

        for index, entry in enumerate(visible, start=1):
            body.extend(self._entry_blocks(index, entry))

        if hidden:
            body.append({
                "type": "TextBlock",
                "text": f"_{hidden} more unique errors not shown_",
                "isSubtle": True,
                "wrap": True,
            })

        card: Dict[str, Any] = {
            "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
            "type": "AdaptiveCard",
            "version": "1.4",
            "body": body,
        }
        if self.dashboard_url:
            card["actions"] = [
                {"type": "Action.OpenUrl", "title": "View Error Logs", "url": self.dashboard_url}
            ]

        return {
            "type": "message",
            "attachments": [{
                "contentType": "application/vnd.microsoft.card.adaptive",
                "content": card,
            }],
        }

    def _entry_blocks(self, index: int, entry: ErrorEntry) -> List[Dict[str, Any]]:
        return [
            {
                "type": "TextBlock",
                "size": "Medium",
                "weight": "Bolder",
                "separator": True,
                "spacing": "Medium",
                "text": f"🔴 #{index} {entry.exception.type_name} × {entry.count}",
                "wrap": True,
            },
            {
                "type": "FactSet",
                "facts": [
                    {"title": "Message", "value": self._message(entry)},
                    {"title": "Request", "value": self._request_line(entry)},
                    {"title": "First seen", "value": entry.first_seen.strftime('%Y-%m-%d %H:%M:%S UTC')},
                    {"title": "Last seen", "value": entry.last_seen.strftime('%Y-%m-%d %H:%M:%S UTC')},
                ],
            },
            {
                "type": "TextBlock",
                "fontType": "Monospace",
                "size": "Small",
                "text": self._stack_trace(entry),
                "wrap": True,
            },
        ]
