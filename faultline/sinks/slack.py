"""Slack incoming-webhook sink."""

from typing import Any, Dict, List

import httpx

from ..config import SinkKind
from ..errors import SinkError
from ..models import Batch, ErrorEntry
from .base import register_sink
from .webhook import WebhookAlertSink


# Slack rejects messages with more than 50 blocks and section text over 3000 characters
MAX_BLOCKS = 50
MAX_SECTION_CHARS = 3000

# Header, context, divider, hidden note, actions
FIXED_BLOCKS = 5


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit - 3] + "..."
    return text


@register_sink(SinkKind.SLACK)
class SlackAlertSink(WebhookAlertSink):
    """Posts a batch as a single Slack Block Kit message."""

    def build_payload(self, batch: Batch) -> Dict[str, Any]:
        title = self._title(batch)
        visible, hidden = self._visible_entries(batch)

        max_visible = (MAX_BLOCKS - FIXED_BLOCKS) // 2
        if len(visible) > max_visible:
            hidden += len(visible) - max_visible
            visible = visible[:max_visible]

        blocks: List[Dict[str, Any]] = [
            {"type": "header", "text": {"type": "plain_text", "text": f"🚨 {title}", "emoji": True}},
            {"type": "context", "elements": [
                {"type": "mrkdwn", "text": f"Drained at `{batch.drained_at.strftime('%Y-%m-%d %H:%M:%S UTC')}`"}
            ]},
            {"type": "divider"},
        ]

        for index, entry in enumerate(visible, start=1):
            blocks.extend(self._entry_blocks(index, entry))

        if hidden:
            blocks.append({"type": "context", "elements": [
                {"type": "mrkdwn", "text": f"_{hidden} more unique errors not shown_"}
            ]})

        if self.dashboard_url:
            blocks.append({"type": "actions", "elements": [{
                "type": "button",
                "text": {"type": "plain_text", "text": "View Error Logs"},
                "url": self.dashboard_url,
                "style": "primary",
            }]})

        return {"text": title, "blocks": blocks}

    def _entry_blocks(self, index: int, entry: ErrorEntry) -> List[Dict[str, Any]]:
        stack_trace = _truncate(self._stack_trace(entry), MAX_SECTION_CHARS - 6)
        summary = (
            f"*#{index} `{entry.exception.type_name}`* × {entry.count}\n"
            f"💬 {self._message(entry)}\n"
            f"🌐 `{self._request_line(entry)}`\n"
            f"📅 first `{entry.first_seen.strftime('%H:%M:%S')}` · last `{entry.last_seen.strftime('%H:%M:%S')}`"
        )
        return [
            {"type": "section", "text": {"type": "mrkdwn", "text": _truncate(summary, MAX_SECTION_CHARS)}},
            {"type": "section", "text": {"type": "mrkdwn", "text": f"```{stack_trace}```"}},
        ]

    def _check_response(self, response: httpx.Response) -> None:
        super()._check_response(response)
        if response.text.strip() != "ok":
            raise SinkError(f"Unexpected Slack response: {response.text[:200]}", sink_name=self.name)

    def validate_config(self) -> List[str]:
        errors = super().validate_config()
        if not errors and not self.webhook_url.startswith("https://"):
            errors.append("Slack webhook URL must use HTTPS")
        return errors
