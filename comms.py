"""Agent-to-agent communication extraction.

OpenClaw agents talk to each other through two tools: ``sessions_spawn``
starts a sub-agent run and ``sessions_send`` posts a message into another
session. This module recognizes those tool calls (and their results) in raw
session JSONL records and turns them into CanonicalEvent values. Every other
record shape is ignored.
"""

import time
from dataclasses import dataclass, field


SPAWN_TOOL = 'sessions_spawn'
SEND_TOOL = 'sessions_send'
COMMS_TOOLS = (SPAWN_TOOL, SEND_TOOL)
FAILED_STATUSES = ('error', 'forbidden')
EXCERPT_LIMIT = 200

SPAWN_REQUEST = 'spawn_request'
SPAWN_OK = 'spawn_ok'
SEND_REQUEST = 'send_request'
SEND_OK = 'send_ok'
ERROR = 'error'
EVENT_KINDS = (SPAWN_REQUEST, SPAWN_OK, SEND_REQUEST, SEND_OK, ERROR)

# Dotted names kept in the serialized form for existing dashboards.
LEGACY_EVENT_NAMES = {
    SPAWN_REQUEST: 'agent.spawn',
    SPAWN_OK: 'agent.spawn_ok',
    SEND_REQUEST: 'agent.send',
    SEND_OK: 'agent.send_ok',
    ERROR: 'agent.error',
}
KIND_BY_LEGACY_NAME = {name: kind for kind, name in LEGACY_EVENT_NAMES.items()}


@dataclass(frozen=True)
class CanonicalEvent:
    ts: object
    from_agent: str
    kind: str
    to_agent: str = None
    excerpt: str = ''
    action: str = None
    details: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            'ts': self.ts,
            'fromAgent': self.from_agent,
            'toAgent': self.to_agent,
            'kind': self.kind,
            'event': LEGACY_EVENT_NAMES.get(self.kind, self.kind),
            'action': self.action,
            'excerpt': self.excerpt,
            'details': dict(self.details),
        }

    @classmethod
    def from_dict(cls, row):
        """Rebuild an event from its serialized form.

        Also accepts rows written by the older comms log, which wrapped the
        event in ``{timestamp, from, to, message, status, details}``.
        Returns None for rows that carry no recognizable event.
        """
        if not isinstance(row, dict):
            return None
        if 'fromAgent' not in row:
            inner = row.get('details')
            if isinstance(inner, dict) and 'fromAgent' in inner:
                row = inner
            elif row.get('from') and row.get('message'):
                return manual_event(row.get('from'), row.get('to'), row.get('message'), row.get('status'), ts=row.get('timestamp'))
            else:
                return None

        kind = row.get('kind') or KIND_BY_LEGACY_NAME.get(row.get('event'))
        if kind not in EVENT_KINDS:
            return None
        details = row.get('details') if isinstance(row.get('details'), dict) else {}
        if not details:
            # Legacy rows kept result fields at the top level.
            details = {k: row[k] for k in ('status', 'error', 'runId', 'childSessionKey', 'model', 'label') if k in row}
        excerpt = row.get('excerpt')
        if excerpt is None:
            excerpt = row.get('task') or row.get('message') or row.get('error') or row.get('status') or ''
        return cls(
            ts=row.get('ts'),
            from_agent=row.get('fromAgent'),
            kind=kind,
            to_agent=row.get('toAgent'),
            excerpt=truncate_excerpt(excerpt),
            action=row.get('action'),
            details=details,
        )


def truncate_excerpt(text, limit=EXCERPT_LIMIT):
    """Clamp text to at most limit characters."""
    if text is None:
        return ''
    if not isinstance(text, str):
        text = str(text)
    return text[:limit]


def utc_now_iso():
    return time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime())


def _tool_call_event(block, ts, agent_id):
    name = block.get('name')
    args = block.get('arguments') if isinstance(block.get('arguments'), dict) else {}

    if name == SPAWN_TOOL:
        return CanonicalEvent(
            ts=ts,
            from_agent=agent_id,
            kind=SPAWN_REQUEST,
            to_agent=args.get('agentId') or args.get('label') or 'subagent',
            excerpt=truncate_excerpt(args.get('task') or ''),
            action=name,
            details={'model': args.get('model'), 'label': args.get('label')},
        )
    if name == SEND_TOOL:
        return CanonicalEvent(
            ts=ts,
            from_agent=agent_id,
            kind=SEND_REQUEST,
            to_agent=args.get('sessionKey') or args.get('label') or '?',
            excerpt=truncate_excerpt(args.get('message') or ''),
            action=name,
            details={'label': args.get('label')},
        )
    return None


def _tool_result_event(message, ts, agent_id):
    tool_name = message.get('toolName')
    if tool_name not in COMMS_TOOLS:
        return None
    details = message.get('details') if isinstance(message.get('details'), dict) else {}
    status = details.get('status') or 'unknown'

    if status in FAILED_STATUSES:
        error = details.get('error') or 'unknown error'
        return CanonicalEvent(
            ts=ts,
            from_agent=agent_id,
            kind=ERROR,
            excerpt=truncate_excerpt(error),
            action=tool_name,
            details={'status': status, 'error': error},
        )
    if tool_name == SPAWN_TOOL:
        return CanonicalEvent(
            ts=ts,
            from_agent=agent_id,
            kind=SPAWN_OK,
            excerpt=truncate_excerpt(status),
            action=tool_name,
            details={
                'status': status,
                'runId': details.get('runId'),
                'childSessionKey': details.get('childSessionKey'),
            },
        )
    return CanonicalEvent(
        ts=ts,
        from_agent=agent_id,
        kind=SEND_OK,
        excerpt=truncate_excerpt(status),
        action=tool_name,
        details={'status': status, 'runId': details.get('runId')},
    )


def extract_events(record, agent_id):
    """Classify one session record from agent_id into canonical comms events.

    An assistant message yields one event per matching tool-call block, a
    toolResult yields at most one. Unrelated records yield [].
    """
    if not isinstance(record, dict) or record.get('type') != 'message':
        return []
    message = record.get('message')
    if not isinstance(message, dict):
        return []
    ts = record.get('timestamp')
    role = message.get('role')

    if role == 'assistant':
        content = message.get('content')
        if not isinstance(content, list):
            return []
        events = []
        for block in content:
            if not isinstance(block, dict) or block.get('type') != 'toolCall':
                continue
            event = _tool_call_event(block, ts, agent_id)
            if event is not None:
                events.append(event)
        return events

    if role == 'toolResult':
        event = _tool_result_event(message, ts, agent_id)
        return [event] if event is not None else []

    return []


def manual_event(from_agent, to_agent, message, status=None, ts=None):
    """Build a send_request event for a communication logged by hand."""
    return CanonicalEvent(
        ts=ts or utc_now_iso(),
        from_agent=from_agent,
        kind=SEND_REQUEST,
        to_agent=to_agent,
        excerpt=truncate_excerpt(message),
        action='manual',
        details={'status': status or 'sent', 'message': message},
    )
