"""Runtime configuration for the Mission Control comms monitor.

Values are read from environment variables once, at startup, into a frozen
Settings object that the pipeline and the web layer share.
"""

import os
from dataclasses import dataclass


DEFAULT_CORE_AGENTS = 'main,ops,comms,architect'


def env_int(env, name, default, lo=None, hi=None):
    """Read an integer env var, falling back to default on bad input and clamping to [lo, hi]."""
    try:
        value = int(env.get(name, str(default)))
    except Exception:
        value = default
    if lo is not None:
        value = max(lo, value)
    if hi is not None:
        value = min(hi, value)
    return value


def parse_agent_ids(raw):
    """Split a comma separated agent list, dropping blanks and duplicates."""
    seen = []
    for part in str(raw or '').split(','):
        agent_id = part.strip()
        if agent_id and agent_id not in seen:
            seen.append(agent_id)
    return seen


@dataclass(frozen=True)
class Settings:
    openclaw_base: str
    agents_dir: str
    events_file: str
    comms_file: str
    agent_ids: tuple
    poll_interval_ms: int
    replay_capacity: int
    antfarm_backfill: int
    subscriber_queue: int
    title: str
    port: int
    disable_internal_reader: bool

    @property
    def poll_interval_sec(self):
        return self.poll_interval_ms / 1000.0

    def session_index_path(self, agent_id):
        """Path of the sessions.json index for one agent."""
        return os.path.join(self.agents_dir, agent_id, 'sessions', 'sessions.json')


def load_settings(environ=None):
    """Build Settings from the process environment (or a provided mapping)."""
    env = os.environ if environ is None else environ
    base = os.path.expanduser(env.get('OPENCLAW_BASE') or os.path.join('~', '.openclaw'))
    events_file = env.get('MC_EVENTS_FILE') or os.path.join(base, 'antfarm', 'events.jsonl')
    comms_file = env.get('MC_COMMS_FILE') or os.path.join(os.path.dirname(os.path.abspath(__file__)), 'agent-comms.json')

    return Settings(
        openclaw_base=base,
        agents_dir=os.path.join(base, 'agents'),
        events_file=os.path.expanduser(events_file),
        comms_file=os.path.expanduser(comms_file),
        agent_ids=tuple(parse_agent_ids(env.get('MC_CORE_AGENTS', DEFAULT_CORE_AGENTS))),
        poll_interval_ms=env_int(env, 'MC_A2A_POLL_MS', 5000, lo=100),
        replay_capacity=env_int(env, 'MC_REPLAY_CAPACITY', 200, lo=1, hi=10000),
        antfarm_backfill=env_int(env, 'MC_ANTFARM_BACKFILL', 50, lo=0, hi=1000),
        subscriber_queue=env_int(env, 'MC_SUBSCRIBER_QUEUE', 1000, lo=1),
        title=env.get('MC_TITLE') or 'Mission Control',
        port=env_int(env, 'MC_PORT', 3100, lo=1, hi=65535),
        disable_internal_reader=env.get('MC_DISABLE_INTERNAL_READER') == '1',
    )
