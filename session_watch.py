"""Pollers that feed the broadcast hub.

SessionStoreWatcher follows each monitored agent's ``sessions.json`` index,
tails the session files whose ``updatedAt`` moved and publishes the comms
events found in the new lines. AntfarmTail follows the shared Antfarm
``events.jsonl`` file, whose rows are already dashboard-shaped, and publishes
them unchanged.
"""

import json
import threading

from comms import extract_events
from tailer import parse_json_lines


class MonitoredAgent:
    """Per-agent polling state: UNSEEN until the index is first read, then BASELINED."""

    def __init__(self, agent_id, index_path):
        self.agent_id = agent_id
        self.index_path = index_path
        self.sessions = None
        self.lock = threading.Lock()

    @property
    def baselined(self):
        return self.sessions is not None


def read_session_index(path):
    """Read a sessions.json index as {sessionKey: metadata}. Raises OSError/ValueError."""
    with open(path, 'r', encoding='utf-8') as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f'session index is not an object: {path}')
    return {key: meta for key, meta in data.items() if isinstance(meta, dict)}


class SessionStoreWatcher:
    def __init__(self, agent_ids, index_path_for, tailer, hub, interval_sec=5.0):
        self.tailer = tailer
        self.hub = hub
        self.interval_sec = interval_sec
        self._agents = {agent_id: MonitoredAgent(agent_id, index_path_for(agent_id)) for agent_id in agent_ids}
        self._tick_lock = threading.Lock()

    def agents(self):
        return list(self._agents)

    def tracked_sessions(self, agent_id):
        """Snapshot of {sessionKey: updatedAt} for an agent, or None before its baseline."""
        agent = self._agents.get(agent_id)
        if agent is None or agent.sessions is None:
            return None
        return dict(agent.sessions)

    def baseline(self, agent, index):
        sessions = {}
        for key, meta in index.items():
            sessions[key] = meta.get('updatedAt')
            session_file = meta.get('sessionFile')
            if session_file:
                self.tailer.seek_to_end(session_file)
        agent.sessions = sessions
        print(f'[A2A] Baselined {agent.agent_id}: {len(agent.sessions)} sessions')

    def poll_agent(self, agent_id):
        """Poll one agent's index and publish events from changed sessions.

        Returns the number of events published, or None when the agent is
        already being polled by another caller.
        """
        agent = self._agents[agent_id]
        if not agent.lock.acquire(blocking=False):
            return None
        try:
            try:
                index = read_session_index(agent.index_path)
            except FileNotFoundError:
                return 0
            except (OSError, ValueError) as e:
                print(f'[A2A] Failed to read session index for {agent_id}: {e}')
                return 0

            if not agent.baselined:
                self.baseline(agent, index)
                return 0

            published = 0
            for session_key, meta in index.items():
                updated_at = meta.get('updatedAt')
                session_file = meta.get('sessionFile')
                if updated_at and updated_at != agent.sessions.get(session_key):
                    agent.sessions[session_key] = updated_at
                elif not (session_file and self.tailer.has_pending(session_file)):
                    # Unchanged, and no half-written line left over from an earlier read.
                    continue
                if not session_file:
                    continue
                for record in parse_json_lines(self.tailer.tail(session_file)):
                    for event in extract_events(record, agent_id):
                        self.hub.publish(event)
                        published += 1
            return published
        finally:
            agent.lock.release()

    def tick(self):
        """Poll every monitored agent once; a tick already in progress is not re-entered."""
        if not self._tick_lock.acquire(blocking=False):
            return None
        try:
            total = 0
            for agent_id in self._agents:
                try:
                    total += self.poll_agent(agent_id) or 0
                except Exception as e:
                    print(f'[A2A] Poll error for {agent_id}: {e}')
            return total
        finally:
            self._tick_lock.release()

    def run(self, stop_event):
        print(f'[A2A] Agent-to-agent monitor: polling {", ".join(self._agents)} every {self.interval_sec:g}s')
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                print(f'[A2A] Monitor error: {e}')
            stop_event.wait(self.interval_sec)


class AntfarmTail:
    def __init__(self, path, tailer, hub, backfill=50, interval_sec=1.0):
        self.path = path
        self.tailer = tailer
        self.hub = hub
        self.backfill = backfill
        self.interval_sec = interval_sec
        self._lock = threading.Lock()

    def start(self):
        """Seed the hub's antfarm backfill from the file and skip existing rows."""
        rows = parse_json_lines(self.tailer.baseline_with_rows(self.path, self.backfill))
        self.hub.seed_antfarm(rows)
        print(f'[ANTFARM] Tailing {self.path} ({len(rows)} backfill rows)')

    def tick(self):
        if not self._lock.acquire(blocking=False):
            return None
        try:
            rows = parse_json_lines(self.tailer.tail(self.path))
            for row in rows:
                self.hub.publish_antfarm(row)
            return len(rows)
        finally:
            self._lock.release()

    def run(self, stop_event):
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                print(f'[ANTFARM] Tail error: {e}')
            stop_event.wait(self.interval_sec)
