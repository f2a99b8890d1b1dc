"""Assembles the tail -> extract -> broadcast pipeline from Settings."""

import os
import threading

from broadcast import BroadcastHub
from session_watch import AntfarmTail, SessionStoreWatcher
from tailer import FileTailer


class Pipeline:
    def __init__(self, settings):
        if settings is None:
            raise ValueError('Pipeline requires settings; refusing to start without configuration')
        self.settings = settings
        self.tailer = FileTailer()
        self.hub = BroadcastHub(
            capacity=settings.replay_capacity,
            persist_path=settings.comms_file,
            antfarm_capacity=settings.antfarm_backfill,
            subscriber_queue=settings.subscriber_queue,
        )
        self.watcher = SessionStoreWatcher(
            settings.agent_ids,
            settings.session_index_path,
            self.tailer,
            self.hub,
            interval_sec=settings.poll_interval_sec,
        )
        self.antfarm = AntfarmTail(
            settings.events_file,
            self.tailer,
            self.hub,
            backfill=settings.antfarm_backfill,
        )
        self.stop_event = threading.Event()
        self.started = False
        self._start_lock = threading.Lock()
        self._threads = []
        self.hub.load()

    def start(self):
        """Start the pollers once per process. Returns False if already started."""
        with self._start_lock:
            if self.started:
                return False
            self.started = True
            print(f'[BOOT] Starting comms pipeline (pid={os.getpid()})')
            self.antfarm.start()
            for name, target in (('a2a-monitor', self.watcher.run), ('antfarm-tail', self.antfarm.run)):
                thread = threading.Thread(target=target, args=(self.stop_event,), name=name, daemon=True)
                thread.start()
                self._threads.append(thread)
            return True

    def stop(self, timeout=None):
        self.stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
