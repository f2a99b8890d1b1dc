#!/usr/bin/env python3
"""
Standalone comms reader for Mission Control.
Runs the tail/extract/broadcast pipeline without the web server and prints
every pushed message as one JSON line. Useful for debugging session parsing.
"""
import json
import os
import sys

from pipeline import Pipeline
from settings import load_settings


def print_messages(subscriber, out=sys.stdout):
    """Print queued subscriber messages until it is closed."""
    while subscriber.is_open:
        for message in subscriber.drain(timeout=1.0):
            out.write(json.dumps(message, ensure_ascii=False, default=str) + '\n')
            out.flush()


if __name__ == '__main__':
    print(f'[READER] Starting standalone reader (pid={os.getpid()}, ppid={os.getppid()})')
    pipeline = Pipeline(load_settings())
    subscriber = pipeline.hub.subscribe()
    pipeline.start()
    try:
        print_messages(subscriber)
    except KeyboardInterrupt:
        print('[READER] Interrupted, exiting')
    except Exception as e:
        print(f'[READER] Exception: {e}', file=sys.stderr)
        raise
    finally:
        pipeline.hub.unsubscribe(subscriber)
        pipeline.stop(timeout=2.0)
