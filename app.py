"""Mission Control comms backend.

Serves the agent-to-agent communication stream of an OpenClaw deployment.
Background pollers tail per-agent session logs and the shared Antfarm event
file; every connected Socket.IO client gets the replay backfill followed by
live events. A small REST surface exposes readiness, capabilities and the
recent comms log.
"""

from flask import Flask, request
from flask_socketio import SocketIO
import threading

from comms import manual_event
from pipeline import Pipeline
from settings import load_settings

app = Flask(__name__)
socketio = SocketIO(app, cors_allowed_origins="*")

settings = load_settings()
pipeline = Pipeline(settings)

# Socket.IO sid -> Subscriber
subscribers = {}
subscribers_lock = threading.Lock()
bootstrap_lock = threading.Lock()

MAX_COMMS_LIMIT = 500


def ensure_pipeline_started():
    """Thread-safe bootstrap for the background pollers."""
    if settings.disable_internal_reader:
        return
    with bootstrap_lock:
        pipeline.start()


@app.before_request
def bootstrap_before_request():  # pragma: no cover
    """Ensure background pollers are started before handling requests."""
    ensure_pipeline_started()


@app.route('/ready')
def ready():
    """Return lightweight readiness status for frontend bootstrap retries."""
    return {'ready': bool(pipeline.started)}


@app.route('/capabilities')
def capabilities():
    """Expose monitored agents and replay/subscriber counters."""
    hub = pipeline.hub
    return {
        'ready': bool(pipeline.started),
        'agents': pipeline.watcher.agents(),
        'poll_interval_ms': settings.poll_interval_ms,
        'replay': {
            'capacity': hub.comms.capacity,
            'agent_comms': len(hub.comms),
            'antfarm_events': len(hub.antfarm) if hub.antfarm_backfill_enabled else 0,
        },
        'subscribers': hub.subscriber_count,
    }


@app.route('/api/config')
def public_config():
    """Non-sensitive values for the frontend."""
    return {'title': settings.title, 'agents': list(settings.agent_ids)}


def parse_limit(raw, default=50):
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return default
    return max(0, min(limit, MAX_COMMS_LIMIT))


@app.route('/api/agent-comms', methods=['GET'])
def list_agent_comms():
    """Return the most recent comms events, newest first."""
    limit = parse_limit(request.args.get('limit'))
    return {'communications': pipeline.hub.recent(limit)}


@app.route('/api/agent-comms', methods=['POST'])
def log_agent_comms():
    """Record a manually reported communication and broadcast it."""
    body = request.get_json(silent=True) or {}
    sender = body.get('from')
    target = body.get('to')
    message = body.get('message')
    if not sender or not target or not message:
        return {'error': 'Missing required fields'}, 400
    event = manual_event(sender, target, message, body.get('status'))
    pipeline.hub.publish(event)
    return {'success': True, 'entry': event.to_dict()}


def pump_subscriber(sid, subscriber):
    """Forward one subscriber's outbox to its Socket.IO client until it disconnects."""
    while subscriber.is_open:
        for message in subscriber.drain(timeout=1.0):
            socketio.emit('message', message, room=sid)


@socketio.on('connect')
def handle_connect():
    """Subscribe a new websocket client: backfill first, then live events."""
    sid = request.sid
    ensure_pipeline_started()
    subscriber = pipeline.hub.subscribe()
    with subscribers_lock:
        subscribers[sid] = subscriber
    print(f'[WS] Client connected ({sid}), {pipeline.hub.subscriber_count} subscribers')
    socketio.start_background_task(pump_subscriber, sid, subscriber)


@socketio.on('disconnect')
def handle_disconnect(*_args):
    """Drop the client's subscriber; it has no identity across reconnects."""
    with subscribers_lock:
        subscriber = subscribers.pop(request.sid, None)
    if subscriber is not None:
        pipeline.hub.unsubscribe(subscriber)
    print(f'[WS] Client disconnected ({request.sid})')


if __name__ == '__main__':  # pragma: no cover
    if not settings.disable_internal_reader:
        ensure_pipeline_started()
    else:
        print('[BOOT] Internal reader disabled by MC_DISABLE_INTERNAL_READER=1')
    print(f'{settings.title} running on http://localhost:{settings.port}')
    socketio.run(app, host='0.0.0.0', port=settings.port, allow_unsafe_werkzeug=True)
