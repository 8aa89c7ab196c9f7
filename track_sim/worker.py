"""Background policy worker: inference and training off the tick loop.

The worker owns its agent; the loop talks to it only through message
envelopes posted to an inbox:

    {'type': 'act', 'request_id': int, 'state': array}   -> action response
    {'type': 'experience', 'data': Experience}           fire-and-forget
    {'type': 'train'}                                    fire-and-forget

Each ``act`` request is paired with a ``concurrent.futures.Future`` under its
request id; the response envelope resolves exactly that future.
"""

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Dict, NamedTuple, Optional

import numpy as np

from algorithms.dqn import DQNAgent, Experience

logger = logging.getLogger(__name__)

_STOP = object()


class ActionRequest(NamedTuple):
    request_id: int
    future: Future


class PolicyWorker:
    """Serves action requests and runs replay on a daemon thread."""

    def __init__(self, agent: DQNAgent, name: str = 'policy-worker'):
        self.agent = agent
        self.name = name
        self._inbox: 'queue.Queue[Any]' = queue.Queue()
        self._pending: Dict[int, Future] = {}
        self._lock = threading.Lock()
        self._next_request_id = 0
        self._thread: Optional[threading.Thread] = None

        self.train_count = 0
        self.last_loss: Optional[float] = None
        self.errors = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> 'PolicyWorker':
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = 5.0):
        """Stop the thread after it drains queued messages; cancel what is left pending."""
        if self._thread is None:
            return
        self._inbox.put(_STOP)
        self._thread.join(timeout)
        self._thread = None

        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for future in pending:
            future.cancel()

    def __enter__(self) -> 'PolicyWorker':
        return self.start()

    def __exit__(self, exc_type, exc_value, traceback):
        self.stop()

    def post(self, message: Any):
        self._inbox.put(message)

    def request_action(self, state: np.ndarray) -> ActionRequest:
        """Ask for an action; the returned future resolves to an int."""
        future = Future()
        with self._lock:
            self._next_request_id += 1
            request_id = self._next_request_id
            self._pending[request_id] = future
        self.post({'type': 'act', 'request_id': request_id, 'state': state})
        return ActionRequest(request_id, future)

    def abandon(self, request_id: int) -> bool:
        """Drop a pending request; a late response for it is discarded."""
        with self._lock:
            future = self._pending.pop(request_id, None)
        if future is None:
            return False
        future.cancel()
        return True

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def send_experience(self, experience: Experience):
        self.post({'type': 'experience', 'data': experience})

    def request_training(self):
        self.post({'type': 'train'})

    def handle_message(self, message: Any) -> Optional[Dict[str, Any]]:
        """Apply one envelope to the agent; returns the response envelope, if any.

        Raises:
            ValueError: For envelopes that are not dicts or have an unknown type
            KeyError: For envelopes missing a required field
        """
        if not isinstance(message, dict):
            raise ValueError(f"Message must be a dict, got {type(message).__name__}")

        kind = message.get('type')
        if kind == 'experience':
            self.agent.remember(message['data'])
            return None
        if kind == 'train':
            loss = self.agent.replay()
            if loss is not None:
                self.train_count += 1
                self.last_loss = loss
            return None
        if kind == 'act':
            action = self.agent.act(message['state'])
            return {'type': 'action', 'request_id': message['request_id'], 'action': action}
        raise ValueError(f"Unknown message type: {kind!r}")

    def _run(self):
        while True:
            message = self._inbox.get()
            if message is _STOP:
                break
            try:
                response = self.handle_message(message)
            except Exception as e:
                self.errors += 1
                logger.exception("Policy worker failed to handle message")
                self._fail_request(message, e)
                continue
            if response is not None:
                self._deliver(response)

    def _deliver(self, response: Dict[str, Any]):
        with self._lock:
            future = self._pending.pop(response['request_id'], None)
        if future is None:
            logger.debug("Discarding response for abandoned request %s", response['request_id'])
            return
        future.set_result(response['action'])

    def _fail_request(self, message: Any, error: Exception):
        if not isinstance(message, dict) or message.get('type') != 'act':
            return
        with self._lock:
            future = self._pending.pop(message.get('request_id'), None)
        if future is not None:
            future.set_exception(error)
