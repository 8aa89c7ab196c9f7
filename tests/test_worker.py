"""
Tests for the background policy worker.
"""
import logging
import threading

import numpy as np
import pytest

from algorithms.dqn import Experience
from track_sim.worker import PolicyWorker
from tests.conftest import StubAgent


class EchoAgent(StubAgent):
    """Answers the first state entry as the action."""

    def act(self, state):
        return int(state[0])


class TrainingAgent(StubAgent):

    def replay(self):
        self.replays += 1
        return 0.25


class BlockingAgent(StubAgent):

    def __init__(self, release):
        super().__init__()
        self.release = release

    def act(self, state):
        self.release.wait(5.0)
        return self.action


class BrokenAgent(StubAgent):

    def act(self, state):
        raise RuntimeError("inference failed")


class TestRequests:
    """Test action request correlation."""

    def test_responses_match_request_ids(self):
        with PolicyWorker(EchoAgent()) as worker:
            requests = [worker.request_action(np.array([i % 3])) for i in range(30)]
            answers = [request.future.result(timeout=2.0) for request in requests]
        assert answers == [i % 3 for i in range(30)]
        assert len({request.request_id for request in requests}) == 30

    def test_pending_cleared_after_response(self):
        with PolicyWorker(StubAgent(action=2)) as worker:
            request = worker.request_action(np.zeros(3))
            assert request.future.result(timeout=2.0) == 2
            assert worker.pending_count() == 0

    def test_abandon(self):
        worker = PolicyWorker(StubAgent())
        request = worker.request_action(np.zeros(3))
        assert worker.pending_count() == 1
        assert worker.abandon(request.request_id) is True
        assert worker.pending_count() == 0
        assert request.future.cancelled()
        assert worker.abandon(request.request_id) is False

        # The late response is dropped without touching the cancelled future
        worker.start()
        worker.stop()
        assert worker.errors == 0

    def test_stop_cancels_unanswered(self):
        release = threading.Event()
        worker = PolicyWorker(BlockingAgent(release)).start()
        request = worker.request_action(np.zeros(3))
        worker.stop(timeout=0.1)
        assert request.future.cancelled()
        assert worker.pending_count() == 0
        release.set()


class TestMessages:
    """Test fire-and-forget messages and error handling."""

    def test_experience_reaches_agent(self):
        agent = StubAgent()
        experience = Experience(np.zeros(3), 1, 0.5, np.zeros(3), False)
        with PolicyWorker(agent) as worker:
            worker.send_experience(experience)
        assert agent.memory == [experience]

    def test_train_runs_replay(self):
        agent = TrainingAgent()
        with PolicyWorker(agent) as worker:
            worker.request_training()
            worker.request_training()
        assert agent.replays == 2
        assert worker.train_count == 2
        assert worker.last_loss == 0.25

    def test_train_without_enough_data(self):
        agent = StubAgent()
        with PolicyWorker(agent) as worker:
            worker.request_training()
        assert agent.replays == 1
        assert worker.train_count == 0
        assert worker.last_loss is None

    def test_malformed_message_is_logged_and_worker_continues(self, caplog):
        with caplog.at_level(logging.ERROR, logger='track_sim.worker'):
            with PolicyWorker(StubAgent(action=0)) as worker:
                worker.post('not an envelope')
                worker.post({'type': 'teleport'})
                worker.post({'type': 'experience'})
                request = worker.request_action(np.zeros(3))
                assert request.future.result(timeout=2.0) == 0
        assert worker.errors == 3
        assert 'failed to handle message' in caplog.text

    def test_handle_message_rejects_unknown(self):
        worker = PolicyWorker(StubAgent())
        with pytest.raises(ValueError):
            worker.handle_message(['act'])
        with pytest.raises(ValueError):
            worker.handle_message({'type': 'unknown'})

    def test_failing_act_fails_the_request(self):
        with PolicyWorker(BrokenAgent()) as worker:
            request = worker.request_action(np.zeros(3))
            with pytest.raises(RuntimeError):
                request.future.result(timeout=2.0)
        assert worker.errors == 1
        assert worker.pending_count() == 0
