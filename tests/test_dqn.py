"""
Tests for the DQN agent.
"""
import numpy as np
import pytest

from algorithms.dqn import DQNAgent, Experience, agent_from_config
from track_sim.config import Config
from tests.conftest import ScriptedRNG


def make_experience(reward=0.0, action=1, done=False, state=(0.1, 0.2, 0.3)):
    state = np.array(state, dtype=np.float32)
    return Experience(state, action, reward, state.copy(), done)


class TestAction:
    """Test epsilon-greedy action selection."""

    def test_action_in_range(self):
        agent = DQNAgent(state_size=3, hidden_layers=[8], seed=0)
        for _ in range(50):
            assert agent.act(np.zeros(3, dtype=np.float32)) in (0, 1, 2)

    def test_greedy_when_epsilon_zero(self):
        agent = DQNAgent(state_size=3, hidden_layers=[8], epsilon=0.0, seed=0)
        agent.q_values = lambda state: np.array([0.0, 0.0, 1.0])
        assert all(agent.act(np.zeros(3)) == 2 for _ in range(20))

    def test_exploration_frequency(self):
        """Non-greedy picks appear with probability epsilon * 2/3."""
        agent = DQNAgent(state_size=3, hidden_layers=[8], epsilon=0.3, seed=0)
        agent.q_values = lambda state: np.array([0.0, 0.0, 1.0])
        draws = 5000
        non_greedy = sum(agent.act(np.zeros(3)) != 2 for _ in range(draws))
        assert abs(non_greedy / draws - 0.2) < 0.03

    def test_q_values_shape(self):
        agent = DQNAgent(state_size=3, hidden_layers=[8], seed=0)
        q = agent.q_values(np.array([0.1, 0.5, 0.9], dtype=np.float32))
        assert q.shape == (3,)
        assert np.all(np.isfinite(q))


class TestReplayBuffer:
    """Test the bounded experience buffer."""

    def test_evicts_oldest_first(self):
        agent = DQNAgent(state_size=3, hidden_layers=[8], seed=0)
        for i in range(10050):
            agent.remember(make_experience(reward=float(i)))
        assert len(agent.memory) == 10000
        assert agent.memory[0].reward == 50.0
        assert agent.memory[-1].reward == 10049.0

    def test_replay_below_batch_size_is_noop(self):
        agent = DQNAgent(state_size=3, hidden_layers=[8], seed=0)
        for _ in range(31):
            agent.remember(make_experience())
        params_before = agent.q_params
        assert agent.replay() is None
        assert agent.epsilon == 1.0
        assert agent.train_steps == 0
        assert agent.q_params is params_before


class TestReplay:
    """Test the training step."""

    def test_replay_decays_epsilon_and_returns_loss(self):
        agent = DQNAgent(state_size=3, hidden_layers=[8], seed=0)
        for i in range(32):
            agent.remember(make_experience(reward=1.0, done=i % 2 == 0))
        loss = agent.replay()
        assert isinstance(loss, float)
        assert np.isfinite(loss)
        assert agent.epsilon == pytest.approx(0.995)
        assert agent.train_steps == 1

    def test_epsilon_floor(self):
        agent = DQNAgent(state_size=3, hidden_layers=[8], batch_size=4, epsilon=0.0502, seed=0)
        for _ in range(4):
            agent.remember(make_experience())
        agent.replay()
        assert agent.epsilon == 0.05
        agent.replay()
        assert agent.epsilon == 0.05

    def test_epsilon_below_floor_never_rises(self):
        """Greedy agents stay greedy; epsilon is non-increasing across replays."""
        agent = DQNAgent(state_size=3, hidden_layers=[8], batch_size=4, epsilon=0.0, seed=0)
        for _ in range(4):
            agent.remember(make_experience())
        for _ in range(3):
            agent.replay()
            assert agent.epsilon == 0.0

    def test_epsilon_monotone(self):
        agent = DQNAgent(state_size=3, hidden_layers=[8], batch_size=4, epsilon=0.06,
                         epsilon_decay=0.9, seed=0)
        for _ in range(4):
            agent.remember(make_experience())
        history = [agent.epsilon]
        for _ in range(5):
            agent.replay()
            history.append(agent.epsilon)
        assert all(later <= earlier for earlier, later in zip(history, history[1:]))
        assert history[-1] == 0.05

    def test_samples_with_replacement_from_whole_buffer(self):
        rng = ScriptedRNG(ints=[0, 0, 3])
        agent = DQNAgent(state_size=3, hidden_layers=[8], batch_size=32, seed=0, rng=rng)
        for _ in range(40):
            agent.remember(make_experience())
        agent.replay()
        assert rng.randint_calls == [40] * 32

    def test_only_taken_action_moves(self):
        """Masked targets leave other actions' outputs driven only by shared weights."""
        agent = DQNAgent(state_size=3, hidden_layers=[8], batch_size=4, learning_rate=0.01, seed=0)
        for _ in range(4):
            agent.remember(make_experience(reward=5.0, action=0, done=True))
        state = agent.memory[0].state
        before = agent.q_values(state)
        for _ in range(20):
            agent.replay()
        after = agent.q_values(state)
        assert abs(after[0] - 5.0) < abs(before[0] - 5.0)

    def test_converges_on_terminal_transition(self):
        agent = DQNAgent(state_size=3, hidden_layers=[16], batch_size=8, learning_rate=0.01, seed=0)
        for _ in range(8):
            agent.remember(make_experience(reward=1.0, action=1, done=True))
        for _ in range(300):
            agent.replay()
        q = agent.q_values(agent.memory[0].state)
        assert q[1] == pytest.approx(1.0, abs=0.1)


class TestAgentFromConfig:
    """Test building the agent from configuration."""

    def test_reads_dqn_section(self):
        config = Config(data={'dqn': {'hidden_layers': [4], 'buffer_size': 50, 'batch_size': 8,
                                      'epsilon': 0.5, 'gamma': 0.9}})
        agent = agent_from_config(config, state_size=3)
        assert agent.memory.maxlen == 50
        assert agent.batch_size == 8
        assert agent.epsilon == 0.5
        assert agent.gamma == 0.9
        assert agent.action_size == 3

    def test_defaults(self):
        agent = agent_from_config(Config(data={}), state_size=3)
        assert agent.memory.maxlen == 10000
        assert agent.batch_size == 32
        assert agent.epsilon_min == 0.05
