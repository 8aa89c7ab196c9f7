"""Deep Q-Network agent for discrete steering."""

import numpy as np
import jax
import jax.numpy as jnp
from jax import random
import haiku as hk
import optax
from typing import NamedTuple, Optional, Sequence
from collections import deque


class Experience(NamedTuple):
    """One transition used for off-policy learning."""
    state: np.ndarray
    action: int
    reward: float
    next_state: np.ndarray
    done: bool


class DQNAgent:
    """Epsilon-greedy Q-learning agent with a replay buffer.

    Training uses a masked target: the target row equals the network's
    current output with only the taken action's entry replaced by the TD
    target, so non-taken actions contribute no gradient.
    """

    def __init__(self,
                 state_size: int,
                 action_size: int = 3,
                 hidden_layers: Sequence[int] = (24, 24),
                 learning_rate: float = 1e-3,
                 gamma: float = 0.95,
                 epsilon: float = 1.0,
                 epsilon_decay: float = 0.995,
                 epsilon_min: float = 0.05,
                 buffer_size: int = 10000,
                 batch_size: int = 32,
                 seed: int = 42,
                 rng: Optional[np.random.RandomState] = None):
        """Initialize DQN agent.

        Args:
            state_size: State observation size (one entry per sensor)
            action_size: Number of discrete actions
            hidden_layers: Hidden layer widths of the Q-network
            learning_rate: Adam learning rate
            gamma: Discount factor
            epsilon: Initial exploration rate
            epsilon_decay: Multiplicative decay applied once per replay
            epsilon_min: Exploration floor
            buffer_size: Replay buffer capacity
            batch_size: Minibatch size, also the minimum buffer fill to train
            seed: Seed for network initialization
            rng: Random source for exploration and minibatch sampling
        """
        self.state_size = state_size
        self.action_size = action_size
        self.learning_rate = learning_rate
        self.gamma = gamma
        self.epsilon = epsilon
        self.epsilon_decay = epsilon_decay
        self.epsilon_min = epsilon_min
        self.batch_size = batch_size
        self.rng = rng if rng is not None else np.random.RandomState(seed)

        self.key = random.PRNGKey(seed)

        layer_sizes = list(hidden_layers)

        # Define Q-network
        def q_network(state):
            layers = []
            for hidden_size in layer_sizes:
                layers.extend([hk.Linear(hidden_size), jax.nn.relu])
            layers.append(hk.Linear(action_size))
            return hk.Sequential(layers)(state)

        self.q_net = hk.transform(q_network)

        # Initialize parameters
        dummy_state = jnp.zeros((1, state_size))
        self.key, subkey = random.split(self.key)
        self.q_params = self.q_net.init(subkey, dummy_state)

        # Optimizer
        self.optimizer = optax.adam(learning_rate=learning_rate)
        self.opt_state = self.optimizer.init(self.q_params)

        # Experience replay buffer, oldest entries evicted first
        self.memory = deque(maxlen=buffer_size)
        self.train_steps = 0

    def q_values(self, state: np.ndarray) -> np.ndarray:
        """Q-value estimate for every action in a single state."""
        state_batch = jnp.expand_dims(jnp.asarray(state, dtype=jnp.float32), axis=0)
        return np.asarray(self.q_net.apply(self.q_params, None, state_batch)[0])

    def act(self, state: np.ndarray) -> int:
        """Select action using epsilon-greedy policy."""
        if self.rng.random_sample() < self.epsilon:
            return int(self.rng.randint(self.action_size))
        return int(np.argmax(self.q_values(state)))

    def remember(self, experience: Experience):
        """Store a transition in the replay buffer."""
        self.memory.append(experience)

    def replay(self) -> Optional[float]:
        """Perform one training pass on a sampled minibatch.

        Returns:
            Loss value, or None if the buffer holds fewer than batch_size
            transitions (nothing is updated in that case)
        """
        if len(self.memory) < self.batch_size:
            return None

        # Independent uniform draws, duplicates allowed
        size = len(self.memory)
        batch = [self.memory[int(self.rng.randint(size))] for _ in range(self.batch_size)]

        states = jnp.asarray(np.stack([item.state for item in batch]), dtype=jnp.float32)
        next_states = jnp.asarray(np.stack([item.next_state for item in batch]), dtype=jnp.float32)

        q_current = np.array(self.q_net.apply(self.q_params, None, states))
        q_next = np.asarray(self.q_net.apply(self.q_params, None, next_states))

        targets = q_current.copy()
        for i, item in enumerate(batch):
            if item.done:
                td_target = item.reward
            else:
                td_target = item.reward + self.gamma * float(np.max(q_next[i]))
            targets[i, item.action] = td_target
        targets = jnp.asarray(targets)

        def loss_fn(params):
            predicted = self.q_net.apply(params, None, states)
            return jnp.mean((predicted - targets) ** 2)

        loss, grads = jax.value_and_grad(loss_fn)(self.q_params)
        updates, self.opt_state = self.optimizer.update(grads, self.opt_state, self.q_params)
        self.q_params = optax.apply_updates(self.q_params, updates)

        self.train_steps += 1

        # Decay epsilon; a value already at or below the floor is left alone
        if self.epsilon > self.epsilon_min:
            self.epsilon = max(self.epsilon_min, self.epsilon * self.epsilon_decay)

        return float(loss)


def agent_from_config(config, state_size: int, rng: Optional[np.random.RandomState] = None,
                      seed: int = 42) -> DQNAgent:
    """Build a DQNAgent from the ``dqn`` config section."""
    return DQNAgent(
        state_size,
        action_size=config.get('dqn.action_size', 3),
        hidden_layers=config.get('dqn.hidden_layers', [24, 24]),
        learning_rate=config.get('dqn.learning_rate', 1e-3),
        gamma=config.get('dqn.gamma', 0.95),
        epsilon=config.get('dqn.epsilon', 1.0),
        epsilon_decay=config.get('dqn.epsilon_decay', 0.995),
        epsilon_min=config.get('dqn.epsilon_min', 0.05),
        buffer_size=config.get('dqn.buffer_size', 10000),
        batch_size=config.get('dqn.batch_size', 32),
        seed=seed,
        rng=rng,
    )
