"""Driving policies: a DQN agent and an evolved neural controller."""

from .dqn import DQNAgent, Experience, agent_from_config
from .neuroevolution import NeuralNetwork, select_survivors, next_generation_brains, survivor_count

__all__ = ['DQNAgent', 'Experience', 'agent_from_config', 'NeuralNetwork',
           'select_survivors', 'next_generation_brains', 'survivor_count']
