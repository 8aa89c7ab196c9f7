"""
Test suite for the track learning simulation.

This package contains tests for:
- Track predicates (rectangular and rasterized)
- Vehicle sensing, motion and reward shaping
- DQN agent (exploration, replay buffer, replay step)
- Neuroevolution (cloning, mutation, survivor selection)
- Episode loops (generation counter, training cadence, worker mode)
- Policy worker message handling
- Configuration, monitoring and rendering
"""
