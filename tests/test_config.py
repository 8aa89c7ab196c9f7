"""
Tests for the YAML configuration layer.
"""
from track_sim.config import Config


class TestConfig:
    """Test dot-path access and defaults."""

    def test_default_file_loads(self):
        config = Config()
        assert config.get('dqn.car_count') == 10
        assert config.get('evolution.car_count') == 50
        assert config.get('track.outer') == [100, 100, 700, 500]
        assert config.get('training.train_every') == 10

    def test_missing_key_returns_default(self):
        config = Config(data={'dqn': {'gamma': 0.9}})
        assert config.get('dqn.gamma') == 0.9
        assert config.get('dqn.batch_size', 32) == 32
        assert config.get('nothing.here') is None

    def test_null_means_default(self):
        config = Config()
        assert config.get('track.finish_radius', 7) == 7
        assert config.get('dqn.max_steps', None) is None

    def test_traversing_a_scalar(self):
        config = Config(data={'seed': 3})
        assert config.get('seed.value', 'fallback') == 'fallback'

    def test_set_creates_sections(self):
        config = Config(data={})
        config.set('reward.finish', 50.0)
        config.set('seed', 1)
        assert config.get('reward.finish') == 50.0
        assert config.to_dict() == {'reward': {'finish': 50.0}, 'seed': 1}

    def test_load_from_file(self, tmp_path):
        path = tmp_path / 'custom.yaml'
        path.write_text("seed: 5\ndqn:\n  car_count: 3\n")
        config = Config(str(path))
        assert config.get('seed') == 5
        assert config.get('dqn.car_count') == 3
        assert config.get('evolution.car_count', 50) == 50

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text("")
        assert Config(str(path)).to_dict() == {}
