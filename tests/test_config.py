"""
Tests for the configuration module.

Tests defaults, validation, the config digest and loading from TOML files
and environment variables.
"""

import pytest

from trustdebt.config import DEFAULT_NOISE_TOKENS, PipelineConfig, SeedCategory, load_config
from trustdebt.errors import RunCancelled, TrustDebtError


class TestPipelineConfig:
    """Tests for PipelineConfig defaults and validation."""

    def test_defaults(self):
        """Test the documented defaults."""
        config = PipelineConfig()
        assert config.orthogonality_threshold == 0.10
        assert config.violation_bound == pytest.approx(0.12)
        assert config.balance_cv_bound == 0.30
        assert config.sophistication_discount == 0.30
        assert config.grade_bounds == (500.0, 1500.0, 3000.0)

    def test_invalid_values(self):
        """Test that out-of-range values are rejected."""
        with pytest.raises(ValueError):
            PipelineConfig(orthogonality_passes=0)
        with pytest.raises(ValueError):
            PipelineConfig(sophistication_discount=1.0)
        with pytest.raises(ValueError):
            PipelineConfig(grade_bounds=(1500.0, 500.0, 3000.0))
        with pytest.raises(ValueError):
            PipelineConfig(correlation_method="spearman")

    def test_too_many_seeds(self):
        """Test that seeds cannot outnumber the roots."""
        seeds = tuple(SeedCategory(f"s{i}", (f"k{i}",)) for i in range(3))
        with pytest.raises(ValueError):
            PipelineConfig(root_count=2, seed_categories=seeds)

    def test_digest_stable(self):
        """Test that equal configs share a digest and different ones do not."""
        assert PipelineConfig().digest() == PipelineConfig().digest()
        assert PipelineConfig().digest() != PipelineConfig(root_count=4).digest()
        assert len(PipelineConfig().digest()) == 64

    def test_with_overrides(self):
        """Test that overrides return a new config."""
        config = PipelineConfig()
        updated = config.with_overrides(workers=1)
        assert updated.workers == 1
        assert config.workers == 4


class TestLoadConfig:
    """Tests for loading configuration from files and the environment."""

    def test_no_file(self):
        """Test that a missing file gives the defaults."""
        assert load_config(None, environ={}) == PipelineConfig()

    def test_pyproject_table(self, tmp_path):
        """Test reading the [tool.trustdebt] table of a pyproject.toml."""
        path = tmp_path / "pyproject.toml"
        path.write_text(
            '[project]\nname = "x"\n\n'
            "[tool.trustdebt]\n"
            "root_count = 3\n"
            "orthogonality_threshold = 0.2\n"
            "grade_bounds = [100, 200, 300]\n",
            encoding="utf-8",
        )
        config = load_config(path, environ={})
        assert config.root_count == 3
        assert config.orthogonality_threshold == 0.2
        assert config.grade_bounds == (100.0, 200.0, 300.0)

    def test_standalone_file(self, tmp_path):
        """Test reading a trustdebt.toml with seeds and extra noise tokens."""
        path = tmp_path / "trustdebt.toml"
        path.write_text(
            'extra_noise_tokens = ["Ledger"]\n\n'
            "[[seed_categories]]\n"
            'name = "Trust"\n'
            'keywords = ["trust", "Debt"]\n',
            encoding="utf-8",
        )
        config = load_config(path, environ={})
        assert "ledger" in config.noise_tokens
        assert DEFAULT_NOISE_TOKENS <= config.noise_tokens
        assert config.seed_categories == (SeedCategory("Trust", ("trust", "debt")),)

    def test_unknown_key(self, tmp_path):
        """Test that an unknown key is rejected."""
        path = tmp_path / "trustdebt.toml"
        path.write_text("root_cout = 3\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path, environ={})

    def test_environment_overrides_file(self, tmp_path):
        """Test that environment variables take precedence over the file."""
        path = tmp_path / "trustdebt.toml"
        path.write_text("root_count = 3\n", encoding="utf-8")
        environ = {
            "TRUSTDEBT_ROOT_COUNT": "6",
            "TRUSTDEBT_CORRELATION_METHOD": "pearson",
            "TRUSTDEBT_GRADE_BOUNDS": "10,20,30",
        }
        config = load_config(path, environ=environ)
        assert config.root_count == 6
        assert config.correlation_method == "pearson"
        assert config.grade_bounds == (10.0, 20.0, 30.0)

    def test_invalid_environment_value(self):
        """Test that an out-of-range environment value is rejected."""
        with pytest.raises(ValueError):
            load_config(None, environ={"TRUSTDEBT_BALANCE_STEP": "2"})


class TestErrors:
    """Tests for the typed pipeline failures."""

    def test_stage_attached_once(self):
        """Test that at_stage fills in a missing stage index only."""
        error = RunCancelled("stop").at_stage(3)
        assert error.stage_index == 3
        error.at_stage(4)
        assert error.stage_index == 3

    def test_to_dict(self):
        """Test the serialized form of a failure."""
        error = TrustDebtError("boom", stage_index=1, detail={"k": 1})
        assert error.to_dict() == {
            "reason_code": "error",
            "stage_index": 1,
            "message": "boom",
            "detail": {"k": 1},
        }
