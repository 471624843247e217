"""
Test Suite for Data Loader Module
==================================

Tests for loading, cleaning and validating the penguins table.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from penguins.data_loader import (
    load_config, load_data, clean_penguins, validate_data, get_data_summary
)


class TestLoadConfig:
    """Tests for YAML configuration loading."""

    def test_load_config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("random_state: 7\nresampling:\n  method: bootstrap\n  n: 25\n")

        config = load_config(str(config_file))

        assert config["random_state"] == 7
        assert config["resampling"] == {"method": "bootstrap", "n": 25}

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_repository_config_is_valid(self):
        config = load_config(str(Path(__file__).parent.parent / "config" / "config.yaml"))

        assert config["target"] == "sex"
        assert set(config["models"]) == {"logistic_regression", "random_forest"}
        # default source works offline
        assert config["data"]["source"] == "palmerpenguins"


class TestLoadData:
    """Tests for CSV loading."""

    def test_load_csv_with_na_strings(self, tmp_path, raw_penguins):
        path = tmp_path / "penguins.csv"
        raw_penguins.to_csv(path, index=False, na_rep="NA")

        df = load_data(str(path))

        assert df.shape == raw_penguins.shape
        assert df["sex"].isna().sum() == 3
        assert df["body_mass_g"].dtype.kind == "f"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "nope.csv"))

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "bad.csv"
        pd.DataFrame({"species": ["Adelie"], "sex": ["male"]}).to_csv(path, index=False)

        with pytest.raises(ValueError, match="Missing required columns"):
            load_data(str(path))

    def test_unknown_source(self):
        with pytest.raises(ValueError, match="Unknown data source"):
            load_data("x.csv", source="parquet")

    def test_palmerpenguins_source(self):
        df = load_data(source="palmerpenguins")

        assert len(df) == 344
        assert df["sex"].isna().sum() == 11
        assert set(df["species"]) == {"Adelie", "Chinstrap", "Gentoo"}


class TestCleanPenguins:
    """Tests for cleaning."""

    def test_drops_missing_sex_and_lowercases(self, raw_penguins):
        cleaned = clean_penguins(raw_penguins)

        assert len(cleaned) == len(raw_penguins) - 3
        assert set(cleaned["sex"].unique()) == {"female", "male"}
        assert list(cleaned.index) == list(range(len(cleaned)))

    def test_drops_listed_columns(self, raw_penguins):
        cleaned = clean_penguins(raw_penguins, drop_columns=("year",))

        assert "year" not in cleaned.columns
        assert "island" in cleaned.columns

    def test_ignores_absent_columns(self, penguins):
        cleaned = clean_penguins(penguins, drop_columns=("year", "island"))
        assert list(cleaned.columns) == list(penguins.columns)

    def test_does_not_modify_input(self, raw_penguins):
        before = raw_penguins.copy()
        clean_penguins(raw_penguins)
        pd.testing.assert_frame_equal(raw_penguins, before)

    def test_all_missing_raises(self, penguins):
        penguins["sex"] = np.nan
        with pytest.raises(ValueError, match="No rows left"):
            clean_penguins(penguins)


class TestValidateData:
    """Tests for validation."""

    def test_clean_data_is_valid(self, penguins):
        is_valid, report = validate_data(penguins)

        assert is_valid
        assert report["classes"] == ["female", "male"]
        assert report["issues"] == []

    def test_single_class_fails(self, penguins):
        penguins["sex"] = "male"

        is_valid, report = validate_data(penguins, strict=False)

        assert not is_valid
        assert any("Expected 2 classes" in issue for issue in report["issues"])

    def test_strict_raises(self, penguins):
        penguins.loc[0, "body_mass_g"] = -1.0
        with pytest.raises(ValueError, match="validation failed"):
            validate_data(penguins, strict=True)

    def test_missing_values_reported(self, raw_penguins):
        _, report = validate_data(raw_penguins, strict=False)
        assert report["missing_values"]["sex"] == 3


def test_get_data_summary(penguins):
    summary = get_data_summary(penguins)

    assert summary["shape"] == penguins.shape
    assert summary["class_counts"] == {"female": 80, "male": 80}
    assert "body_mass_g" in summary["statistics"]
