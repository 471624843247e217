"""
Test Suite for Variable Importance Module
==========================================
"""

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from penguins.importance import (
    explain_model,
    model_importance,
    odds_ratios,
    permutation_importance_table,
)
from penguins.model import train_model
from penguins.preprocessing import build_recipe, infer_feature_types

CONFIG = {
    "random_state": 0,
    "models": {"random_forest": {"fixed": {"n_estimators": 40}}},
}


def _train(penguins, model_name, params=None):
    X = penguins.drop(columns=["sex"])
    y = penguins["sex"]
    recipe = build_recipe(*infer_feature_types(X))
    return train_model(X, y, recipe, CONFIG, model_name=model_name, params=params), X, y


@pytest.fixture
def forest(penguins):
    return _train(penguins, "random_forest", {"max_features": 2})


@pytest.fixture
def logistic(penguins):
    return _train(penguins, "logistic_regression", {"C": 1.0})


class TestModelImportance:
    """Tests for model-based importance."""

    def test_forest_impurity(self, forest):
        model, _, _ = forest

        table = model_importance(model)

        assert len(table) == len(model.get_feature_names())
        assert (table['type'] == 'impurity').all()
        assert table['importance'].sum() == pytest.approx(1.0)
        assert table['importance'].is_monotonic_decreasing

    def test_logistic_coefficients(self, logistic):
        model, _, _ = logistic

        table = model_importance(model)

        assert (table['type'] == 'abs_coefficient').all()
        assert (table['importance'] >= 0).all()


class TestPermutationImportance:
    """Tests for permutation importance on the original columns."""

    def test_original_columns(self, forest):
        model, X, y = forest

        table = permutation_importance_table(model, X, y, n_repeats=3, random_state=0)

        assert set(table['variable']) == set(X.columns)
        assert list(table.columns) == ['variable', 'importance', 'std', 'type']
        assert table['importance'].is_monotonic_decreasing
        # Sex is learnable from size, so at least one measurement matters
        assert table['importance'].iloc[0] > 0


class TestOddsRatios:
    """Tests for logistic regression odds ratios."""

    def test_table(self, logistic):
        model, _, _ = logistic

        table = odds_ratios(model)

        assert table['term'].iloc[0] == '(Intercept)'
        assert len(table) == len(model.get_feature_names()) + 1
        np.testing.assert_allclose(table['odds_ratio'], np.exp(table['estimate']))
        assert table.attrs['event'] == "male"

    def test_larger_penguins_are_male(self, logistic):
        model, _, _ = logistic

        table = odds_ratios(model).set_index('term')
        measurements = ['bill_length_mm', 'bill_depth_mm', 'flipper_length_mm', 'body_mass_g']

        assert table.loc[measurements, 'estimate'].sum() > 0

    def test_rejects_forest(self, forest):
        model, _, _ = forest

        with pytest.raises(ValueError, match="logistic regression"):
            odds_ratios(model)


class TestExplainModel:
    """Tests for the saved importance report."""

    def test_forest_outputs(self, forest, tmp_path):
        model, X, y = forest

        result = explain_model(model, X, y, output_dir=str(tmp_path), n_repeats=2)

        assert result['odds_ratios'] is None
        assert (tmp_path / "metrics" / "model_importance.csv").exists()
        assert (tmp_path / "metrics" / "permutation_importance.csv").exists()
        assert not (tmp_path / "metrics" / "odds_ratios.csv").exists()
        for figure in result['figures']:
            assert (tmp_path / "figures" / figure).exists()

    def test_logistic_writes_odds_ratios(self, logistic, tmp_path):
        model, X, y = logistic

        result = explain_model(model, X, y, output_dir=str(tmp_path), n_repeats=2)

        assert result['odds_ratios'] is not None
        assert "odds_ratios.csv" in result['tables']
        assert (tmp_path / "metrics" / "odds_ratios.csv").exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
