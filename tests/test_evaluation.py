"""
Test Suite for Evaluation Module
=================================

Tests for test set metrics, the confusion matrix and last_fit.
"""

import json

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from penguins.evaluation import (
    calculate_metrics,
    collect_predictions,
    confusion_matrix_table,
    evaluate_model,
    last_fit,
)
from penguins.model import build_model_spec, build_workflow, finalize_workflow
from penguins.preprocessing import preprocess_pipeline


@pytest.fixture
def fit_result(penguins):
    """last_fit of a logistic regression on the synthetic split."""
    prep = preprocess_pipeline(penguins, n_resamples=3)
    workflow = finalize_workflow(
        build_workflow(prep['recipe'], build_model_spec("logistic_regression")),
        {"C": 1.0, "penalty": "l2", "config": "Model01"}
    )
    return last_fit(
        workflow,
        prep['X_train'], prep['y_train'],
        prep['X_test'], prep['y_test'],
        positive_class="female",
        model_name="logistic_regression"
    )


class TestCalculateMetrics:
    """Tests for metric calculation."""

    def test_known_values(self):
        y_true = np.array(["female", "female", "female", "male", "male", "male"])
        y_pred = np.array(["female", "female", "male", "male", "male", "female"])

        metrics = calculate_metrics(y_true, y_pred, positive_class="female")

        assert metrics['accuracy'] == pytest.approx(4 / 6)
        assert metrics['sensitivity'] == pytest.approx(2 / 3)
        assert metrics['specificity'] == pytest.approx(2 / 3)
        assert metrics['precision'] == pytest.approx(2 / 3)
        assert metrics['roc_auc'] is None
        assert metrics['n_samples'] == 6

    def test_positive_class_swaps_sensitivity(self):
        y_true = np.array(["female", "female", "male", "male"])
        y_pred = np.array(["female", "female", "female", "male"])

        as_female = calculate_metrics(y_true, y_pred, positive_class="female")
        as_male = calculate_metrics(y_true, y_pred, positive_class="male")

        assert as_female['sensitivity'] == pytest.approx(1.0)
        assert as_female['specificity'] == pytest.approx(0.5)
        assert as_male['sensitivity'] == pytest.approx(0.5)
        assert as_male['specificity'] == pytest.approx(1.0)

    def test_roc_auc_from_probabilities(self):
        y_true = np.array(["female", "male", "female", "male"])
        y_pred = np.array(["female", "male", "female", "male"])
        y_prob = np.array([[0.9, 0.1], [0.2, 0.8], [0.7, 0.3], [0.4, 0.6]])

        metrics = calculate_metrics(
            y_true, y_pred, y_prob, classes=["female", "male"], positive_class="female"
        )

        assert metrics['roc_auc'] == pytest.approx(1.0)
        assert metrics['kappa'] == pytest.approx(1.0)
        assert metrics['mcc'] == pytest.approx(1.0)

    def test_default_positive_class_is_first(self):
        metrics = calculate_metrics(np.array(["b", "a"]), np.array(["b", "a"]))
        assert metrics['positive_class'] == "a"

    def test_rejects_multiclass(self):
        with pytest.raises(ValueError, match="Binary target"):
            calculate_metrics(np.array(["a", "b", "c"]), np.array(["a", "b", "c"]))

    def test_unknown_positive_class(self):
        with pytest.raises(ValueError, match="not in"):
            calculate_metrics(np.array(["a", "b"]), np.array(["a", "b"]), positive_class="c")


class TestConfusionMatrix:
    """Tests for the confusion matrix table."""

    def test_layout(self):
        y_true = ["female", "female", "male", "male", "male"]
        y_pred = ["female", "male", "male", "male", "female"]

        table = confusion_matrix_table(y_true, y_pred)

        assert table.index.name == "truth"
        assert table.columns.name == "prediction"
        assert table.loc["female", "female"] == 1
        assert table.loc["female", "male"] == 1
        assert table.loc["male", "female"] == 1
        assert table.loc["male", "male"] == 2
        assert table.values.sum() == 5

    def test_fixed_labels_include_unseen_class(self):
        table = confusion_matrix_table(["male"], ["male"], labels=["female", "male"])

        assert list(table.index) == ["female", "male"]
        assert table.loc["female"].sum() == 0


class TestLastFit:
    """Tests for the final fit and test set evaluation."""

    def test_result_contents(self, fit_result, penguins):
        assert set(fit_result) == {'model', 'predictions', 'metrics', 'confusion_matrix'}
        assert fit_result['model']._is_fitted
        assert fit_result['metrics']['positive_class'] == "female"
        assert fit_result['metrics']['n_samples'] == len(fit_result['predictions'])

    def test_predictions_columns(self, fit_result):
        predictions = fit_result['predictions']

        assert list(predictions.columns) == ['row', 'pred_female', 'pred_male', 'pred_class', 'sex']
        np.testing.assert_allclose(
            predictions[['pred_female', 'pred_male']].sum(axis=1), 1.0
        )

    def test_confusion_matrix_matches_predictions(self, fit_result):
        table = fit_result['confusion_matrix']
        predictions = fit_result['predictions']

        assert table.values.sum() == len(predictions)
        correct = (predictions['pred_class'] == predictions['sex']).sum()
        assert np.trace(table.values) == correct

    def test_model_separates_sexes(self, fit_result):
        assert fit_result['metrics']['roc_auc'] > 0.8

    def test_collect_predictions_without_truth(self, fit_result, penguins):
        X = penguins.drop(columns=['sex']).head(5)

        predictions = collect_predictions(fit_result['model'], X)

        assert 'sex' not in predictions.columns
        assert list(predictions['row']) == list(X.index)


class TestEvaluateModel:
    """Tests for the evaluation report."""

    def test_writes_reports(self, fit_result, tmp_path):
        result = evaluate_model(fit_result, output_dir=str(tmp_path))

        assert Path(result['metrics_file']).exists()
        assert Path(result['predictions_file']).exists()
        for figure in result['figures']:
            assert (tmp_path / "figures" / figure).exists()
        assert "eval_roc_curve.png" in result['figures']

        with open(result['metrics_file']) as f:
            saved = json.load(f)
        assert saved['metrics']['accuracy'] == pytest.approx(fit_result['metrics']['accuracy'])
        assert set(saved['confusion_matrix']) == {"female", "male"}

        saved_predictions = pd.read_csv(result['predictions_file'])
        assert len(saved_predictions) == len(fit_result['predictions'])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
