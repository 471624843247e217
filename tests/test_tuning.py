"""
Test Suite for Tuning Module
=============================

Tests for grids, grid search, metric tables and selection.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from penguins.model import build_model_spec, build_workflow
from penguins.preprocessing import build_recipe, infer_feature_types, make_resamples, preprocess_pipeline
from penguins.tuning import (
    TuneResults,
    build_param_grid,
    build_scorers,
    collect_metrics,
    finalize_grid,
    plot_tuning_results,
    select_best,
    select_by_one_std_err,
    show_best,
    tune_grid,
    tune_models,
)

METRICS = ["roc_auc", "accuracy", "sensitivity", "specificity"]


@pytest.fixture
def lr_results(penguins):
    """Logistic regression tuned over 4 configurations and 3 folds."""
    X = penguins.drop(columns=["sex"])
    y = penguins["sex"]
    workflow = build_workflow(
        build_recipe(*infer_feature_types(X)),
        build_model_spec("logistic_regression")
    )
    grid = {"model__C": [0.001, 1.0], "model__penalty": ["l1", "l2"]}

    return tune_grid(
        workflow, X, y, make_resamples("vfold", 3, random_state=0), grid,
        metrics=METRICS, positive_class="female", model_name="logistic_regression"
    )


class TestGrids:
    """Tests for grid construction."""

    def test_default_grid(self):
        grid = build_param_grid("random_forest", {})

        assert set(grid) == {"model__max_features", "model__min_samples_leaf"}

    def test_config_grid_overrides(self):
        config = {"models": {"logistic_regression": {"grid": {"C": [0.1, 1.0]}}}}

        assert build_param_grid("logistic_regression", config) == {"model__C": [0.1, 1.0]}

    def test_unknown_model_grid(self):
        with pytest.raises(ValueError, match="No tuning grid"):
            build_param_grid("svm", {})

    def test_finalize_grid_limits_max_features(self):
        grid = {"model__max_features": [1, 4, 7, 9, "sqrt"], "model__min_samples_leaf": [1, 50]}

        finalized = finalize_grid(grid, n_features=7)

        assert finalized["model__max_features"] == [1, 4, 7, "sqrt"]
        assert finalized["model__min_samples_leaf"] == [1, 50]

    def test_finalize_grid_keeps_one_value(self):
        finalized = finalize_grid({"model__max_features": [10, 12]}, n_features=3)
        assert finalized["model__max_features"] == [3]


class TestScorers:
    """Tests for scorer construction."""

    def test_unknown_metric(self):
        with pytest.raises(ValueError, match="Unknown metrics"):
            build_scorers(["brier"], ["female", "male"])

    def test_positive_class_must_exist(self):
        with pytest.raises(ValueError, match="not in"):
            build_scorers(["sensitivity"], ["female", "male"], positive_class="unknown")

    def test_needs_binary_target(self):
        with pytest.raises(ValueError, match="Binary target"):
            build_scorers(["accuracy"], ["a", "b", "c"])


class TestTuneGrid:
    """Tests for tune_grid and the metric tables."""

    def test_results_labels(self, lr_results):
        assert isinstance(lr_results, TuneResults)
        assert lr_results.configs == ["Model01", "Model02", "Model03", "Model04"]
        assert lr_results.param_names == ["C", "penalty"]
        assert lr_results.resample_ids == ["Fold01", "Fold02", "Fold03"]
        assert lr_results.positive_class == "female"

    def test_collect_metrics_summarized(self, lr_results):
        table = collect_metrics(lr_results)

        assert len(table) == 4 * len(METRICS)
        assert list(table.columns) == [
            "C", "penalty", "metric", "estimator", "mean", "n", "std_err", "config"
        ]
        assert (table["n"] == 3).all()
        assert table["mean"].between(0, 1).all()

    def test_collect_metrics_unsummarized(self, lr_results):
        table = collect_metrics(lr_results, summarize=False)

        assert len(table) == 4 * 3 * len(METRICS)
        assert set(table["id"]) == {"Fold01", "Fold02", "Fold03"}

    def test_summary_matches_resamples(self, lr_results):
        summary = collect_metrics(lr_results)
        detail = collect_metrics(lr_results, summarize=False)

        row = summary[(summary["config"] == "Model02") & (summary["metric"] == "roc_auc")].iloc[0]
        estimates = detail[(detail["config"] == "Model02") & (detail["metric"] == "roc_auc")]["estimate"]

        assert row["mean"] == pytest.approx(estimates.mean())
        assert row["std_err"] == pytest.approx(estimates.std(ddof=1) / np.sqrt(3))

    def test_show_best_sorted(self, lr_results):
        best = show_best(lr_results, "roc_auc", n=3)

        assert len(best) == 3
        assert best["mean"].is_monotonic_decreasing

    def test_select_best(self, lr_results):
        best = select_best(lr_results, "roc_auc")
        top = show_best(lr_results, "roc_auc", n=1).iloc[0]

        assert set(best) == {"C", "penalty", "config"}
        assert best["config"] == top["config"]

    def test_select_best_unknown_metric(self, lr_results):
        with pytest.raises(ValueError, match="was not computed"):
            select_best(lr_results, "brier")

    def test_select_by_one_std_err(self, lr_results):
        table = collect_metrics(lr_results)
        roc = table[table["metric"] == "roc_auc"]
        best = roc.loc[roc["mean"].idxmax()]

        selected = select_by_one_std_err(lr_results, "roc_auc", order_by=["C"])
        chosen = roc[roc["config"] == selected["config"]].iloc[0]

        assert chosen["mean"] >= best["mean"] - best["std_err"]
        assert selected["C"] <= best["C"]

    def test_select_by_one_std_err_unknown_param(self, lr_results):
        with pytest.raises(ValueError, match="Unknown parameters"):
            select_by_one_std_err(lr_results, "roc_auc", order_by=["mtry"])

    def test_plot_tuning_results(self, lr_results, tmp_path):
        path = tmp_path / "tune.png"

        fig = plot_tuning_results(lr_results, save_path=str(path))

        assert path.exists()
        assert len(fig.axes) == len(METRICS)


class TestTuneModels:
    """Tests for tuning every configured model."""

    def test_tune_models_picks_a_winner(self, penguins):
        prep = preprocess_pipeline(penguins, n_resamples=3)
        config = {
            "random_state": 0,
            "positive_class": "female",
            "tuning": {"metrics": ["roc_auc", "accuracy"], "select_metric": "roc_auc"},
            "models": {
                "logistic_regression": {"grid": {"C": [0.1, 1.0]}},
                "random_forest": {
                    "fixed": {"n_estimators": 20},
                    "grid": {"max_features": [2, 20], "min_samples_leaf": [5]}
                },
            },
        }

        tuning = tune_models(prep, config)

        assert set(tuning["models"]) == {"logistic_regression", "random_forest"}
        assert tuning["best_model"] in tuning["models"]
        assert tuning["select_metric"] == "roc_auc"
        rf = tuning["models"]["random_forest"]
        # max_features=20 exceeds the 7 encoded predictors and is dropped
        assert rf["results"].configs == ["Model01"]
        best_scores = {name: r["best_score"] for name, r in tuning["models"].items()}
        assert tuning["models"][tuning["best_model"]]["best_score"] == max(best_scores.values())

    def test_disabled_models_are_skipped(self, penguins):
        prep = preprocess_pipeline(penguins, n_resamples=3)
        config = {
            "tuning": {"metrics": ["roc_auc"], "selection": "one_std_err"},
            "models": {
                "logistic_regression": {"grid": {"C": [0.01, 1.0]}, "order_by": ["C"]},
                "random_forest": {"enabled": False},
            },
        }

        tuning = tune_models(prep, config)

        assert list(tuning["models"]) == ["logistic_regression"]

    def test_no_models_enabled(self, penguins):
        prep = preprocess_pipeline(penguins, n_resamples=3)
        config = {"models": {"random_forest": {"enabled": False}}}

        with pytest.raises(ValueError, match="No models enabled"):
            tune_models(prep, config)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
