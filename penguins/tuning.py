"""
Hyperparameter Tuning Module - Phase 3
=======================================

Grid search of each workflow over the training resamples.

Features:
    - Parameter grids from the config, finalized against the predictor count
    - Multi-metric grid search (ROC AUC, accuracy, sensitivity, specificity)
    - Metric tables: mean, n and standard error per configuration
    - Best / one-standard-error selection
    - Tuning plots
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.metrics import make_scorer, recall_score
from sklearn.model_selection import GridSearchCV
from sklearn.pipeline import Pipeline

from .model import MODEL_STEP, build_model_spec, build_workflow
from .preprocessing import resample_ids

logger = logging.getLogger(__name__)

AVAILABLE_METRICS = ("roc_auc", "accuracy", "sensitivity", "specificity")

DEFAULT_GRIDS = {
    "logistic_regression": {
        "C": [0.001, 0.01, 0.1, 1.0, 10.0, 100.0],
        "penalty": ["l1", "l2"],
    },
    "random_forest": {
        "max_features": [1, 2, 3, 4, 5, 6, 7],
        "min_samples_leaf": [1, 5, 10, 20, 40],
    },
}


@dataclass
class TuneResults:
    """Fitted grid search plus the labels needed to report on it."""
    search: GridSearchCV
    model_name: str
    metrics: List[str]
    param_names: List[str]
    configs: List[str]
    resample_ids: List[str]
    positive_class: Any = None
    workflow: Optional[Pipeline] = field(default=None, repr=False)

    @property
    def n_resamples(self) -> int:
        return len(self.resample_ids)


def build_param_grid(model_name: str, config: Dict[str, Any]) -> Dict[str, List[Any]]:
    """
    Tuning grid for a model, keyed by Pipeline parameter name.

    Args:
        model_name: Model specification name
        config: Configuration dictionary ('models.<name>.grid' overrides defaults)

    Returns:
        Dictionary like {'model__C': [...], ...}
    """
    grid = config.get('models', {}).get(model_name, {}).get('grid')
    if grid is None:
        if model_name not in DEFAULT_GRIDS:
            raise ValueError(f"No tuning grid for model: {model_name}")
        grid = DEFAULT_GRIDS[model_name]

    return {f"{MODEL_STEP}__{name}": list(values) for name, values in grid.items()}


def finalize_grid(param_grid: Dict[str, List[Any]], n_features: int) -> Dict[str, List[Any]]:
    """
    Drop max_features values larger than the number of predictors.

    Args:
        param_grid: Grid from build_param_grid
        n_features: Predictor count after the recipe

    Returns:
        New grid; max_features keeps at least one value
    """
    finalized = {}
    for name, values in param_grid.items():
        if name.endswith("max_features"):
            kept = [
                v for v in values
                if not isinstance(v, (int, np.integer)) or isinstance(v, bool) or v <= n_features
            ]
            if len(kept) < len(values):
                logger.info(f"{name}: limited to {n_features} predictors, kept {kept}")
            values = kept or [n_features]
        finalized[name] = list(values)
    return finalized


def build_scorers(
    metrics: Sequence[str],
    classes: Sequence[Any],
    positive_class: Any = None
) -> Dict[str, Any]:
    """
    Scorers for GridSearchCV.

    Sensitivity is recall of the positive class, specificity is recall of
    the other class.
    """
    unknown = [m for m in metrics if m not in AVAILABLE_METRICS]
    if unknown:
        raise ValueError(f"Unknown metrics: {unknown}. Choose from: {', '.join(AVAILABLE_METRICS)}")

    classes = list(classes)
    if len(classes) != 2:
        raise ValueError(f"Binary target required, found classes {classes}")
    if positive_class is None:
        positive_class = classes[0]
    if positive_class not in classes:
        raise ValueError(f"Positive class '{positive_class}' not in {classes}")
    negative_class = classes[1] if classes[0] == positive_class else classes[0]

    available = {
        "roc_auc": "roc_auc",
        "accuracy": "accuracy",
        "sensitivity": make_scorer(recall_score, pos_label=positive_class),
        "specificity": make_scorer(recall_score, pos_label=negative_class),
    }
    return {m: available[m] for m in metrics}


def tune_grid(
    workflow: Pipeline,
    X: pd.DataFrame,
    y: pd.Series,
    resamples,
    param_grid: Dict[str, List[Any]],
    metrics: Sequence[str] = ("roc_auc", "accuracy"),
    positive_class: Any = None,
    n_jobs: Optional[int] = None,
    model_name: str = "model"
) -> TuneResults:
    """
    Evaluate every grid configuration on every resample.

    n_jobs=None defers to the active joblib parallel backend.

    Args:
        workflow: Unfitted recipe + model Pipeline
        X: Training predictors
        y: Training labels
        resamples: Splitter (StratifiedKFold or BootstrapSplit)
        param_grid: Grid keyed by Pipeline parameter name
        metrics: Metric names to compute
        positive_class: Event level for sensitivity/specificity
        n_jobs: Parallel jobs for the search
        model_name: Label for logs and reports

    Returns:
        TuneResults
    """
    metrics = list(metrics)
    classes = sorted(pd.Series(y).unique().tolist())
    scoring = build_scorers(metrics, classes, positive_class)
    if positive_class is None:
        positive_class = classes[0]

    search = GridSearchCV(
        workflow,
        param_grid=param_grid,
        scoring=scoring,
        refit=False,
        cv=resamples,
        n_jobs=n_jobs,
        error_score=np.nan
    )

    n_configs = int(np.prod([len(v) for v in param_grid.values()])) if param_grid else 1
    logger.info(
        f"Tuning {model_name}: {n_configs} configurations × "
        f"{resamples.get_n_splits()} resamples"
    )
    search.fit(X, y)

    width = max(2, len(str(n_configs)))
    configs = [f"Model{i + 1:0{width}d}" for i in range(len(search.cv_results_['params']))]
    param_names = [name.split("__", 1)[1] for name in param_grid]

    return TuneResults(
        search=search,
        model_name=model_name,
        metrics=metrics,
        param_names=param_names,
        configs=configs,
        resample_ids=resample_ids(resamples),
        positive_class=positive_class,
        workflow=workflow
    )


def collect_metrics(results: TuneResults, summarize: bool = True) -> pd.DataFrame:
    """
    Metric table for every configuration.

    Args:
        results: Output of tune_grid
        summarize: If True, one row per (configuration, metric) with mean, n
            and std_err; otherwise one row per (configuration, resample, metric)

    Returns:
        DataFrame with the parameter columns first
    """
    cv = results.search.cv_results_
    rows = []

    for i, params in enumerate(cv['params']):
        param_values = {name.split("__", 1)[1]: value for name, value in params.items()}
        config = results.configs[i]

        for metric in results.metrics:
            estimates = np.array([
                cv[f"split{k}_test_{metric}"][i] for k in range(results.n_resamples)
            ], dtype=float)

            if summarize:
                finite = estimates[~np.isnan(estimates)]
                n = len(finite)
                mean = float(finite.mean()) if n else np.nan
                std_err = float(finite.std(ddof=1) / np.sqrt(n)) if n > 1 else np.nan
                rows.append({
                    **param_values,
                    'metric': metric,
                    'estimator': 'binary',
                    'mean': mean,
                    'n': n,
                    'std_err': std_err,
                    'config': config
                })
            else:
                for resample_id, estimate in zip(results.resample_ids, estimates):
                    rows.append({
                        **param_values,
                        'id': resample_id,
                        'metric': metric,
                        'estimate': float(estimate),
                        'config': config
                    })

    return pd.DataFrame(rows)


def _metric_table(results: TuneResults, metric: str) -> pd.DataFrame:
    if metric not in results.metrics:
        raise ValueError(f"Metric '{metric}' was not computed. Available: {results.metrics}")
    table = collect_metrics(results)
    return table[table['metric'] == metric].dropna(subset=['mean'])


def show_best(results: TuneResults, metric: str = "roc_auc", n: int = 5) -> pd.DataFrame:
    """Top n configurations by mean metric (higher is better)."""
    table = _metric_table(results, metric)
    return table.sort_values('mean', ascending=False, kind='mergesort').head(n).reset_index(drop=True)


def select_best(results: TuneResults, metric: str = "roc_auc") -> Dict[str, Any]:
    """
    Parameters of the configuration with the best mean metric.

    Returns:
        Dictionary of bare parameter names plus 'config'
    """
    best = show_best(results, metric, n=1)
    if best.empty:
        raise ValueError(f"No successful resamples for metric '{metric}'")

    row = best.iloc[0]
    selected = {name: row[name] for name in results.param_names}
    selected['config'] = row['config']
    return selected


def select_by_one_std_err(
    results: TuneResults,
    metric: str = "roc_auc",
    order_by: Sequence[str] = ()
) -> Dict[str, Any]:
    """
    Simplest configuration within one standard error of the best.

    Args:
        results: Output of tune_grid
        metric: Metric to select on
        order_by: Parameters from simplest to most complex; prefix a name
            with '-' when larger values are simpler (e.g. '-min_samples_leaf')

    Returns:
        Dictionary of bare parameter names plus 'config'
    """
    table = _metric_table(results, metric)
    if table.empty:
        raise ValueError(f"No successful resamples for metric '{metric}'")

    best = table.loc[table['mean'].idxmax()]
    std_err = best['std_err'] if pd.notna(best['std_err']) else 0.0
    threshold = best['mean'] - std_err
    candidates = table[table['mean'] >= threshold]

    columns = [name.lstrip('-') for name in order_by]
    unknown = [name for name in columns if name not in results.param_names]
    if unknown:
        raise ValueError(f"Unknown parameters in order_by: {unknown}")

    if columns:
        ascending = [not name.startswith('-') for name in order_by]
        candidates = candidates.sort_values(columns, ascending=ascending, kind='mergesort')

    row = candidates.iloc[0]
    selected = {name: row[name] for name in results.param_names}
    selected['config'] = row['config']
    return selected


def tune_models(
    prep_result: Dict[str, Any],
    config: Dict[str, Any],
    n_jobs: Optional[int] = None
) -> Dict[str, Any]:
    """
    Tune every configured model and pick the overall winner.

    Args:
        prep_result: Output of preprocess_pipeline
        config: Configuration dictionary
        n_jobs: Parallel jobs (None uses the registered backend)

    Returns:
        Dictionary containing per-model results, best parameters,
        the selected model name and the selection metric
    """
    tuning_config = config.get('tuning', {})
    metrics = tuning_config.get('metrics', list(AVAILABLE_METRICS))
    select_metric = tuning_config.get('select_metric', 'roc_auc')
    selection = tuning_config.get('selection', 'best')
    positive_class = config.get('positive_class')
    random_state = config.get('random_state', 42)

    models_config = config.get('models', {name: {} for name in DEFAULT_GRIDS})
    model_names = [
        name for name, settings in models_config.items()
        if (settings or {}).get('enabled', True)
    ]
    if not model_names:
        raise ValueError("No models enabled in configuration")

    logger.info("=" * 60)
    logger.info("STARTING HYPERPARAMETER TUNING (Phase 3)")
    logger.info("=" * 60)

    n_features = len(prep_result['feature_names'])
    per_model = {}

    for name in model_names:
        settings = models_config.get(name) or {}
        spec = build_model_spec(name, settings.get('fixed', {}), random_state)
        workflow = build_workflow(prep_result['recipe'], spec)
        grid = finalize_grid(build_param_grid(name, config), n_features)

        results = tune_grid(
            workflow,
            prep_result['X_train'],
            prep_result['y_train'],
            prep_result['resamples'],
            grid,
            metrics=metrics,
            positive_class=positive_class,
            n_jobs=n_jobs,
            model_name=name
        )

        if selection == 'one_std_err':
            best_params = select_by_one_std_err(
                results, select_metric, settings.get('order_by', [])
            )
        else:
            best_params = select_best(results, select_metric)

        best_row = _metric_table(results, select_metric)
        best_row = best_row[best_row['config'] == best_params['config']].iloc[0]

        per_model[name] = {
            'results': results,
            'workflow': workflow,
            'best_params': best_params,
            'best_score': float(best_row['mean']),
            'best_std_err': float(best_row['std_err']),
            'metrics': collect_metrics(results)
        }
        logger.info(
            f"{name}: best {select_metric} = {best_row['mean']:.4f} "
            f"(± {best_row['std_err']:.4f}) with {best_params}"
        )

    best_model = max(per_model, key=lambda name: per_model[name]['best_score'])

    logger.info("=" * 60)
    logger.info(f"TUNING COMPLETE - selected model: {best_model}")
    logger.info("=" * 60)

    return {
        'models': per_model,
        'best_model': best_model,
        'best_params': per_model[best_model]['best_params'],
        'select_metric': select_metric,
        'positive_class': next(iter(per_model.values()))['results'].positive_class
    }


def _numeric_param(table: pd.DataFrame, param_names: List[str]) -> Optional[str]:
    for name in param_names:
        values = table[name]
        if values.map(lambda v: isinstance(v, (int, float, np.number)) and not isinstance(v, bool)).all():
            return name
    return None


def plot_tuning_results(
    results: TuneResults,
    figsize_per_metric: Sequence[float] = (5, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Mean ± standard error of each metric across the tuning grid.

    The first numeric parameter goes on the x axis; the remaining
    parameters define the lines.

    Args:
        results: Output of tune_grid
        figsize_per_metric: Size of each metric panel
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    table = collect_metrics(results)
    n_metrics = len(results.metrics)

    fig, axes = plt.subplots(
        1, n_metrics,
        figsize=(figsize_per_metric[0] * n_metrics, figsize_per_metric[1])
    )
    axes = np.atleast_1d(axes)

    x_param = _numeric_param(table, results.param_names)
    line_params = [name for name in results.param_names if name != x_param]

    for ax, metric in zip(axes, results.metrics):
        data = table[table['metric'] == metric]

        if line_params:
            groups = data.groupby(line_params, sort=True)
        else:
            groups = [("all", data)]

        for key, group in groups:
            x = group[x_param] if x_param else group['config']
            order = np.argsort(np.asarray(x, dtype=float)) if x_param else np.arange(len(group))
            label = ", ".join(
                f"{p}={v}" for p, v in zip(line_params, np.atleast_1d(key))
            ) if line_params else None
            ax.errorbar(
                np.asarray(x)[order],
                group['mean'].values[order],
                yerr=group['std_err'].fillna(0).values[order],
                marker='o', capsize=3, linewidth=1.2, alpha=0.8, label=label
            )

        if x_param:
            x_values = data[x_param].astype(float)
            if (x_values > 0).all() and x_values.max() / x_values.min() >= 100:
                ax.set_xscale('log')
            ax.set_xlabel(x_param)
        else:
            ax.set_xlabel('Configuration')
            ax.tick_params(axis='x', rotation=90)

        ax.set_ylabel('Mean')
        ax.set_title(metric, fontsize=11, fontweight='bold')
        if line_params and len(data) > 1:
            ax.legend(fontsize=7)

    plt.suptitle(f'Tuning Results: {results.model_name}', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Tuning plot saved to {save_path}")

    return fig


def print_tuning_report(tuning: Dict[str, Any], n: int = 5) -> None:
    """
    Print the best configurations of every tuned model.

    Args:
        tuning: Output of tune_models
        n: Configurations to show per model
    """
    metric = tuning['select_metric']

    print("\n" + "=" * 70)
    print("HYPERPARAMETER TUNING REPORT")
    print("=" * 70)

    for name, model_result in tuning['models'].items():
        results = model_result['results']
        print(f"\n{name} - top {n} by {metric} "
              f"({results.n_resamples} resamples):")
        print("-" * 70)
        best = show_best(results, metric, n)
        columns = results.param_names + ['mean', 'std_err', 'n', 'config']
        print(best[columns].to_string(index=False, float_format=lambda v: f"{v:.4f}"))

    print("-" * 70)
    print(f"\nSelected model: {tuning['best_model']}")
    print(f"Selected parameters: {tuning['best_params']}")
    print("=" * 70 + "\n")
