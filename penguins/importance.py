"""
Variable Importance Module - Phase 5
=====================================

Explains the final model: which measurements drive the predicted sex.

Functions:
    - model_importance: Impurity importance (forests) or |coefficient| (logistic)
    - permutation_importance_table: Drop in ROC AUC when a column is shuffled
    - odds_ratios: Coefficients and odds ratios of a logistic regression
    - plot_importance: Horizontal bar chart of an importance table
    - explain_model: All of the above, saved to disk
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.inspection import permutation_importance

from .model import PenguinClassifier

logger = logging.getLogger(__name__)


def model_importance(model: PenguinClassifier) -> pd.DataFrame:
    """
    Model-based importance of each encoded predictor.

    Args:
        model: Fitted classifier

    Returns:
        DataFrame with columns variable, importance (descending)
    """
    names = model.get_feature_names()
    estimator = model.estimator

    if hasattr(estimator, "feature_importances_"):
        values = np.asarray(estimator.feature_importances_)
        kind = "impurity"
    elif hasattr(estimator, "coef_"):
        values = np.abs(np.asarray(estimator.coef_)).ravel()
        kind = "abs_coefficient"
    else:
        raise ValueError(f"{type(estimator).__name__} exposes no importance scores")

    table = pd.DataFrame({'variable': names, 'importance': values, 'type': kind})
    return table.sort_values('importance', ascending=False, kind='mergesort').reset_index(drop=True)


def permutation_importance_table(
    model: PenguinClassifier,
    X: pd.DataFrame,
    y: pd.Series,
    n_repeats: int = 10,
    scoring: str = "roc_auc",
    random_state: Optional[int] = 42,
    n_jobs: Optional[int] = None
) -> pd.DataFrame:
    """
    Permutation importance of the original (unencoded) columns.

    Args:
        model: Fitted classifier
        X: Predictors to permute (usually the test set)
        y: True labels
        n_repeats: Shuffles per column
        scoring: Scorer name
        random_state: Random seed
        n_jobs: Parallel jobs (None uses the registered backend)

    Returns:
        DataFrame with columns variable, importance, std (descending)
    """
    X = X[model.feature_columns]
    result = permutation_importance(
        model.workflow, X, y,
        scoring=scoring,
        n_repeats=n_repeats,
        random_state=random_state,
        n_jobs=n_jobs
    )

    table = pd.DataFrame({
        'variable': list(X.columns),
        'importance': result.importances_mean,
        'std': result.importances_std,
        'type': f'permutation_{scoring}'
    })
    return table.sort_values('importance', ascending=False, kind='mergesort').reset_index(drop=True)


def odds_ratios(model: PenguinClassifier) -> pd.DataFrame:
    """
    Logistic regression coefficients on the log-odds scale and as odds ratios.

    Odds are of the second class (model.classes_[1]); numeric predictors are
    per standard deviation when the recipe normalizes.
    """
    estimator = model.estimator
    if not hasattr(estimator, "coef_") or not hasattr(estimator, "intercept_"):
        raise ValueError(f"Odds ratios need a logistic regression, got {type(estimator).__name__}")

    names = ['(Intercept)'] + model.get_feature_names()
    estimates = np.concatenate([np.atleast_1d(estimator.intercept_), np.ravel(estimator.coef_)])

    table = pd.DataFrame({
        'term': names,
        'estimate': estimates,
        'odds_ratio': np.exp(estimates)
    })
    table.attrs['event'] = str(model.classes_[1])
    return table


def plot_importance(
    table: pd.DataFrame,
    top_n: int = 15,
    title: str = 'Variable Importance',
    figsize: Tuple[int, int] = (8, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Horizontal bar chart of an importance table, largest at the top.

    Args:
        table: Table with variable and importance columns
        top_n: Number of variables to show
        title: Plot title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    data = table.head(top_n).iloc[::-1]

    fig, ax = plt.subplots(figsize=figsize)

    xerr = data['std'].values if 'std' in data.columns else None
    ax.barh(data['variable'], data['importance'], xerr=xerr,
            color='steelblue', alpha=0.8, capsize=3)

    ax.set_xlabel('Importance')
    ax.set_title(title, fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Importance plot saved to {save_path}")

    return fig


def explain_model(
    model: PenguinClassifier,
    X: pd.DataFrame,
    y: pd.Series,
    output_dir: str = "reports/",
    n_repeats: int = 10,
    random_state: Optional[int] = 42,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Compute and save every importance view of the fitted model.

    Args:
        model: Fitted classifier
        X: Predictors for permutation importance
        y: True labels
        output_dir: Directory for output files
        n_repeats: Shuffles per column
        random_state: Random seed
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary with the importance tables and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    tables_dir = output_dir / "metrics"
    figures_dir.mkdir(parents=True, exist_ok=True)
    tables_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING VARIABLE IMPORTANCE (Phase 5)")
    logger.info("=" * 60)

    result = {'figures': [], 'tables': []}

    result['model_importance'] = model_importance(model)
    result['model_importance'].to_csv(tables_dir / "model_importance.csv", index=False)
    result['tables'].append("model_importance.csv")
    plot_importance(
        result['model_importance'],
        title=f"Variable Importance ({result['model_importance']['type'].iloc[0]})",
        save_path=str(figures_dir / "vip_model.png")
    )
    result['figures'].append("vip_model.png")

    logger.info("Computing permutation importance...")
    result['permutation_importance'] = permutation_importance_table(
        model, X, y, n_repeats=n_repeats, random_state=random_state
    )
    result['permutation_importance'].to_csv(tables_dir / "permutation_importance.csv", index=False)
    result['tables'].append("permutation_importance.csv")
    plot_importance(
        result['permutation_importance'],
        title='Permutation Importance (drop in ROC AUC)',
        save_path=str(figures_dir / "vip_permutation.png")
    )
    result['figures'].append("vip_permutation.png")

    if hasattr(model.estimator, "coef_"):
        result['odds_ratios'] = odds_ratios(model)
        result['odds_ratios'].to_csv(tables_dir / "odds_ratios.csv", index=False)
        result['tables'].append("odds_ratios.csv")
    else:
        result['odds_ratios'] = None

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("VARIABLE IMPORTANCE COMPLETE")
    logger.info(f"  Top variable: {result['model_importance']['variable'].iloc[0]}")
    logger.info("=" * 60)

    return result


def print_importance_report(result: Dict[str, Any], top_n: int = 10) -> None:
    """
    Print the importance tables to console.

    Args:
        result: Output of explain_model
        top_n: Rows to show per table
    """
    print("\n" + "=" * 60)
    print("VARIABLE IMPORTANCE")
    print("=" * 60)

    print("\nModel-based:")
    print("-" * 60)
    print(result['model_importance'].head(top_n)[['variable', 'importance']]
          .to_string(index=False, float_format=lambda v: f"{v:.4f}"))

    print("\nPermutation (original columns):")
    print("-" * 60)
    print(result['permutation_importance'].head(top_n)[['variable', 'importance', 'std']]
          .to_string(index=False, float_format=lambda v: f"{v:.4f}"))

    if result.get('odds_ratios') is not None:
        table = result['odds_ratios']
        print(f"\nOdds ratios (event: {table.attrs.get('event', 'N/A')}):")
        print("-" * 60)
        print(table.to_string(index=False, float_format=lambda v: f"{v:.4f}"))

    print("=" * 60 + "\n")
