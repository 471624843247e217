"""
Model Evaluation Module - Phase 4
==================================

Final fit on the training set and evaluation on the held-out test set.

Features:
    - last_fit: fit the finalized workflow once, predict the test set
    - Accuracy, ROC AUC, sensitivity, specificity, precision, F1, kappa, MCC
    - Confusion matrix table and heatmap
    - ROC curve
    - Evaluation report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import (
    accuracy_score,
    cohen_kappa_score,
    confusion_matrix,
    f1_score,
    matthews_corrcoef,
    precision_score,
    recall_score,
    roc_auc_score,
    roc_curve,
)
from sklearn.pipeline import Pipeline

from .data_loader import TARGET_COLUMN
from .model import PenguinClassifier

logger = logging.getLogger(__name__)


def _positive_and_negative(classes: List[Any], positive_class: Any = None) -> Tuple[Any, Any]:
    classes = list(classes)
    if len(classes) != 2:
        raise ValueError(f"Binary target required, found classes {classes}")
    if positive_class is None:
        positive_class = classes[0]
    if positive_class not in classes:
        raise ValueError(f"Positive class '{positive_class}' not in {classes}")
    negative_class = classes[1] if classes[0] == positive_class else classes[0]
    return positive_class, negative_class


def calculate_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    y_prob: Optional[np.ndarray] = None,
    classes: Optional[List[Any]] = None,
    positive_class: Any = None
) -> Dict[str, Any]:
    """
    Calculate classification metrics on a set of predictions.

    Args:
        y_true: True labels
        y_pred: Predicted labels
        y_prob: Probability of each class, columns ordered as classes (optional)
        classes: Class labels (default: sorted union of y_true and y_pred)
        positive_class: Event level (default: first class)

    Returns:
        Dictionary of metric name to value, plus counts
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)

    if classes is None:
        classes = sorted(set(y_true.tolist()) | set(y_pred.tolist()))
    classes = list(classes)
    positive, negative = _positive_and_negative(classes, positive_class)

    metrics = {
        'accuracy': float(accuracy_score(y_true, y_pred)),
        'sensitivity': float(recall_score(y_true, y_pred, pos_label=positive, zero_division=0)),
        'specificity': float(recall_score(y_true, y_pred, pos_label=negative, zero_division=0)),
        'precision': float(precision_score(y_true, y_pred, pos_label=positive, zero_division=0)),
        'f1': float(f1_score(y_true, y_pred, pos_label=positive, zero_division=0)),
        'kappa': float(cohen_kappa_score(y_true, y_pred)),
        'mcc': float(matthews_corrcoef(y_true, y_pred)),
        'roc_auc': None,
        'positive_class': str(positive),
        'n_samples': int(len(y_true))
    }

    if y_prob is not None and len(np.unique(y_true)) == 2:
        positive_scores = np.asarray(y_prob)[:, classes.index(positive)]
        metrics['roc_auc'] = float(roc_auc_score(y_true == positive, positive_scores))

    return metrics


def confusion_matrix_table(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    labels: Optional[List[Any]] = None
) -> pd.DataFrame:
    """
    Confusion matrix as a labelled table.

    Rows are the truth, columns the prediction.
    """
    if labels is None:
        labels = sorted(set(np.asarray(y_true).tolist()) | set(np.asarray(y_pred).tolist()))

    matrix = confusion_matrix(y_true, y_pred, labels=labels)
    table = pd.DataFrame(matrix, index=list(labels), columns=list(labels))
    table.index.name = 'truth'
    table.columns.name = 'prediction'
    return table


def collect_predictions(
    model: PenguinClassifier,
    X: pd.DataFrame,
    y: Optional[pd.Series] = None,
    target: str = TARGET_COLUMN
) -> pd.DataFrame:
    """
    Test set predictions: one probability column per class, the predicted
    class and, when y is given, the truth.

    Args:
        model: Fitted classifier
        X: Predictors
        y: True labels (optional)
        target: Name of the truth column

    Returns:
        DataFrame with columns row, pred_<class>..., pred_class[, target]
    """
    probabilities = model.predict_proba(X)
    predictions = pd.DataFrame({'row': X.index})

    for idx, cls in enumerate(model.classes_):
        predictions[f"pred_{cls}"] = probabilities[:, idx]

    predictions['pred_class'] = model.classes_[probabilities.argmax(axis=1)]

    if y is not None:
        predictions[target] = np.asarray(y)

    return predictions


def last_fit(
    workflow: Pipeline,
    X_train: pd.DataFrame,
    y_train: pd.Series,
    X_test: pd.DataFrame,
    y_test: pd.Series,
    positive_class: Any = None,
    model_name: str = "model",
    target: str = TARGET_COLUMN
) -> Dict[str, Any]:
    """
    Fit the finalized workflow on the training set and evaluate it once
    on the test set.

    Args:
        workflow: Finalized, unfitted workflow
        X_train, y_train: Training data
        X_test, y_test: Held-out test data
        positive_class: Event level for the metrics
        model_name: Label of the model specification
        target: Name of the truth column

    Returns:
        Dictionary containing the fitted model, test predictions,
        metrics and confusion matrix
    """
    logger.info(f"Last fit of {model_name}: {len(X_train)} train rows, {len(X_test)} test rows")

    model = PenguinClassifier(workflow, model_name=model_name)
    model.fit(X_train, y_train)

    predictions = collect_predictions(model, X_test, y_test, target)
    probabilities = predictions[[f"pred_{cls}" for cls in model.classes_]].values

    metrics = calculate_metrics(
        y_test,
        predictions['pred_class'].values,
        probabilities,
        classes=list(model.classes_),
        positive_class=positive_class
    )

    return {
        'model': model,
        'predictions': predictions,
        'metrics': metrics,
        'confusion_matrix': confusion_matrix_table(
            y_test, predictions['pred_class'].values, labels=list(model.classes_)
        )
    }


def plot_confusion_matrix(
    table: pd.DataFrame,
    figsize: Tuple[int, int] = (6, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Heatmap of a confusion matrix table.

    Args:
        table: Output of confusion_matrix_table
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    sns.heatmap(
        table,
        annot=True,
        fmt='d',
        cmap='Blues',
        cbar=False,
        linewidths=0.5,
        ax=ax
    )

    ax.set_xlabel('Prediction')
    ax.set_ylabel('Truth')
    accuracy = np.trace(table.values) / table.values.sum() if table.values.sum() else 0.0
    ax.set_title(f'Confusion Matrix (accuracy={accuracy:.3f})', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix saved to {save_path}")

    return fig


def plot_roc_curve(
    predictions: pd.DataFrame,
    positive_class: Any,
    target: str = TARGET_COLUMN,
    figsize: Tuple[int, int] = (6, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    ROC curve of the test set predictions.

    Args:
        predictions: Output of collect_predictions (with the truth column)
        positive_class: Event level
        target: Name of the truth column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    y_true = predictions[target].values == positive_class
    scores = predictions[f"pred_{positive_class}"].values

    fpr, tpr, _ = roc_curve(y_true, scores)
    auc = roc_auc_score(y_true, scores)

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(fpr, tpr, linewidth=2, label=f'ROC (AUC={auc:.3f})')
    ax.plot([0, 1], [0, 1], 'k--', linewidth=1, alpha=0.5, label='Chance')

    ax.set_xlabel('1 - Specificity')
    ax.set_ylabel('Sensitivity')
    ax.set_xlim([0, 1])
    ax.set_ylim([0, 1.02])
    ax.set_aspect('equal')
    ax.set_title(f'ROC Curve (event: {positive_class})', fontsize=12, fontweight='bold')
    ax.legend(loc='lower right')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"ROC curve saved to {save_path}")

    return fig


def plot_metric_summary(
    metrics: Dict[str, Any],
    figsize: Tuple[int, int] = (9, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of the test set metrics.

    Args:
        metrics: Output of calculate_metrics
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    names = ['accuracy', 'roc_auc', 'sensitivity', 'specificity', 'precision', 'f1', 'kappa', 'mcc']
    values = [metrics.get(name) for name in names]
    names = [n for n, v in zip(names, values) if v is not None]
    values = [v for v in values if v is not None]

    fig, ax = plt.subplots(figsize=figsize)

    colors = ['green' if v > 0.8 else 'orange' if v > 0.5 else 'red' for v in values]
    x = np.arange(len(names))
    ax.bar(x, values, 0.6, color=colors, alpha=0.8)
    for xi, v in zip(x, values):
        ax.text(xi, v + 0.02, f"{v:.3f}", ha='center', fontsize=8)

    ax.axhline(1.0, color='gray', linestyle=':', alpha=0.5)
    ax.set_xticks(x)
    ax.set_xticklabels(names, rotation=45, ha='right')
    ax.set_ylim([min(0, min(values) - 0.1) if values else 0, 1.1])
    ax.set_ylabel('Score')
    ax.set_title('Test Set Performance', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Metric summary plot saved to {save_path}")

    return fig


def evaluate_model(
    fit_result: Dict[str, Any],
    target: str = TARGET_COLUMN,
    output_dir: str = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run complete model evaluation and generate all reports.

    Args:
        fit_result: Output of last_fit
        target: Name of the truth column
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION (Phase 4)")
    logger.info("=" * 60)

    metrics = fit_result['metrics']
    table = fit_result['confusion_matrix']
    predictions = fit_result['predictions']

    # Save metrics to JSON
    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump({
            'metrics': metrics,
            'confusion_matrix': {str(k): {str(c): int(v) for c, v in row.items()}
                                 for k, row in table.to_dict(orient='index').items()}
        }, f, indent=2)
    logger.info(f"Metrics saved to {metrics_file}")

    predictions_file = metrics_dir / "test_predictions.csv"
    predictions.to_csv(predictions_file, index=False)

    figures = []

    logger.info("Generating confusion matrix...")
    plot_confusion_matrix(table, save_path=str(figures_dir / "eval_confusion_matrix.png"))
    figures.append("eval_confusion_matrix.png")

    if metrics.get('roc_auc') is not None:
        logger.info("Generating ROC curve...")
        plot_roc_curve(
            predictions, metrics['positive_class'], target,
            save_path=str(figures_dir / "eval_roc_curve.png")
        )
        figures.append("eval_roc_curve.png")

    logger.info("Generating metric summary...")
    plot_metric_summary(metrics, save_path=str(figures_dir / "eval_metric_summary.png"))
    figures.append("eval_metric_summary.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'metrics': metrics,
        'confusion_matrix': table,
        'figures': figures,
        'metrics_file': str(metrics_file),
        'predictions_file': str(predictions_file)
    }

    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    logger.info(f"  Accuracy: {metrics['accuracy']:.4f}")
    if metrics.get('roc_auc') is not None:
        logger.info(f"  ROC AUC: {metrics['roc_auc']:.4f}")
    logger.info("=" * 60)

    return result


def print_evaluation_report(metrics: Dict[str, Any], table: Optional[pd.DataFrame] = None) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        metrics: Metrics dictionary from calculate_metrics
        table: Confusion matrix table (optional)
    """
    print("\n" + "=" * 60)
    print("MODEL EVALUATION REPORT (TEST SET)")
    print("=" * 60)
    print(f"Event level: {metrics['positive_class']} | Samples: {metrics['n_samples']}")
    print("-" * 60)

    for name in ['accuracy', 'roc_auc', 'sensitivity', 'specificity', 'precision', 'f1', 'kappa', 'mcc']:
        value = metrics.get(name)
        shown = f"{value:.4f}" if value is not None else "N/A"
        print(f"  {name:<12} {shown}")

    if table is not None:
        print("\nConfusion Matrix:")
        print("-" * 60)
        print(table.to_string())

    score = metrics['roc_auc'] if metrics.get('roc_auc') is not None else metrics['accuracy']
    print("\nInterpretation:")
    if score > 0.9:
        print("  ✓ Excellent discrimination between sexes (> 0.9)")
    elif score > 0.8:
        print("  ✓ Good discrimination between sexes (> 0.8)")
    elif score > 0.6:
        print("  ⚠ Moderate discrimination (> 0.6)")
    else:
        print("  ✗ Poor discrimination - consider different predictors")

    print("=" * 60 + "\n")
