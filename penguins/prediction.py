"""
Prediction Module - Phase 6
============================

Refits the selected workflow on every labelled penguin and predicts the
sex of the penguins recorded without one.

Features:
    - Predict sex with class probabilities
    - Fill in missing sex in the raw table
    - Export predictions to CSV
    - Prediction report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime

import pandas as pd

from .data_loader import TARGET_COLUMN, normalize_labels
from .model import PenguinClassifier, train_model

logger = logging.getLogger(__name__)


def predict_sex(model: PenguinClassifier, df: pd.DataFrame) -> pd.DataFrame:
    """
    Append class probabilities and the predicted sex to a frame.

    Args:
        model: Fitted classifier
        df: Rows containing the model's predictor columns

    Returns:
        Copy of df with pred_<class> columns and pred_class
    """
    result = df.copy()
    if result.empty:
        for cls in model.classes_:
            result[f"pred_{cls}"] = pd.Series(dtype=float)
        result['pred_class'] = pd.Series(dtype=object)
        return result

    probabilities = model.predict_proba(result)
    for idx, cls in enumerate(model.classes_):
        result[f"pred_{cls}"] = probabilities[:, idx]
    result['pred_class'] = model.classes_[probabilities.argmax(axis=1)]
    return result


def predict_missing_sex(
    model: PenguinClassifier,
    raw_df: pd.DataFrame,
    target: str = TARGET_COLUMN
) -> pd.DataFrame:
    """
    Predict sex for the raw rows where it was not recorded.

    Rows missing any predictor measurement are skipped; numeric values
    cannot be recovered for them.

    Args:
        model: Fitted classifier
        raw_df: Raw penguins table (before cleaning)
        target: Target column

    Returns:
        Predicted rows, indexed as in raw_df
    """
    model._check_fitted(raw_df)
    if target not in raw_df.columns:
        raise ValueError(f"Target column '{target}' not found")

    unknown = raw_df[normalize_labels(raw_df[target]).isna()]
    numeric = [col for col in model.feature_columns if pd.api.types.is_numeric_dtype(raw_df[col])]
    predictable = unknown.dropna(subset=numeric)

    skipped = len(unknown) - len(predictable)
    if skipped:
        logger.warning(f"Skipping {skipped} rows with missing measurements")

    logger.info(f"Predicting '{target}' for {len(predictable)} rows")
    return predict_sex(model, predictable)


def export_predictions(
    predictions: pd.DataFrame,
    output_path: str,
    include_timestamp: bool = True
) -> str:
    """
    Export predictions to CSV file.

    Args:
        predictions: Output of predict_sex
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"sex_predictions_{timestamp}.csv"
    else:
        filename = "sex_predictions.csv"

    filepath = output_path / filename
    predictions.to_csv(filepath, index_label='row_index')

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def generate_prediction_report(
    predictions: pd.DataFrame,
    model: PenguinClassifier,
    metrics: Optional[Dict[str, Any]] = None,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Generate a prediction report.

    Args:
        predictions: Output of predict_sex
        model: Classifier that produced the predictions
        metrics: Test set metrics of the selected workflow (optional)
        output_path: Path to save the report (optional)

    Returns:
        Report dictionary
    """
    report = {
        'generated_at': datetime.now().isoformat(),
        'model_name': model.model_name,
        'training_info': model.training_info,
        'predictions': {},
        'summary': {}
    }

    prob_columns = [f"pred_{cls}" for cls in model.classes_]
    for row_index, row in predictions.iterrows():
        report['predictions'][str(row_index)] = {
            'pred_class': str(row['pred_class']),
            **{col: float(row[col]) for col in prob_columns}
        }

    report['summary'] = {
        'n_predicted': int(len(predictions)),
        'class_counts': {
            str(k): int(v) for k, v in predictions['pred_class'].value_counts().items()
        } if len(predictions) else {},
        'mean_confidence': float(predictions[prob_columns].max(axis=1).mean())
        if len(predictions) else None
    }

    if metrics:
        report['test_metrics'] = {
            k: v for k, v in metrics.items() if isinstance(v, (int, float, str)) or v is None
        }

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2, default=str)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def run_final_prediction(
    clean_df: pd.DataFrame,
    raw_df: pd.DataFrame,
    recipe,
    config: Dict[str, Any],
    model_name: str,
    params: Dict[str, Any],
    metrics: Optional[Dict[str, Any]] = None,
    target: str = TARGET_COLUMN,
    output_dir: str = "data/predictions/",
    model_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the complete final prediction workflow.

    This function:
    1. Refits the selected workflow on 100% of the labelled rows
    2. Saves the fitted model
    3. Predicts sex for the rows recorded without one
    4. Exports results

    Args:
        clean_df: Cleaned, labelled table
        raw_df: Raw table including unlabelled rows
        recipe: Preprocessing recipe
        config: Configuration dictionary
        model_name: Selected model specification
        params: Selected hyperparameters
        metrics: Test set metrics of the selected workflow
        target: Target column
        output_dir: Directory for output files
        model_path: Where to save the refitted model (optional)

    Returns:
        Dictionary containing the model, predictions and file paths
    """
    logger.info("=" * 60)
    logger.info("STARTING FINAL PREDICTION (Phase 6)")
    logger.info("=" * 60)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    X_full = clean_df.drop(columns=[target])
    y_full = clean_df[target]

    logger.info(f"Refitting {model_name} on 100% of labelled data ({len(X_full)} rows)")
    model = train_model(
        X_full, y_full, recipe, config,
        model_name=model_name,
        params=params,
        save_path=model_path
    )

    predictions = predict_missing_sex(model, raw_df, target)

    csv_path = export_predictions(predictions, str(output_dir))

    report_path = output_dir / "prediction_report.json"
    report = generate_prediction_report(
        predictions, model, metrics, output_path=str(report_path)
    )

    result = {
        'model': model,
        'predictions': predictions,
        'csv_path': csv_path,
        'report_path': str(report_path),
        'model_path': model_path,
        'report': report
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Predicted rows: {len(predictions)}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any]) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
    """
    predictions = result['predictions']
    model = result['model']
    prob_columns = [f"pred_{cls}" for cls in model.classes_]

    print("\n" + "=" * 70)
    print("PREDICTED SEX FOR UNLABELLED PENGUINS")
    print("=" * 70)

    if predictions.empty:
        print("\nNo unlabelled penguins with complete measurements.")
    else:
        columns = [c for c in ['species', 'island'] if c in predictions.columns]
        shown = predictions[columns + prob_columns + ['pred_class']]
        print(shown.to_string(float_format=lambda v: f"{v:.3f}"))

    print("-" * 70)
    print(f"\nPredictions exported to: {result['csv_path']}")
    print(f"Full report saved to: {result['report_path']}")
    if result.get('model_path'):
        print(f"Model saved to: {result['model_path']}")

    print("=" * 70 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    print("Prediction module loaded successfully.")
    print("This module requires a tuned workflow to run.")
    print("Use the main.py pipeline script to execute the full workflow.")
