"""
Model Module
============

Model specifications and workflows for penguin sex classification.

Features:
    - Logistic regression and random forest specifications
    - Workflow = preprocessing recipe + model in one Pipeline
    - Finalizing a workflow with tuned hyperparameters
    - Model persistence (save/load)
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.base import BaseEstimator, clone
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline

logger = logging.getLogger(__name__)

MODEL_NAMES = ("logistic_regression", "random_forest")

MODEL_STEP = "model"
PREPROCESSOR_STEP = "preprocessor"


def build_model_spec(
    name: str,
    params: Optional[Dict[str, Any]] = None,
    random_state: int = 42
) -> BaseEstimator:
    """
    Create an unfitted classifier.

    Args:
        name: 'logistic_regression' or 'random_forest'
        params: Fixed hyperparameters overriding the defaults
        random_state: Random seed for reproducibility

    Returns:
        Unfitted scikit-learn classifier
    """
    params = dict(params or {})

    if name == "logistic_regression":
        defaults = {
            'C': 1.0,
            'penalty': 'l2',
            'solver': 'liblinear',
            'max_iter': 1000,
            'random_state': random_state
        }
        defaults.update(params)
        return LogisticRegression(**defaults)

    if name == "random_forest":
        defaults = {
            'n_estimators': 500,
            'max_features': 'sqrt',
            'min_samples_leaf': 1,
            'random_state': random_state,
            'n_jobs': 1
        }
        defaults.update(params)
        return RandomForestClassifier(**defaults)

    raise ValueError(f"Unknown model: {name}. Choose from: {', '.join(MODEL_NAMES)}")


def build_workflow(recipe: ColumnTransformer, model_spec: BaseEstimator) -> Pipeline:
    """Bundle the recipe and the model spec into one unfitted Pipeline."""
    return Pipeline([
        (PREPROCESSOR_STEP, clone(recipe)),
        (MODEL_STEP, clone(model_spec)),
    ])


def finalize_workflow(workflow: Pipeline, params: Dict[str, Any]) -> Pipeline:
    """
    Return an unfitted copy of the workflow with tuned model parameters.

    Args:
        workflow: Workflow used during tuning
        params: Parameters keyed by bare name ('C') or step name ('model__C');
            a 'config' label, if present, is ignored

    Returns:
        New Pipeline ready for the final fit
    """
    final = clone(workflow)
    step_params = {}
    for key, value in params.items():
        if key == "config":
            continue
        name = key if key.startswith(f"{MODEL_STEP}__") else f"{MODEL_STEP}__{key}"
        step_params[name] = _to_python(value)

    final.set_params(**step_params)
    logger.info(f"Finalized workflow with {step_params}")
    return final


def _to_python(value: Any) -> Any:
    """numpy scalars out of a results table back to plain Python values."""
    if isinstance(value, np.generic):
        return value.item()
    return value


class PenguinClassifier:
    """
    Fitted workflow predicting penguin sex.

    Wraps the recipe + model Pipeline and keeps track of how it was trained.
    """

    def __init__(self, workflow: Pipeline, model_name: str = "model"):
        """
        Args:
            workflow: Unfitted recipe + model Pipeline
            model_name: Name of the model specification
        """
        self.workflow = workflow
        self.model_name = model_name

        self.feature_columns: Optional[List[str]] = None
        self.classes_: Optional[np.ndarray] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    @property
    def estimator(self) -> BaseEstimator:
        """The fitted model step."""
        return self.workflow.named_steps[MODEL_STEP]

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'PenguinClassifier':
        """
        Train the workflow on the provided data.

        Args:
            X: Predictor DataFrame
            y: Target labels

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        logger.info(f"Training {self.model_name} on X={X.shape}")
        self.workflow.fit(X, y)

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.feature_columns = list(X.columns)
        self.classes_ = self.workflow.classes_
        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': int(X.shape[0]),
            'n_features': int(X.shape[1]),
            'trained_at': end_time.isoformat(),
            'class_counts': {str(k): int(v) for k, v in pd.Series(y).value_counts().items()},
            'hyperparameters': {
                k: v for k, v in self.estimator.get_params().items()
                if isinstance(v, (int, float, str, bool, type(None)))
            }
        }

        self._is_fitted = True
        logger.info(f"Training complete in {training_duration:.2f} seconds")
        return self

    def _check_fitted(self, X: Optional[pd.DataFrame] = None) -> None:
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")
        if X is not None:
            missing = [col for col in self.feature_columns if col not in X.columns]
            if missing:
                raise ValueError(f"Missing predictor columns: {missing}")

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """Predicted class labels."""
        self._check_fitted(X)
        return self.workflow.predict(X[self.feature_columns])

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """Class probabilities, columns ordered as classes_."""
        self._check_fitted(X)
        return self.workflow.predict_proba(X[self.feature_columns])

    def get_feature_names(self) -> List[str]:
        """Predictor names after the recipe (one-hot levels expanded)."""
        self._check_fitted()
        return list(self.workflow.named_steps[PREPROCESSOR_STEP].get_feature_names_out())

    def save(self, filepath: str) -> None:
        """
        Save the trained workflow to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'workflow': self.workflow,
            'model_name': self.model_name,
            'feature_columns': self.feature_columns,
            'classes_': self.classes_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'PenguinClassifier':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded PenguinClassifier instance
        """
        state = joblib.load(filepath)

        model = cls(state['workflow'], model_name=state['model_name'])
        model.feature_columns = state['feature_columns']
        model.classes_ = state['classes_']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


def train_model(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    recipe: ColumnTransformer,
    config: Dict[str, Any],
    model_name: str = "random_forest",
    params: Optional[Dict[str, Any]] = None,
    save_path: Optional[str] = None
) -> PenguinClassifier:
    """
    Train a finalized workflow using configuration parameters.

    Args:
        X_train: Training predictors
        y_train: Training labels
        recipe: Preprocessing recipe
        config: Configuration dictionary
        model_name: Model specification to use
        params: Tuned hyperparameters (bare names)
        save_path: Path to save the trained model (optional)

    Returns:
        Trained PenguinClassifier
    """
    model_config = config.get('models', {}).get(model_name, {})
    random_state = config.get('random_state', 42)

    spec = build_model_spec(model_name, model_config.get('fixed', {}), random_state)
    workflow = finalize_workflow(build_workflow(recipe, spec), params or {})

    model = PenguinClassifier(workflow, model_name=model_name)
    model.fit(X_train, y_train)

    if save_path:
        model.save(save_path)

    return model


def print_model_summary(model: PenguinClassifier) -> None:
    """
    Print a summary of the trained model.

    Args:
        model: Trained model instance
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print(f"Model: {model.model_name} ({type(model.estimator).__name__})")
    print(f"Classes: {list(model.classes_) if model.classes_ is not None else 'N/A'}")

    if model.training_info:
        print("\nHyperparameters:")
        for key, value in sorted(model.training_info['hyperparameters'].items()):
            print(f"  - {key}: {value}")
        print("\nTraining Info:")
        print(f"  - Duration: {model.training_info['training_duration_seconds']:.2f}s")
        print(f"  - Samples: {model.training_info['n_samples']}")
        print(f"  - Class counts: {model.training_info['class_counts']}")

    print("=" * 50 + "\n")
