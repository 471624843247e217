"""
Data Preprocessing Module - Phase 2
====================================

Handles the train/test split, the preprocessing recipe and resampling.

Functions:
    - infer_feature_types: Split predictors into numeric and categorical
    - build_recipe: Imputation, normalization and one-hot encoding
    - make_resamples: Stratified V-fold or bootstrap resamples
    - preprocess_pipeline: Split + recipe + resamples in one call
"""

import logging
from typing import Dict, Any, Tuple, Optional, List, Iterator

import pandas as pd
import numpy as np
import joblib
from sklearn.compose import ColumnTransformer
from sklearn.impute import SimpleImputer
from sklearn.model_selection import StratifiedKFold, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from .data_loader import TARGET_COLUMN

logger = logging.getLogger(__name__)

RESAMPLING_METHODS = ("vfold", "bootstrap")


def infer_feature_types(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN
) -> Tuple[List[str], List[str]]:
    """
    Split predictor columns into numeric and categorical.

    Args:
        df: DataFrame including the target
        target: Target column (excluded from both lists)

    Returns:
        Tuple of (numeric_columns, categorical_columns)
    """
    predictors = df.drop(columns=[target], errors="ignore")
    numeric = predictors.select_dtypes(include=[np.number]).columns.tolist()
    categorical = [col for col in predictors.columns if col not in numeric]
    return numeric, categorical


def build_recipe(
    numeric_features: List[str],
    categorical_features: List[str],
    normalize: bool = True
) -> ColumnTransformer:
    """
    Build the preprocessing recipe applied inside every resample.

    Numeric columns: median imputation, then standardization (optional).
    Categorical columns: most-frequent imputation, then one-hot encoding.
    Output columns keep the bare names ('body_mass_g', 'species_Gentoo').

    Args:
        numeric_features: Numeric predictor columns
        categorical_features: Categorical predictor columns
        normalize: Whether to center and scale numeric columns

    Returns:
        Unfitted ColumnTransformer
    """
    numeric_steps = [("impute", SimpleImputer(strategy="median"))]
    if normalize:
        numeric_steps.append(("normalize", StandardScaler()))

    categorical_steps = [
        ("impute", SimpleImputer(strategy="most_frequent")),
        ("dummy", OneHotEncoder(handle_unknown="ignore", sparse_output=False)),
    ]

    transformers = []
    if numeric_features:
        transformers.append(("num", Pipeline(numeric_steps), list(numeric_features)))
    if categorical_features:
        transformers.append(("cat", Pipeline(categorical_steps), list(categorical_features)))

    if not transformers:
        raise ValueError("Recipe needs at least one predictor column")

    return ColumnTransformer(transformers, verbose_feature_names_out=False)


class BootstrapSplit:
    """
    Bootstrap resampling for scikit-learn searches.

    Each resample draws n rows with replacement for analysis; the rows never
    drawn (out-of-bag) form the assessment set.
    """

    def __init__(
        self,
        n_resamples: int = 25,
        stratify: bool = True,
        random_state: Optional[int] = None
    ):
        if n_resamples < 1:
            raise ValueError(f"n_resamples must be positive, got {n_resamples}")
        self.n_resamples = n_resamples
        self.stratify = stratify
        self.random_state = random_state

    def get_n_splits(self, X=None, y=None, groups=None) -> int:
        return self.n_resamples

    def split(self, X, y=None, groups=None) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        n_samples = len(X)
        rng = np.random.RandomState(self.random_state)

        if self.stratify and y is not None:
            labels = np.asarray(y)
            strata = [np.flatnonzero(labels == level) for level in np.unique(labels)]
        else:
            strata = [np.arange(n_samples)]

        # a stratum of one row is always drawn in full, so out-of-bag rows
        # can only come from larger strata
        if all(len(rows) < 2 for rows in strata):
            raise ValueError(
                f"Bootstrap needs a stratum with at least 2 rows to leave any "
                f"out-of-bag; got {n_samples} rows in {len(strata)} strata"
            )

        produced = 0
        while produced < self.n_resamples:
            analysis = np.concatenate([
                rng.choice(rows, size=len(rows), replace=True) for rows in strata
            ])
            assessment = np.setdiff1d(np.arange(n_samples), analysis)
            # an empty out-of-bag set cannot be scored; draw again
            if len(assessment) == 0:
                continue
            produced += 1
            yield np.sort(analysis), assessment

    def __repr__(self) -> str:
        return (f"BootstrapSplit(n_resamples={self.n_resamples}, "
                f"stratify={self.stratify}, random_state={self.random_state})")


def make_resamples(
    method: str = "vfold",
    n: int = 10,
    random_state: Optional[int] = 42
):
    """
    Create the resampling scheme used for tuning.

    Args:
        method: 'vfold' (stratified V-fold CV) or 'bootstrap'
        n: Number of folds or bootstrap resamples
        random_state: Random seed for reproducibility

    Returns:
        Splitter with split() and get_n_splits()
    """
    if method == "vfold":
        return StratifiedKFold(n_splits=n, shuffle=True, random_state=random_state)
    if method == "bootstrap":
        return BootstrapSplit(n_resamples=n, stratify=True, random_state=random_state)
    raise ValueError(
        f"Unknown resampling method: {method}. Choose from: {', '.join(RESAMPLING_METHODS)}"
    )


def resample_ids(resamples) -> List[str]:
    """Label resamples 'Fold01', ... or 'Bootstrap01', ..."""
    prefix = "Bootstrap" if isinstance(resamples, BootstrapSplit) else "Fold"
    n = resamples.get_n_splits()
    width = max(2, len(str(n)))
    return [f"{prefix}{i + 1:0{width}d}" for i in range(n)]


class PenguinPreprocessor:
    """
    Preprocessing pipeline for the penguins table.

    Handles the stratified train/test split, learns which predictors are
    numeric or categorical, and builds the recipe and resamples.
    """

    def __init__(
        self,
        target: str = TARGET_COLUMN,
        test_size: float = 0.25,
        random_state: int = 42,
        normalize: bool = True,
        resampling: str = "vfold",
        n_resamples: int = 10
    ):
        """
        Initialize the preprocessor.

        Args:
            target: Target column
            test_size: Fraction of rows held out for the final test
            random_state: Random seed for split and resamples
            normalize: Whether to standardize numeric predictors
            resampling: 'vfold' or 'bootstrap'
            n_resamples: Number of folds or bootstrap resamples
        """
        if not 0 < test_size < 1:
            raise ValueError(f"test_size must be between 0 and 1, got {test_size}")
        if resampling not in RESAMPLING_METHODS:
            raise ValueError(
                f"Unknown resampling method: {resampling}. "
                f"Choose from: {', '.join(RESAMPLING_METHODS)}"
            )

        self.target = target
        self.test_size = test_size
        self.random_state = random_state
        self.normalize = normalize
        self.resampling = resampling
        self.n_resamples = n_resamples

        self.numeric_features: Optional[List[str]] = None
        self.categorical_features: Optional[List[str]] = None
        self.recipe: Optional[ColumnTransformer] = None
        self._is_fitted = False

    def split(
        self,
        df: pd.DataFrame
    ) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
        """
        Stratified train/test split on the target.

        Args:
            df: Cleaned DataFrame including the target

        Returns:
            Tuple of (X_train, X_test, y_train, y_test)
        """
        if self.target not in df.columns:
            raise ValueError(f"Target column '{self.target}' not found")

        X = df.drop(columns=[self.target])
        y = df[self.target]

        X_train, X_test, y_train, y_test = train_test_split(
            X, y,
            test_size=self.test_size,
            stratify=y,
            random_state=self.random_state
        )

        logger.info(
            f"Train/Test split: {len(X_train)} train samples, {len(X_test)} test samples "
            f"(stratified on '{self.target}')"
        )

        return X_train, X_test, y_train, y_test

    def fit(self, df: pd.DataFrame) -> 'PenguinPreprocessor':
        """
        Learn the predictor types and build the recipe.

        Args:
            df: Training data (with or without the target)

        Returns:
            Self for method chaining
        """
        self.numeric_features, self.categorical_features = infer_feature_types(df, self.target)
        self.recipe = build_recipe(
            self.numeric_features,
            self.categorical_features,
            normalize=self.normalize
        )
        logger.info(
            f"Recipe: {len(self.numeric_features)} numeric, "
            f"{len(self.categorical_features)} categorical predictors"
        )

        self._is_fitted = True
        return self

    def make_resamples(self):
        """Create the resampling scheme configured for this preprocessor."""
        return make_resamples(self.resampling, self.n_resamples, self.random_state)

    def get_feature_names(self, X: Optional[pd.DataFrame] = None) -> List[str]:
        """
        Names of the columns the recipe produces.

        Categorical levels are only known after the recipe has seen data,
        so X is required to expand them.

        Args:
            X: Training predictors used to fit a copy of the recipe

        Returns:
            List of output feature names
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted first.")

        if X is None:
            return list(self.numeric_features) + list(self.categorical_features)

        from sklearn.base import clone
        recipe = clone(self.recipe).fit(X)
        return list(recipe.get_feature_names_out())

    def save(self, filepath: str) -> None:
        """
        Save the preprocessor state to disk.

        Args:
            filepath: Path to save the preprocessor
        """
        state = {
            'target': self.target,
            'test_size': self.test_size,
            'random_state': self.random_state,
            'normalize': self.normalize,
            'resampling': self.resampling,
            'n_resamples': self.n_resamples,
            'numeric_features': self.numeric_features,
            'categorical_features': self.categorical_features,
            'recipe': self.recipe,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Preprocessor saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'PenguinPreprocessor':
        """
        Load a preprocessor from disk.

        Args:
            filepath: Path to the saved preprocessor

        Returns:
            Loaded PenguinPreprocessor instance
        """
        state = joblib.load(filepath)

        preprocessor = cls(
            target=state['target'],
            test_size=state['test_size'],
            random_state=state['random_state'],
            normalize=state['normalize'],
            resampling=state['resampling'],
            n_resamples=state['n_resamples']
        )
        preprocessor.numeric_features = state['numeric_features']
        preprocessor.categorical_features = state['categorical_features']
        preprocessor.recipe = state['recipe']
        preprocessor._is_fitted = state['_is_fitted']

        logger.info(f"Preprocessor loaded from {filepath}")
        return preprocessor


def preprocess_pipeline(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    test_size: float = 0.25,
    random_state: int = 42,
    normalize: bool = True,
    resampling: str = "vfold",
    n_resamples: int = 10,
    save_preprocessor: Optional[str] = None
) -> Dict[str, Any]:
    """
    Complete preprocessing pipeline for the penguins table.

    Args:
        df: Cleaned DataFrame
        target: Target column
        test_size: Held-out fraction
        random_state: Random seed
        normalize: Whether to standardize numeric predictors
        resampling: 'vfold' or 'bootstrap'
        n_resamples: Number of folds or bootstrap resamples
        save_preprocessor: Path to save the fitted preprocessor

    Returns:
        Dictionary containing:
            - X_train, X_test, y_train, y_test: Split datasets
            - preprocessor: Fitted PenguinPreprocessor
            - recipe: Unfitted ColumnTransformer
            - resamples: Resampling splitter over the training set
            - feature_columns: Predictor columns before encoding
            - feature_names: Predictor columns after encoding
            - classes: Sorted target classes
    """
    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING (Phase 2)")
    logger.info("=" * 60)

    preprocessor = PenguinPreprocessor(
        target=target,
        test_size=test_size,
        random_state=random_state,
        normalize=normalize,
        resampling=resampling,
        n_resamples=n_resamples
    )

    X_train, X_test, y_train, y_test = preprocessor.split(df)

    # Recipe is defined from training data only
    preprocessor.fit(X_train)
    resamples = preprocessor.make_resamples()

    if save_preprocessor:
        preprocessor.save(save_preprocessor)

    result = {
        'X_train': X_train,
        'X_test': X_test,
        'y_train': y_train,
        'y_test': y_test,
        'preprocessor': preprocessor,
        'recipe': preprocessor.recipe,
        'resamples': resamples,
        'feature_columns': list(X_train.columns),
        'feature_names': preprocessor.get_feature_names(X_train),
        'classes': sorted(y_train.unique().tolist())
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training samples: {len(X_train)}")
    logger.info(f"  Test samples: {len(X_test)}")
    logger.info(f"  Predictors after encoding: {len(result['feature_names'])}")
    logger.info(f"  Resamples: {resamples}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    preprocessor = result['preprocessor']

    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Training samples: {len(result['X_train'])}")
    print(f"Test samples: {len(result['X_test'])}")
    print(f"Classes: {result['classes']}")
    print(f"\nNumeric predictors: {preprocessor.numeric_features}")
    print(f"Categorical predictors: {preprocessor.categorical_features}")
    print(f"Encoded predictors: {len(result['feature_names'])}")
    print(f"Normalization: {preprocessor.normalize}")
    print(f"\nResampling: {preprocessor.resampling} ({preprocessor.n_resamples} resamples)")
    print("=" * 50 + "\n")
