"""
Penguin Sex Classification
==========================

A machine learning pipeline that predicts penguin sex from body measurements.

Modules:
    - data_loader: CSV ingestion, cleaning and validation
    - eda: Exploratory Data Analysis (Phase 1)
    - preprocessing: Split, recipe and resamples (Phase 2)
    - model: Model specifications and workflows
    - tuning: Hyperparameter grid search over resamples (Phase 3)
    - evaluation: Final fit and test set evaluation (Phase 4)
    - importance: Variable importance (Phase 5)
    - prediction: Refit on all data and predict unknown sex (Phase 6)
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
