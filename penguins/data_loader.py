"""
Data Loader Module
==================

Handles CSV ingestion, cleaning, validation, and basic data quality checks.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load the penguins table (palmerpenguins, CSV or seaborn)
    - clean_penguins: Normalize labels and drop unusable rows/columns
    - validate_data: Check data quality constraints
    - get_data_summary: Generate basic statistics
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Sequence

import pandas as pd
import numpy as np
import yaml
from palmerpenguins import load_penguins

logger = logging.getLogger(__name__)

TARGET_COLUMN = "sex"

NUMERIC_COLUMNS = [
    "bill_length_mm",
    "bill_depth_mm",
    "flipper_length_mm",
    "body_mass_g",
]

REQUIRED_COLUMNS = ["species"] + NUMERIC_COLUMNS + [TARGET_COLUMN]

MIN_ROWS = 20

DATA_SOURCES = ("palmerpenguins", "csv", "seaborn")


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def load_data(
    file_path: Optional[str] = None,
    source: str = "csv"
) -> pd.DataFrame:
    """
    Load the penguins table.

    Args:
        file_path: Path to the CSV file (required when source is 'csv')
        source: 'csv' to read file_path, 'palmerpenguins' for the copy shipped
            with the palmerpenguins package, 'seaborn' for seaborn's copy
            (downloaded and cached on first use)

    Returns:
        DataFrame with one row per penguin

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If the source is unknown or required columns are missing
    """
    if source == "palmerpenguins":
        df = load_penguins()
        logger.info(f"Loaded palmerpenguins dataset: {df.shape[0]} rows × {df.shape[1]} columns")
    elif source == "seaborn":
        import seaborn as sns
        df = sns.load_dataset("penguins")
        logger.info(f"Loaded seaborn penguins dataset: {df.shape[0]} rows × {df.shape[1]} columns")
    elif source == "csv":
        if file_path is None:
            raise ValueError("A file path is required when loading from CSV")
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Data file not found: {file_path}")

        # palmerpenguins exports write missing values as "NA"
        df = pd.read_csv(file_path, na_values=["NA", "."])
        logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")
    else:
        raise ValueError(f"Unknown data source: {source}. Choose from: {', '.join(DATA_SOURCES)}")

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(
            f"Missing required columns: {missing}. "
            f"Columns: {list(df.columns)}"
        )

    return df


def clean_penguins(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    drop_columns: Sequence[str] = ("year", "island")
) -> pd.DataFrame:
    """
    Prepare the raw table for modeling.

    Sex labels are lowercased ('Male' and 'male' are the same class), rows
    without a sex are removed and the listed columns are dropped when present.

    Args:
        df: Raw penguins DataFrame
        target: Name of the target column
        drop_columns: Columns not used as predictors

    Returns:
        Cleaned copy with a fresh index
    """
    cleaned = df.copy()
    cleaned[target] = normalize_labels(cleaned[target])

    n_before = len(cleaned)
    cleaned = cleaned[cleaned[target].notna()]
    n_dropped = n_before - len(cleaned)
    if n_dropped:
        logger.info(f"Dropped {n_dropped} rows with missing '{target}'")

    to_drop = [col for col in drop_columns if col in cleaned.columns and col != target]
    if to_drop:
        cleaned = cleaned.drop(columns=to_drop)
        logger.info(f"Dropped columns: {to_drop}")

    if cleaned.empty:
        raise ValueError(f"No rows left after removing missing '{target}' values")

    return cleaned.reset_index(drop=True)


def normalize_labels(series: pd.Series) -> pd.Series:
    """Lowercase and strip string labels; blanks become missing."""
    labels = series.astype("string").str.strip().str.lower()
    labels = labels.replace({"": pd.NA, ".": pd.NA, "na": pd.NA})
    return labels.astype(object).where(labels.notna(), np.nan)


def validate_data(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality constraints for binary classification.

    Checks:
        - Target column exists and has exactly two classes
        - Missing values per predictor column
        - Sufficient rows for a split plus resampling
        - Measurements are positive

    Args:
        df: DataFrame to validate
        target: Name of the target column
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": []
    }

    # Check 1: Target present with two classes
    if target not in df.columns:
        issue = f"Target column '{target}' not found"
        report["issues"].append(issue)
        logger.warning(issue)
    else:
        classes = sorted(df[target].dropna().unique().tolist())
        report["classes"] = classes
        if len(classes) != 2:
            issue = f"Expected 2 classes in '{target}', found {len(classes)}: {classes}"
            report["issues"].append(issue)
            logger.warning(issue)

    # Check 2: Missing values
    missing_counts = df.isnull().sum()
    report["missing_values"] = {
        col: int(count) for col, count in missing_counts.items() if count > 0
    }
    for col, count in report["missing_values"].items():
        issue = f"Column '{col}' has {count} missing values"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 3: Enough rows
    if len(df) < MIN_ROWS:
        issue = f"Only {len(df)} rows; at least {MIN_ROWS} required"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 4: Measurements must be positive
    for col in NUMERIC_COLUMNS:
        if col in df.columns and (df[col].dropna() <= 0).any():
            issue = f"Column '{col}' has non-positive measurements"
            report["issues"].append(issue)
            logger.warning(issue)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame, target: str = TARGET_COLUMN) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize
        target: Name of the target column

    Returns:
        Dictionary containing summary statistics
    """
    summary = {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "class_counts": {},
        "statistics": {}
    }

    if target in df.columns:
        summary["class_counts"] = {
            str(k): int(v) for k, v in df[target].value_counts(dropna=False).items()
        }

    for col in df.select_dtypes(include=[np.number]).columns:
        summary["statistics"][col] = {
            "count": int(df[col].count()),
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "50%": float(df[col].quantile(0.50)),
            "max": float(df[col].max())
        }

    return summary


def print_data_summary(df: pd.DataFrame, target: str = TARGET_COLUMN) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
        target: Name of the target column
    """
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print("\nColumn Information:")
    print("-" * 40)

    for col in df.columns:
        dtype = df[col].dtype
        non_null = df[col].count()
        null_pct = (1 - non_null / len(df)) * 100
        print(f"  {col}: {dtype} | {non_null} non-null ({null_pct:.1f}% missing)")

    if target in df.columns:
        print(f"\nClass Counts ({target}):")
        print("-" * 40)
        print(df[target].value_counts(dropna=False).to_string())

    print("\nBasic Statistics:")
    print("-" * 40)
    print(df.describe().round(2).to_string())
    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
        print("Configuration loaded successfully!")
        print(f"Data source: {config.get('data', {}).get('source', 'csv')}")
    except FileNotFoundError as e:
        print(f"Config not found: {e}")

    data_path = "data/raw/penguins.csv"
    if os.path.exists(data_path):
        df = load_data(data_path)
    else:
        print(f"No data file found at {data_path}, using the palmerpenguins package")
        df = load_data(source="palmerpenguins")

    print_data_summary(df)
    is_valid, report = validate_data(clean_penguins(df), strict=False)
    print(f"Validation passed: {is_valid}")
