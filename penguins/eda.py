"""
Exploratory Data Analysis (EDA) Module - Phase 1
=================================================

Provides analysis and visualization of how the measurements differ by sex.

Functions:
    - plot_class_balance: Counts per sex and species
    - plot_measurements_by_sex: Bill vs flipper length, one panel per species
    - plot_distributions_by_sex: Histograms of each measurement split by sex
    - plot_correlation_matrix: Correlation heatmap
    - sex_difference_tests: Welch t-tests per measurement
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from .data_loader import TARGET_COLUMN

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_class_balance(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    by: str = "species",
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of target counts, grouped by a categorical column.

    Args:
        df: Penguins DataFrame
        target: Target column
        by: Grouping column (skipped if absent)
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    if by in df.columns:
        sns.countplot(data=df, x=by, hue=target, ax=ax)
        ax.set_xlabel(by.capitalize())
    else:
        sns.countplot(data=df, x=target, ax=ax)
        ax.set_xlabel(target.capitalize())

    ax.set_ylabel('Count')
    ax.set_title(f'Class Balance: {target}', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Class balance plot saved to {save_path}")

    return fig


def plot_measurements_by_sex(
    df: pd.DataFrame,
    x: str = "flipper_length_mm",
    y: str = "bill_length_mm",
    target: str = TARGET_COLUMN,
    facet: str = "species",
    figsize: Tuple[int, int] = (15, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Scatter two measurements coloured by sex, one panel per species.

    Point size follows body mass when that column is available.

    Args:
        df: Penguins DataFrame
        x: Measurement on the x axis
        y: Measurement on the y axis
        target: Target column used for colour
        facet: Column defining the panels
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    groups = sorted(df[facet].dropna().unique()) if facet in df.columns else [None]

    fig, axes = plt.subplots(1, len(groups), figsize=figsize, sharex=True, sharey=True)
    axes = np.atleast_1d(axes)

    size = "body_mass_g" if "body_mass_g" in df.columns else None

    for idx, group in enumerate(groups):
        ax = axes[idx]
        subset = df if group is None else df[df[facet] == group]
        sns.scatterplot(
            data=subset, x=x, y=y, hue=target, size=size, alpha=0.7, ax=ax,
            legend="auto" if idx == len(groups) - 1 else False
        )
        ax.set_title(f'{group}' if group is not None else 'All penguins',
                     fontsize=12, fontweight='bold')

    if axes[-1].get_legend() is not None:
        sns.move_legend(axes[-1], "upper left", bbox_to_anchor=(1, 1), fontsize=8)

    plt.suptitle(f'{y} vs {x} by {target}', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Measurement scatter saved to {save_path}")

    return fig


def plot_distributions_by_sex(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create distribution plots (histogram + KDE) of each measurement by sex.

    Args:
        df: Penguins DataFrame
        target: Target column used for colour
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = df.select_dtypes(include=[np.number]).columns.tolist()
    if not columns:
        raise ValueError("No numeric columns to plot")
    n_cols = len(columns)
    n_rows = (n_cols + 1) // 2

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize)
    axes = np.atleast_1d(axes).flatten()

    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.histplot(data=df, x=col, hue=target, kde=True, ax=ax, bins=30, alpha=0.5)
        ax.set_title(f'{col}', fontsize=10, fontweight='bold')

    # Hide unused subplots
    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Distribution Analysis by Sex', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (8, 6),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.3f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def sex_difference_tests(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    columns: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Welch two-sample t-test of each measurement between the two sexes.

    Args:
        df: Penguins DataFrame with a two-class target
        target: Target column
        columns: Measurements to test (default: all numeric)

    Returns:
        DataFrame with one row per measurement, sorted by p value
    """
    if columns is None:
        columns = df.select_dtypes(include=[np.number]).columns.tolist()

    classes = sorted(df[target].dropna().unique())
    if len(classes) != 2:
        raise ValueError(f"Expected 2 classes in '{target}', found {classes}")

    first, second = classes
    rows = []
    for col in columns:
        a = df.loc[df[target] == first, col].dropna()
        b = df.loc[df[target] == second, col].dropna()
        t_stat, p_value = stats.ttest_ind(a, b, equal_var=False)
        rows.append({
            "variable": col,
            f"mean_{first}": float(a.mean()),
            f"mean_{second}": float(b.mean()),
            "difference": float(b.mean() - a.mean()),
            "t_statistic": float(t_stat),
            "p_value": float(p_value)
        })

    return pd.DataFrame(rows).sort_values("p_value").reset_index(drop=True)


def generate_eda_report(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: Cleaned penguins DataFrame
        target: Target column
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": [],
        "class_counts": {str(k): int(v) for k, v in df[target].value_counts().items()},
        "correlation_matrix": None,
        "sex_difference_tests": None
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS (Phase 1)")
    logger.info("=" * 60)

    logger.info("Plotting class balance...")
    plot_class_balance(df, target, save_path=str(output_dir / "01_class_balance.png"))
    report["figures"].append("01_class_balance.png")

    logger.info("Plotting measurements by sex...")
    plot_measurements_by_sex(df, target=target, save_path=str(output_dir / "02_measurements_by_sex.png"))
    report["figures"].append("02_measurements_by_sex.png")

    logger.info("Plotting distributions...")
    plot_distributions_by_sex(df, target, save_path=str(output_dir / "03_distributions.png"))
    report["figures"].append("03_distributions.png")

    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        df, save_path=str(output_dir / "04_correlation_matrix.png")
    )
    report["figures"].append("04_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()

    logger.info("Testing measurement differences between sexes...")
    report["sex_difference_tests"] = sex_difference_tests(df, target)

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_sex_difference_insights(tests: pd.DataFrame, alpha: float = 0.05) -> None:
    """
    Print which measurements differ significantly between sexes.

    Args:
        tests: Output of sex_difference_tests
        alpha: Significance level
    """
    print("\n" + "=" * 50)
    print("SEX DIFFERENCE INSIGHTS")
    print("=" * 50)

    significant = tests[tests["p_value"] < alpha]

    if not significant.empty:
        print(f"\nMeasurements that differ by sex (p < {alpha}):")
        for _, row in significant.iterrows():
            direction = "larger" if row["difference"] > 0 else "smaller"
            print(f"  • {row['variable']}: {abs(row['difference']):.2f} {direction} "
                  f"(t={row['t_statistic']:.2f}, p={row['p_value']:.2e})")
        print("\nThese measurements should carry most of the signal for the classifier.")
    else:
        print(f"\nNo measurement differs by sex at p < {alpha}")
        print("  - Expect a weak classifier")

    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    n = 120
    sex = np.random.choice(["female", "male"], n)
    is_male = (sex == "male").astype(float)
    sample_df = pd.DataFrame({
        'species': np.random.choice(["Adelie", "Chinstrap", "Gentoo"], n),
        'bill_length_mm': 42 + 3 * is_male + np.random.randn(n) * 2,
        'bill_depth_mm': 17 + 1.5 * is_male + np.random.randn(n),
        'flipper_length_mm': 198 + 6 * is_male + np.random.randn(n) * 8,
        'body_mass_g': 3900 + 600 * is_male + np.random.randn(n) * 300,
        'sex': sex
    })

    report = generate_eda_report(sample_df, show_plots=False)
    print_sex_difference_insights(report["sex_difference_tests"])
    print(f"Generated {len(report['figures'])} figures")
