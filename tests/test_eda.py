"""
Test Suite for EDA Module
==========================

Tests for the sex difference tests and the EDA figures.
"""

import pytest
import numpy as np
import matplotlib.pyplot as plt

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from penguins.data_loader import NUMERIC_COLUMNS
from penguins.eda import (
    generate_eda_report,
    plot_class_balance,
    plot_correlation_matrix,
    plot_distributions_by_sex,
    plot_measurements_by_sex,
    sex_difference_tests,
)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


class TestSexDifferenceTests:
    """Tests for the Welch t-test table."""

    def test_one_row_per_measurement(self, penguins):
        tests = sex_difference_tests(penguins)

        assert set(tests['variable']) == set(NUMERIC_COLUMNS)
        assert list(tests.columns) == [
            'variable', 'mean_female', 'mean_male', 'difference', 't_statistic', 'p_value'
        ]
        assert tests['p_value'].is_monotonic_increasing

    def test_males_are_larger(self, penguins):
        tests = sex_difference_tests(penguins)

        assert (tests['difference'] > 0).all()
        np.testing.assert_allclose(
            tests['difference'], tests['mean_male'] - tests['mean_female']
        )
        assert (tests['p_value'] < 0.05).all()

    def test_selected_columns(self, penguins):
        tests = sex_difference_tests(penguins, columns=['body_mass_g'])
        assert list(tests['variable']) == ['body_mass_g']

    def test_single_class_target(self, penguins):
        females = penguins[penguins['sex'] == 'female']

        with pytest.raises(ValueError, match="Expected 2 classes"):
            sex_difference_tests(females)


class TestPlots:
    """Tests for the individual figures."""

    def test_class_balance_by_species(self, penguins, tmp_path):
        path = tmp_path / "balance.png"

        fig = plot_class_balance(penguins, save_path=str(path))

        assert path.exists()
        assert fig.axes[0].get_xlabel() == 'Species'

    def test_class_balance_without_grouping_column(self, penguins):
        fig = plot_class_balance(penguins.drop(columns=['species']))
        assert fig.axes[0].get_xlabel() == 'Sex'

    def test_measurements_one_panel_per_species(self, penguins, tmp_path):
        path = tmp_path / "scatter.png"

        fig = plot_measurements_by_sex(penguins, save_path=str(path))

        assert path.exists()
        titles = [ax.get_title() for ax in fig.axes]
        assert titles == ['Adelie', 'Chinstrap', 'Gentoo']

    def test_distributions_hide_unused_panels(self, penguins):
        fig = plot_distributions_by_sex(penguins[['bill_length_mm', 'bill_depth_mm',
                                                  'body_mass_g', 'sex']])

        visible = [ax for ax in fig.axes if ax.get_visible()]
        assert len(visible) == 3

    def test_distributions_need_numeric_columns(self, penguins):
        with pytest.raises(ValueError, match="No numeric columns"):
            plot_distributions_by_sex(penguins[['species', 'sex']])

    def test_correlation_matrix(self, penguins):
        _, corr = plot_correlation_matrix(penguins)

        assert list(corr.columns) == NUMERIC_COLUMNS
        np.testing.assert_allclose(np.diag(corr.values), 1.0)


class TestEDAReport:
    """Tests for the complete EDA report."""

    def test_writes_numbered_figures(self, penguins, tmp_path):
        report = generate_eda_report(penguins, output_dir=str(tmp_path))

        assert report['figures'] == [
            '01_class_balance.png',
            '02_measurements_by_sex.png',
            '03_distributions.png',
            '04_correlation_matrix.png',
        ]
        for figure in report['figures']:
            assert (tmp_path / figure).exists()

    def test_report_contents(self, penguins, tmp_path):
        report = generate_eda_report(penguins, output_dir=str(tmp_path))

        assert report['class_counts'] == {'female': 80, 'male': 80}
        assert len(report['sex_difference_tests']) == len(NUMERIC_COLUMNS)
        assert set(report['correlation_matrix']) == set(NUMERIC_COLUMNS)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
