#!/usr/bin/env python3
"""
Penguin Sex Classification - Main Pipeline
===========================================

Orchestrates the complete ML pipeline predicting penguin sex from
morphological measurements.

Phases:
    1. EDA - Exploratory Data Analysis
    2. Preprocessing - Stratified split, recipe and resamples
    3. Tuning - Grid search over resamples for every model
    4. Evaluation - Last fit of the selected workflow on the test set
    5. Explanation - Variable importance
    6. Prediction - Refit on all labelled rows and predict missing sex

Usage:
    # Run complete pipeline
    python main.py --data data/raw/penguins.csv

    # Run specific phase
    python main.py --data data/raw/penguins.csv --phase eda

    # Use the palmerpenguins package copy (config default)
    python main.py --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, Tuple

import matplotlib.pyplot as plt
import pandas as pd
from joblib import parallel_config

from penguins.data_loader import (
    TARGET_COLUMN, load_config, load_data, clean_penguins, validate_data, print_data_summary
)
from penguins.eda import generate_eda_report, print_sex_difference_insights
from penguins.preprocessing import preprocess_pipeline, print_preprocessing_summary
from penguins.model import finalize_workflow, print_model_summary
from penguins.tuning import tune_models, plot_tuning_results, print_tuning_report
from penguins.evaluation import last_fit, evaluate_model, print_evaluation_report
from penguins.importance import explain_model, print_importance_report
from penguins.prediction import run_final_prediction, print_prediction_results

PHASES = ['eda', 'preprocess', 'tune', 'evaluate', 'explain', 'predict', 'all']


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Configure logging for the pipeline."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_dir is not None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(
            Path(log_dir) / f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log'
        ))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )


def register_parallel_backend(config: Dict[str, Any]) -> parallel_config:
    """
    joblib backend used by every grid search and permutation run.

    Enter the returned context once, around the whole pipeline.
    """
    parallel = config.get('parallel', {})
    backend = parallel.get('backend', 'loky')
    n_jobs = parallel.get('n_jobs', -1)
    logging.getLogger(__name__).info(f"Parallel backend: {backend} (n_jobs={n_jobs})")
    return parallel_config(backend=backend, n_jobs=n_jobs)


def load_penguins(config: Dict[str, Any], data_path: Optional[str] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load the raw table and its cleaned copy.

    Returns:
        Tuple of (raw_df, clean_df)
    """
    data_config = config.get('data', {})
    path = data_path or data_config.get('path')
    source = 'csv' if data_path else data_config.get('source', 'csv')

    raw_df = load_data(path, source=source)
    clean_df = clean_penguins(
        raw_df,
        target=config.get('target', TARGET_COLUMN),
        drop_columns=data_config.get('drop_columns', ['year', 'island'])
    )
    return raw_df, clean_df


def run_eda(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        df: Cleaned data
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(
        df, target=config.get('target', TARGET_COLUMN),
        output_dir=output_dir, show_plots=False
    )
    print_sex_difference_insights(report['sex_difference_tests'])

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_preprocessing(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 2: Split, recipe and resamples.

    Args:
        df: Cleaned data
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    prep_config = config.get('preprocessing', {})
    resampling_config = config.get('resampling', {})

    result = preprocess_pipeline(
        df,
        target=config.get('target', TARGET_COLUMN),
        test_size=prep_config.get('test_size', 0.25),
        random_state=config.get('random_state', 42),
        normalize=prep_config.get('normalize', True),
        resampling=resampling_config.get('method', 'vfold'),
        n_resamples=resampling_config.get('n', 10),
        save_preprocessor=config.get('output', {}).get('preprocessor_path')
    )

    print_preprocessing_summary(result)

    return result


def run_tuning(prep_result: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 3: Hyperparameter tuning.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Tuning result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 3: HYPERPARAMETER TUNING")
    print("=" * 70)

    tuning = tune_models(prep_result, config)

    output_config = config.get('output', {})
    figures_dir = Path(output_config.get('figures_path', 'reports/figures/'))
    metrics_dir = Path(output_config.get('reports_path', 'reports/')) / "metrics"
    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    for name, model_result in tuning['models'].items():
        plot_tuning_results(model_result['results'], save_path=str(figures_dir / f"tune_{name}.png"))
        model_result['metrics'].to_csv(metrics_dir / f"tune_{name}.csv", index=False)
    plt.close('all')

    print_tuning_report(tuning)

    return tuning


def run_evaluation(
    prep_result: Dict[str, Any],
    tuning: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 4: Last fit of the selected workflow.

    Args:
        prep_result: Preprocessing result dictionary
        tuning: Tuning result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary (including the fitted model)
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL EVALUATION")
    print("=" * 70)

    best_model = tuning['best_model']
    workflow = finalize_workflow(tuning['models'][best_model]['workflow'], tuning['best_params'])

    fit_result = last_fit(
        workflow,
        prep_result['X_train'], prep_result['y_train'],
        prep_result['X_test'], prep_result['y_test'],
        positive_class=tuning['positive_class'],
        model_name=best_model,
        target=config.get('target', TARGET_COLUMN)
    )
    print_model_summary(fit_result['model'])

    result = evaluate_model(
        fit_result,
        target=config.get('target', TARGET_COLUMN),
        output_dir=config.get('output', {}).get('reports_path', 'reports/'),
        show_plots=False
    )
    result['model'] = fit_result['model']
    result['predictions'] = fit_result['predictions']

    print_evaluation_report(result['metrics'], result['confusion_matrix'])

    return result


def run_explanation(
    eval_result: Dict[str, Any],
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Variable importance of the last-fit model.
    """
    print("\n" + "=" * 70)
    print("PHASE 5: VARIABLE IMPORTANCE")
    print("=" * 70)

    importance_config = config.get('importance', {})

    result = explain_model(
        eval_result['model'],
        prep_result['X_test'],
        prep_result['y_test'],
        output_dir=config.get('output', {}).get('reports_path', 'reports/'),
        n_repeats=importance_config.get('n_repeats', 10),
        random_state=config.get('random_state', 42)
    )

    print_importance_report(result)

    return result


def run_final_prediction_phase(
    raw_df: pd.DataFrame,
    clean_df: pd.DataFrame,
    prep_result: Dict[str, Any],
    tuning: Dict[str, Any],
    config: Dict[str, Any],
    eval_result: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Execute Phase 6: Refit on all labelled data and predict missing sex.
    """
    print("\n" + "=" * 70)
    print("PHASE 6: FINAL PREDICTION")
    print("=" * 70)

    output_config = config.get('output', {})

    result = run_final_prediction(
        clean_df,
        raw_df,
        prep_result['recipe'],
        config,
        model_name=tuning['best_model'],
        params=tuning['best_params'],
        metrics=eval_result['metrics'] if eval_result else None,
        target=config.get('target', TARGET_COLUMN),
        output_dir=output_config.get('predictions_path', 'data/predictions/'),
        model_path=output_config.get('model_path', 'models/penguin_classifier.joblib')
    )

    print_prediction_results(result)

    return result


def run_full_pipeline(
    data_path: Optional[str] = None,
    config_path: str = "config/config.yaml",
    log_level: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the complete 6-phase pipeline.

    Args:
        data_path: Path to input CSV file (overrides the config)
        config_path: Path to configuration file
        log_level: Overrides logging.level from the config

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("PENGUIN SEX CLASSIFICATION PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    logging_config = config.get('logging', {})
    setup_logging(log_level or logging_config.get('level', 'INFO'), logging_config.get('log_dir'))

    with register_parallel_backend(config):
        print("\n📊 Loading data...")
        raw_df, clean_df = load_penguins(config, data_path)
        print_data_summary(raw_df)

        is_valid, validation_report = validate_data(
            clean_df, target=config.get('target', TARGET_COLUMN), strict=False
        )
        if not is_valid:
            print("⚠️  Data validation warnings detected. Proceeding anyway...")

        results = {
            'config': config,
            'data_shape': raw_df.shape,
            'clean_shape': clean_df.shape
        }

        # Phase 1: EDA
        results['eda'] = run_eda(clean_df, config)

        # Phase 2: Preprocessing
        results['preprocessing'] = run_preprocessing(clean_df, config)

        # Phase 3: Tuning
        results['tuning'] = run_tuning(results['preprocessing'], config)

        # Phase 4: Evaluation
        results['evaluation'] = run_evaluation(results['preprocessing'], results['tuning'], config)

        # Phase 5: Explanation
        results['importance'] = run_explanation(results['evaluation'], results['preprocessing'], config)

        # Phase 6: Final Prediction
        results['prediction'] = run_final_prediction_phase(
            raw_df, clean_df, results['preprocessing'], results['tuning'],
            config, results['evaluation']
        )

    # Summary
    metrics = results['evaluation']['metrics']
    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {raw_df.shape[0]} rows ({clean_df.shape[0]} with known sex)")
    print(f"  • Selected model: {results['tuning']['best_model']}")
    print(f"  • Test accuracy: {metrics['accuracy']:.4f}")
    if metrics.get('roc_auc') is not None:
        print(f"  • Test ROC AUC: {metrics['roc_auc']:.4f}")
    print(f"  • Output: {results['prediction']['csv_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: Optional[str] = None,
    config_path: str = "config/config.yaml",
    log_level: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline (with the phases it depends on).

    'predict' runs preprocessing, tuning and evaluation before the final
    refit; EDA and variable importance are skipped.

    Args:
        phase: Phase to run ('eda', 'preprocess', 'tune', 'evaluate', 'explain', 'predict')
        data_path: Path to input CSV file
        config_path: Path to configuration file

    Returns:
        Phase result dictionary
    """
    if phase not in PHASES:
        raise ValueError(f"Unknown phase: {phase}. Choose from: {', '.join(PHASES)}")

    if phase == 'all':
        return run_full_pipeline(data_path, config_path, log_level)

    config = load_config(config_path)
    logging_config = config.get('logging', {})
    setup_logging(log_level or logging_config.get('level', 'INFO'), logging_config.get('log_dir'))

    with register_parallel_backend(config):
        raw_df, clean_df = load_penguins(config, data_path)

        if phase == 'eda':
            return run_eda(clean_df, config)

        prep_result = run_preprocessing(clean_df, config)
        if phase == 'preprocess':
            return prep_result

        tuning = run_tuning(prep_result, config)
        if phase == 'tune':
            return tuning

        eval_result = run_evaluation(prep_result, tuning, config)
        if phase == 'evaluate':
            return eval_result

        if phase == 'predict':
            return run_final_prediction_phase(
                raw_df, clean_df, prep_result, tuning, config, eval_result
            )

        return run_explanation(eval_result, prep_result, config)


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Penguin Sex Classification Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/penguins.csv
  python main.py --data data/raw/penguins.csv --phase tune
  python main.py --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        default=None,
        help='Path to the penguins CSV file (default: taken from the config)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=PHASES,
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if args.data is not None and not Path(args.data).exists():
        print(f"Error: Data file not found: {args.data}")
        print("\nExpected format: palmerpenguins CSV (species, island, measurements, sex, year)")
        return 1

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    log_level = 'DEBUG' if args.verbose else None

    try:
        if args.phase == 'all':
            run_full_pipeline(args.data, args.config, log_level)
        else:
            run_single_phase(args.phase, args.data, args.config, log_level)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
