"""
command line interface
"""
import argparse
import logging
import os
import yaml
import joblib
import pandas as pd
from datetime import datetime

from varimp_analyzer.data_loader import DatasetLoader
from varimp_analyzer.explainer import Explainer
from varimp_analyzer.feature_importance import compare_reports
from varimp_analyzer.loss_functions import get_loss_function

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def load_config(config_path: str = None) -> dict:
    """Load configuration from YAML file or use defaults"""
    default_config = {
        'data': {
            'input_path': 'data/validation.csv',
            'response_column': 'y',
            'id_columns': [],
            'output_dir': 'results'
        },
        'models': [],
        'analysis': {
            'loss_function': 'rmse',
            'mode': 'raw',
            'n_repeats': 10,
            'random_seed': 42,
            'n_jobs': 1,
            'variables': [],
            'variable_groups': {},
            'top_n_features': 10,
            'model_performance': True
        }
    }

    if config_path and os.path.exists(config_path):
        with open(config_path, 'r') as f:
            user_config = yaml.safe_load(f) or {}
            # Deep merge configs
            for key in user_config:
                if key in default_config and isinstance(default_config[key], dict):
                    default_config[key].update(user_config[key])
                else:
                    default_config[key] = user_config[key]

    return default_config


def parse_model_spec(spec: str) -> dict:
    """Split 'path/to/model.joblib:label' into path and label"""
    path, sep, label = spec.rpartition(':')
    if not sep or not path or os.sep in label:
        path, label = spec, None
    if not label:
        label = os.path.splitext(os.path.basename(path))[0]
    return {'path': path, 'label': label}


def run_analysis(config: dict) -> dict:
    """Run permutation importance for every configured model"""

    print("🚀 Permutation Variable Importance Analysis")
    print("=" * 60)

    output_dir = config['data']['output_dir']
    os.makedirs(output_dir, exist_ok=True)

    # Step 1: Load and prepare data
    print("\n📊 Step 1: Loading validation data...")
    loader = DatasetLoader(config['data']['response_column'],
                           id_columns=config['data'].get('id_columns'))
    df = loader.load_data(config['data']['input_path'])
    dataset, feature_names = loader.prepare_dataset(df)

    feature_stats = loader.get_feature_statistics(dataset)
    feature_stats.to_csv(os.path.join(output_dir, 'feature_statistics.csv'))

    # Step 2: Wrap models into explainers
    print("\n🧩 Step 2: Loading models...")
    if not config['models']:
        raise ValueError("No models configured; pass --model or set 'models' in the config")

    explainers = []
    for model_spec in config['models']:
        if isinstance(model_spec, str):
            model_spec = parse_model_spec(model_spec)
        elif not model_spec.get('label'):
            model_spec = dict(model_spec, label=parse_model_spec(model_spec['path'])['label'])
        model = joblib.load(model_spec['path'])
        logger.info(f"Loaded model {model_spec['label']} from {model_spec['path']}")
        explainers.append(Explainer(model, dataset, config['data']['response_column'],
                                    label=model_spec['label']))

    analysis = config['analysis']
    loss_function = get_loss_function(analysis['loss_function'])

    # Step 3: Performance
    performances = {}
    run_performance = analysis.get('model_performance', True)
    if run_performance and not pd.api.types.is_numeric_dtype(dataset[config['data']['response_column']]):
        logger.warning("Response is not numeric; skipping residual based model performance")
        run_performance = False

    if run_performance:
        print("\n🎯 Step 3: Evaluating model performance...")
        for explainer in explainers:
            summary = explainer.model_performance()
            summary.to_frame().to_csv(
                os.path.join(output_dir, f'performance_{explainer.label}.csv')
            )
            performances[explainer.label] = summary

    # Step 4: Permutation importance
    print("\n🔀 Step 4: Calculating permutation importance...")
    reports = []
    for explainer in explainers:
        report = explainer.model_parts(
            loss_function,
            variables=analysis.get('variables') or None,
            mode=analysis.get('mode', 'raw'),
            random_seed=analysis.get('random_seed'),
            n_repeats=analysis.get('n_repeats', 1),
            variable_groups=analysis.get('variable_groups') or None,
            n_jobs=analysis.get('n_jobs', 1),
            progress=True
        )
        report.to_frame().to_csv(
            os.path.join(output_dir, f'importance_{explainer.label}.csv'), index=False
        )
        report.permutations.to_csv(
            os.path.join(output_dir, f'permutations_{explainer.label}.csv')
        )
        reports.append(report)

    comparison = None
    if len(reports) > 1:
        comparison = compare_reports(*reports)
        comparison.to_csv(os.path.join(output_dir, 'importance_comparison.csv'))

    print_analysis_summary(dataset, feature_names, reports, performances, config)

    return {
        'reports': reports,
        'performances': performances,
        'comparison': comparison,
        'feature_names': feature_names,
        'dataset': dataset
    }


def print_analysis_summary(dataset, feature_names, reports, performances, config):
    """Print analysis summary"""

    print("\n" + "=" * 60)
    print("📊 ANALYSIS SUMMARY")
    print("=" * 60)
    print(f"\nDataset: {len(dataset)} records")
    print(f"Predictors: {len(feature_names)}")
    print(f"Response: {config['data']['response_column']}")

    if performances:
        print("\n🎯 Model Performance:")
        for label, summary in performances.items():
            print(f"  {label}: RMSE={summary.metrics['rmse']:.3f}, R2={summary.metrics['r2']:.3f}")

    top_n = config['analysis'].get('top_n_features', 10)
    for report in reports:
        print(f"\n🌟 {report.label} ({report.loss_name}, {report.mode}):")
        print(f"  full model: {report.full_model_loss:.4f}")
        print(f"  baseline:   {report.baseline_loss:.4f}")
        for i, (variable, score) in enumerate(report.ranked(top_n).items(), 1):
            print(f"  {i}. {variable}: {score:.4f}")

    print("\n✅ Analysis complete!")
    print(f"Results saved to: {config['data']['output_dir']}")


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Permutation Variable Importance Analysis',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Compare a linear model and a random forest
  varimp-analyze --input apartments.csv --response m2_price \\
      --model lm.joblib:lm --model rf.joblib:rf

  # Importance relative to the full model, 25 draws per variable
  varimp-analyze --input data.csv --model rf.joblib --mode difference --repeats 25

  # With custom config
  varimp-analyze --config my_config.yaml
        """
    )

    parser.add_argument(
        '--input', '-i',
        help='Input CSV file path'
    )
    parser.add_argument(
        '--response', '-r',
        help='Name of the response column'
    )
    parser.add_argument(
        '--model', '-m',
        action='append',
        help='Pickled model file, optionally suffixed with :label (repeatable)'
    )
    parser.add_argument(
        '--config', '-c',
        default='config.yaml',
        help='Configuration file path'
    )
    parser.add_argument(
        '--output', '-o',
        help='Output directory'
    )
    parser.add_argument(
        '--loss', '-l',
        help='Loss function (rmse, mae, sse, 1-auc, 1-accuracy)'
    )
    parser.add_argument(
        '--mode',
        choices=['raw', 'difference', 'ratio'],
        help='How variable losses are reported'
    )
    parser.add_argument(
        '--repeats',
        type=int,
        help='Number of permutation draws per variable'
    )
    parser.add_argument(
        '--seed',
        type=int,
        help='Random seed for reproducible permutations'
    )
    parser.add_argument(
        '--jobs', '-j',
        type=int,
        help='Parallel workers for per-variable scoring'
    )
    parser.add_argument(
        '--variables',
        help='Comma separated list of variables to score'
    )
    parser.add_argument(
        '--no-performance',
        action='store_true',
        help='Skip residual based model performance'
    )
    parser.add_argument(
        '--timestamp',
        action='store_true',
        help='Add timestamp to output directory'
    )

    args = parser.parse_args(argv)

    # Load configuration
    config = load_config(args.config)

    # Override config with command line arguments
    if args.input:
        config['data']['input_path'] = args.input
    if args.response:
        config['data']['response_column'] = args.response
    if args.output:
        config['data']['output_dir'] = args.output
    if args.model:
        config['models'] = [parse_model_spec(spec) for spec in args.model]
    if args.loss:
        config['analysis']['loss_function'] = args.loss
    if args.mode:
        config['analysis']['mode'] = args.mode
    if args.repeats is not None:
        config['analysis']['n_repeats'] = args.repeats
    if args.seed is not None:
        config['analysis']['random_seed'] = args.seed
    if args.jobs is not None:
        config['analysis']['n_jobs'] = args.jobs
    if args.no_performance:
        config['analysis']['model_performance'] = False
    if args.variables:
        config['analysis']['variables'] = [v.strip() for v in args.variables.split(',') if v.strip()]

    # Add timestamp if requested
    if args.timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        config['data']['output_dir'] = f"{config['data']['output_dir']}_{timestamp}"

    try:
        return run_analysis(config)
    except Exception as e:
        logger.error(f"Analysis failed: {e}")
        raise


if __name__ == "__main__":
    main()
