import asyncio
import argparse
import sys
from pathlib import Path
from genre_pipeline.pipeline import GenrePipeline
from genre_pipeline.sample_data import write_sample_dataset
from genre_pipeline.utils.logging_config import setup_logging
from genre_pipeline.config import get_config

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Spotify genre-family classification pipeline")
    parser.add_argument("--data-path", help="Path to the track CSV")
    parser.add_argument("--project-name", help="Name of the pipeline run")
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--output-dir", help="Directory for processed data and reports")
    parser.add_argument("--log-level", help="Logging level")
    parser.add_argument("--train-models", action="store_true",
                        help="Cross-validate the candidate classifiers after preparation")
    parser.add_argument("--models", nargs="+", help="Restrict training to these candidates")
    parser.add_argument("--skip-plots", action="store_true", help="Do not render analysis charts")
    parser.add_argument("--generate-sample", metavar="PATH",
                        help="Write a synthetic track CSV to PATH and exit")
    parser.add_argument("--sample-scale", type=float, default=1.0,
                        help="Fraction of the export's row counts to generate")
    return parser

def main(argv=None):
    """Main entry point for the genre pipeline"""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_config(args.config)

    issues = config.validate_config()
    if issues:
        for issue in issues:
            print(f"Configuration error: {issue}")
        sys.exit(1)

    setup_logging(log_level=args.log_level or config.logging_level, log_dir=str(config.paths.LOGS_DIR))

    if args.generate_sample:
        path = write_sample_dataset(args.generate_sample, scale=args.sample_scale,
                                    random_state=config.sampling.RANDOM_STATE)
        print(f"Sample dataset written to {path}")
        return

    if not args.data_path:
        parser.error("--data-path is required unless --generate-sample is given")

    if not Path(args.data_path).exists():
        print(f"Error: Data file not found at {args.data_path}")
        sys.exit(1)

    if args.output_dir:
        config.use_output_dir(args.output_dir)

    async def run_pipeline():
        pipeline = GenrePipeline(config, model_candidates=args.models)

        return await pipeline.run_pipeline(
            data_path=args.data_path,
            project_name=args.project_name,
            train_models=args.train_models,
            save_plots=not args.skip_plots
        )

    result = asyncio.run(run_pipeline())

    if result.get('status') == 'failed':
        print(f"Pipeline failed: {result.get('error')}")
        sys.exit(1)

    print("Pipeline completed successfully!")
    print(f"Project: {result.get('project_name')}")
    print(f"Resampled tracks: {result.get('resampled_path')}")
    print(f"Modeling bundle: {result.get('bundle_path')}")
    label_report = result.get('label_report') or {}
    print(f"Coarse categories: {label_report.get('category_counts')}")

    best_model = result.get('best_model') or {}
    if best_model:
        performance = result.get('evaluation_results', {}).get('metrics', {})
        print(f"Best model: {best_model.get('model_name')} (CV ROC-AUC {best_model.get('cv_mean'):.3f})")
        print(f"Test metrics: {performance}")

if __name__ == "__main__":
    main()
