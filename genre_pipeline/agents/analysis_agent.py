# genre_pipeline/agents/analysis_agent.py
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from genre_pipeline.config import Config, get_config

logger = logging.getLogger(__name__)

class ExploratoryAnalysisAgent:
    """Agent producing descriptive summaries of the labelled tracks.

    Nothing downstream reads its output; the report and charts exist for
    inspection only.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    async def analyze(self, state: dict) -> dict:
        logger.info("Starting exploratory analysis")

        try:
            data = state['labelled_data']
            columns = self.config.columns
            label_column = columns.LABEL_COLUMN
            predictors = [c for c in columns.predictors if c in data.columns]

            summary = FeatureAnalyzer.summarize_counts(data, columns.GENRE_COLUMN, label_column)
            correlation = FeatureAnalyzer.correlation_matrix(
                data, method=self.config.analysis.CORRELATION_METHOD
            )
            binned = {
                predictor: FeatureAnalyzer.binned_frequencies(
                    data, predictor, label_column, n_bins=self.config.analysis.N_BINS
                )
                for predictor in predictors
            }

            analysis_report = {
                'counts': summary,
                'correlation_matrix': correlation,
                'binned_frequencies': binned,
                'high_correlation_pairs': FeatureAnalyzer.high_correlation_pairs(correlation),
                'artifacts': []
            }

            if self.config.analysis.SAVE_PLOTS and state.get('save_plots', True):
                report_dir = Path(self.config.paths.REPORTS_DIR)
                report_dir.mkdir(parents=True, exist_ok=True)
                analysis_report['artifacts'] = self._write_artifacts(analysis_report, report_dir)

            state.update({
                'analysis_report': analysis_report,
                'current_step': 'exploratory_analysis',
                'next_action': 'partitioning'
            })

            state.setdefault('execution_log', []).append(
                f"Exploratory analysis completed: {len(binned)} predictors summarized"
            )

            return state

        except Exception as e:
            logger.error(f"Exploratory analysis failed: {str(e)}")
            state.setdefault('errors', []).append(f"Exploratory analysis error: {str(e)}")
            state['next_action'] = 'error'
            return state

    def _write_artifacts(self, analysis_report: dict, report_dir: Path) -> List[str]:
        artifacts = []

        heatmap_path = report_dir / "correlation_matrix.png"
        ChartRenderer.correlation_heatmap(analysis_report['correlation_matrix'], heatmap_path)
        artifacts.append(str(heatmap_path))

        bars_path = report_dir / "binned_frequencies.png"
        ChartRenderer.binned_bar_charts(analysis_report['binned_frequencies'], bars_path)
        artifacts.append(str(bars_path))

        summary_path = report_dir / "analysis_summary.json"
        with open(summary_path, 'w') as f:
            json.dump({
                'counts': analysis_report['counts'],
                'high_correlation_pairs': analysis_report['high_correlation_pairs'],
                'correlation_matrix': analysis_report['correlation_matrix'].round(4).to_dict()
            }, f, indent=2, default=str)
        artifacts.append(str(summary_path))

        logger.info(f"Analysis artifacts written to {report_dir}")
        return artifacts

class FeatureAnalyzer:
    """Descriptive statistics over the track table"""

    @staticmethod
    def summarize_counts(data: pd.DataFrame, genre_column: str, label_column: str) -> Dict:
        genre_counts = data[genre_column].value_counts().sort_index()
        label_counts = data[label_column].value_counts(dropna=False).sort_index()
        crosstab = pd.crosstab(data[genre_column], data[label_column])

        return {
            'n_tracks': int(len(data)),
            'genre_counts': {str(k): int(v) for k, v in genre_counts.items()},
            'category_counts': {str(k): int(v) for k, v in label_counts.items()},
            'category_proportions': {
                str(k): float(v) for k, v in (label_counts / max(len(data), 1)).items()
            },
            'genre_by_category': {
                str(genre): {str(c): int(n) for c, n in row.items() if n}
                for genre, row in crosstab.iterrows()
            }
        }

    @staticmethod
    def correlation_matrix(data: pd.DataFrame, method: str = 'pearson') -> pd.DataFrame:
        """Pairwise correlation over the numeric columns"""
        return data.select_dtypes(include=[np.number]).corr(method=method)

    @staticmethod
    def high_correlation_pairs(correlation: pd.DataFrame, threshold: float = 0.7) -> List[Dict]:
        pairs = []
        names = list(correlation.columns)
        for i in range(len(names)):
            for j in range(i + 1, len(names)):
                value = correlation.iloc[i, j]
                if pd.notnull(value) and abs(value) >= threshold:
                    pairs.append({
                        'feature1': names[i],
                        'feature2': names[j],
                        'correlation': float(value)
                    })
        return pairs

    @staticmethod
    def binned_frequencies(data: pd.DataFrame, column: str, label_column: str,
                           n_bins: int = 10) -> pd.DataFrame:
        """Counts of ``label_column`` per bin of ``column``.

        Columns with at most ``n_bins`` distinct values (key, mode,
        time_signature) are counted per value instead of being cut into
        equal-width intervals.
        """
        values = data[column]
        if values.nunique(dropna=True) <= n_bins:
            bins = values
        else:
            bins = pd.cut(values, bins=n_bins)

        table = pd.crosstab(bins, data[label_column])
        table.index = table.index.astype(str)
        table.index.name = column
        return table

class ChartRenderer:
    """matplotlib/seaborn renderings of the analysis tables"""

    @staticmethod
    def correlation_heatmap(correlation: pd.DataFrame, output_path: Path) -> None:
        fig, ax = plt.subplots(figsize=(12, 10))
        sns.heatmap(correlation, annot=True, fmt=".2f", cmap='coolwarm',
                    center=0, square=True, ax=ax)
        ax.set_title('Feature Correlations')
        fig.tight_layout()
        fig.savefig(output_path)
        plt.close(fig)

    @staticmethod
    def binned_bar_charts(tables: Dict[str, pd.DataFrame], output_path: Path, n_cols: int = 3) -> None:
        if not tables:
            return

        n_rows = int(np.ceil(len(tables) / n_cols))
        fig, axes = plt.subplots(n_rows, n_cols, figsize=(6 * n_cols, 4 * n_rows), squeeze=False)

        for ax, (column, table) in zip(axes.flat, tables.items()):
            table.plot(kind='bar', ax=ax, width=0.85)
            ax.set_title(column)
            ax.set_xlabel('')
            ax.set_ylabel('tracks')
            ax.tick_params(axis='x', labelrotation=60, labelsize=7)

        for ax in list(axes.flat)[len(tables):]:
            ax.set_visible(False)

        fig.tight_layout()
        fig.savefig(output_path)
        plt.close(fig)
