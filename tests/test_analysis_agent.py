# tests/test_analysis_agent.py
import json
from pathlib import Path
import pytest
import pandas as pd
import numpy as np
from genre_pipeline.agents.analysis_agent import ExploratoryAnalysisAgent, FeatureAnalyzer

class TestFeatureAnalyzer:

    def test_summarize_counts(self, labelled_tracks):
        summary = FeatureAnalyzer.summarize_counts(labelled_tracks, 'genre', 'coarse_category')

        assert summary['n_tracks'] == len(labelled_tracks)
        assert sum(summary['genre_counts'].values()) == len(labelled_tracks)
        assert set(summary['category_counts']) == {'electronic', 'hiphop'}
        assert sum(summary['category_proportions'].values()) == pytest.approx(1.0)
        assert summary['genre_by_category']['Pop'] == {'hiphop': summary['genre_counts']['Pop']}

    def test_correlation_matrix_is_symmetric(self, labelled_tracks):
        correlation = FeatureAnalyzer.correlation_matrix(labelled_tracks)

        assert 'genre' not in correlation.columns
        assert 'tempo' in correlation.columns
        np.testing.assert_allclose(correlation.values, correlation.values.T)
        np.testing.assert_allclose(np.diag(correlation.values), 1.0)

    def test_high_correlation_pairs(self):
        correlation = pd.DataFrame(
            [[1.0, 0.9, 0.1], [0.9, 1.0, -0.75], [0.1, -0.75, 1.0]],
            index=['a', 'b', 'c'], columns=['a', 'b', 'c']
        )

        pairs = FeatureAnalyzer.high_correlation_pairs(correlation, threshold=0.7)

        assert [(p['feature1'], p['feature2']) for p in pairs] == [('a', 'b'), ('b', 'c')]

    def test_binned_frequencies_continuous(self, labelled_tracks):
        table = FeatureAnalyzer.binned_frequencies(labelled_tracks, 'tempo', 'coarse_category', n_bins=10)

        assert len(table) == 10
        assert table.values.sum() == len(labelled_tracks)
        assert list(table.columns) == ['electronic', 'hiphop']

    def test_binned_frequencies_discrete(self, labelled_tracks):
        table = FeatureAnalyzer.binned_frequencies(labelled_tracks, 'mode', 'coarse_category', n_bins=10)

        assert list(table.index) == ['0', '1']
        assert table.values.sum() == len(labelled_tracks)

class TestExploratoryAnalysisAgent:

    @pytest.mark.asyncio
    async def test_analysis_without_plots(self, config, labelled_tracks):
        agent = ExploratoryAnalysisAgent(config)

        result = await agent.analyze({'labelled_data': labelled_tracks, 'save_plots': False})

        report = result['analysis_report']
        assert set(report['binned_frequencies']) == set(config.columns.predictors)
        assert report['artifacts'] == []
        assert result['next_action'] == 'partitioning'

    @pytest.mark.asyncio
    async def test_analysis_writes_artifacts(self, config, labelled_tracks):
        agent = ExploratoryAnalysisAgent(config)

        result = await agent.analyze({'labelled_data': labelled_tracks, 'execution_log': []})

        artifacts = result['analysis_report']['artifacts']
        assert len(artifacts) == 3
        for artifact in artifacts:
            assert Path(artifact).exists()
            assert Path(artifact).parent == config.paths.REPORTS_DIR

        with open(config.paths.REPORTS_DIR / 'analysis_summary.json') as f:
            summary = json.load(f)
        assert summary['counts']['n_tracks'] == len(labelled_tracks)

    @pytest.mark.asyncio
    async def test_analysis_requires_labels(self, config, labelled_tracks):
        agent = ExploratoryAnalysisAgent(config)

        result = await agent.analyze({'labelled_data': labelled_tracks.drop(columns=['coarse_category'])})

        assert result['next_action'] == 'error'
        assert len(result['errors']) == 1
