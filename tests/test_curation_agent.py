# tests/test_curation_agent.py
import pytest
import pandas as pd
import numpy as np
from genre_pipeline.agents.curation_agent import (
    TrackCurationAgent, TrackSampler, GenreLabelMapper, UnmappedGenreError
)
from genre_pipeline.config import DEFAULT_GENRE_TO_CATEGORY

class TestTrackSampler:

    def test_non_protected_genres_keep_a_quarter(self, clean_tracks):
        original_counts = clean_tracks['genre'].value_counts()

        sampled, report = TrackSampler.downsample(
            clean_tracks, genre_column='genre', protected_genre='Pop', fraction=0.25, random_state=2021
        )

        sampled_counts = sampled['genre'].value_counts()
        for genre, count in original_counts.items():
            if genre == 'Pop':
                continue
            assert sampled_counts.get(genre, 0) == count // 4
            assert report[genre] == {'original': count, 'sampled': count // 4}

    def test_protected_genre_is_untouched(self, clean_tracks):
        sampled, report = TrackSampler.downsample(
            clean_tracks, genre_column='genre', protected_genre='Pop', random_state=2021
        )

        original_pop = clean_tracks[clean_tracks['genre'] == 'Pop']
        sampled_pop = sampled[sampled['genre'] == 'Pop']
        pd.testing.assert_frame_equal(original_pop, sampled_pop)
        assert report['Pop']['sampled'] == report['Pop']['original']

    def test_sample_is_a_subset_without_replacement(self, clean_tracks):
        sampled, _ = TrackSampler.downsample(clean_tracks, genre_column='genre', protected_genre='Pop')

        assert sampled.index.is_unique
        assert set(sampled.index) <= set(clean_tracks.index)
        pd.testing.assert_frame_equal(sampled, clean_tracks.loc[sampled.index])

    def test_same_seed_reproduces_selection(self, clean_tracks):
        first, _ = TrackSampler.downsample(clean_tracks, 'genre', 'Pop', random_state=2021)
        second, _ = TrackSampler.downsample(clean_tracks, 'genre', 'Pop', random_state=2021)
        other, _ = TrackSampler.downsample(clean_tracks, 'genre', 'Pop', random_state=99)

        assert list(first.index) == list(second.index)
        assert list(first.index) != list(other.index)

    def test_small_genre_yields_no_rows(self):
        data = pd.DataFrame({
            'genre': ['Rap'] * 3 + ['Pop'] * 2 + ['techno'] * 8,
            'tempo': np.arange(13, dtype=float)
        })

        sampled, report = TrackSampler.downsample(data, 'genre', 'Pop')

        assert report['Rap'] == {'original': 3, 'sampled': 0}
        assert report['techno'] == {'original': 8, 'sampled': 2}
        assert (sampled['genre'] == 'Pop').sum() == 2
        assert len(sampled) == 4

    def test_missing_protected_genre_still_samples(self, clean_tracks):
        data = clean_tracks[clean_tracks['genre'] != 'Pop']

        sampled, report = TrackSampler.downsample(data, 'genre', 'Pop')

        assert 'Pop' not in report
        assert len(sampled) == sum(r['original'] // 4 for r in report.values())

    @pytest.mark.parametrize("fraction", [0, -0.5, 1.5])
    def test_invalid_fraction(self, clean_tracks, fraction):
        with pytest.raises(ValueError):
            TrackSampler.downsample(clean_tracks, 'genre', 'Pop', fraction=fraction)

    def test_missing_genre_column(self, clean_tracks):
        with pytest.raises(ValueError):
            TrackSampler.downsample(clean_tracks.drop(columns=['genre']), 'genre', 'Pop')

class TestGenreLabelMapper:

    def test_labels_follow_lookup_table(self, clean_tracks):
        mapper = GenreLabelMapper(DEFAULT_GENRE_TO_CATEGORY)

        labelled, report = mapper.apply(clean_tracks, 'genre', 'coarse_category')

        expected = labelled['genre'].map(DEFAULT_GENRE_TO_CATEGORY)
        pd.testing.assert_series_equal(labelled['coarse_category'], expected, check_names=False)
        assert set(labelled['coarse_category']) == {'electronic', 'hiphop'}
        assert report['unmapped_rows'] == 0
        assert sum(report['category_counts'].values()) == len(clean_tracks)

    def test_every_genre_maps_to_one_of_two_categories(self):
        mapper = GenreLabelMapper(DEFAULT_GENRE_TO_CATEGORY)
        genres = pd.Series(sorted(DEFAULT_GENRE_TO_CATEGORY))

        labels = mapper.map(genres)

        assert len(genres) == 15
        assert labels.notnull().all()
        assert set(labels) == {'electronic', 'hiphop'}
        assert mapper.map(pd.Series(['Polka'])).isnull().all()

    def test_drop_policy_removes_unmapped_rows(self, clean_tracks):
        data = clean_tracks.copy()
        data.loc[data.index[:4], 'genre'] = 'Polka'
        mapper = GenreLabelMapper(DEFAULT_GENRE_TO_CATEGORY, policy='drop')

        labelled, report = mapper.apply(data, 'genre', 'coarse_category')

        assert len(labelled) == len(data) - 4
        assert labelled['coarse_category'].notnull().all()
        assert report['unmapped_rows'] == 4
        assert report['unmapped_genres'] == ['Polka']

    def test_keep_policy_leaves_label_missing(self, clean_tracks):
        data = clean_tracks.copy()
        data.loc[data.index[:4], 'genre'] = 'Polka'
        mapper = GenreLabelMapper(DEFAULT_GENRE_TO_CATEGORY, policy='keep')

        labelled, report = mapper.apply(data, 'genre', 'coarse_category')

        assert len(labelled) == len(data)
        assert labelled['coarse_category'].isnull().sum() == 4

    def test_raise_policy(self, clean_tracks):
        data = clean_tracks.copy()
        data.loc[data.index[:4], 'genre'] = 'Polka'
        mapper = GenreLabelMapper(DEFAULT_GENRE_TO_CATEGORY, policy='raise')

        with pytest.raises(UnmappedGenreError, match='Polka'):
            mapper.apply(data, 'genre', 'coarse_category')

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            GenreLabelMapper(DEFAULT_GENRE_TO_CATEGORY, policy='ignore')

    def test_input_frame_is_not_modified(self, clean_tracks):
        columns = list(clean_tracks.columns)
        GenreLabelMapper(DEFAULT_GENRE_TO_CATEGORY).apply(clean_tracks, 'genre', 'coarse_category')
        assert list(clean_tracks.columns) == columns

class TestTrackCurationAgent:

    @pytest.mark.asyncio
    async def test_clean_data_drops_irrelevant_and_empty_columns(self, config, clean_tracks):
        agent = TrackCurationAgent(config)
        data = clean_tracks.copy()
        data['comment'] = np.nan

        result = await agent.clean_data({'raw_data': data, 'execution_log': []})

        filtered = result['filtered_data']
        for column in config.columns.DROP_COLUMNS + ['comment']:
            assert column not in filtered.columns
        assert set(config.columns.required_columns) <= set(filtered.columns)
        assert result['cleaning_report']['empty_columns'] == ['comment']
        assert result['next_action'] == 'class_rebalancing'

    @pytest.mark.asyncio
    async def test_rebalance_and_persist(self, config, clean_tracks):
        agent = TrackCurationAgent(config)
        state = {'filtered_data': clean_tracks, 'execution_log': []}

        state = await agent.rebalance(state)
        sampled = state['resampled_data']
        state = await agent.persist_resampled(state)

        path = config.paths.resampled_path
        assert path.exists()
        assert state['resampled_path'] == str(path)
        reloaded = state['resampled_data']
        assert len(reloaded) == len(sampled) == state['sampling_report']['rows_after']
        assert list(reloaded['genre']) == list(sampled['genre'])
        np.testing.assert_allclose(reloaded['tempo'].values, sampled['tempo'].values)
        assert state['next_action'] == 'label_derivation'

    @pytest.mark.asyncio
    async def test_derive_labels(self, config, clean_tracks):
        agent = TrackCurationAgent(config)

        result = await agent.derive_labels({'resampled_data': clean_tracks, 'execution_log': []})

        labelled = result['labelled_data']
        assert 'coarse_category' in labelled.columns
        assert result['label_report']['unmapped_rows'] == 0
        assert result['next_action'] == 'exploratory_analysis'

    @pytest.mark.asyncio
    async def test_derive_labels_raise_policy_reports_error(self, config, clean_tracks):
        config.labels.UNMAPPED_POLICY = 'raise'
        agent = TrackCurationAgent(config)
        data = clean_tracks.copy()
        data.loc[data.index[0], 'genre'] = 'Polka'

        result = await agent.derive_labels({'resampled_data': data})

        assert result['next_action'] == 'error'
        assert 'Polka' in result['errors'][0]
