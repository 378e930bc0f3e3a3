# genre_pipeline/agents/curation_agent.py
import pandas as pd
import numpy as np
from typing import Dict, List, Optional, Tuple
import logging
from pathlib import Path

from genre_pipeline.config import Config, get_config, UNMAPPED_POLICIES
from genre_pipeline.utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)

class UnmappedGenreError(ValueError):
    """Raised when a genre has no coarse category and the policy is 'raise'"""

class TrackCurationAgent:
    """Agent responsible for column filtering, genre rebalancing and labelling"""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    async def clean_data(self, state: dict) -> dict:
        """Drop irrelevant and empty columns"""
        logger.info("Starting column filtering")

        try:
            data = state['raw_data'].copy()
            original_shape = data.shape

            drop_columns = [c for c in self.config.columns.DROP_COLUMNS if c in data.columns]
            data = data.drop(columns=drop_columns)

            empty_columns = [c for c in data.columns if data[c].isnull().all()]
            if empty_columns:
                logger.info(f"Dropping completely empty columns: {empty_columns}")
                data = data.drop(columns=empty_columns)

            cleaning_report = {
                'original_shape': original_shape,
                'cleaned_shape': data.shape,
                'dropped_columns': drop_columns,
                'empty_columns': empty_columns,
                'remaining_columns': list(data.columns)
            }

            state.update({
                'filtered_data': data,
                'cleaning_report': cleaning_report,
                'current_step': 'data_cleaning',
                'next_action': 'class_rebalancing'
            })

            state.setdefault('execution_log', []).append(
                f"Column filtering completed: {original_shape[1]} -> {data.shape[1]} columns"
            )

            return state

        except Exception as e:
            logger.error(f"Column filtering failed: {str(e)}")
            state.setdefault('errors', []).append(f"Column filtering error: {str(e)}")
            state['next_action'] = 'error'
            return state

    async def rebalance(self, state: dict) -> dict:
        """Down-sample every genre except the protected one"""
        logger.info("Starting genre rebalancing")

        try:
            sampling = self.config.sampling
            data = state.get('filtered_data')
            if data is None:
                data = state['raw_data']

            resampled, report = TrackSampler.downsample(
                data,
                genre_column=self.config.columns.GENRE_COLUMN,
                protected_genre=sampling.PROTECTED_GENRE,
                fraction=sampling.FRACTION,
                random_state=sampling.RANDOM_STATE
            )

            sampling_report = {
                'fraction': sampling.FRACTION,
                'protected_genre': sampling.PROTECTED_GENRE,
                'random_state': sampling.RANDOM_STATE,
                'rows_before': len(data),
                'rows_after': len(resampled),
                'per_genre': report
            }

            state.update({
                'resampled_data': resampled,
                'sampling_report': sampling_report,
                'current_step': 'class_rebalancing',
                'next_action': 'persist_resampled'
            })

            state.setdefault('execution_log', []).append(
                f"Genre rebalancing completed: {len(data)} -> {len(resampled)} rows"
            )

            return state

        except Exception as e:
            logger.error(f"Genre rebalancing failed: {str(e)}")
            state.setdefault('errors', []).append(f"Genre rebalancing error: {str(e)}")
            state['next_action'] = 'error'
            return state

    async def persist_resampled(self, state: dict) -> dict:
        """Write the resampled table to CSV and continue from the reloaded file"""
        logger.info("Persisting resampled tracks")

        try:
            output_path = Path(state.get('resampled_path') or self.config.paths.resampled_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)

            state['resampled_data'].to_csv(output_path, index=False)
            reloaded = pd.read_csv(output_path)
            logger.info(f"Resampled tracks written to {output_path}")

            state.update({
                'resampled_data': reloaded,
                'resampled_path': str(output_path),
                'current_step': 'persist_resampled',
                'next_action': 'label_derivation'
            })

            state.setdefault('execution_log', []).append(
                f"Resampled tracks persisted: {output_path}"
            )

            return state

        except Exception as e:
            logger.error(f"Persisting resampled tracks failed: {str(e)}")
            state.setdefault('errors', []).append(f"Persist error: {str(e)}")
            state['next_action'] = 'error'
            return state

    async def derive_labels(self, state: dict) -> dict:
        """Collapse genres into the two coarse categories"""
        logger.info("Starting label derivation")

        try:
            columns = self.config.columns
            mapper = GenreLabelMapper(
                self.config.labels.GENRE_TO_CATEGORY,
                policy=self.config.labels.UNMAPPED_POLICY
            )

            labelled, label_report = mapper.apply(
                state['resampled_data'],
                genre_column=columns.GENRE_COLUMN,
                label_column=columns.LABEL_COLUMN
            )

            state.update({
                'labelled_data': labelled,
                'label_report': label_report,
                'current_step': 'label_derivation',
                'next_action': 'exploratory_analysis'
            })

            state.setdefault('execution_log', []).append(
                f"Label derivation completed: {label_report['category_counts']}"
            )

            return state

        except Exception as e:
            logger.error(f"Label derivation failed: {str(e)}")
            state.setdefault('errors', []).append(f"Label derivation error: {str(e)}")
            state['next_action'] = 'error'
            return state

class TrackSampler:
    """Per-genre down-sampling"""

    @staticmethod
    @log_execution_time
    def downsample(data: pd.DataFrame, genre_column: str, protected_genre: str,
                   fraction: float = 0.25, random_state: int = 2021) -> Tuple[pd.DataFrame, Dict[str, Dict[str, int]]]:
        """
        Keep ``floor(count * fraction)`` rows of every genre, sampled without
        replacement, and every row of ``protected_genre``.

        Genres are processed in sorted order and each draw uses ``random_state``,
        so equal inputs give equal selections. Rows without a genre are not kept.

        Returns:
            The concatenated sample and a per-genre ``{'original', 'sampled'}`` report
        """
        if not 0 < fraction <= 1:
            raise ValueError(f"Sample fraction must be in (0, 1]: {fraction}")

        if genre_column not in data.columns:
            raise ValueError(f"Genre column '{genre_column}' not found")

        parts = []
        report = {}

        for genre, group in data.groupby(genre_column, sort=True):
            if genre == protected_genre:
                sampled = group
            else:
                n_rows = int(np.floor(len(group) * fraction))
                sampled = group.sample(n=n_rows, replace=False, random_state=random_state)

            parts.append(sampled)
            report[str(genre)] = {'original': len(group), 'sampled': len(sampled)}

        if protected_genre not in report:
            logger.warning(f"Protected genre '{protected_genre}' not present in the data")

        if not parts:
            return data.iloc[0:0].copy(), report

        return pd.concat(parts), report

class GenreLabelMapper:
    """Maps genres onto coarse categories through a fixed lookup table"""

    def __init__(self, table: Dict[str, str], policy: str = 'drop'):
        if policy not in UNMAPPED_POLICIES:
            raise ValueError(f"Unknown unmapped genre policy '{policy}', expected one of {UNMAPPED_POLICIES}")
        self.table = dict(table)
        self.policy = policy

    def map(self, genres: pd.Series) -> pd.Series:
        """Look every genre up; unmapped genres give a missing label"""
        return genres.map(self.table)

    def apply(self, data: pd.DataFrame, genre_column: str, label_column: str) -> Tuple[pd.DataFrame, dict]:
        """Add ``label_column`` to a copy of ``data`` and resolve unmapped genres"""
        if genre_column not in data.columns:
            raise ValueError(f"Genre column '{genre_column}' not found")

        labelled = data.copy()
        labelled[label_column] = self.map(labelled[genre_column])

        unmapped_mask = labelled[label_column].isnull()
        unmapped_genres = self._unmapped_values(labelled.loc[unmapped_mask, genre_column])
        n_unmapped = int(unmapped_mask.sum())

        if n_unmapped:
            if self.policy == 'raise':
                raise UnmappedGenreError(
                    f"{n_unmapped} rows have genres without a coarse category: {unmapped_genres}"
                )
            if self.policy == 'drop':
                logger.warning(f"Dropping {n_unmapped} rows with unmapped genres: {unmapped_genres}")
                labelled = labelled.loc[~unmapped_mask]
            else:
                logger.warning(f"Keeping {n_unmapped} rows without a coarse category: {unmapped_genres}")

        report = {
            'policy': self.policy,
            'mapped_rows': int((~unmapped_mask).sum()),
            'unmapped_rows': n_unmapped,
            'unmapped_genres': unmapped_genres,
            'category_counts': labelled[label_column].value_counts().to_dict()
        }

        return labelled, report

    @staticmethod
    def _unmapped_values(values: pd.Series) -> List[str]:
        return sorted(str(v) for v in values.dropna().unique())
