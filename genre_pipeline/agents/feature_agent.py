# genre_pipeline/agents/feature_agent.py
import pandas as pd
import numpy as np
from typing import Dict, List, Optional, Tuple
import logging
from pathlib import Path
from sklearn.compose import ColumnTransformer
from sklearn.model_selection import StratifiedKFold, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import FunctionTransformer, OneHotEncoder, StandardScaler

from genre_pipeline.config import Config, get_config
from genre_pipeline.utils.artifacts import ModelingBundle, save_bundle

logger = logging.getLogger(__name__)

class FeatureEngineeringAgent:
    """Agent responsible for partitioning, the preprocessing plan and CV folds"""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    async def split_data(self, state: dict) -> dict:
        """Stratified train/test split on the coarse category"""
        logger.info("Starting train/test partitioning")

        try:
            data = state['labelled_data']
            training = self.config.training
            label_column = self.config.columns.LABEL_COLUMN

            # Rows kept without a category under the 'keep' policy cannot be stratified
            unlabelled = data[label_column].isnull()
            n_unlabelled = int(unlabelled.sum())
            if n_unlabelled:
                logger.warning(f"Excluding {n_unlabelled} rows without a coarse category from partitioning")
                data = data.loc[~unlabelled]

            train, test = StratifiedSplitter.split(
                data,
                strata=label_column,
                test_size=training.TEST_SIZE,
                random_state=training.RANDOM_STATE
            )

            split_report = {
                'n_train': len(train),
                'n_test': len(test),
                'test_size': training.TEST_SIZE,
                'excluded_unlabelled_rows': n_unlabelled,
                'train_proportions': train[label_column].value_counts(normalize=True).to_dict(),
                'test_proportions': test[label_column].value_counts(normalize=True).to_dict()
            }

            state.update({
                'train_data': train,
                'test_data': test,
                'split_report': split_report,
                'current_step': 'partitioning',
                'next_action': 'preprocessing_plan'
            })

            state.setdefault('execution_log', []).append(
                f"Partitioning completed: train {len(train)}, test {len(test)}"
            )

            return state

        except Exception as e:
            logger.error(f"Partitioning failed: {str(e)}")
            state.setdefault('errors', []).append(f"Partitioning error: {str(e)}")
            state['next_action'] = 'error'
            return state

    async def build_plan(self, state: dict) -> dict:
        """Declare the preprocessing recipe without fitting it"""
        logger.info("Building preprocessing plan")

        try:
            columns = self.config.columns
            train = state['train_data']

            numeric = [c for c in columns.NUMERIC_FEATURES if c in train.columns]
            missing = sorted(set(columns.NUMERIC_FEATURES) - set(numeric))
            if missing:
                logger.warning(f"Numeric predictors not present and left out of the plan: {missing}")

            if columns.CATEGORICAL_COLUMN not in train.columns:
                raise ValueError(f"Categorical predictor '{columns.CATEGORICAL_COLUMN}' not found")

            plan = build_preprocessing_plan(numeric, [columns.CATEGORICAL_COLUMN])

            state.update({
                'preprocessing_plan': plan,
                'plan_report': {
                    'numeric_features': numeric,
                    'categorical_features': [columns.CATEGORICAL_COLUMN],
                    'steps': ['cast categorical to category', 'one-hot encode (reference level dropped)',
                              'center and scale numeric']
                },
                'current_step': 'preprocessing_plan',
                'next_action': 'fold_assignment'
            })

            state.setdefault('execution_log', []).append(
                f"Preprocessing plan declared: {len(numeric)} numeric, 1 categorical predictor"
            )

            return state

        except Exception as e:
            logger.error(f"Preprocessing plan failed: {str(e)}")
            state.setdefault('errors', []).append(f"Preprocessing plan error: {str(e)}")
            state['next_action'] = 'error'
            return state

    async def assign_folds(self, state: dict) -> dict:
        """Stratified cross-validation folds over the training partition"""
        logger.info("Assigning cross-validation folds")

        try:
            train = state['train_data']
            training = self.config.training

            folds = FoldAssigner.assign(
                train[self.config.columns.LABEL_COLUMN],
                n_splits=training.CV_FOLDS,
                random_state=training.RANDOM_STATE
            )

            fold_ids = FoldAssigner.fold_ids(folds, train.index)
            fold_report = {
                'n_folds': len(folds),
                'assessment_sizes': [len(f['assessment']) for f in folds],
                'unassigned_rows': int(fold_ids.isnull().sum())
            }

            state.update({
                'folds': folds,
                'fold_ids': fold_ids,
                'fold_report': fold_report,
                'current_step': 'fold_assignment',
                'next_action': 'bundle'
            })

            state.setdefault('execution_log', []).append(
                f"Fold assignment completed: {len(folds)} stratified folds"
            )

            return state

        except Exception as e:
            logger.error(f"Fold assignment failed: {str(e)}")
            state.setdefault('errors', []).append(f"Fold assignment error: {str(e)}")
            state['next_action'] = 'error'
            return state

    async def save_bundle(self, state: dict) -> dict:
        """Persist partitions, plan and folds for model fitting"""
        logger.info("Saving modeling bundle")

        try:
            columns = self.config.columns
            plan_report = state.get('plan_report') or {}

            bundle = ModelingBundle(
                train=state['train_data'],
                test=state['test_data'],
                folds=state['folds'],
                preprocessing_plan=state['preprocessing_plan'],
                label_column=columns.LABEL_COLUMN,
                numeric_features=plan_report.get('numeric_features', list(columns.NUMERIC_FEATURES)),
                categorical_features=plan_report.get('categorical_features', [columns.CATEGORICAL_COLUMN]),
                random_state=self.config.training.RANDOM_STATE
            )

            bundle_path = Path(state.get('bundle_path') or self.config.paths.bundle_path)
            save_bundle(bundle, bundle_path)

            state.update({
                'bundle': bundle,
                'bundle_path': str(bundle_path),
                'current_step': 'bundle',
                'next_action': 'model_training' if state.get('train_models') else 'completed'
            })

            state.setdefault('execution_log', []).append(f"Modeling bundle saved: {bundle_path}")

            return state

        except Exception as e:
            logger.error(f"Saving bundle failed: {str(e)}")
            state.setdefault('errors', []).append(f"Bundle error: {str(e)}")
            state['next_action'] = 'error'
            return state

def cast_to_category(X: pd.DataFrame) -> pd.DataFrame:
    """Treat integer codes as category labels"""
    return pd.DataFrame(X).astype(str)

def build_preprocessing_plan(numeric_features: List[str], categorical_features: List[str]) -> ColumnTransformer:
    """Unfitted recipe: dummy-encode categoricals, center and scale numerics"""
    categorical_pipe = Pipeline([
        ('as_category', FunctionTransformer(cast_to_category, feature_names_out='one-to-one')),
        ('one_hot', OneHotEncoder(drop='first', handle_unknown='ignore'))
    ])

    return ColumnTransformer([
        ('categorical', categorical_pipe, list(categorical_features)),
        ('numeric', StandardScaler(), list(numeric_features))
    ], remainder='drop')

class StratifiedSplitter:
    """Single stratified train/test partition"""

    @staticmethod
    def split(data: pd.DataFrame, strata: str, test_size: float = 0.3,
              random_state: int = 2021) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Split ``data`` into disjoint train and test frames whose union is ``data``.

        Per-stratum proportions follow the split ratio up to rounding. Row
        index labels are preserved so membership can be traced back.
        """
        if not 0 < test_size < 1:
            raise ValueError(f"Test size must be in (0, 1): {test_size}")

        if strata not in data.columns:
            raise ValueError(f"Stratification column '{strata}' not found")

        if data[strata].isnull().any():
            raise ValueError(f"Stratification column '{strata}' contains missing values")

        train, test = train_test_split(
            data, test_size=test_size, random_state=random_state, stratify=data[strata]
        )
        return train, test

class FoldAssigner:
    """Stratified v-fold assignment"""

    @staticmethod
    def assign(labels: pd.Series, n_splits: int = 10, random_state: int = 2021) -> List[Dict]:
        """
        Returns one dict per fold with positional ``analysis`` and
        ``assessment`` arrays into ``labels`` and the index labels of the
        assessed rows.
        """
        splitter = StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=random_state)
        folds = []

        for number, (analysis, assessment) in enumerate(splitter.split(np.zeros(len(labels)), labels), start=1):
            folds.append({
                'fold': f"Fold{number:02d}",
                'analysis': analysis,
                'assessment': assessment,
                'assessment_index': labels.index[assessment].tolist()
            })

        return folds

    @staticmethod
    def fold_ids(folds: List[Dict], index: pd.Index) -> pd.Series:
        """Fold name each row is assessed in"""
        ids = pd.Series(index=index, dtype=object)
        for fold in folds:
            ids.iloc[fold['assessment']] = fold['fold']
        return ids
