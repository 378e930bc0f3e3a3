# genre_pipeline/agents/data_agent.py
import re
import pandas as pd
import numpy as np
from typing import Dict, List, Optional
import logging
from pathlib import Path
import great_expectations as gx

from genre_pipeline.config import Config, get_config

logger = logging.getLogger(__name__)

class DataValidationError(ValueError):
    """Raised when the track file cannot be read as a track table"""

class DataIngestionAgent:
    """Agent responsible for loading the track CSV and validating it"""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.supported_formats = self.config.data_validation.SUPPORTED_FILE_FORMATS

    async def process(self, state: dict) -> dict:
        """Load the CSV and normalize its column names"""
        logger.info(f"Starting data ingestion for: {state['data_path']}")

        try:
            data = self._load_data(state['data_path'])
            original_columns = list(data.columns)
            data = DataPreprocessor.clean_column_names(data)

            data_info = self._extract_data_info(data)
            data_info['original_columns'] = original_columns

            state.update({
                'raw_data': data,
                'data_info': data_info,
                'current_step': 'data_ingestion',
                'next_action': 'data_validation'
            })

            state.setdefault('execution_log', []).append(
                f"Data loaded successfully: {data.shape[0]} rows, {data.shape[1]} columns"
            )

            return state

        except Exception as e:
            logger.error(f"Data ingestion failed: {str(e)}")
            state.setdefault('errors', []).append(f"Data ingestion error: {str(e)}")
            state['next_action'] = 'error'
            return state

    def _load_data(self, data_path: str) -> pd.DataFrame:
        """Read the track table"""
        path = Path(data_path)

        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {data_path}")

        extension = path.suffix.lower()
        if extension not in self.supported_formats:
            raise DataValidationError(f"Unsupported file format: {extension}")

        for encoding in ['utf-8', 'latin-1']:
            try:
                return pd.read_csv(path, encoding=encoding, low_memory=False)
            except UnicodeDecodeError:
                logger.debug(f"Could not decode {path} as {encoding}")
                continue

        raise DataValidationError(f"Could not decode CSV file: {data_path}")

    def _extract_data_info(self, data: pd.DataFrame) -> dict:
        """Extract summary information about the dataset"""
        return {
            'shape': data.shape,
            'columns': list(data.columns),
            'dtypes': {col: str(dtype) for col, dtype in data.dtypes.items()},
            'missing_values': data.isnull().sum().to_dict(),
            'empty_columns': [col for col in data.columns if data[col].isnull().all()],
            'numeric_columns': list(data.select_dtypes(include=[np.number]).columns),
            'categorical_columns': [col for col in data.columns if _is_text_or_category(data[col])],
            'duplicate_rows': int(data.duplicated().sum())
        }

    async def validate(self, state: dict) -> dict:
        """Validate the ingested table with Great Expectations"""
        logger.info("Starting data validation")

        try:
            data = state['raw_data']
            validation_results = self.run_checks(data)

            blocking = [r for r in validation_results if r['blocking']]
            passed_checks = sum(1 for r in validation_results if r['passed'])
            failed_blocking = [r for r in blocking if not r['passed']]

            validation_report = {
                'is_valid': len(failed_blocking) == 0,
                'passed_checks': passed_checks,
                'total_checks': len(validation_results),
                'results': validation_results,
                'warnings': [r['message'] for r in validation_results
                             if not r['passed'] and not r['blocking']],
                'recommendations': self._generate_recommendations(validation_results)
            }

            for warning in validation_report['warnings']:
                logger.warning(warning)

            state.update({
                'validation_report': validation_report,
                'current_step': 'data_validation',
                'next_action': 'proceed' if validation_report['is_valid'] else 'error'
            })

            if not validation_report['is_valid']:
                state.setdefault('errors', []).extend(r['message'] for r in failed_blocking)

            state.setdefault('execution_log', []).append(
                f"Data validation completed: {passed_checks}/{len(validation_results)} checks passed"
            )

            return state

        except Exception as e:
            logger.error(f"Data validation failed: {str(e)}")
            state.setdefault('errors', []).append(f"Data validation error: {str(e)}")
            state['next_action'] = 'error'
            return state

    def run_checks(self, data: pd.DataFrame) -> List[dict]:
        """Run every check against ``data`` and return one result per check"""
        columns = self.config.columns
        results = []

        batch = self._get_batch(data)

        # 1. Required columns
        for column in columns.required_columns:
            outcome = batch.validate(gx.expectations.ExpectColumnToExist(column=column))
            results.append({
                'check': f'column_exists:{column}',
                'passed': bool(outcome.success),
                'blocking': True,
                'message': f"Column '{column}' found" if outcome.success else f"Required column '{column}' not found"
            })

        # 2. Minimum number of rows
        min_rows = self.config.data_validation.MIN_ROWS
        outcome = batch.validate(gx.expectations.ExpectTableRowCountToBeBetween(min_value=min_rows))
        results.append({
            'check': 'minimum_rows',
            'passed': bool(outcome.success),
            'blocking': True,
            'message': f"Dataset has {len(data)} rows (minimum: {min_rows})"
        })

        genre_column = columns.GENRE_COLUMN
        if genre_column in data.columns:
            # 3. Every track has a genre
            outcome = batch.validate(gx.expectations.ExpectColumnValuesToNotBeNull(column=genre_column))
            missing = int(data[genre_column].isnull().sum())
            results.append({
                'check': 'genre_not_null',
                'passed': bool(outcome.success),
                'blocking': True,
                'message': f"Column '{genre_column}' has {missing} missing values"
            })

            # 4. Genres inside the lookup table; unknown values are handled by the label policy
            known = self.config.labels.known_genres
            outcome = batch.validate(
                gx.expectations.ExpectColumnValuesToBeInSet(column=genre_column, value_set=known)
            )
            unknown = sorted(set(data[genre_column].dropna().unique()) - set(known))
            results.append({
                'check': 'genre_in_lookup_table',
                'passed': bool(outcome.success),
                'blocking': False,
                'message': f"Genres outside the lookup table: {unknown}" if unknown else "All genres are mapped"
            })

        # 5. Audio features are numeric
        dtype_issues = self._check_data_types(data)
        results.append({
            'check': 'numeric_features',
            'passed': len(dtype_issues) == 0,
            'blocking': True,
            'message': f"Data type issues: {dtype_issues}" if dtype_issues else "Audio features are numeric"
        })

        # 6. Missing values in predictors
        threshold = self.config.data_validation.MAX_MISSING_PERCENTAGE / 100
        high_missing = [
            col for col in columns.predictors
            if col in data.columns and len(data) > 0 and data[col].isnull().mean() > threshold
        ]
        results.append({
            'check': 'missing_values',
            'passed': len(high_missing) == 0,
            'blocking': True,
            'message': f"Predictors with >{threshold:.0%} missing: {high_missing}" if high_missing else "Missing values within acceptable range"
        })

        return results

    def _get_batch(self, data: pd.DataFrame):
        """Wrap ``data`` in an ephemeral Great Expectations batch"""
        context = gx.get_context(mode="ephemeral")
        data_source = context.data_sources.add_pandas(name="tracks")
        data_asset = data_source.add_dataframe_asset(name="track_table")
        batch_definition = data_asset.add_batch_definition_whole_dataframe("full_table")
        return batch_definition.get_batch(batch_parameters={"dataframe": data})

    def _check_data_types(self, data: pd.DataFrame) -> List[str]:
        """Check that numeric predictors were parsed as numbers"""
        issues = []
        columns = self.config.columns

        for col in columns.NUMERIC_FEATURES + [columns.CATEGORICAL_COLUMN]:
            if col in data.columns and not pd.api.types.is_numeric_dtype(data[col]):
                issues.append(f"Column '{col}' is not numeric ({data[col].dtype})")

        return issues

    def _generate_recommendations(self, validation_results: List[dict]) -> List[str]:
        """Generate recommendations based on validation results"""
        recommendations = []

        for result in validation_results:
            if result['passed']:
                continue
            check_type = result['check'].split(':')[0]

            if check_type == 'column_exists':
                recommendations.append("Verify the CSV export contains the documented track columns")
            elif check_type == 'minimum_rows':
                recommendations.append("Provide a larger track export")
            elif check_type == 'genre_not_null':
                recommendations.append("Remove tracks without a genre before running the pipeline")
            elif check_type == 'genre_in_lookup_table':
                recommendations.append("Extend the genre lookup table or choose an unmapped genre policy")
            elif check_type == 'numeric_features':
                recommendations.append("Clean audio feature columns so they parse as numbers")
            elif check_type == 'missing_values':
                recommendations.append("Drop or impute predictors with many missing values")

        return recommendations

def _is_text_or_category(series: pd.Series) -> bool:
    """Object, string (pandas 3 default for text) or categorical columns"""
    return (
        isinstance(series.dtype, pd.CategoricalDtype)
        or pd.api.types.is_object_dtype(series)
        or pd.api.types.is_string_dtype(series)
    )

class DataPreprocessor:
    """Utility class for column name handling"""

    @staticmethod
    def clean_column_name(name) -> str:
        """Convert a column label to snake_case"""
        text = str(name).strip()
        text = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', text)
        text = re.sub(r'[^0-9a-zA-Z]+', '_', text).strip('_').lower()
        return text or 'x'

    @staticmethod
    def clean_column_names(data: pd.DataFrame) -> pd.DataFrame:
        """Return a copy of ``data`` with unique snake_case column names"""
        seen: Dict[str, int] = {}
        cleaned = []

        for column in data.columns:
            name = DataPreprocessor.clean_column_name(column)
            if name in seen:
                seen[name] += 1
                name = f"{name}_{seen[name]}"
            else:
                seen[name] = 1
            cleaned.append(name)

        data_copy = data.copy()
        data_copy.columns = cleaned
        return data_copy
