# tests/conftest.py
import os

os.environ.setdefault("GX_ANALYTICS_ENABLED", "false")

import pytest
import pandas as pd

from genre_pipeline.config import Config
from genre_pipeline.agents.data_agent import DataPreprocessor
from genre_pipeline.sample_data import generate_spotify_like_dataset

@pytest.fixture
def config(tmp_path):
    """Default configuration writing every artifact below tmp_path"""
    cfg = Config(create_dirs=False)
    cfg.paths.DATA_DIR = tmp_path / "data"
    cfg.paths.RAW_DATA_DIR = tmp_path / "data" / "raw"
    cfg.paths.PROCESSED_DATA_DIR = tmp_path / "data" / "processed"
    cfg.paths.REPORTS_DIR = tmp_path / "reports"
    cfg.paths.LOGS_DIR = tmp_path / "logs"
    cfg.mlflow.TRACKING_URI = (tmp_path / "mlruns").as_uri()
    cfg.create_directories()
    return cfg

@pytest.fixture
def raw_tracks():
    """Track table with the export's original column names"""
    return generate_spotify_like_dataset(scale=0.05, random_state=7)

@pytest.fixture
def clean_tracks(raw_tracks):
    """Track table after column-name normalization"""
    return DataPreprocessor.clean_column_names(raw_tracks)

@pytest.fixture
def tracks_csv(tmp_path, raw_tracks):
    path = tmp_path / "data" / "raw" / "genres_v2.csv"
    path.parent.mkdir(parents=True, exist_ok=True)
    raw_tracks.to_csv(path, index=False)
    return path

@pytest.fixture
def labelled_tracks(clean_tracks, config):
    """Filtered tracks with the coarse category attached, before resampling"""
    data = clean_tracks.drop(columns=config.columns.DROP_COLUMNS)
    data[config.columns.LABEL_COLUMN] = data[config.columns.GENRE_COLUMN].map(
        config.labels.GENRE_TO_CATEGORY
    )
    return data.reset_index(drop=True)
