# genre_pipeline/sample_data.py
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
import pandas as pd

from genre_pipeline.config import DEFAULT_GENRE_TO_CATEGORY
from genre_pipeline.utils.logging_config import log_execution_time

# Row counts per genre in the public "songs in Spotify" export
DEFAULT_GENRE_COUNTS = {
    'Underground Rap': 5875,
    'Dark Trap': 4578,
    'Hiphop': 3028,
    'trance': 2999,
    'trap': 2987,
    'techhouse': 2975,
    'dnb': 2966,
    'psytrance': 2961,
    'techno': 2956,
    'hardstyle': 2936,
    'RnB': 2099,
    'Trap Metal': 1956,
    'Rap': 1848,
    'Emo': 1680,
    'Pop': 461,
}

RAW_COLUMNS = [
    'danceability', 'energy', 'key', 'loudness', 'mode', 'speechiness',
    'acousticness', 'instrumentalness', 'liveness', 'valence', 'tempo',
    'type', 'id', 'uri', 'track_href', 'analysis_url', 'duration_ms',
    'time_signature', 'genre', 'song_name', 'Unnamed: 0', 'title'
]

def generate_spotify_like_dataset(scale: float = 1.0,
                                  genre_counts: Optional[Dict[str, int]] = None,
                                  random_state: int = 42) -> pd.DataFrame:
    """Generate a track table with the raw export's columns and genre mix"""
    rng = np.random.default_rng(random_state)
    genre_counts = genre_counts or DEFAULT_GENRE_COUNTS

    frames = []
    for genre, count in genre_counts.items():
        n_samples = max(int(round(count * scale)), 1)
        electronic = DEFAULT_GENRE_TO_CATEGORY.get(genre) == 'electronic'

        ids = [f"{value:022x}" for value in rng.integers(0, 2 ** 62, n_samples)]
        frame = pd.DataFrame({
            'danceability': np.clip(rng.normal(0.65 if electronic else 0.7, 0.12, n_samples), 0, 1),
            'energy': np.clip(rng.normal(0.85 if electronic else 0.6, 0.12, n_samples), 0, 1),
            'key': rng.integers(0, 12, n_samples),
            'loudness': rng.normal(-5.5 if electronic else -7.0, 2.5, n_samples),
            'mode': rng.choice([0, 1], n_samples, p=[0.5, 0.5] if electronic else [0.4, 0.6]),
            'speechiness': np.clip(rng.normal(0.07 if electronic else 0.22, 0.06, n_samples), 0, 1),
            'acousticness': np.clip(rng.exponential(0.03 if electronic else 0.15, n_samples), 0, 1),
            'instrumentalness': np.clip(rng.normal(0.45 if electronic else 0.02, 0.2, n_samples), 0, 1),
            'liveness': np.clip(rng.exponential(0.2, n_samples), 0, 1),
            'valence': np.clip(rng.normal(0.35 if electronic else 0.45, 0.18, n_samples), 0, 1),
            'tempo': rng.normal(140 if electronic else 120, 18, n_samples).round(3),
            'type': 'audio_features',
            'id': ids,
            'uri': [f"spotify:track:{i}" for i in ids],
            'track_href': [f"https://api.spotify.com/v1/tracks/{i}" for i in ids],
            'analysis_url': [f"https://api.spotify.com/v1/audio-analysis/{i}" for i in ids],
            'duration_ms': rng.normal(250000 if electronic else 190000, 50000, n_samples).astype(int),
            'time_signature': rng.choice([3, 4, 5], n_samples, p=[0.03, 0.95, 0.02]),
            'genre': genre,
        })

        # The export carries song names and row numbers only for the rap-side
        # genres, and titles only for the electronic ones
        if electronic:
            frame['song_name'] = np.nan
            frame['Unnamed: 0'] = np.nan
            frame['title'] = [f"{genre} mix {i}" for i in range(n_samples)]
        else:
            frame['song_name'] = [f"{genre} song {i}" for i in range(n_samples)]
            frame['Unnamed: 0'] = np.arange(n_samples, dtype=float)
            frame['title'] = np.nan

        frames.append(frame)

    df = pd.concat(frames, ignore_index=True)
    return df[RAW_COLUMNS]

@log_execution_time
def write_sample_dataset(output_path: Union[str, Path], scale: float = 1.0,
                         random_state: int = 42) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    generate_spotify_like_dataset(scale=scale, random_state=random_state).to_csv(output_path, index=False)
    return output_path
