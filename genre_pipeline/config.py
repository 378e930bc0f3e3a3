# genre_pipeline/config.py
import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
import json

@dataclass
class PathConfig:
    """Configuration for project paths"""
    PROJECT_ROOT: Path
    DATA_DIR: Path
    RAW_DATA_DIR: Path
    PROCESSED_DATA_DIR: Path
    REPORTS_DIR: Path
    LOGS_DIR: Path
    RESAMPLED_FILENAME: str = "tracks_resampled.csv"
    BUNDLE_FILENAME: str = "modeling_bundle.joblib"

    @property
    def resampled_path(self) -> Path:
        return self.PROCESSED_DATA_DIR / self.RESAMPLED_FILENAME

    @property
    def bundle_path(self) -> Path:
        return self.PROCESSED_DATA_DIR / self.BUNDLE_FILENAME

@dataclass
class ColumnConfig:
    """Column roles in the track table"""
    GENRE_COLUMN: str
    LABEL_COLUMN: str
    ID_COLUMN: str
    CATEGORICAL_COLUMN: str
    NUMERIC_FEATURES: List[str]
    DROP_COLUMNS: List[str]

    @property
    def predictors(self) -> List[str]:
        return list(self.NUMERIC_FEATURES) + [self.CATEGORICAL_COLUMN]

    @property
    def required_columns(self) -> List[str]:
        return self.predictors + [self.ID_COLUMN, self.GENRE_COLUMN]

@dataclass
class SamplingConfig:
    """Configuration for per-genre down-sampling"""
    RANDOM_STATE: int
    FRACTION: float
    PROTECTED_GENRE: str

@dataclass
class LabelConfig:
    """Genre -> coarse category lookup"""
    GENRE_TO_CATEGORY: Dict[str, str]
    UNMAPPED_POLICY: str  # 'drop', 'keep', 'raise'

    @property
    def known_genres(self) -> List[str]:
        return sorted(self.GENRE_TO_CATEGORY)

    @property
    def categories(self) -> List[str]:
        return sorted(set(self.GENRE_TO_CATEGORY.values()))

@dataclass
class ModelTrainingConfig:
    """Configuration for partitioning and model training"""
    TEST_SIZE: float
    RANDOM_STATE: int
    CV_FOLDS: int
    SCORING: str
    N_JOBS: Optional[int] = None

@dataclass
class AnalysisConfig:
    """Configuration for descriptive analysis"""
    N_BINS: int
    SAVE_PLOTS: bool
    CORRELATION_METHOD: str

@dataclass
class MLFlowConfig:
    """Configuration for MLflow tracking"""
    TRACKING_URI: str
    EXPERIMENT_NAME: str

@dataclass
class DataValidationConfig:
    """Configuration for data validation"""
    MIN_ROWS: int
    MAX_MISSING_PERCENTAGE: float
    SUPPORTED_FILE_FORMATS: List[str] = field(default_factory=lambda: ['.csv'])

DEFAULT_GENRE_TO_CATEGORY = {
    'techhouse': 'electronic',
    'techno': 'electronic',
    'trance': 'electronic',
    'psytrance': 'electronic',
    'dnb': 'electronic',
    'hardstyle': 'electronic',
    'trap': 'electronic',
    'Dark Trap': 'hiphop',
    'Underground Rap': 'hiphop',
    'Trap Metal': 'hiphop',
    'Emo': 'hiphop',
    'Rap': 'hiphop',
    'RnB': 'hiphop',
    'Pop': 'hiphop',
    'Hiphop': 'hiphop',
}

UNMAPPED_POLICIES = ('drop', 'keep', 'raise')

class Config:
    """Central configuration manager for the genre pipeline"""

    def __init__(self, config_file: Optional[str] = None, create_dirs: bool = True):
        """
        Initialize configuration

        Args:
            config_file: Optional path to JSON config file to override defaults
            create_dirs: Create the data, report and log directories
        """
        self._load_default_config()

        if config_file and os.path.exists(config_file):
            self._load_config_file(config_file)

        self._load_environment_variables()
        if create_dirs:
            self.create_directories()

    def _load_default_config(self):
        """Load default configuration values"""

        project_root = Path(__file__).parent.parent
        self.paths = PathConfig(
            PROJECT_ROOT=project_root,
            DATA_DIR=project_root / "data",
            RAW_DATA_DIR=project_root / "data" / "raw",
            PROCESSED_DATA_DIR=project_root / "data" / "processed",
            REPORTS_DIR=project_root / "reports",
            LOGS_DIR=project_root / "logs"
        )

        self.columns = ColumnConfig(
            GENRE_COLUMN="genre",
            LABEL_COLUMN="coarse_category",
            ID_COLUMN="song_name",
            CATEGORICAL_COLUMN="mode",
            NUMERIC_FEATURES=[
                'acousticness', 'danceability', 'duration_ms', 'energy',
                'instrumentalness', 'key', 'liveness', 'loudness',
                'speechiness', 'tempo', 'time_signature', 'valence'
            ],
            DROP_COLUMNS=['type', 'id', 'uri', 'track_href', 'analysis_url', 'unnamed_0', 'title']
        )

        self.sampling = SamplingConfig(
            RANDOM_STATE=2021,
            FRACTION=0.25,
            PROTECTED_GENRE="Pop"
        )

        self.labels = LabelConfig(
            GENRE_TO_CATEGORY=dict(DEFAULT_GENRE_TO_CATEGORY),
            UNMAPPED_POLICY='drop'
        )

        self.training = ModelTrainingConfig(
            TEST_SIZE=0.3,
            RANDOM_STATE=2021,
            CV_FOLDS=10,
            SCORING='roc_auc'
        )

        self.analysis = AnalysisConfig(
            N_BINS=10,
            SAVE_PLOTS=True,
            CORRELATION_METHOD='pearson'
        )

        self.mlflow = MLFlowConfig(
            TRACKING_URI="sqlite:///mlflow.db",
            EXPERIMENT_NAME="genre_family_classification"
        )

        self.data_validation = DataValidationConfig(
            MIN_ROWS=100,
            MAX_MISSING_PERCENTAGE=50.0
        )

        self.logging_level = "INFO"

    def _load_config_file(self, config_file: str):
        """Load configuration from JSON file"""
        with open(config_file, 'r') as f:
            config_data = json.load(f)

        for section, values in config_data.items():
            if not hasattr(self, section):
                continue
            config_obj = getattr(self, section)
            if not isinstance(values, dict):
                setattr(self, section, values)
                continue
            for key, value in values.items():
                if hasattr(config_obj, key):
                    current = getattr(config_obj, key)
                    if isinstance(current, Path):
                        value = Path(value)
                    setattr(config_obj, key, value)

    def _load_environment_variables(self):
        """Load configuration from environment variables"""

        # Sampling and splitting share one seed unless configured separately
        if os.getenv("RANDOM_STATE"):
            self.sampling.RANDOM_STATE = int(os.getenv("RANDOM_STATE"))
            self.training.RANDOM_STATE = int(os.getenv("RANDOM_STATE"))

        if os.getenv("SAMPLE_FRACTION"):
            self.sampling.FRACTION = float(os.getenv("SAMPLE_FRACTION"))

        if os.getenv("PROTECTED_GENRE"):
            self.sampling.PROTECTED_GENRE = os.getenv("PROTECTED_GENRE")

        if os.getenv("UNMAPPED_GENRE_POLICY"):
            self.labels.UNMAPPED_POLICY = os.getenv("UNMAPPED_GENRE_POLICY").lower()

        if os.getenv("TEST_SIZE"):
            self.training.TEST_SIZE = float(os.getenv("TEST_SIZE"))

        if os.getenv("CV_FOLDS"):
            self.training.CV_FOLDS = int(os.getenv("CV_FOLDS"))

        if os.getenv("MLFLOW_TRACKING_URI"):
            self.mlflow.TRACKING_URI = os.getenv("MLFLOW_TRACKING_URI")

        if os.getenv("MLFLOW_EXPERIMENT_NAME"):
            self.mlflow.EXPERIMENT_NAME = os.getenv("MLFLOW_EXPERIMENT_NAME")

        if os.getenv("LOG_LEVEL"):
            self.logging_level = os.getenv("LOG_LEVEL")

    def create_directories(self):
        """Create necessary directories if they don't exist"""
        directories = [
            self.paths.DATA_DIR,
            self.paths.RAW_DATA_DIR,
            self.paths.PROCESSED_DATA_DIR,
            self.paths.REPORTS_DIR,
            self.paths.LOGS_DIR
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def use_output_dir(self, output_dir: str):
        """Redirect processed data and reports below another directory"""
        root = Path(output_dir)
        self.paths.PROCESSED_DATA_DIR = root / "processed"
        self.paths.REPORTS_DIR = root / "reports"
        self.paths.PROCESSED_DATA_DIR.mkdir(parents=True, exist_ok=True)
        self.paths.REPORTS_DIR.mkdir(parents=True, exist_ok=True)

    def save_config(self, config_file: str):
        """Save current configuration to JSON file"""
        config_dict = {}

        for attr_name, attr_value in vars(self).items():
            if attr_name.startswith('_'):
                continue
            if hasattr(attr_value, '__dict__'):
                config_dict[attr_name] = {}
                for field_name, field_value in attr_value.__dict__.items():
                    if isinstance(field_value, Path):
                        config_dict[attr_name][field_name] = str(field_value)
                    else:
                        config_dict[attr_name][field_name] = field_value
            else:
                config_dict[attr_name] = attr_value

        with open(config_file, 'w') as f:
            json.dump(config_dict, f, indent=2)

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []

        if not 0 < self.sampling.FRACTION <= 1:
            issues.append(f"Invalid sample fraction: {self.sampling.FRACTION}")

        if self.sampling.PROTECTED_GENRE not in self.labels.GENRE_TO_CATEGORY:
            issues.append(f"Protected genre has no coarse category: {self.sampling.PROTECTED_GENRE}")

        if len(self.labels.categories) != 2:
            issues.append(f"Lookup table must produce exactly two categories: {self.labels.categories}")

        if self.labels.UNMAPPED_POLICY not in UNMAPPED_POLICIES:
            issues.append(f"Invalid unmapped genre policy: {self.labels.UNMAPPED_POLICY}")

        if self.training.TEST_SIZE <= 0 or self.training.TEST_SIZE >= 1:
            issues.append(f"Invalid test size: {self.training.TEST_SIZE}")

        if self.training.CV_FOLDS < 2:
            issues.append(f"CV folds must be >= 2: {self.training.CV_FOLDS}")

        if self.analysis.N_BINS < 2:
            issues.append(f"Histogram bins must be >= 2: {self.analysis.N_BINS}")

        if self.data_validation.MIN_ROWS <= 0:
            issues.append(f"Invalid min rows: {self.data_validation.MIN_ROWS}")

        return issues

    def __str__(self) -> str:
        return f"Config(project_root={self.paths.PROJECT_ROOT}, seed={self.sampling.RANDOM_STATE})"

# Global configuration instance
_config = None

def get_config(config_file: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton pattern)"""
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config
