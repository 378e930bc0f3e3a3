# genre_pipeline/utils/artifacts.py
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Union

import joblib
import pandas as pd

logger = logging.getLogger(__name__)

@dataclass
class ModelingBundle:
    """Everything model fitting needs from the preparation stages"""
    train: pd.DataFrame
    test: pd.DataFrame
    folds: List[Dict[str, Any]]
    preprocessing_plan: Any
    label_column: str
    numeric_features: List[str]
    categorical_features: List[str]
    random_state: int
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def predictors(self) -> List[str]:
        return list(self.numeric_features) + list(self.categorical_features)

    @property
    def cv_splits(self) -> list:
        """Folds as ``(analysis, assessment)`` position pairs, the form sklearn's ``cv`` accepts"""
        return [(fold['analysis'], fold['assessment']) for fold in self.folds]

def save_bundle(bundle: ModelingBundle, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(bundle, path)
    logger.info(f"Modeling bundle saved to {path}")
    return path

def load_bundle(path: Union[str, Path]) -> ModelingBundle:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Modeling bundle not found: {path}")

    bundle = joblib.load(path)
    if not isinstance(bundle, ModelingBundle):
        raise TypeError(f"{path} does not contain a ModelingBundle")
    return bundle
