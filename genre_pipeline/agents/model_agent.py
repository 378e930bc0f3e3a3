# genre_pipeline/agents/model_agent.py
import pandas as pd
import numpy as np
from typing import Dict, List, Optional, Any
import logging
from datetime import datetime
import mlflow
import mlflow.sklearn
from sklearn.base import clone
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis, QuadraticDiscriminantAnalysis
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import (
    accuracy_score, precision_score, recall_score, f1_score, roc_auc_score,
    confusion_matrix, classification_report
)
from sklearn.model_selection import GridSearchCV, cross_validate
from sklearn.neighbors import KNeighborsClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import LabelEncoder
import xgboost as xgb

from genre_pipeline.config import Config, get_config
from genre_pipeline.utils.artifacts import ModelingBundle, load_bundle
from genre_pipeline.utils.logging_config import PipelineLogger

logger = logging.getLogger(__name__)

SCORING = {'accuracy': 'accuracy', 'roc_auc': 'roc_auc', 'f1': 'f1'}

class ModelTrainingAgent:
    """Agent that cross-validates candidate classifiers on the stored folds"""

    def __init__(self, config: Optional[Config] = None, candidates: Optional[List[str]] = None):
        self.config = config or get_config()
        self.candidates = candidates
        self.label_encoder = None

    async def train_models(self, state: dict) -> dict:
        """Train every candidate and pick the best by mean CV score"""
        logger.info("Starting model training")

        try:
            bundle = state.get('bundle')
            if bundle is None:
                bundle = load_bundle(state['bundle_path'])

            X_train = bundle.train[bundle.predictors]
            y_train = self._encode_labels(bundle.train[bundle.label_column], fit=True)
            X_test = bundle.test[bundle.predictors]
            y_test = self._encode_labels(bundle.test[bundle.label_column])
            cv_splits = bundle.cv_splits

            mlflow.set_tracking_uri(self.config.mlflow.TRACKING_URI)
            mlflow.set_experiment(self.config.mlflow.EXPERIMENT_NAME)

            training_results = {}

            for model_name, model_config in self._get_model_candidates().items():
                try:
                    with PipelineLogger(f"{model_name} training", logger) as step:
                        result = self._train_single_model(
                            model_name, model_config, bundle,
                            X_train, y_train, X_test, y_test, cv_splits
                        )
                        step.log_metric(f"cv_{self.config.training.SCORING}", f"{result['cv_mean']:.4f}")
                    training_results[model_name] = result

                except Exception as e:
                    logger.error(f"{model_name} training failed: {str(e)}")
                    training_results[model_name] = {
                        'status': 'failed',
                        'error': str(e)
                    }

            best_model_info = self._select_best_model(training_results)

            training_report = {
                'data_shapes': {
                    'train': X_train.shape,
                    'test': X_test.shape
                },
                'n_folds': len(cv_splits),
                'classes': list(self.label_encoder.classes_),
                'models_trained': len(training_results),
                'successful_models': len([r for r in training_results.values() if r.get('status') != 'failed']),
                'leaderboard': self._leaderboard(training_results),
                'best_model': best_model_info.get('model_name')
            }

            state.update({
                'trained_models': training_results,
                'best_model': best_model_info,
                'training_report': training_report,
                'current_step': 'model_training',
                'next_action': 'model_evaluation' if best_model_info else 'error'
            })

            if not best_model_info:
                state.setdefault('errors', []).append("Model training error: no candidate trained successfully")

            state.setdefault('execution_log', []).append(
                f"Model training completed: {training_report['successful_models']}/{training_report['models_trained']} models successful"
            )

            return state

        except Exception as e:
            logger.error(f"Model training failed: {str(e)}")
            state.setdefault('errors', []).append(f"Model training error: {str(e)}")
            state['next_action'] = 'error'
            return state

    async def evaluate_models(self, state: dict) -> dict:
        """Evaluate the selected model on the held-out test partition"""
        logger.info("Starting model evaluation")

        try:
            bundle = state.get('bundle')
            if bundle is None:
                bundle = load_bundle(state['bundle_path'])

            best_model_info = state['best_model']
            model = best_model_info['model']

            if self.label_encoder is None:
                self._encode_labels(bundle.train[bundle.label_column], fit=True)

            X_test = bundle.test[bundle.predictors]
            y_test = self._encode_labels(bundle.test[bundle.label_column])
            predictions = model.predict(X_test)

            evaluation_results = {
                'model_name': best_model_info['model_name'],
                'metrics': self._calculate_metrics(y_test, predictions, model.predict_proba(X_test)[:, 1]),
                'confusion_matrix': confusion_matrix(y_test, predictions).tolist(),
                'classification_report': classification_report(
                    y_test, predictions,
                    target_names=[str(c) for c in self.label_encoder.classes_],
                    output_dict=True, zero_division=0
                ),
                'model_comparison': self._leaderboard(state.get('trained_models') or {})
            }

            state.update({
                'evaluation_results': evaluation_results,
                'current_step': 'model_evaluation',
                'next_action': 'completed'
            })

            state.setdefault('execution_log', []).append(
                f"Model evaluation completed: {best_model_info['model_name']} "
                f"test ROC-AUC {evaluation_results['metrics']['roc_auc']:.3f}"
            )

            return state

        except Exception as e:
            logger.error(f"Model evaluation failed: {str(e)}")
            state.setdefault('errors', []).append(f"Model evaluation error: {str(e)}")
            state['next_action'] = 'error'
            return state

    def _encode_labels(self, labels: pd.Series, fit: bool = False) -> np.ndarray:
        if fit:
            self.label_encoder = LabelEncoder()
            return self.label_encoder.fit_transform(labels)
        return self.label_encoder.transform(labels)

    def _get_model_candidates(self) -> Dict[str, Dict[str, Any]]:
        """Classifier candidates, each with an optional tuning grid"""
        random_state = self.config.training.RANDOM_STATE

        candidates = {
            'logistic_regression': {
                'model': LogisticRegression(max_iter=1000),
                'param_grid': {}
            },
            'elastic_net': {
                'model': LogisticRegression(penalty='elasticnet', solver='saga', max_iter=5000,
                                            random_state=random_state),
                'param_grid': {
                    'model__C': [0.1, 1.0, 10.0],
                    'model__l1_ratio': [0.25, 0.5, 0.75]
                }
            },
            'lda': {
                'model': LinearDiscriminantAnalysis(),
                'param_grid': {}
            },
            'qda': {
                'model': QuadraticDiscriminantAnalysis(),
                'param_grid': {
                    'model__reg_param': [0.0, 0.1, 0.5]
                }
            },
            'knn': {
                'model': KNeighborsClassifier(),
                'param_grid': {
                    'model__n_neighbors': [5, 15, 25]
                }
            },
            'xgboost': {
                'model': xgb.XGBClassifier(n_estimators=200, max_depth=4, learning_rate=0.1,
                                           eval_metric='logloss', random_state=random_state),
                'param_grid': {}
            }
        }

        if self.candidates is not None:
            unknown = sorted(set(self.candidates) - set(candidates))
            if unknown:
                raise ValueError(f"Unknown model candidates: {unknown}")
            candidates = {name: candidates[name] for name in self.candidates}

        return candidates

    def _train_single_model(self, model_name: str, model_config: Dict, bundle: ModelingBundle,
                            X_train: pd.DataFrame, y_train: np.ndarray,
                            X_test: pd.DataFrame, y_test: np.ndarray, cv_splits: list) -> Dict:
        """Cross-validate, refit on the full training partition and score on test"""

        with mlflow.start_run(run_name=f"{model_name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"):
            mlflow.log_param("model_type", model_name)
            mlflow.log_param("n_features", X_train.shape[1])
            mlflow.log_param("n_train_samples", X_train.shape[0])
            mlflow.log_param("n_folds", len(cv_splits))
            mlflow.log_param("random_state", bundle.random_state)

            pipeline = Pipeline([
                ('preprocess', clone(bundle.preprocessing_plan)),
                ('model', clone(model_config['model']))
            ])
            param_grid = model_config['param_grid']

            if param_grid:
                search = GridSearchCV(
                    pipeline, param_grid,
                    cv=cv_splits,
                    scoring=SCORING,
                    refit=self.config.training.SCORING,
                    n_jobs=self.config.training.N_JOBS
                )
                search.fit(X_train, y_train)
                best_model = search.best_estimator_
                best_params = search.best_params_
                cv_scores = {
                    metric: float(search.cv_results_[f'mean_test_{metric}'][search.best_index_])
                    for metric in SCORING
                }
                cv_std = float(search.cv_results_[f'std_test_{self.config.training.SCORING}'][search.best_index_])

                for param, value in best_params.items():
                    mlflow.log_param(f"best_{param.replace('model__', '')}", value)

            else:
                cv_results = cross_validate(
                    pipeline, X_train, y_train,
                    cv=cv_splits,
                    scoring=SCORING,
                    n_jobs=self.config.training.N_JOBS
                )
                cv_scores = {metric: float(np.mean(cv_results[f'test_{metric}'])) for metric in SCORING}
                cv_std = float(np.std(cv_results[f'test_{self.config.training.SCORING}']))
                best_model = pipeline.fit(X_train, y_train)
                best_params = {}

            for metric_name, value in cv_scores.items():
                mlflow.log_metric(f"cv_{metric_name}", value)
            mlflow.log_metric("cv_std", cv_std)

            test_predictions = best_model.predict(X_test)
            test_metrics = self._calculate_metrics(
                y_test, test_predictions, best_model.predict_proba(X_test)[:, 1]
            )

            for metric_name, value in test_metrics.items():
                mlflow.log_metric(f"test_{metric_name}", value)

            mlflow.sklearn.log_model(best_model, "model")

            return {
                'status': 'success',
                'model': best_model,
                'best_params': best_params,
                'cv_scores': cv_scores,
                'cv_mean': cv_scores[self.config.training.SCORING],
                'cv_std': cv_std,
                'test_metrics': test_metrics,
                'mlflow_run_id': mlflow.active_run().info.run_id
            }

    def _calculate_metrics(self, y_true: np.ndarray, y_pred: np.ndarray,
                           y_score: Optional[np.ndarray] = None) -> Dict[str, float]:
        metrics = {
            'accuracy': float(accuracy_score(y_true, y_pred)),
            'precision': float(precision_score(y_true, y_pred, zero_division=0)),
            'recall': float(recall_score(y_true, y_pred, zero_division=0)),
            'f1': float(f1_score(y_true, y_pred, zero_division=0))
        }

        if y_score is not None and len(np.unique(y_true)) == 2:
            metrics['roc_auc'] = float(roc_auc_score(y_true, y_score))

        return metrics

    def _select_best_model(self, training_results: Dict[str, Dict]) -> Dict:
        """Highest mean CV score among the successful candidates"""
        successful = {
            name: result for name, result in training_results.items()
            if result.get('status') == 'success' and not np.isnan(result['cv_mean'])
        }

        if not successful:
            logger.error("No candidate trained successfully")
            return {}

        best_name = max(successful, key=lambda name: successful[name]['cv_mean'])
        best_result = successful[best_name]
        logger.info(f"Best model: {best_name} (CV {self.config.training.SCORING} {best_result['cv_mean']:.4f})")

        return {
            'model_name': best_name,
            'model': best_result['model'],
            'cv_mean': best_result['cv_mean'],
            'cv_scores': best_result['cv_scores'],
            'performance': best_result['test_metrics'],
            'best_params': best_result['best_params'],
            'mlflow_run_id': best_result.get('mlflow_run_id')
        }

    def _leaderboard(self, training_results: Dict[str, Dict]) -> List[Dict]:
        rows = []
        for name, result in training_results.items():
            if result.get('status') != 'success':
                rows.append({'model_name': name, 'status': 'failed', 'error': result.get('error')})
                continue
            rows.append({
                'model_name': name,
                'status': 'success',
                **{f"cv_{k}": v for k, v in result['cv_scores'].items()},
                **{f"test_{k}": v for k, v in result['test_metrics'].items()}
            })

        return sorted(rows, key=lambda r: r.get(f"cv_{self.config.training.SCORING}", float('-inf')), reverse=True)
