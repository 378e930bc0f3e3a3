# genre_pipeline/pipeline.py
from langgraph.graph import StateGraph, END
from typing import TypedDict, Optional, List, Any
import pandas as pd
from datetime import datetime
import logging

from genre_pipeline.config import Config, get_config

logger = logging.getLogger(__name__)

class PipelineState(TypedDict, total=False):
    """State shared across all agents"""
    # Input
    data_path: str
    project_name: str
    train_models: bool
    save_plots: bool
    resampled_path: Optional[str]
    bundle_path: Optional[str]

    # Data preparation
    raw_data: Optional[pd.DataFrame]
    data_info: Optional[dict]
    validation_report: Optional[dict]
    filtered_data: Optional[pd.DataFrame]
    cleaning_report: Optional[dict]
    resampled_data: Optional[pd.DataFrame]
    sampling_report: Optional[dict]
    labelled_data: Optional[pd.DataFrame]
    label_report: Optional[dict]
    analysis_report: Optional[dict]

    # Partitioning
    train_data: Optional[pd.DataFrame]
    test_data: Optional[pd.DataFrame]
    split_report: Optional[dict]
    preprocessing_plan: Optional[Any]
    plan_report: Optional[dict]
    folds: Optional[list]
    fold_ids: Optional[pd.Series]
    fold_report: Optional[dict]
    bundle: Optional[Any]

    # Model training
    trained_models: Optional[dict]
    best_model: Optional[dict]
    training_report: Optional[dict]
    evaluation_results: Optional[dict]

    # Workflow
    current_step: str
    next_action: str
    errors: List[str]
    execution_log: List[str]

# Node order of the preparation stages
PREPARATION_STEPS = [
    "data_ingestion",
    "data_validation",
    "data_cleaning",
    "class_rebalancing",
    "persist_resampled",
    "label_derivation",
    "exploratory_analysis",
    "partitioning",
    "plan_declaration",
    "fold_assignment",
    "bundle_export",
]

class GenrePipeline:
    def __init__(self, config: Optional[Config] = None, model_candidates: Optional[List[str]] = None):
        """Initialize the genre pipeline"""
        self.config = config or get_config()
        self.model_candidates = model_candidates

        self.graph = self._build_graph()
        self.compiled_graph = self.graph.compile()

        logger.info("Genre pipeline initialized successfully")

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow"""
        from genre_pipeline.agents.data_agent import DataIngestionAgent
        from genre_pipeline.agents.curation_agent import TrackCurationAgent
        from genre_pipeline.agents.analysis_agent import ExploratoryAnalysisAgent
        from genre_pipeline.agents.feature_agent import FeatureEngineeringAgent
        from genre_pipeline.agents.model_agent import ModelTrainingAgent

        data_agent = DataIngestionAgent(self.config)
        curation_agent = TrackCurationAgent(self.config)
        analysis_agent = ExploratoryAnalysisAgent(self.config)
        feature_agent = FeatureEngineeringAgent(self.config)
        model_agent = ModelTrainingAgent(self.config, candidates=self.model_candidates)

        workflow = StateGraph(PipelineState)

        workflow.add_node("data_ingestion", data_agent.process)
        workflow.add_node("data_validation", data_agent.validate)
        workflow.add_node("data_cleaning", curation_agent.clean_data)
        workflow.add_node("class_rebalancing", curation_agent.rebalance)
        workflow.add_node("persist_resampled", curation_agent.persist_resampled)
        workflow.add_node("label_derivation", curation_agent.derive_labels)
        workflow.add_node("exploratory_analysis", analysis_agent.analyze)
        workflow.add_node("partitioning", feature_agent.split_data)
        workflow.add_node("plan_declaration", feature_agent.build_plan)
        workflow.add_node("fold_assignment", feature_agent.assign_folds)
        workflow.add_node("bundle_export", feature_agent.save_bundle)
        workflow.add_node("model_training", model_agent.train_models)
        workflow.add_node("model_evaluation", model_agent.evaluate_models)

        workflow.set_entry_point("data_ingestion")

        # Every step continues to the next one unless it reported an error
        for current, following in zip(PREPARATION_STEPS, PREPARATION_STEPS[1:]):
            workflow.add_conditional_edges(
                current,
                self._route_next,
                {"proceed": following, "error": END}
            )

        workflow.add_conditional_edges(
            "bundle_export",
            self._route_after_bundle,
            {"train": "model_training", "done": END, "error": END}
        )

        workflow.add_conditional_edges(
            "model_training",
            self._route_next,
            {"proceed": "model_evaluation", "error": END}
        )

        workflow.add_edge("model_evaluation", END)

        return workflow

    def _route_next(self, state: PipelineState) -> str:
        return "error" if state.get("next_action") == "error" else "proceed"

    def _route_after_bundle(self, state: PipelineState) -> str:
        if state.get("next_action") == "error":
            return "error"
        return "train" if state.get("train_models") else "done"

    async def run_pipeline(self,
                           data_path: str,
                           project_name: Optional[str] = None,
                           train_models: bool = False,
                           save_plots: bool = True) -> dict:
        """Execute the complete pipeline"""

        if project_name is None:
            project_name = f"genre_pipeline_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        initial_state = PipelineState(
            data_path=data_path,
            project_name=project_name,
            train_models=train_models,
            save_plots=save_plots,
            resampled_path=str(self.config.paths.resampled_path),
            bundle_path=str(self.config.paths.bundle_path),
            current_step="initialization",
            next_action="data_ingestion",
            errors=[],
            execution_log=[f"Pipeline started at {datetime.now()}"]
        )

        logger.info(f"Starting pipeline for project: {project_name}")

        try:
            final_state = await self.compiled_graph.ainvoke(initial_state)

            final_state["execution_log"].append(
                f"Pipeline finished at {datetime.now()}"
            )

            if final_state.get("next_action") == "error":
                final_state["status"] = "failed"
                final_state["error"] = "; ".join(final_state.get("errors", []))
                logger.error(f"Pipeline failed for {project_name}: {final_state['error']}")
            else:
                final_state["status"] = "completed"
                logger.info(f"Pipeline completed successfully for {project_name}")

            return final_state

        except Exception as e:
            logger.error(f"Pipeline failed for {project_name}: {str(e)}")
            return {
                "status": "failed",
                "error": str(e),
                "project_name": project_name
            }
