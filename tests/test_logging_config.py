# tests/test_logging_config.py
import logging
import pytest

from genre_pipeline.utils import logging_config
from genre_pipeline.utils.logging_config import (
    PipelineLogger, get_logger, log_execution_time, setup_logging
)

@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if type(handler) in (logging.FileHandler, logging.StreamHandler):
            handler.close()
            root.removeHandler(handler)
    root.setLevel(level)

class TestSetupLogging:

    def test_file_and_console_handlers(self, tmp_path, restore_root_logger):
        logger = setup_logging(log_level="debug", log_dir=tmp_path / "logs")

        root = logging.getLogger()
        assert logger.name == "genre_pipeline"
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert len(list((tmp_path / "logs").glob("pipeline_*.log"))) == 1
        assert logging.getLogger("mlflow").level == logging.WARNING

    def test_repeated_setup_does_not_stack_handlers(self, tmp_path, restore_root_logger):
        setup_logging(log_dir=tmp_path, log_to_file=False)
        setup_logging(log_dir=tmp_path, log_to_file=False)

        assert len(logging.getLogger().handlers) == 1

    def test_invalid_level(self, tmp_path):
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logging(log_level="chatty", log_dir=tmp_path)

class TestLoggingHelpers:

    def test_get_logger_namespace(self):
        assert get_logger("pipeline").name == "genre_pipeline.pipeline"
        assert get_logger("genre_pipeline.agents.data_agent").name == "genre_pipeline.agents.data_agent"
        assert get_logger("genre_pipelines").name == "genre_pipeline.genre_pipelines"

    def test_log_execution_time(self, caplog):
        @log_execution_time
        def double(x):
            return 2 * x

        @log_execution_time
        def explode():
            raise RuntimeError("boom")

        with caplog.at_level(logging.INFO):
            assert double(4) == 8
            with pytest.raises(RuntimeError):
                explode()

        messages = [record.getMessage() for record in caplog.records]
        assert any("double finished in" in m for m in messages)
        assert any("explode failed after" in m and "boom" in m for m in messages)

    def test_pipeline_logger_records_duration_and_metrics(self, caplog):
        logger = logging.getLogger("genre_pipeline.tests")

        with caplog.at_level(logging.INFO, logger="genre_pipeline.tests"):
            with PipelineLogger("knn training", logger) as step:
                step.log_metric("cv_roc_auc", "0.9123")

        assert step.duration is not None and step.duration >= 0
        messages = [record.getMessage() for record in caplog.records]
        assert messages[0] == "knn training: started"
        assert "knn training: cv_roc_auc = 0.9123" in messages
        assert messages[-1].startswith("knn training: done in")

    def test_pipeline_logger_reraises(self, caplog):
        logger = logging.getLogger("genre_pipeline.tests")

        with caplog.at_level(logging.INFO, logger="genre_pipeline.tests"):
            with pytest.raises(ValueError):
                with PipelineLogger("qda training", logger):
                    raise ValueError("singular covariance")

        assert caplog.records[-1].levelno == logging.ERROR
        assert "ValueError: singular covariance" in caplog.records[-1].getMessage()

    def test_only_step_api_is_exposed(self):
        assert not hasattr(PipelineLogger, "log_progress")
        assert "httpx" in logging_config.QUIET_LOGGERS
