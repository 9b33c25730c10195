from .pipeline import DatasetPipeline, PipelineSummary

__all__ = ["DatasetPipeline", "PipelineSummary"]
