from pipeline.middlewares import MiddlewareOutcome, MiddlewareRegistry, PipelineResult

__all__ = ["MiddlewareOutcome", "MiddlewareRegistry", "PipelineResult"]
