from querymesh.pipeline.orchestrator import PipelineState, QueryPipeline, create_pipeline

__all__ = ["PipelineState", "QueryPipeline", "create_pipeline"]
