"""
Pipeline Stages

Each stage is a small BaseStage subclass with one async execute() method.
The orchestrator composes them; stages never call each other.
"""

from querymesh.stages.base import BaseStage
from querymesh.stages.chart import ChartGenerationStage
from querymesh.stages.discovery import SourceDiscoveryStage
from querymesh.stages.follow_up import FollowUpStage
from querymesh.stages.greeting import GreetingStage
from querymesh.stages.ranking import RankingStage
from querymesh.stages.safety import SafetyStage
from querymesh.stages.schema_answer import SchemaAnswerStage
from querymesh.stages.synthesis import SynthesisStage
from querymesh.stages.validation import ValidationStage
from querymesh.stages.visualization import VisualizationDecisionStage

__all__ = [
    "BaseStage",
    "ChartGenerationStage",
    "FollowUpStage",
    "GreetingStage",
    "RankingStage",
    "SafetyStage",
    "SchemaAnswerStage",
    "SourceDiscoveryStage",
    "SynthesisStage",
    "ValidationStage",
    "VisualizationDecisionStage",
]
