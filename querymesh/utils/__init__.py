from querymesh.utils.json_output import extract_code_block, extract_json_payload
from querymesh.utils.pattern_matcher import QueryPattern, QueryPatternMatcher, QueryPatternType
from querymesh.utils.scores import clamp_score

__all__ = [
    "QueryPattern",
    "QueryPatternMatcher",
    "QueryPatternType",
    "clamp_score",
    "extract_code_block",
    "extract_json_payload",
]
