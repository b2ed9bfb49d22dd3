import pytest
from jinja2 import UndefinedError

from querymesh.prompts.loader import PromptLoader

AGENT_PROMPTS = [
    "agents/clarification.md",
    "agents/follow_up.md",
    "agents/greeting.md",
    "agents/intent.md",
    "agents/ranking.md",
    "agents/relevance.md",
    "agents/source_filter.md",
    "agents/sql_generator.md",
    "agents/synthesis.md",
    "agents/visualization.md",
]


def test_prompt_loader_strips_front_matter():
    loader = PromptLoader()
    content = loader.load("system/main.md")
    assert not content.startswith("---")
    assert content.startswith("You are a data analysis assistant")


def test_prompt_loader_renders_template():
    loader = PromptLoader()
    rendered = loader.render(
        "agents/sql_generator.md",
        user_query="How many donations came from Hyderabad?",
        dialect="postgresql",
        schema_json='{"tables": [{"name": "donations"}]}',
        row_limit=100,
    )
    assert "How many donations came from Hyderabad?" in rendered
    assert "single postgresql query" in rendered
    assert "LIMIT 100" in rendered
    assert "name: sql_generator" not in rendered


def test_prompt_loader_missing_variable_raises():
    loader = PromptLoader()
    with pytest.raises(UndefinedError):
        loader.render("agents/sql_generator.md", user_query="q", dialect="mysql")


def test_prompt_loader_metadata():
    loader = PromptLoader()
    assert loader.get_metadata("system/main.md")["name"] == "system"
    assert loader.get_metadata("agents/sql_generator.md")["temperature"] == 0.1


def test_prompt_loader_caches_loaded_prompts():
    loader = PromptLoader()
    loader.load("system/main.md")
    assert "system/main.md" in loader.cache


@pytest.mark.parametrize("path", ["agents/missing.md", "system/none.md"])
def test_prompt_loader_missing_prompt(path):
    loader = PromptLoader()
    with pytest.raises(FileNotFoundError):
        loader.load(path)
    with pytest.raises(FileNotFoundError):
        loader.render(path)


@pytest.mark.parametrize("path", AGENT_PROMPTS)
def test_every_agent_prompt_has_front_matter(path):
    metadata = PromptLoader().get_metadata(path)
    assert metadata["name"] == path.split("/")[1].removesuffix(".md")
