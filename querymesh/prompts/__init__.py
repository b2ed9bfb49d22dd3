from querymesh.prompts.loader import PromptLoader

__all__ = ["PromptLoader"]
