from promptshelf.models.prompt import PromptRecord

__all__ = ["PromptRecord"]
