from heliumai.backends._base import InferenceBackend
from heliumai.backends.any_llm import AnyLLMBackend

__all__ = ["AnyLLMBackend", "InferenceBackend"]
