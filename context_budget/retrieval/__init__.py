from .packer import ContextPacker, cosine_similarity, normalize_passage

__all__ = ["ContextPacker", "cosine_similarity", "normalize_passage"]
