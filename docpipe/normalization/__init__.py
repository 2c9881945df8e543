from docpipe.normalization.normalizer import normalize

__all__ = ["normalize"]
