from .matcher import IdentityMatcher

__all__ = ["IdentityMatcher"]
