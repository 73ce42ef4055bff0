from core.matching.facade import MatchingFacade, ClaimView

__all__ = ['MatchingFacade', 'ClaimView']
