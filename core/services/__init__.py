from .messages import MessageService
from .needs import CategoryService, NeedService
from .offers import OfferService
from .payments import PaymentService
from .recommendations import RecommendationService
from .reviews import ReviewService
from .search import SearchService
from .users import UserService
from .verification import VerificationService

__all__ = [
    'CategoryService',
    'MessageService',
    'NeedService',
    'OfferService',
    'PaymentService',
    'RecommendationService',
    'ReviewService',
    'SearchService',
    'UserService',
    'VerificationService',
]
