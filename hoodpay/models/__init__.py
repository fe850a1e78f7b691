from hoodpay.models.user import User
from hoodpay.models.community import Community, CommunityMember, PayoutAccountStatus
from hoodpay.models.subscription import Subscription, SubscriptionStatus
from hoodpay.models.payout import Payout, PayoutStatus
from hoodpay.models.ally import Ally
from hoodpay.models.stripe_price import StripePrice

__all__ = [
    "User", "Community", "CommunityMember", "PayoutAccountStatus",
    "Subscription", "SubscriptionStatus", "Payout", "PayoutStatus",
    "Ally", "StripePrice"
]
