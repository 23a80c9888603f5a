from calcula.models.profile import Profile
from calcula.models.user_role import UserRole
from calcula.models.produto import Produto
from calcula.models.receita import Receita
from calcula.models.markup import Markup
from calcula.models.affiliate import Affiliate
from calcula.models.affiliate_link import AffiliateLink
from calcula.models.affiliate_coupon import AffiliateCoupon
from calcula.models.affiliate_coupon_redemption import AffiliateCouponRedemption
from calcula.models.affiliate_sale import AffiliateSale
from calcula.models.affiliate_commission import AffiliateCommission
from calcula.models.affiliate_stripe_product import AffiliateStripeProduct
from calcula.models.user_configuration import UserConfiguration
from calcula.models.activity_log import ActivityLog
from calcula.models.subscription import Subscription
from calcula.models.invoice import Invoice

__all__ = [
    "Profile",
    "UserRole",
    "Produto",
    "Receita",
    "Markup",
    "Affiliate",
    "AffiliateLink",
    "AffiliateCoupon",
    "AffiliateCouponRedemption",
    "AffiliateSale",
    "AffiliateCommission",
    "AffiliateStripeProduct",
    "UserConfiguration",
    "ActivityLog",
    "Subscription",
    "Invoice",
]
