from ninja_extra.throttling import AnonRateThrottle, UserRateThrottle


class AnonDefaultThrottle(AnonRateThrottle):
    rate = "60/min"


class UserDefaultThrottle(UserRateThrottle):
    rate = "100/min"


class WriteThrottle(UserRateThrottle):
    rate = "30/min"


class BillingCommandThrottle(UserRateThrottle):
    scope = "billing"
    rate = "20/min"


class PromoRedemptionThrottle(UserRateThrottle):
    scope = "promo_redemption"
    rate = "10/min"


class AuthThrottle(AnonRateThrottle):
    scope = "auth"
    rate = "10/min"
