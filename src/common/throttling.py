from ninja_extra.throttling import AnonRateThrottle, UserRateThrottle


class AnonDefaultThrottle(AnonRateThrottle):
    rate = "60/min"


class UserDefaultThrottle(UserRateThrottle):
    rate = "100/min"


class WriteThrottle(UserRateThrottle):
    rate = "100/min"


class CheckoutThrottle(UserRateThrottle):
    rate = "20/min"


class CommunicationSendThrottle(UserRateThrottle):
    rate = "10/min"


class TokenIssueThrottle(UserRateThrottle):
    rate = "10/hour"
