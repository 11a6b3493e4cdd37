class DealSignalError(Exception):
    """Base class for deal signal engine errors"""

class InvalidRequestError(DealSignalError):
    """Request is missing tenantId or dealId"""

class DealNotFoundError(DealSignalError):
    """The mandatory deal lookup found nothing"""

    def __init__(self, tenant_id: str, deal_id: str):
        super().__init__("Deal not found")
        self.tenant_id = tenant_id
        self.deal_id = deal_id

class SummaryGenerationError(DealSignalError):
    """Opaque failure reported to callers; the cause is chained, never exposed"""

    MESSAGE = "Failed to generate AI summary"

    def __init__(self, message: str = MESSAGE):
        super().__init__(message)

class StoreUnavailableError(DealSignalError):
    """A deal store backend could not be initialised"""
