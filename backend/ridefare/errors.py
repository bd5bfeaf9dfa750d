"""Typed errors raised by the RideFare pricing components."""


class PricingError(Exception):
    """Base class for errors raised to the immediate caller."""


class InvalidInput(PricingError):
    """Malformed numeric or date input."""


class UnsupportedServiceType(PricingError):
    """Service type is not one of the recognized values."""

    def __init__(self, service_type):
        self.service_type = service_type
        super().__init__(f"Unsupported service type: {service_type!r}")


class AccountNotFound(PricingError):
    """No corporate account exists for the given company."""

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Corporate account {company_id} not found")
