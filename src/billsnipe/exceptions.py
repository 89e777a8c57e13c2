"""Exception hierarchy for plan comparison and usage prediction."""


class BillsnipeError(Exception):
    """Base exception for billsnipe."""

    pass


class ValidationError(BillsnipeError):
    """Input rejected at the boundary (usage import, catalog schema, request)."""

    pass


class InsufficientDataError(BillsnipeError):
    """Not enough usage history to build a prediction."""

    def __init__(self, days_found: int, days_required: int):
        self.days_found = days_found
        self.days_required = days_required
        super().__init__(
            f"At least {days_required} days of usage data required for predictions "
            f"(found {days_found}). Import more data and try again."
        )


class MalformedPlanSchemaError(BillsnipeError):
    """Tiered plan does not cover the consumption it is asked to price."""

    pass


class CatalogError(BillsnipeError):
    """Plan catalog could not be fetched or parsed."""

    pass


class AccountNotFoundError(BillsnipeError):
    """No utility account with the given id."""

    pass
