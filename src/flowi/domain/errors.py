class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class InvalidRateError(ValidationError):
    pass


class EmptyCartError(ValidationError):
    pass


class InvalidQuantityError(ValidationError):
    pass


class InvalidAmountError(ValidationError):
    pass


class InvalidCurrencyError(ValidationError):
    pass


class InvalidPaymentMethodError(ValidationError):
    pass


class MissingPaymentDetailsError(ValidationError):
    pass


class InvalidPaymentDetailsError(ValidationError):
    pass


class InsufficientPaymentError(ValidationError):
    pass


class CreditLimitExceededError(ValidationError):
    pass


class AlreadyPaidError(AppError):
    pass


class DuplicateInvoiceNumberError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    pass


class FxUnavailableError(AppError):
    pass
