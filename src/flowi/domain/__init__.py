from .models import (
    BankAccount,
    BankTransaction,
    Customer,
    ExchangeRate,
    PaymentDetails,
    Product,
    Receivable,
    Sale,
    SaleItem,
    Supplier,
)
from .errors import (
    AlreadyPaidError,
    AppError,
    CreditLimitExceededError,
    DuplicateInvoiceNumberError,
    EmptyCartError,
    FxUnavailableError,
    InsufficientPaymentError,
    InsufficientStockError,
    InvalidAmountError,
    InvalidCurrencyError,
    InvalidPaymentDetailsError,
    InvalidPaymentMethodError,
    InvalidQuantityError,
    InvalidRateError,
    MissingPaymentDetailsError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "BankAccount",
    "BankTransaction",
    "Customer",
    "ExchangeRate",
    "PaymentDetails",
    "Product",
    "Receivable",
    "Sale",
    "SaleItem",
    "Supplier",
    "AlreadyPaidError",
    "AppError",
    "CreditLimitExceededError",
    "DuplicateInvoiceNumberError",
    "EmptyCartError",
    "FxUnavailableError",
    "InsufficientPaymentError",
    "InsufficientStockError",
    "InvalidAmountError",
    "InvalidCurrencyError",
    "InvalidPaymentDetailsError",
    "InvalidPaymentMethodError",
    "InvalidQuantityError",
    "InvalidRateError",
    "MissingPaymentDetailsError",
    "NotFoundError",
    "ValidationError",
]
