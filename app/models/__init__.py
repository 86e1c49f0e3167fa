from app.models.inventory import Currency, Product, Transaction, TransactionLine, TransactionType

__all__ = [
    "Currency",
    "Product",
    "Transaction",
    "TransactionLine",
    "TransactionType",
]
