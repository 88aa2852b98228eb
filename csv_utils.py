import csv
import re
from io import StringIO
from typing import Sequence

from models import Transaction, TransactionType


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    whole, rest = divmod(abs(cents), 100)
    return f"{sign}{whole}.{rest:02d}"


def wallet_label(txn: Transaction) -> str:
    if txn.type == TransactionType.transfer:
        source = txn.from_wallet.name if txn.from_wallet else ""
        target = txn.to_wallet.name if txn.to_wallet else ""
        return f"{source} -> {target}"
    return txn.wallet.name if txn.wallet else ""


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Type", "Amount", "Wallet/From/To", "Category", "Description", "Date"])
    for txn in transactions:
        writer.writerow(
            [
                txn.type.value,
                format_cents(txn.amount_cents),
                sanitize_csv_value(wallet_label(txn)),
                sanitize_csv_value(txn.category.name if txn.category else ""),
                sanitize_csv_value(txn.description or ""),
                txn.date.isoformat(),
            ]
        )
    return output.getvalue()
